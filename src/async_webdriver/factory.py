"""Factories for constructing components from configuration."""

from __future__ import annotations

from typing import Optional

from .client import WebDriverClient
from .config import DriverConfig, LauncherConfig
from .launcher import DriverProcess
from .transport import HttpxTransport, Transport


def build_transport(config: DriverConfig) -> HttpxTransport:
    return HttpxTransport(user_agent=config.user_agent, timeout=config.request_timeout)


def build_client(
    config: DriverConfig,
    *,
    transport: Optional[Transport] = None,
    webdriver_url: Optional[str] = None,
) -> WebDriverClient:
    """Build an unstarted client; it owns the transport unless one is passed in."""

    owns_transport = transport is None
    return WebDriverClient(
        transport or build_transport(config),
        config=config,
        webdriver_url=webdriver_url,
        owns_transport=owns_transport,
    )


def build_launcher(config: LauncherConfig) -> DriverProcess:
    return DriverProcess.from_config(config)
