"""Shared fixtures: a scripted, recording transport and client factories."""

from __future__ import annotations

import asyncio
import itertools
import json
from collections import defaultdict
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import urlsplit

import pytest

from async_webdriver.client import WebDriverClient
from async_webdriver.config import DriverConfig, RetryConfig
from async_webdriver.errors import TransportFailure, TransportFailureKind
from async_webdriver.transport import Transport, WireResponse

DRIVER_URL = "http://driver.test"

Reply = Union[WireResponse, BaseException]


def wire(value: Any = None, *, status: int = 200) -> WireResponse:
    return WireResponse(
        status=status,
        raw=json.dumps({"value": value}).encode(),
        content_type="application/json",
    )


def wire_error(code: str, message: str = "boom", *, status: int = 404) -> WireResponse:
    return wire({"error": code, "message": message, "stacktrace": ""}, status=status)


def connection_failure() -> TransportFailure:
    return TransportFailure(TransportFailureKind.CONNECTION, "connection reset by peer")


class RecordingTransport(Transport):
    """Transport double that records every request and replays scripted replies.

    Replies registered for a ``(method, path)`` pair are consumed in order; the
    last one keeps answering. Unscripted new-session requests get ids S1, S2, ...
    and everything else gets ``{"value": null}``.
    """

    def __init__(self, *, delay: float = 0.0) -> None:
        self.requests: list[tuple[str, str, Any]] = []
        self.events: list[tuple[str, str, Any]] = []
        self.delay = delay
        self.closed = False
        self._replies: dict[tuple[str, str], list[Reply]] = defaultdict(list)
        self._session_ids = (f"S{n}" for n in itertools.count(1))

    def add(self, method: str, path: str, *replies: Reply) -> None:
        self._replies[(method, path)].extend(replies)

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> list[tuple[str, str, Any]]:
        return [
            request
            for request in self.requests
            if (method is None or request[0] == method) and (path is None or request[1] == path)
        ]

    async def send(
        self,
        method: str,
        url: str,
        body: Any = None,
        *,
        timeout: Optional[float] = None,
    ) -> WireResponse:
        path = urlsplit(url).path
        self.requests.append((method, path, body))
        self.events.append(("start", path, body))
        if self.delay:
            await asyncio.sleep(self.delay)
        self.events.append(("end", path, body))
        queue = self._replies.get((method, path))
        if queue:
            reply = queue.pop(0) if len(queue) > 1 else queue[0]
        elif (method, path) == ("POST", "/session"):
            reply = wire({"sessionId": next(self._session_ids), "capabilities": {"browserName": "chrome"}})
        else:
            reply = wire(None)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def config() -> DriverConfig:
    return DriverConfig(
        webdriver_url=DRIVER_URL,
        retry=RetryConfig(max_attempts=3, backoff=0.0),
        request_timeout=1.0,
        poll_interval=0.01,
    )


@pytest.fixture
def start_client(
    config: DriverConfig,
) -> Callable[..., Awaitable[WebDriverClient]]:
    async def _start(
        transport: Transport,
        capabilities: Optional[dict[str, Any]] = None,
        **config_updates: Any,
    ) -> WebDriverClient:
        client_config = config.model_copy(update=config_updates) if config_updates else config
        client = WebDriverClient(transport, config=client_config)
        await client.start(capabilities if capabilities is not None else {"browserName": "chrome"})
        return client

    return _start
