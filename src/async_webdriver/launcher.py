"""Spawn a local WebDriver server binary such as chromedriver or geckodriver."""

from __future__ import annotations

import logging
import shutil
import socket
import subprocess
import time
from typing import Optional, Sequence

import httpx

from .config import LauncherConfig

LOGGER = logging.getLogger(__name__)


class LauncherError(RuntimeError):
    """Raised when the driver binary cannot be started."""


def find_free_port(host: str = "127.0.0.1") -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


class DriverProcess:
    """Manage the lifecycle of a driver server process."""

    def __init__(
        self,
        driver: str = "chromedriver",
        host: str = "127.0.0.1",
        port: Optional[int] = None,
        args: Sequence[str] = (),
        startup_timeout: float = 10.0,
    ) -> None:
        self._driver = driver
        self._host = host
        self._port = port
        self._args = list(args)
        self._startup_timeout = startup_timeout
        self._process: Optional[subprocess.Popen[bytes]] = None
        self._url: Optional[str] = None

    @classmethod
    def from_config(cls, config: LauncherConfig) -> "DriverProcess":
        return cls(
            driver=config.driver,
            host=config.host,
            port=config.port,
            args=config.args,
            startup_timeout=config.startup_timeout,
        )

    def __enter__(self) -> str:
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    @property
    def url(self) -> Optional[str]:
        return self._url

    def start(self) -> str:
        """Launch the driver and return its base URL once it reports ready."""

        executable = shutil.which(self._driver)
        if executable is None:
            raise LauncherError(f"{self._driver} not found on PATH")
        port = self._port or find_free_port(self._host)
        args = [executable, f"--port={port}", *self._args]
        LOGGER.debug("Launching %s", " ".join(args))
        self._process = subprocess.Popen(
            args,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        self._url = f"http://{self._host}:{port}"
        try:
            self._wait_until_ready()
        except BaseException:
            self.stop()
            raise
        LOGGER.info("%s listening on %s", self._driver, self._url)
        return self._url

    def stop(self) -> None:
        if self._process and self._process.poll() is None:
            LOGGER.debug("Terminating %s", self._driver)
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:  # pragma: no cover - stubborn driver
                self._process.kill()
                self._process.wait()
        self._process = None
        self._url = None

    def _wait_until_ready(self) -> None:
        assert self._process is not None and self._url is not None
        deadline = time.monotonic() + self._startup_timeout
        while time.monotonic() < deadline:
            if self._process.poll() is not None:
                raise LauncherError(
                    f"{self._driver} exited with code {self._process.returncode} during startup"
                )
            try:
                response = httpx.get(f"{self._url}/status", timeout=1.0)
            except httpx.TransportError:
                time.sleep(0.1)
                continue
            try:
                ready = response.json()["value"]["ready"] is True
            except (ValueError, KeyError, TypeError):
                ready = False
            if ready:
                return
            time.sleep(0.1)
        raise LauncherError(f"{self._driver} did not become ready within {self._startup_timeout}s")
