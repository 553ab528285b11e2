"""HTTP transport adapters used to exchange JSON with a WebDriver server."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import httpx

from .errors import TransportFailure, TransportFailureKind

LOGGER = logging.getLogger(__name__)


@dataclass
class WireResponse:
    """Status code and body of a completed HTTP exchange."""

    status: int
    raw: bytes = b""
    content_type: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Decode the body, raising :class:`TransportFailure` if it is not JSON."""

        try:
            return json.loads(self.raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise TransportFailure(
                TransportFailureKind.MALFORMED_BODY,
                f"HTTP {self.status} response body is not JSON",
                body=self.raw,
                content_type=self.content_type,
            ) from exc


class Transport(ABC):
    """Interface for sending a single request to the driver."""

    @abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        body: Optional[Mapping[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> WireResponse:
        """Perform the exchange or raise :class:`TransportFailure`."""

    async def aclose(self) -> None:
        """Release pooled connections."""


class HttpxTransport(Transport):
    """Transport backed by a pooled :class:`httpx.AsyncClient`."""

    def __init__(
        self,
        *,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._user_agent = user_agent

    async def send(
        self,
        method: str,
        url: str,
        body: Optional[Mapping[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> WireResponse:
        headers = {"Accept": "application/json"}
        if self._user_agent:
            headers["User-Agent"] = self._user_agent
        content: Optional[bytes] = None
        if body is not None:
            headers["Content-Type"] = "application/json; charset=utf-8"
            content = json.dumps(body).encode("utf-8")
        request_kwargs: dict[str, Any] = {"headers": headers, "content": content}
        if timeout is not None:
            request_kwargs["timeout"] = timeout
        LOGGER.debug("%s %s", method, url)
        try:
            response = await self._client.request(method, url, **request_kwargs)
        except httpx.TimeoutException as exc:
            raise TransportFailure(TransportFailureKind.TIMEOUT, str(exc) or "request timed out") from exc
        except httpx.TransportError as exc:
            raise TransportFailure(TransportFailureKind.CONNECTION, str(exc) or type(exc).__name__) from exc
        return WireResponse(
            status=response.status_code,
            raw=response.content,
            content_type=response.headers.get("content-type"),
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
