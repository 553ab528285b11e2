"""Typed parameters and results exchanged with the WebDriver server."""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class LocatorStrategy(str, enum.Enum):
    """Element location strategies defined by WebDriver."""

    CSS = "css selector"
    LINK_TEXT = "link text"
    PARTIAL_LINK_TEXT = "partial link text"
    TAG_NAME = "tag name"
    XPATH = "xpath"


class Locator(BaseModel):
    """An element locator.

    See <https://www.w3.org/TR/webdriver/#element-retrieval>.
    """

    model_config = ConfigDict(frozen=True)

    using: LocatorStrategy
    value: str

    @classmethod
    def css(cls, selector: str) -> "Locator":
        return cls(using=LocatorStrategy.CSS, value=selector)

    @classmethod
    def link_text(cls, text: str) -> "Locator":
        """Match a link element by its exact text."""

        return cls(using=LocatorStrategy.LINK_TEXT, value=text)

    @classmethod
    def partial_link_text(cls, text: str) -> "Locator":
        return cls(using=LocatorStrategy.PARTIAL_LINK_TEXT, value=text)

    @classmethod
    def tag_name(cls, name: str) -> "Locator":
        return cls(using=LocatorStrategy.TAG_NAME, value=name)

    @classmethod
    def xpath(cls, expression: str) -> "Locator":
        return cls(using=LocatorStrategy.XPATH, value=expression)

    def to_wire(self) -> dict[str, str]:
        return {"using": self.using.value, "value": self.value}


class CapabilitiesRequest(BaseModel):
    """Capabilities sent with a new session request."""

    always_match: dict[str, Any] = Field(default_factory=dict)
    first_match: list[dict[str, Any]] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        capabilities: dict[str, Any] = {"alwaysMatch": dict(self.always_match)}
        if self.first_match:
            capabilities["firstMatch"] = [dict(item) for item in self.first_match]
        return {"capabilities": capabilities}


class NewSessionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)
    capabilities: dict[str, Any] = Field(default_factory=dict)


class DriverStatus(BaseModel):
    """Readiness report returned by ``GET /status``."""

    model_config = ConfigDict(extra="allow")

    ready: bool
    message: str = ""


class Timeouts(BaseModel):
    """Session timeouts in milliseconds, as carried on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    implicit: Optional[int] = None
    page_load: Optional[int] = Field(default=None, alias="pageLoad")
    script: Optional[int] = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Rect(BaseModel):
    x: float
    y: float
    width: float
    height: float


class WindowRectUpdate(BaseModel):
    x: Optional[int] = None
    y: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class WindowType(str, enum.Enum):
    TAB = "tab"
    WINDOW = "window"


class NewWindowResult(BaseModel):
    handle: str
    type: WindowType


class SameSite(str, enum.Enum):
    LAX = "Lax"
    STRICT = "Strict"
    NONE = "None"


class Cookie(BaseModel):
    """A browser cookie as described by the WebDriver cookie model."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    value: str
    path: Optional[str] = None
    domain: Optional[str] = None
    secure: Optional[bool] = None
    http_only: Optional[bool] = Field(default=None, alias="httpOnly")
    expiry: Optional[int] = None
    same_site: Optional[SameSite] = Field(default=None, alias="sameSite")

    def to_wire(self) -> dict[str, Any]:
        return {"cookie": self.model_dump(mode="json", by_alias=True, exclude_none=True)}
