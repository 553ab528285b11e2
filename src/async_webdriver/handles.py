"""Typed wrappers for server-issued references and their per-session registry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Dict, Optional, Tuple, Type, TypeVar

from .errors import InvalidHandle

ELEMENT_KEY = "element-6066-11e4-a52e-4f735466cecf"
SHADOW_ROOT_KEY = "shadow-6066-11e4-a52e-4f735466cecf"
WINDOW_KEY = "window-fcc6-11e5-b4f8-330a88ab9d7f"
FRAME_KEY = "frame-075b-4da1-b6ba-e579c2d3230a"
LEGACY_ELEMENT_KEY = "ELEMENT"


@dataclass(frozen=True)
class Handle:
    """An opaque reference issued by the driver, scoped to one session.

    The driver is the only authority on whether the reference is still
    valid; the client only guarantees it is never sent to another session.
    """

    reference: str
    session_id: str

    wire_key: ClassVar[str] = ""

    def to_json(self) -> dict[str, str]:
        return {self.wire_key: self.reference}


@dataclass(frozen=True)
class ElementHandle(Handle):
    wire_key: ClassVar[str] = ELEMENT_KEY


@dataclass(frozen=True)
class ShadowRootHandle(Handle):
    wire_key: ClassVar[str] = SHADOW_ROOT_KEY


@dataclass(frozen=True)
class WindowHandle(Handle):
    wire_key: ClassVar[str] = WINDOW_KEY


@dataclass(frozen=True)
class FrameHandle(Handle):
    wire_key: ClassVar[str] = FRAME_KEY


H = TypeVar("H", bound=Handle)


class HandleRegistry:
    """Interns references so equal server references map to one handle value."""

    def __init__(self, session_id: str) -> None:
        self._session_id = session_id
        self._handles: Dict[Tuple[Type[Handle], str], Handle] = {}

    @property
    def session_id(self) -> str:
        return self._session_id

    def intern(self, handle_type: Type[H], reference: str) -> H:
        key = (handle_type, reference)
        handle = self._handles.get(key)
        if handle is None:
            handle = handle_type(reference=reference, session_id=self._session_id)
            self._handles[key] = handle
        return handle  # type: ignore[return-value]

    def lookup(self, handle_type: Type[H], reference: str) -> Optional[H]:
        return self._handles.get((handle_type, reference))  # type: ignore[return-value]

    def check(self, handle: Handle) -> None:
        """Raise :class:`InvalidHandle` unless *handle* belongs to this session."""

        if handle.session_id != self._session_id:
            raise InvalidHandle(handle, self._session_id)

    def clear(self) -> None:
        self._handles.clear()

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, handle: object) -> bool:
        if not isinstance(handle, Handle):
            return False
        return self._handles.get((type(handle), handle.reference)) == handle
