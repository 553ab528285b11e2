"""Session lifecycle and per-session command serialization."""

from __future__ import annotations

import asyncio
import enum
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, FrozenSet, Mapping, Optional

from .errors import SessionNotActive, SessionStateError
from .handles import HandleRegistry

LOGGER = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    CREATED = "created"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.UNINITIALIZED: frozenset({SessionState.CREATED, SessionState.CLOSED}),
    SessionState.CREATED: frozenset({SessionState.ACTIVE, SessionState.CLOSING}),
    SessionState.ACTIVE: frozenset({SessionState.CLOSING}),
    SessionState.CLOSING: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


class Session:
    """State of one WebDriver session.

    Lifecycle changes go through the transition methods below, which reject
    anything outside ``Uninitialized -> Created -> Active -> Closing -> Closed``
    (``Created -> Closing`` is allowed when post-creation setup fails, and
    ``Uninitialized -> Closed`` when the client is closed before starting).
    Commands run inside :meth:`execution_slot`, a FIFO lock owned by this
    session, so they reach the driver in the order they were issued.
    """

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")
        self._state = SessionState.UNINITIALIZED
        self._session_id: Optional[str] = None
        self._capabilities: Dict[str, Any] = {}
        self._registry: Optional[HandleRegistry] = None
        self._slot = asyncio.Lock()

    def __repr__(self) -> str:
        return f"Session(id={self._session_id!r}, state={self._state.value})"

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def capabilities(self) -> Mapping[str, Any]:
        return dict(self._capabilities)

    @property
    def is_alive(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def registry(self) -> HandleRegistry:
        if self._registry is None:
            raise SessionNotActive(self._session_id, self._state)
        return self._registry

    def url_for(self, path: str) -> str:
        return f"{self._base_url}{path}"

    # Transitions -----------------------------------------------------------

    def _transition(self, target: SessionState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise SessionStateError(
                f"cannot move session {self._session_id!r} from {self._state.value} to {target.value}",
                self._state,
            )
        LOGGER.debug("Session %s: %s -> %s", self._session_id, self._state.value, target.value)
        self._state = target

    def mark_created(self, session_id: str, capabilities: Mapping[str, Any]) -> None:
        self._transition(SessionState.CREATED)
        self._session_id = session_id
        self._capabilities = dict(capabilities)
        self._registry = HandleRegistry(session_id)

    def mark_active(self) -> None:
        self._transition(SessionState.ACTIVE)

    def mark_closing(self) -> None:
        self._transition(SessionState.CLOSING)

    def mark_closed(self) -> None:
        self._transition(SessionState.CLOSED)
        if self._registry is not None:
            self._registry.clear()

    def terminate(self) -> None:
        """Record that the driver no longer knows this session.

        A session that is already closing is left to the close in progress.
        """

        if self._state in {SessionState.CREATED, SessionState.ACTIVE}:
            LOGGER.warning("Session %s was invalidated by the driver", self._session_id)
            self.mark_closing()
            self.mark_closed()

    # Serialization ---------------------------------------------------------

    def ensure_active(self) -> None:
        if self._state is not SessionState.ACTIVE:
            raise SessionNotActive(self._session_id, self._state)

    @asynccontextmanager
    async def execution_slot(
        self, *, allowed: FrozenSet[SessionState] = frozenset({SessionState.ACTIVE})
    ) -> AsyncIterator["Session"]:
        """Hold the session's single execution slot.

        The state is checked before queueing and again once the slot is held,
        since a command queued behind a close must not reach the driver.
        """

        if self._state not in allowed:
            raise SessionNotActive(self._session_id, self._state)
        async with self._slot:
            if self._state not in allowed:
                raise SessionNotActive(self._session_id, self._state)
            yield self
