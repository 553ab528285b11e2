"""Error taxonomy for the WebDriver client."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .handles import Handle
    from .session import SessionState


class WebDriverClientError(RuntimeError):
    """Base class for every failure raised by the client."""


# Transport ---------------------------------------------------------------------


class TransportFailureKind(str, enum.Enum):
    """Categories of HTTP-layer failures."""

    CONNECTION = "connection"
    TIMEOUT = "timeout"
    MALFORMED_BODY = "malformed_body"


class TransportFailure(WebDriverClientError):
    """The HTTP exchange itself failed; no protocol-level answer was obtained."""

    def __init__(
        self,
        kind: TransportFailureKind,
        message: str,
        *,
        body: Optional[bytes] = None,
        content_type: Optional[str] = None,
    ) -> None:
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.message = message
        self.body = body
        self.content_type = content_type

    @property
    def retryable(self) -> bool:
        return self.kind in {TransportFailureKind.CONNECTION, TransportFailureKind.TIMEOUT}


# Local validation --------------------------------------------------------------


class CommandEncodingError(WebDriverClientError):
    """A request could not be built from the supplied parameters."""


class InvalidHandle(CommandEncodingError):
    """A handle was used against a session other than the one that issued it."""

    def __init__(self, handle: "Handle", session_id: Optional[str]) -> None:
        super().__init__(
            f"{type(handle).__name__} {handle.reference!r} belongs to session "
            f"{handle.session_id!r}, not {session_id!r}"
        )
        self.handle = handle
        self.session_id = session_id


class SessionStateError(WebDriverClientError):
    """An operation is not permitted in the session's current lifecycle state."""

    def __init__(self, message: str, state: "SessionState") -> None:
        super().__init__(message)
        self.state = state


class SessionNotActive(SessionStateError):
    """A command was issued while the session was not Active."""

    def __init__(self, session_id: Optional[str], state: "SessionState") -> None:
        super().__init__(f"session {session_id!r} is {state.value}, not active", state)
        self.session_id = session_id


class WaitTimeout(WebDriverClientError):
    """A client-side polling wait gave up."""


# Response decoding -------------------------------------------------------------


class MalformedResponse(WebDriverClientError):
    """The driver answered with JSON that does not match the expected shape."""

    def __init__(self, reason: str, payload: Any) -> None:
        super().__init__(f"{reason}: {payload!r}")
        self.reason = reason
        self.payload = payload


class ErrorCode(str, enum.Enum):
    """Error codes of the W3C WebDriver error catalog."""

    DETACHED_SHADOW_ROOT = "detached shadow root"
    ELEMENT_CLICK_INTERCEPTED = "element click intercepted"
    ELEMENT_NOT_INTERACTABLE = "element not interactable"
    ELEMENT_NOT_SELECTABLE = "element not selectable"
    INSECURE_CERTIFICATE = "insecure certificate"
    INVALID_ARGUMENT = "invalid argument"
    INVALID_COOKIE_DOMAIN = "invalid cookie domain"
    INVALID_COORDINATES = "invalid coordinates"
    INVALID_ELEMENT_STATE = "invalid element state"
    INVALID_SELECTOR = "invalid selector"
    INVALID_SESSION_ID = "invalid session id"
    JAVASCRIPT_ERROR = "javascript error"
    MOVE_TARGET_OUT_OF_BOUNDS = "move target out of bounds"
    NO_SUCH_ALERT = "no such alert"
    NO_SUCH_COOKIE = "no such cookie"
    NO_SUCH_ELEMENT = "no such element"
    NO_SUCH_FRAME = "no such frame"
    NO_SUCH_SHADOW_ROOT = "no such shadow root"
    NO_SUCH_WINDOW = "no such window"
    SCRIPT_TIMEOUT = "script timeout"
    SESSION_NOT_CREATED = "session not created"
    STALE_ELEMENT_REFERENCE = "stale element reference"
    TIMEOUT = "timeout"
    UNABLE_TO_CAPTURE_SCREEN = "unable to capture screen"
    UNABLE_TO_SET_COOKIE = "unable to set cookie"
    UNEXPECTED_ALERT_OPEN = "unexpected alert open"
    UNKNOWN_COMMAND = "unknown command"
    UNKNOWN_ERROR = "unknown error"
    UNKNOWN_METHOD = "unknown method"
    UNSUPPORTED_OPERATION = "unsupported operation"


class ProtocolError(WebDriverClientError):
    """An error reported by the driver through the WebDriver error vocabulary."""

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        *,
        raw_code: Optional[str] = None,
        stacktrace: Optional[str] = None,
        data: Any = None,
        status: Optional[int] = None,
    ) -> None:
        self.raw_code = raw_code or self.code.value
        super().__init__(f"{self.raw_code}: {message}")
        self.message = message
        self.stacktrace = stacktrace
        self.data = data
        self.status = status


class DetachedShadowRoot(ProtocolError):
    code = ErrorCode.DETACHED_SHADOW_ROOT


class ElementClickIntercepted(ProtocolError):
    code = ErrorCode.ELEMENT_CLICK_INTERCEPTED


class ElementNotInteractable(ProtocolError):
    code = ErrorCode.ELEMENT_NOT_INTERACTABLE


class ElementNotSelectable(ProtocolError):
    code = ErrorCode.ELEMENT_NOT_SELECTABLE


class InsecureCertificate(ProtocolError):
    code = ErrorCode.INSECURE_CERTIFICATE


class InvalidArgument(ProtocolError):
    code = ErrorCode.INVALID_ARGUMENT


class InvalidCookieDomain(ProtocolError):
    code = ErrorCode.INVALID_COOKIE_DOMAIN


class InvalidCoordinates(ProtocolError):
    code = ErrorCode.INVALID_COORDINATES


class InvalidElementState(ProtocolError):
    code = ErrorCode.INVALID_ELEMENT_STATE


class InvalidSelector(ProtocolError):
    code = ErrorCode.INVALID_SELECTOR


class InvalidSessionId(ProtocolError):
    code = ErrorCode.INVALID_SESSION_ID


class JavascriptError(ProtocolError):
    code = ErrorCode.JAVASCRIPT_ERROR


class MoveTargetOutOfBounds(ProtocolError):
    code = ErrorCode.MOVE_TARGET_OUT_OF_BOUNDS


class NoSuchAlert(ProtocolError):
    code = ErrorCode.NO_SUCH_ALERT


class NoSuchCookie(ProtocolError):
    code = ErrorCode.NO_SUCH_COOKIE


class NoSuchElement(ProtocolError):
    code = ErrorCode.NO_SUCH_ELEMENT


class NoSuchFrame(ProtocolError):
    code = ErrorCode.NO_SUCH_FRAME


class NoSuchShadowRoot(ProtocolError):
    code = ErrorCode.NO_SUCH_SHADOW_ROOT


class NoSuchWindow(ProtocolError):
    code = ErrorCode.NO_SUCH_WINDOW


class ScriptTimeout(ProtocolError):
    code = ErrorCode.SCRIPT_TIMEOUT


class SessionNotCreated(ProtocolError):
    code = ErrorCode.SESSION_NOT_CREATED


class StaleElementReference(ProtocolError):
    code = ErrorCode.STALE_ELEMENT_REFERENCE


class Timeout(ProtocolError):
    code = ErrorCode.TIMEOUT


class UnableToCaptureScreen(ProtocolError):
    code = ErrorCode.UNABLE_TO_CAPTURE_SCREEN


class UnableToSetCookie(ProtocolError):
    code = ErrorCode.UNABLE_TO_SET_COOKIE


class UnexpectedAlertOpen(ProtocolError):
    code = ErrorCode.UNEXPECTED_ALERT_OPEN


class UnknownCommand(ProtocolError):
    code = ErrorCode.UNKNOWN_COMMAND


class UnknownError(ProtocolError):
    code = ErrorCode.UNKNOWN_ERROR


class UnknownMethod(ProtocolError):
    code = ErrorCode.UNKNOWN_METHOD


class UnsupportedOperation(ProtocolError):
    code = ErrorCode.UNSUPPORTED_OPERATION


ERROR_TYPES: dict[str, type[ProtocolError]] = {
    cls.code.value: cls for cls in ProtocolError.__subclasses__()
}


def protocol_error_for(raw_code: str) -> type[ProtocolError]:
    """Return the exception class for a wire error code, falling back to UnknownError."""

    return ERROR_TYPES.get(raw_code, UnknownError)
