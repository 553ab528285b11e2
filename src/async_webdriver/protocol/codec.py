"""Decoding of driver responses into values, handles and typed errors."""

from __future__ import annotations

import base64
import binascii
from typing import Any, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import (
    CommandEncodingError,
    ErrorCode,
    InvalidHandle,
    MalformedResponse,
    ProtocolError,
    protocol_error_for,
)
from ..handles import (
    ELEMENT_KEY,
    FRAME_KEY,
    LEGACY_ELEMENT_KEY,
    SHADOW_ROOT_KEY,
    WINDOW_KEY,
    ElementHandle,
    FrameHandle,
    Handle,
    HandleRegistry,
    ShadowRootHandle,
    WindowHandle,
)
from ..transport import WireResponse

M = TypeVar("M", bound=BaseModel)

# JSON wire protocol status codes still emitted by some older drivers.
LEGACY_STATUS: dict[int, ErrorCode] = {
    6: ErrorCode.INVALID_SESSION_ID,
    7: ErrorCode.NO_SUCH_ELEMENT,
    8: ErrorCode.NO_SUCH_FRAME,
    9: ErrorCode.UNKNOWN_COMMAND,
    10: ErrorCode.STALE_ELEMENT_REFERENCE,
    11: ErrorCode.ELEMENT_NOT_INTERACTABLE,
    12: ErrorCode.INVALID_ELEMENT_STATE,
    13: ErrorCode.UNKNOWN_ERROR,
    15: ErrorCode.ELEMENT_NOT_SELECTABLE,
    17: ErrorCode.JAVASCRIPT_ERROR,
    19: ErrorCode.INVALID_SELECTOR,
    21: ErrorCode.TIMEOUT,
    23: ErrorCode.NO_SUCH_WINDOW,
    24: ErrorCode.INVALID_COOKIE_DOMAIN,
    25: ErrorCode.UNABLE_TO_SET_COOKIE,
    26: ErrorCode.UNEXPECTED_ALERT_OPEN,
    27: ErrorCode.NO_SUCH_ALERT,
    28: ErrorCode.SCRIPT_TIMEOUT,
    29: ErrorCode.INVALID_COORDINATES,
    32: ErrorCode.INVALID_SELECTOR,
    33: ErrorCode.SESSION_NOT_CREATED,
    34: ErrorCode.MOVE_TARGET_OUT_OF_BOUNDS,
}

_REFERENCE_TYPES: tuple[tuple[str, Type[Handle]], ...] = (
    (ELEMENT_KEY, ElementHandle),
    (LEGACY_ELEMENT_KEY, ElementHandle),
    (SHADOW_ROOT_KEY, ShadowRootHandle),
    (WINDOW_KEY, WindowHandle),
    (FRAME_KEY, FrameHandle),
)


def decode_response(response: WireResponse) -> Any:
    """Return the ``value`` of a successful response or raise the matching error."""

    body = response.json()
    if not isinstance(body, dict) or "value" not in body:
        raise MalformedResponse("response has no top-level 'value'", body)
    value = body["value"]
    legacy_status = body.get("status")
    if isinstance(legacy_status, int) and not isinstance(legacy_status, bool) and legacy_status != 0:
        raise _decode_legacy_error(response.status, legacy_status, value)
    if response.is_success and not _is_error_payload(value):
        return value
    raise decode_error(response.status, value)


def decode_error(status: int, value: Any) -> ProtocolError:
    """Map a ``{"error", "message", "stacktrace"}`` payload onto a :class:`ProtocolError`."""

    if not isinstance(value, dict) or not isinstance(value.get("error"), str):
        raise MalformedResponse(f"HTTP {status} response is not a WebDriver error", value)
    payload = dict(value)
    # phantomjs attaches a full-page screenshot to every error
    payload.pop("screen", None)
    message = payload.get("message", "")
    if not isinstance(message, str):
        raise MalformedResponse("error message is not a string", payload)
    stacktrace = payload.get("stacktrace")
    raw_code = payload["error"]
    error_type = protocol_error_for(raw_code)
    return error_type(
        message,
        raw_code=raw_code,
        stacktrace=stacktrace if isinstance(stacktrace, str) else None,
        data=payload.get("data"),
        status=status,
    )


def _decode_legacy_error(status: int, legacy_status: int, value: Any) -> ProtocolError:
    code = LEGACY_STATUS.get(legacy_status)
    if code is None or not isinstance(value, dict) or not isinstance(value.get("message"), str):
        raise MalformedResponse(f"unrecognised legacy status {legacy_status}", value)
    payload = dict(value)
    payload.pop("screen", None)
    return protocol_error_for(code.value)(
        payload["message"],
        raw_code=code.value,
        data=payload.get("data"),
        status=status,
    )


def _is_error_payload(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("error"), str) and "message" in value


# Typed extraction ------------------------------------------------------------


def expect_null(value: Any) -> None:
    # geckodriver answers some void commands with {} instead of null
    if value is None or value == {}:
        return None
    raise MalformedResponse("expected null", value)


def expect_str(value: Any) -> str:
    if not isinstance(value, str):
        raise MalformedResponse("expected a string", value)
    return value


def expect_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return expect_str(value)


def expect_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise MalformedResponse("expected a boolean", value)
    return value


def expect_list(value: Any) -> List[Any]:
    if not isinstance(value, list):
        raise MalformedResponse("expected an array", value)
    return value


def expect_model(model: Type[M], value: Any) -> M:
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise MalformedResponse(f"expected {model.__name__}: {exc.errors()[0]['msg']}", value) from exc


def expect_base64(value: Any) -> bytes:
    encoded = expect_str(value)
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedResponse("expected base64 data", encoded) from exc


# Handles ---------------------------------------------------------------------


def decode_reference(value: Any, handle_type: Type[Handle], registry: HandleRegistry) -> Handle:
    """Intern a web reference object such as ``{ELEMENT_KEY: "abc"}``."""

    if isinstance(value, dict):
        for key, candidate_type in _REFERENCE_TYPES:
            if candidate_type is handle_type and isinstance(value.get(key), str):
                return registry.intern(handle_type, value[key])
    raise MalformedResponse(f"expected a {handle_type.__name__} reference", value)


def decode_element(value: Any, registry: HandleRegistry) -> ElementHandle:
    return decode_reference(value, ElementHandle, registry)  # type: ignore[return-value]


def decode_elements(value: Any, registry: HandleRegistry) -> List[ElementHandle]:
    return [decode_element(item, registry) for item in expect_list(value)]


def decode_window(value: Any, registry: HandleRegistry) -> WindowHandle:
    return registry.intern(WindowHandle, expect_str(value))


def decode_windows(value: Any, registry: HandleRegistry) -> List[WindowHandle]:
    return [decode_window(item, registry) for item in expect_list(value)]


def intern_handles(value: Any, registry: HandleRegistry) -> Any:
    """Replace every web reference nested in *value* by its interned handle."""

    if isinstance(value, list):
        return [intern_handles(item, registry) for item in value]
    if isinstance(value, dict):
        if len(value) == 1:
            for key, handle_type in _REFERENCE_TYPES:
                if isinstance(value.get(key), str):
                    return registry.intern(handle_type, value[key])
        return {key: intern_handles(item, registry) for key, item in value.items()}
    return value


def encode_arguments(args: Iterable[Any], session_id: Optional[str]) -> List[Any]:
    """Serialize script arguments, turning handles into web references."""

    return [_encode_argument(arg, session_id) for arg in args]


def _encode_argument(value: Any, session_id: Optional[str]) -> Any:
    if isinstance(value, Handle):
        if value.session_id != session_id:
            raise InvalidHandle(value, session_id)
        return value.to_json()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_encode_argument(item, session_id) for item in value]
    if isinstance(value, dict):
        encoded = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise CommandEncodingError(f"script argument keys must be strings, got {key!r}")
            encoded[key] = _encode_argument(item, session_id)
        return encoded
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    raise CommandEncodingError(f"cannot serialize script argument of type {type(value).__name__}")
