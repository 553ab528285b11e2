"""Encoding of WebDriver commands into method, path and JSON body."""

from __future__ import annotations

import enum
import string
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Type, Union
from urllib.parse import quote

from ..errors import CommandEncodingError, InvalidHandle
from ..handles import ElementHandle, Handle, ShadowRootHandle


@dataclass(frozen=True)
class Endpoint:
    method: str
    path: str

    @property
    def idempotent(self) -> bool:
        return self.method == "GET"


class CommandKind(str, enum.Enum):
    """WebDriver endpoints understood by the client."""

    NEW_SESSION = "new_session"
    DELETE_SESSION = "delete_session"
    STATUS = "status"
    GET_TIMEOUTS = "get_timeouts"
    SET_TIMEOUTS = "set_timeouts"
    NAVIGATE_TO = "navigate_to"
    GET_CURRENT_URL = "get_current_url"
    BACK = "back"
    FORWARD = "forward"
    REFRESH = "refresh"
    GET_TITLE = "get_title"
    GET_PAGE_SOURCE = "get_page_source"
    GET_WINDOW_HANDLE = "get_window_handle"
    CLOSE_WINDOW = "close_window"
    SWITCH_TO_WINDOW = "switch_to_window"
    GET_WINDOW_HANDLES = "get_window_handles"
    NEW_WINDOW = "new_window"
    SWITCH_TO_FRAME = "switch_to_frame"
    SWITCH_TO_PARENT_FRAME = "switch_to_parent_frame"
    GET_WINDOW_RECT = "get_window_rect"
    SET_WINDOW_RECT = "set_window_rect"
    MAXIMIZE_WINDOW = "maximize_window"
    MINIMIZE_WINDOW = "minimize_window"
    FULLSCREEN_WINDOW = "fullscreen_window"
    GET_ACTIVE_ELEMENT = "get_active_element"
    GET_ELEMENT_SHADOW_ROOT = "get_element_shadow_root"
    FIND_ELEMENT = "find_element"
    FIND_ELEMENTS = "find_elements"
    FIND_ELEMENT_FROM_ELEMENT = "find_element_from_element"
    FIND_ELEMENTS_FROM_ELEMENT = "find_elements_from_element"
    FIND_ELEMENT_FROM_SHADOW_ROOT = "find_element_from_shadow_root"
    FIND_ELEMENTS_FROM_SHADOW_ROOT = "find_elements_from_shadow_root"
    IS_ELEMENT_SELECTED = "is_element_selected"
    GET_ELEMENT_ATTRIBUTE = "get_element_attribute"
    GET_ELEMENT_PROPERTY = "get_element_property"
    GET_ELEMENT_CSS_VALUE = "get_element_css_value"
    GET_ELEMENT_TEXT = "get_element_text"
    GET_ELEMENT_TAG_NAME = "get_element_tag_name"
    GET_ELEMENT_RECT = "get_element_rect"
    IS_ELEMENT_ENABLED = "is_element_enabled"
    ELEMENT_CLICK = "element_click"
    ELEMENT_CLEAR = "element_clear"
    ELEMENT_SEND_KEYS = "element_send_keys"
    TAKE_ELEMENT_SCREENSHOT = "take_element_screenshot"
    EXECUTE_SCRIPT = "execute_script"
    EXECUTE_ASYNC_SCRIPT = "execute_async_script"
    GET_ALL_COOKIES = "get_all_cookies"
    GET_NAMED_COOKIE = "get_named_cookie"
    ADD_COOKIE = "add_cookie"
    DELETE_COOKIE = "delete_cookie"
    DELETE_ALL_COOKIES = "delete_all_cookies"
    PERFORM_ACTIONS = "perform_actions"
    RELEASE_ACTIONS = "release_actions"
    DISMISS_ALERT = "dismiss_alert"
    ACCEPT_ALERT = "accept_alert"
    GET_ALERT_TEXT = "get_alert_text"
    SEND_ALERT_TEXT = "send_alert_text"
    TAKE_SCREENSHOT = "take_screenshot"

    @property
    def endpoint(self) -> Endpoint:
        return ENDPOINTS[self]


_S = "/session/{session_id}"
_E = _S + "/element/{element}"

ENDPOINTS: dict[CommandKind, Endpoint] = {
    CommandKind.NEW_SESSION: Endpoint("POST", "/session"),
    CommandKind.DELETE_SESSION: Endpoint("DELETE", _S),
    CommandKind.STATUS: Endpoint("GET", "/status"),
    CommandKind.GET_TIMEOUTS: Endpoint("GET", _S + "/timeouts"),
    CommandKind.SET_TIMEOUTS: Endpoint("POST", _S + "/timeouts"),
    CommandKind.NAVIGATE_TO: Endpoint("POST", _S + "/url"),
    CommandKind.GET_CURRENT_URL: Endpoint("GET", _S + "/url"),
    CommandKind.BACK: Endpoint("POST", _S + "/back"),
    CommandKind.FORWARD: Endpoint("POST", _S + "/forward"),
    CommandKind.REFRESH: Endpoint("POST", _S + "/refresh"),
    CommandKind.GET_TITLE: Endpoint("GET", _S + "/title"),
    CommandKind.GET_PAGE_SOURCE: Endpoint("GET", _S + "/source"),
    CommandKind.GET_WINDOW_HANDLE: Endpoint("GET", _S + "/window"),
    CommandKind.CLOSE_WINDOW: Endpoint("DELETE", _S + "/window"),
    CommandKind.SWITCH_TO_WINDOW: Endpoint("POST", _S + "/window"),
    CommandKind.GET_WINDOW_HANDLES: Endpoint("GET", _S + "/window/handles"),
    CommandKind.NEW_WINDOW: Endpoint("POST", _S + "/window/new"),
    CommandKind.SWITCH_TO_FRAME: Endpoint("POST", _S + "/frame"),
    CommandKind.SWITCH_TO_PARENT_FRAME: Endpoint("POST", _S + "/frame/parent"),
    CommandKind.GET_WINDOW_RECT: Endpoint("GET", _S + "/window/rect"),
    CommandKind.SET_WINDOW_RECT: Endpoint("POST", _S + "/window/rect"),
    CommandKind.MAXIMIZE_WINDOW: Endpoint("POST", _S + "/window/maximize"),
    CommandKind.MINIMIZE_WINDOW: Endpoint("POST", _S + "/window/minimize"),
    CommandKind.FULLSCREEN_WINDOW: Endpoint("POST", _S + "/window/fullscreen"),
    CommandKind.GET_ACTIVE_ELEMENT: Endpoint("GET", _S + "/element/active"),
    CommandKind.GET_ELEMENT_SHADOW_ROOT: Endpoint("GET", _E + "/shadow"),
    CommandKind.FIND_ELEMENT: Endpoint("POST", _S + "/element"),
    CommandKind.FIND_ELEMENTS: Endpoint("POST", _S + "/elements"),
    CommandKind.FIND_ELEMENT_FROM_ELEMENT: Endpoint("POST", _E + "/element"),
    CommandKind.FIND_ELEMENTS_FROM_ELEMENT: Endpoint("POST", _E + "/elements"),
    CommandKind.FIND_ELEMENT_FROM_SHADOW_ROOT: Endpoint("POST", _S + "/shadow/{shadow}/element"),
    CommandKind.FIND_ELEMENTS_FROM_SHADOW_ROOT: Endpoint("POST", _S + "/shadow/{shadow}/elements"),
    CommandKind.IS_ELEMENT_SELECTED: Endpoint("GET", _E + "/selected"),
    CommandKind.GET_ELEMENT_ATTRIBUTE: Endpoint("GET", _E + "/attribute/{name}"),
    CommandKind.GET_ELEMENT_PROPERTY: Endpoint("GET", _E + "/property/{name}"),
    CommandKind.GET_ELEMENT_CSS_VALUE: Endpoint("GET", _E + "/css/{name}"),
    CommandKind.GET_ELEMENT_TEXT: Endpoint("GET", _E + "/text"),
    CommandKind.GET_ELEMENT_TAG_NAME: Endpoint("GET", _E + "/name"),
    CommandKind.GET_ELEMENT_RECT: Endpoint("GET", _E + "/rect"),
    CommandKind.IS_ELEMENT_ENABLED: Endpoint("GET", _E + "/enabled"),
    CommandKind.ELEMENT_CLICK: Endpoint("POST", _E + "/click"),
    CommandKind.ELEMENT_CLEAR: Endpoint("POST", _E + "/clear"),
    CommandKind.ELEMENT_SEND_KEYS: Endpoint("POST", _E + "/value"),
    CommandKind.TAKE_ELEMENT_SCREENSHOT: Endpoint("GET", _E + "/screenshot"),
    CommandKind.EXECUTE_SCRIPT: Endpoint("POST", _S + "/execute/sync"),
    CommandKind.EXECUTE_ASYNC_SCRIPT: Endpoint("POST", _S + "/execute/async"),
    CommandKind.GET_ALL_COOKIES: Endpoint("GET", _S + "/cookie"),
    CommandKind.GET_NAMED_COOKIE: Endpoint("GET", _S + "/cookie/{name}"),
    CommandKind.ADD_COOKIE: Endpoint("POST", _S + "/cookie"),
    CommandKind.DELETE_COOKIE: Endpoint("DELETE", _S + "/cookie/{name}"),
    CommandKind.DELETE_ALL_COOKIES: Endpoint("DELETE", _S + "/cookie"),
    CommandKind.PERFORM_ACTIONS: Endpoint("POST", _S + "/actions"),
    CommandKind.RELEASE_ACTIONS: Endpoint("DELETE", _S + "/actions"),
    CommandKind.DISMISS_ALERT: Endpoint("POST", _S + "/alert/dismiss"),
    CommandKind.ACCEPT_ALERT: Endpoint("POST", _S + "/alert/accept"),
    CommandKind.GET_ALERT_TEXT: Endpoint("GET", _S + "/alert/text"),
    CommandKind.SEND_ALERT_TEXT: Endpoint("POST", _S + "/alert/text"),
    CommandKind.TAKE_SCREENSHOT: Endpoint("GET", _S + "/screenshot"),
}


@dataclass(frozen=True)
class Command:
    """A single HTTP exchange with the driver, fully resolved."""

    kind: CommandKind
    method: str
    path: str
    body: Optional[Mapping[str, Any]] = None

    @property
    def idempotent(self) -> bool:
        return self.kind.endpoint.idempotent


PathArgument = Union[Handle, str]

_HANDLE_SLOTS: dict[str, Type[Handle]] = {
    "element": ElementHandle,
    "shadow": ShadowRootHandle,
}


def encode(
    kind: CommandKind,
    session_id: Optional[str] = None,
    *,
    body: Optional[Mapping[str, Any]] = None,
    **path_args: PathArgument,
) -> Command:
    """Resolve *kind* into a :class:`Command` addressed to *session_id*.

    The ``element`` and ``shadow`` slots take a handle of the matching type,
    substituted by its reference after checking it belongs to *session_id*;
    other slots take plain strings, which are percent-encoded.
    """

    endpoint = kind.endpoint
    fields = {name for _, name, _, _ in string.Formatter().parse(endpoint.path) if name}
    values: dict[str, str] = {}
    if "session_id" in fields:
        if not session_id:
            raise CommandEncodingError(f"{kind.value} requires a session id")
        values["session_id"] = quote(session_id, safe="")
    for name in fields - {"session_id"}:
        if name not in path_args:
            raise CommandEncodingError(f"{kind.value} requires path parameter {name!r}")
        arg = path_args.pop(name)
        handle_type = _HANDLE_SLOTS.get(name)
        if handle_type is not None:
            if not isinstance(arg, handle_type):
                raise CommandEncodingError(
                    f"path parameter {name!r} must be a {handle_type.__name__}, got {type(arg).__name__}"
                )
            if arg.session_id != session_id:
                raise InvalidHandle(arg, session_id)
            values[name] = quote(arg.reference, safe="")
        elif isinstance(arg, str):
            values[name] = quote(arg, safe="")
        else:
            raise CommandEncodingError(
                f"path parameter {name!r} must be a string, got {type(arg).__name__}"
            )
    if path_args:
        raise CommandEncodingError(
            f"unexpected path parameters for {kind.value}: {sorted(path_args)}"
        )
    if endpoint.method == "POST" and body is None:
        body = {}
    elif endpoint.method != "POST" and body is not None:
        raise CommandEncodingError(f"{kind.value} does not take a request body")
    return Command(kind=kind, method=endpoint.method, path=endpoint.path.format(**values), body=body)
