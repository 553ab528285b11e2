"""Asynchronous WebDriver client exposing one coroutine per command."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Mapping, Optional, Sequence, TypeVar, Union
from urllib.parse import urljoin, urlsplit

import httpx

from .config import DriverConfig
from .errors import (
    CommandEncodingError,
    InvalidSessionId,
    MalformedResponse,
    NoSuchElement,
    SessionStateError,
    TransportFailure,
    TransportFailureKind,
    WaitTimeout,
)
from .handles import ElementHandle, Handle, ShadowRootHandle, WindowHandle
from .models import (
    CapabilitiesRequest,
    Cookie,
    DriverStatus,
    Locator,
    NewSessionResult,
    NewWindowResult,
    Rect,
    Timeouts,
    WindowRectUpdate,
    WindowType,
)
from .protocol.codec import (
    decode_element,
    decode_elements,
    decode_reference,
    decode_response,
    decode_window,
    decode_windows,
    encode_arguments,
    expect_base64,
    expect_bool,
    expect_list,
    expect_model,
    expect_null,
    expect_optional_str,
    expect_str,
    intern_handles,
)
from .protocol.commands import Command, CommandKind, PathArgument, encode
from .session import Session, SessionState
from .transport import HttpxTransport, Transport, WireResponse

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_STARTABLE = frozenset({SessionState.UNINITIALIZED})
_ANY_STATE = frozenset(SessionState)
_DELETABLE = frozenset({SessionState.CREATED, SessionState.ACTIVE})

FrameTarget = Union[ElementHandle, int, None]
SearchRoot = Union[ElementHandle, ShadowRootHandle, None]


def _identity(value: Any) -> Any:
    return value


def _milliseconds(seconds: Optional[float]) -> Optional[int]:
    if seconds is None:
        return None
    return int(seconds * 1000)


class WebDriverClient:
    """A WebDriver client tied to a single browser session.

    Commands issued concurrently on one client are executed one at a time in
    issue order; separate clients (even sharing a transport) run in parallel.
    Idempotent reads are retried on transient transport failures, everything
    else is sent exactly once.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        config: Optional[DriverConfig] = None,
        webdriver_url: Optional[str] = None,
        owns_transport: bool = False,
    ) -> None:
        self._config = config or DriverConfig()
        self._transport = transport
        self._owns_transport = owns_transport
        self._session = Session(webdriver_url or self._config.webdriver_url)

    @classmethod
    async def connect(
        cls,
        webdriver_url: Optional[str] = None,
        capabilities: Union[Mapping[str, Any], CapabilitiesRequest, None] = None,
        *,
        transport: Optional[Transport] = None,
        config: Optional[DriverConfig] = None,
    ) -> "WebDriverClient":
        """Create a client and start a new session on the driver at *webdriver_url*."""

        config = config or DriverConfig()
        owns_transport = transport is None
        if transport is None:
            transport = HttpxTransport(user_agent=config.user_agent, timeout=config.request_timeout)
        client = cls(
            transport,
            config=config,
            webdriver_url=webdriver_url,
            owns_transport=owns_transport,
        )
        try:
            await client.start(capabilities)
        except BaseException:
            await client.aclose_transport()
            raise
        return client

    async def __aenter__(self) -> "WebDriverClient":
        if self._session.state is SessionState.UNINITIALIZED:
            try:
                await self.start()
            except BaseException:
                await self.aclose_transport()
                raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Session ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def session_id(self) -> Optional[str]:
        return self._session.session_id

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def capabilities(self) -> Mapping[str, Any]:
        return self._session.capabilities

    @property
    def is_alive(self) -> bool:
        return self._session.is_alive

    async def start(
        self,
        capabilities: Union[Mapping[str, Any], CapabilitiesRequest, None] = None,
    ) -> Mapping[str, Any]:
        """Negotiate a new session and return the capabilities the driver granted."""

        session = self._session
        if session.state is not SessionState.UNINITIALIZED:
            raise SessionStateError(f"session cannot be started once {session.state.value}", session.state)
        request = self._capabilities_request(capabilities)
        command = encode(CommandKind.NEW_SESSION, body=request.to_wire())
        async with session.execution_slot(allowed=_STARTABLE):
            result = expect_model(NewSessionResult, await self._send(command, session_bound=False))
            session.mark_created(result.session_id, result.capabilities)
            LOGGER.info("Started session %s", result.session_id)
            try:
                await self._after_create()
            except BaseException:
                if session.state is SessionState.CREATED:
                    LOGGER.warning("Post-creation setup failed; deleting session %s", result.session_id)
                    await self._delete_session()
                raise
            session.mark_active()
        return session.capabilities

    async def close(self) -> None:
        """End the session; safe to call more than once.

        Queues behind any command in flight, including a ``start`` still
        negotiating, so a session created before the close is deleted too. A
        client closed before it was started can no longer be started.
        """

        session = self._session
        try:
            async with session.execution_slot(allowed=_ANY_STATE):
                if session.state in _DELETABLE:
                    await self._delete_session()
                elif session.state is SessionState.UNINITIALIZED:
                    session.mark_closed()
        finally:
            await self.aclose_transport()

    async def aclose_transport(self) -> None:
        if self._owns_transport:
            self._owns_transport = False
            await self._transport.aclose()

    async def status(self) -> DriverStatus:
        """Report driver readiness; not serialized with session commands."""

        command = encode(CommandKind.STATUS)
        return expect_model(DriverStatus, await self._send(command, session_bound=False))

    async def get_timeouts(self) -> Timeouts:
        return await self._issue(CommandKind.GET_TIMEOUTS, decode=lambda v: expect_model(Timeouts, v))

    async def set_timeouts(self, timeouts: Timeouts) -> None:
        await self._issue(CommandKind.SET_TIMEOUTS, body=timeouts.to_wire(), decode=expect_null)

    # Navigation ---------------------------------------------------------------

    async def navigate(self, url: str) -> None:
        """Navigate to *url*, resolving relative URLs against the current one."""

        if not urlsplit(url).scheme:
            url = urljoin(await self.current_url(), url)
        await self._issue(CommandKind.NAVIGATE_TO, body={"url": url}, decode=expect_null)

    async def current_url(self) -> str:
        return await self._issue(CommandKind.GET_CURRENT_URL, decode=expect_str)

    async def back(self) -> None:
        await self._issue(CommandKind.BACK, decode=expect_null)

    async def forward(self) -> None:
        await self._issue(CommandKind.FORWARD, decode=expect_null)

    async def refresh(self) -> None:
        await self._issue(CommandKind.REFRESH, decode=expect_null)

    async def title(self) -> str:
        return await self._issue(CommandKind.GET_TITLE, decode=expect_str)

    async def source(self) -> str:
        """Get the HTML source for the current page."""

        return await self._issue(CommandKind.GET_PAGE_SOURCE, decode=expect_str)

    async def wait_for_navigation(
        self, current: Optional[str] = None, *, timeout: Optional[float] = None
    ) -> str:
        """Wait until the current URL differs from *current* and return it.

        Without *current* the URL is read first, which races with a
        navigation that completes before that read.
        """

        if current is None:
            current = await self.current_url()
        deadline = self._deadline(timeout)
        while True:
            url = await self.current_url()
            if url != current:
                return url
            self._check_deadline(deadline, f"still at {current!r}")
            await asyncio.sleep(self._config.poll_interval)

    # Windows and frames -------------------------------------------------------

    async def window_handle(self) -> WindowHandle:
        return await self._issue(CommandKind.GET_WINDOW_HANDLE, decode=self._window)

    async def window_handles(self) -> List[WindowHandle]:
        return await self._issue(
            CommandKind.GET_WINDOW_HANDLES,
            decode=lambda v: decode_windows(v, self._session.registry),
        )

    async def switch_to_window(self, window: WindowHandle) -> None:
        self._check(window)
        await self._issue(
            CommandKind.SWITCH_TO_WINDOW, body={"handle": window.reference}, decode=expect_null
        )

    async def close_window(self) -> List[WindowHandle]:
        """Close the current window and return the remaining ones.

        Closing the last window ends the session on the driver side.
        """

        def decode(value: Any) -> List[WindowHandle]:
            remaining = decode_windows(value, self._session.registry)
            if not remaining:
                self._session.terminate()
            return remaining

        return await self._issue(CommandKind.CLOSE_WINDOW, decode=decode)

    async def new_window(self, type_hint: WindowType = WindowType.TAB) -> WindowHandle:
        def decode(value: Any) -> WindowHandle:
            result = expect_model(NewWindowResult, value)
            return self._session.registry.intern(WindowHandle, result.handle)

        return await self._issue(CommandKind.NEW_WINDOW, body={"type": type_hint.value}, decode=decode)

    async def window_rect(self) -> Rect:
        return await self._issue(CommandKind.GET_WINDOW_RECT, decode=_rect)

    async def set_window_rect(self, rect: WindowRectUpdate) -> Rect:
        return await self._issue(CommandKind.SET_WINDOW_RECT, body=rect.to_wire(), decode=_rect)

    async def maximize_window(self) -> Rect:
        return await self._issue(CommandKind.MAXIMIZE_WINDOW, decode=_rect)

    async def minimize_window(self) -> Rect:
        return await self._issue(CommandKind.MINIMIZE_WINDOW, decode=_rect)

    async def fullscreen_window(self) -> Rect:
        return await self._issue(CommandKind.FULLSCREEN_WINDOW, decode=_rect)

    async def switch_to_frame(self, frame: FrameTarget) -> None:
        """Switch to the frame held by an element, to a frame index, or to the top level (None)."""

        frame_id: Any
        if isinstance(frame, ElementHandle):
            self._check(frame)
            frame_id = frame.to_json()
        elif frame is None:
            frame_id = None
        elif isinstance(frame, int) and not isinstance(frame, bool) and 0 <= frame <= 0xFFFF:
            frame_id = frame
        else:
            raise CommandEncodingError(f"invalid frame id: {frame!r}")
        await self._issue(CommandKind.SWITCH_TO_FRAME, body={"id": frame_id}, decode=expect_null)

    async def switch_to_parent_frame(self) -> None:
        await self._issue(CommandKind.SWITCH_TO_PARENT_FRAME, decode=expect_null)

    # Elements -----------------------------------------------------------------

    async def find(self, locator: Locator, root: SearchRoot = None) -> ElementHandle:
        """Find the first element matching *locator*, from the document or *root*."""

        kind, path_args = self._find_target(root, many=False)
        return await self._issue(kind, body=locator.to_wire(), decode=self._element, **path_args)

    async def find_all(self, locator: Locator, root: SearchRoot = None) -> List[ElementHandle]:
        kind, path_args = self._find_target(root, many=True)
        return await self._issue(
            kind,
            body=locator.to_wire(),
            decode=lambda v: decode_elements(v, self._session.registry),
            **path_args,
        )

    async def wait_for_find(
        self, locator: Locator, root: SearchRoot = None, *, timeout: Optional[float] = None
    ) -> ElementHandle:
        """Wait for an element matching *locator* to appear."""

        deadline = self._deadline(timeout)
        while True:
            try:
                return await self.find(locator, root)
            except NoSuchElement:
                self._check_deadline(deadline, f"no element matched {locator.value!r}")
            await asyncio.sleep(self._config.poll_interval)

    async def wait_for_find_all(
        self, locator: Locator, root: SearchRoot = None, *, timeout: Optional[float] = None
    ) -> List[ElementHandle]:
        """Wait until at least one element matches *locator*."""

        deadline = self._deadline(timeout)
        while True:
            try:
                elements = await self.find_all(locator, root)
            except NoSuchElement:
                elements = []
            if elements:
                return elements
            self._check_deadline(deadline, f"no element matched {locator.value!r}")
            await asyncio.sleep(self._config.poll_interval)

    async def active_element(self) -> ElementHandle:
        return await self._issue(CommandKind.GET_ACTIVE_ELEMENT, decode=self._element)

    async def shadow_root(self, element: ElementHandle) -> ShadowRootHandle:
        return await self._issue(
            CommandKind.GET_ELEMENT_SHADOW_ROOT,
            element=element,
            decode=lambda v: decode_reference(v, ShadowRootHandle, self._session.registry),
        )

    async def attr(self, element: ElementHandle, name: str) -> Optional[str]:
        """Return an attribute value, or None when the element lacks the attribute."""

        return await self._issue(
            CommandKind.GET_ELEMENT_ATTRIBUTE, element=element, name=name, decode=expect_optional_str
        )

    async def prop(self, element: ElementHandle, name: str) -> Any:
        """Return a DOM property value (None when the property is unset)."""

        return await self._issue(
            CommandKind.GET_ELEMENT_PROPERTY, element=element, name=name, decode=self._interned
        )

    async def css_value(self, element: ElementHandle, name: str) -> str:
        return await self._issue(
            CommandKind.GET_ELEMENT_CSS_VALUE, element=element, name=name, decode=expect_str
        )

    async def text(self, element: ElementHandle) -> str:
        return await self._issue(CommandKind.GET_ELEMENT_TEXT, element=element, decode=expect_str)

    async def tag_name(self, element: ElementHandle) -> str:
        return await self._issue(CommandKind.GET_ELEMENT_TAG_NAME, element=element, decode=expect_str)

    async def rect(self, element: ElementHandle) -> Rect:
        return await self._issue(CommandKind.GET_ELEMENT_RECT, element=element, decode=_rect)

    async def is_selected(self, element: ElementHandle) -> bool:
        return await self._issue(CommandKind.IS_ELEMENT_SELECTED, element=element, decode=expect_bool)

    async def is_enabled(self, element: ElementHandle) -> bool:
        return await self._issue(CommandKind.IS_ELEMENT_ENABLED, element=element, decode=expect_bool)

    async def html(self, element: ElementHandle, inner: bool = False) -> str:
        """Return the element's HTML, with (``inner=False``) or without its own tag."""

        value = await self.prop(element, "innerHTML" if inner else "outerHTML")
        if not isinstance(value, str):
            raise MalformedResponse("expected HTML string", value)
        return value

    async def click(self, element: ElementHandle) -> None:
        """Click *element*; the click may navigate and leave the handle stale."""

        await self._issue(CommandKind.ELEMENT_CLICK, element=element, decode=expect_null)

    async def clear(self, element: ElementHandle) -> None:
        await self._issue(CommandKind.ELEMENT_CLEAR, element=element, decode=expect_null)

    async def send_keys(self, element: ElementHandle, text: str) -> None:
        await self._issue(
            CommandKind.ELEMENT_SEND_KEYS, element=element, body={"text": text}, decode=expect_null
        )

    async def element_screenshot(self, element: ElementHandle) -> bytes:
        return await self._issue(
            CommandKind.TAKE_ELEMENT_SCREENSHOT, element=element, decode=expect_base64
        )

    async def follow(self, element: ElementHandle) -> None:
        """Navigate to the element's ``href`` without clicking it."""

        href = await self.attr(element, "href")
        if href is None:
            raise CommandEncodingError("element has no href attribute")
        await self.navigate(href)

    async def scroll_into_view(self, element: ElementHandle) -> None:
        await self.execute("arguments[0].scrollIntoView(true)", [element])

    # Scripts ------------------------------------------------------------------

    async def execute(self, script: str, args: Sequence[Any] = ()) -> Any:
        """Run *script* synchronously; *args* are available as ``arguments``.

        Handles in *args* are sent as web references, and references in the
        result come back as handles.
        """

        body = {"script": script, "args": encode_arguments(args, self.session_id)}
        return await self._issue(CommandKind.EXECUTE_SCRIPT, body=body, decode=self._interned)

    async def execute_async(self, script: str, args: Sequence[Any] = ()) -> Any:
        body = {"script": script, "args": encode_arguments(args, self.session_id)}
        return await self._issue(CommandKind.EXECUTE_ASYNC_SCRIPT, body=body, decode=self._interned)

    # Cookies ------------------------------------------------------------------

    async def cookies(self) -> List[Cookie]:
        return await self._issue(
            CommandKind.GET_ALL_COOKIES,
            decode=lambda v: [expect_model(Cookie, item) for item in expect_list(v)],
        )

    async def cookie(self, name: str) -> Cookie:
        return await self._issue(
            CommandKind.GET_NAMED_COOKIE, name=name, decode=lambda v: expect_model(Cookie, v)
        )

    async def add_cookie(self, cookie: Cookie) -> None:
        await self._issue(CommandKind.ADD_COOKIE, body=cookie.to_wire(), decode=expect_null)

    async def delete_cookie(self, name: str) -> None:
        await self._issue(CommandKind.DELETE_COOKIE, name=name, decode=expect_null)

    async def delete_all_cookies(self) -> None:
        await self._issue(CommandKind.DELETE_ALL_COOKIES, decode=expect_null)

    # Actions, alerts and screenshots ------------------------------------------

    async def perform_actions(self, actions: Sequence[Mapping[str, Any]]) -> None:
        body = {"actions": encode_arguments(actions, self.session_id)}
        await self._issue(CommandKind.PERFORM_ACTIONS, body=body, decode=expect_null)

    async def release_actions(self) -> None:
        await self._issue(CommandKind.RELEASE_ACTIONS, decode=expect_null)

    async def alert_text(self) -> Optional[str]:
        return await self._issue(CommandKind.GET_ALERT_TEXT, decode=expect_optional_str)

    async def accept_alert(self) -> None:
        await self._issue(CommandKind.ACCEPT_ALERT, decode=expect_null)

    async def dismiss_alert(self) -> None:
        await self._issue(CommandKind.DISMISS_ALERT, decode=expect_null)

    async def send_alert_text(self, text: str) -> None:
        await self._issue(CommandKind.SEND_ALERT_TEXT, body={"text": text}, decode=expect_null)

    async def screenshot(self) -> bytes:
        """Capture the current viewport as PNG bytes."""

        return await self._issue(CommandKind.TAKE_SCREENSHOT, decode=expect_base64)

    # Raw HTTP -----------------------------------------------------------------

    async def raw_request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Issue a plain HTTP request to *url* carrying this session's cookies.

        Cookies can only be read for the page the browser is on, so the
        browser briefly visits a path on the target origin that is unlikely
        to exist, reads the cookies there and goes back. Cookies scoped to a
        narrower path than ``/`` are therefore not sent.
        """

        target = urljoin(await self.current_url(), url)
        await self.navigate(urljoin(target, "/please_give_me_your_cookies"))
        try:
            jar = await self.cookies()
        finally:
            await self.back()
        headers = dict(kwargs.pop("headers", None) or {})
        if jar:
            headers["Cookie"] = "; ".join(f"{cookie.name}={cookie.value}" for cookie in jar)
        if self._config.user_agent:
            headers["User-Agent"] = self._config.user_agent
        try:
            async with httpx.AsyncClient(timeout=self._config.request_timeout) as client:
                return await client.request(method, target, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransportFailure(TransportFailureKind.TIMEOUT, str(exc) or "request timed out") from exc
        except httpx.TransportError as exc:
            raise TransportFailure(TransportFailureKind.CONNECTION, str(exc) or type(exc).__name__) from exc

    # Dispatch -----------------------------------------------------------------

    async def _issue(
        self,
        kind: CommandKind,
        *,
        body: Optional[Mapping[str, Any]] = None,
        decode: Callable[[Any], T] = _identity,
        **path_args: PathArgument,
    ) -> T:
        """Run one session command: validate, encode, send, decode."""

        session = self._session
        session.ensure_active()
        command = encode(kind, session.session_id, body=body, **path_args)
        async with session.execution_slot():
            value = await self._send(command)
            return decode(value)

    async def _send(self, command: Command, *, session_bound: bool = True) -> Any:
        url = self._session.url_for(command.path)
        retry = self._config.retry
        attempts = retry.max_attempts if command.idempotent else 1
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._exchange(command, url)
            except TransportFailure as failure:
                if not failure.retryable or attempt >= attempts:
                    raise
                delay = retry.delay_for(attempt)
                LOGGER.warning(
                    "%s %s failed (%s); retry %d/%d in %.2fs",
                    command.method,
                    command.path,
                    failure,
                    attempt,
                    attempts - 1,
                    delay,
                )
                await asyncio.sleep(delay)
                continue
            break
        try:
            return decode_response(response)
        except InvalidSessionId:
            if session_bound:
                self._session.terminate()
            raise

    async def _exchange(self, command: Command, url: str) -> WireResponse:
        timeout = self._config.request_timeout
        LOGGER.debug("%s %s %s", command.method, url, command.body)
        try:
            return await asyncio.wait_for(
                self._transport.send(command.method, url, command.body, timeout=timeout),
                timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TransportFailure(
                TransportFailureKind.TIMEOUT,
                f"{command.method} {command.path} got no response within {timeout}s",
            ) from exc

    async def _after_create(self) -> None:
        timeouts = self._config.timeouts
        if timeouts.is_empty():
            return
        wire = Timeouts(
            implicit=_milliseconds(timeouts.implicit),
            page_load=_milliseconds(timeouts.page_load),
            script=_milliseconds(timeouts.script),
        )
        command = encode(CommandKind.SET_TIMEOUTS, self.session_id, body=wire.to_wire())
        expect_null(await self._send(command))

    async def _delete_session(self) -> None:
        session = self._session
        session.mark_closing()
        try:
            command = encode(CommandKind.DELETE_SESSION, session.session_id)
            expect_null(await self._send(command, session_bound=False))
        finally:
            session.mark_closed()
            LOGGER.info("Closed session %s", session.session_id)

    # Helpers ------------------------------------------------------------------

    def _capabilities_request(
        self, capabilities: Union[Mapping[str, Any], CapabilitiesRequest, None]
    ) -> CapabilitiesRequest:
        if isinstance(capabilities, CapabilitiesRequest):
            request = capabilities
        else:
            request = CapabilitiesRequest(
                always_match=dict(capabilities or {}),
                first_match=list(self._config.first_match),
            )
        always_match = {**self._config.capabilities, **request.always_match}
        return request.model_copy(update={"always_match": always_match})

    def _check(self, handle: Handle) -> None:
        self._session.registry.check(handle)

    def _find_target(self, root: SearchRoot, *, many: bool) -> tuple[CommandKind, dict[str, Handle]]:
        if root is None:
            return (CommandKind.FIND_ELEMENTS if many else CommandKind.FIND_ELEMENT), {}
        if isinstance(root, ElementHandle):
            kind = CommandKind.FIND_ELEMENTS_FROM_ELEMENT if many else CommandKind.FIND_ELEMENT_FROM_ELEMENT
            return kind, {"element": root}
        if isinstance(root, ShadowRootHandle):
            kind = (
                CommandKind.FIND_ELEMENTS_FROM_SHADOW_ROOT
                if many
                else CommandKind.FIND_ELEMENT_FROM_SHADOW_ROOT
            )
            return kind, {"shadow": root}
        raise CommandEncodingError(f"cannot search from {type(root).__name__}")

    def _element(self, value: Any) -> ElementHandle:
        return decode_element(value, self._session.registry)

    def _window(self, value: Any) -> WindowHandle:
        return decode_window(value, self._session.registry)

    def _interned(self, value: Any) -> Any:
        return intern_handles(value, self._session.registry)

    def _deadline(self, timeout: Optional[float]) -> Optional[float]:
        if timeout is None:
            return None
        return asyncio.get_running_loop().time() + timeout

    def _check_deadline(self, deadline: Optional[float], reason: str) -> None:
        if deadline is not None and asyncio.get_running_loop().time() >= deadline:
            raise WaitTimeout(f"gave up waiting: {reason}")


def _rect(value: Any) -> Rect:
    return expect_model(Rect, value)
