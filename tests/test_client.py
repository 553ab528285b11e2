import asyncio

import httpx
import pytest
from conftest import DRIVER_URL, RecordingTransport, connection_failure, wire, wire_error

from async_webdriver.client import WebDriverClient
from async_webdriver.config import SessionTimeouts
from async_webdriver.errors import (
    CommandEncodingError,
    InvalidArgument,
    InvalidHandle,
    InvalidSessionId,
    SessionNotActive,
    SessionNotCreated,
    SessionStateError,
    TransportFailure,
    TransportFailureKind,
    UnknownError,
    WaitTimeout,
)
from async_webdriver.handles import ELEMENT_KEY, ElementHandle, WindowHandle
from async_webdriver.models import Cookie, Locator
from async_webdriver.session import SessionState


@pytest.mark.asyncio
async def test_new_session_then_navigate(transport, start_client) -> None:
    client = await start_client(transport, {"browserName": "chrome"})

    assert client.session_id == "S1"
    assert client.state is SessionState.ACTIVE
    assert client.capabilities == {"browserName": "chrome"}
    assert transport.requests[0] == (
        "POST",
        "/session",
        {"capabilities": {"alwaysMatch": {"pageLoadStrategy": "normal", "browserName": "chrome"}}},
    )

    await client.navigate("https://example.com")

    assert transport.requests[-1] == ("POST", "/session/S1/url", {"url": "https://example.com"})


@pytest.mark.asyncio
async def test_status_needs_no_session(transport, config) -> None:
    transport.add("GET", "/status", wire({"ready": True, "message": "ready", "build": {"version": "1"}}))
    client = WebDriverClient(transport, config=config)

    report = await client.status()

    assert report.ready
    assert report.message == "ready"
    assert client.state is SessionState.UNINITIALIZED


@pytest.mark.asyncio
async def test_commands_before_start_never_reach_the_driver(transport, config) -> None:
    client = WebDriverClient(transport, config=config)

    with pytest.raises(SessionNotActive):
        await client.title()

    assert transport.requests == []


@pytest.mark.asyncio
async def test_commands_after_close_never_reach_the_driver(transport, start_client) -> None:
    client = await start_client(transport)
    await client.close()
    sent = len(transport.requests)

    with pytest.raises(SessionNotActive):
        await client.navigate("https://example.com")
    with pytest.raises(SessionNotActive):
        await client.find(Locator.css("a"))

    assert len(transport.requests) == sent


@pytest.mark.asyncio
async def test_start_twice_is_rejected(transport, start_client) -> None:
    client = await start_client(transport)

    with pytest.raises(SessionStateError):
        await client.start()


@pytest.mark.asyncio
async def test_failed_new_session_stays_uninitialized(transport, config) -> None:
    transport.add("POST", "/session", wire_error("session not created", status=500))
    client = WebDriverClient(transport, config=config)

    with pytest.raises(SessionNotCreated):
        await client.start()

    assert client.state is SessionState.UNINITIALIZED


@pytest.mark.asyncio
async def test_timeouts_are_applied_after_create(transport, start_client) -> None:
    await start_client(transport, timeouts=SessionTimeouts(implicit=1.5, script=30))

    assert transport.calls("POST", "/session/S1/timeouts") == [
        ("POST", "/session/S1/timeouts", {"implicit": 1500, "script": 30000})
    ]


@pytest.mark.asyncio
async def test_failed_setup_deletes_the_new_session(transport, config) -> None:
    transport.add("POST", "/session/S1/timeouts", wire_error("invalid argument", status=400))
    client = WebDriverClient(
        transport, config=config.model_copy(update={"timeouts": SessionTimeouts(page_load=5)})
    )

    with pytest.raises(InvalidArgument):
        await client.start()

    assert client.state is SessionState.CLOSED
    assert transport.calls("DELETE", "/session/S1")


@pytest.mark.asyncio
async def test_handle_from_other_session_is_rejected_locally(start_client) -> None:
    transport = RecordingTransport()
    transport.add("POST", "/session/S2/element", wire({ELEMENT_KEY: "abc"}))
    first = await start_client(transport)
    second = await start_client(transport)
    foreign = await second.find(Locator.css("button"))
    sent = len(transport.requests)

    with pytest.raises(InvalidHandle):
        await first.click(foreign)
    with pytest.raises(InvalidHandle):
        await first.execute("arguments[0].click()", [foreign])

    assert len(transport.requests) == sent


@pytest.mark.asyncio
async def test_idempotent_read_is_retried(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add(
        "GET", "/session/S1/title", connection_failure(), connection_failure(), wire("Example Domain")
    )

    assert await client.title() == "Example Domain"
    assert len(transport.calls("GET", "/session/S1/title")) == 3


@pytest.mark.asyncio
async def test_retries_are_bounded(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add("GET", "/session/S1/title", connection_failure())

    with pytest.raises(TransportFailure) as excinfo:
        await client.title()

    assert excinfo.value.kind is TransportFailureKind.CONNECTION
    assert len(transport.calls("GET", "/session/S1/title")) == 3


@pytest.mark.asyncio
async def test_click_is_never_retried(transport, start_client) -> None:
    client = await start_client(transport)
    element = client.session.registry.intern(ElementHandle, "abc")
    transport.add("POST", "/session/S1/element/abc/click", connection_failure(), wire(None))

    with pytest.raises(TransportFailure):
        await client.click(element)

    assert len(transport.calls("POST", "/session/S1/element/abc/click")) == 1


@pytest.mark.asyncio
async def test_protocol_errors_are_not_retried(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add("GET", "/session/S1/title", wire_error("unknown error", status=500))

    with pytest.raises(UnknownError):
        await client.title()

    assert len(transport.calls("GET", "/session/S1/title")) == 1


@pytest.mark.asyncio
async def test_invalid_session_closes_client(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add("GET", "/session/S1/title", wire_error("invalid session id"))

    with pytest.raises(InvalidSessionId):
        await client.title()

    assert client.state is SessionState.CLOSED
    sent = len(transport.requests)
    with pytest.raises(SessionNotActive):
        await client.title()
    await client.close()
    assert len(transport.requests) == sent


@pytest.mark.asyncio
async def test_commands_on_one_session_do_not_overlap(start_client) -> None:
    transport = RecordingTransport()
    transport.add("GET", "/session/S1/title", wire("Example"))
    client = await start_client(transport)
    element = client.session.registry.intern(ElementHandle, "abc")
    transport.delay = 0.01
    transport.events.clear()

    await asyncio.gather(
        client.navigate("https://example.com"),
        client.click(element),
        client.title(),
    )

    assert [event[0] for event in transport.events] == ["start", "end"] * 3
    assert [event[1] for event in transport.events[::2]] == [
        "/session/S1/url",
        "/session/S1/element/abc/click",
        "/session/S1/title",
    ]


@pytest.mark.asyncio
async def test_commands_on_different_sessions_overlap(start_client) -> None:
    transport = RecordingTransport()
    first = await start_client(transport)
    second = await start_client(transport)
    transport.delay = 0.05
    transport.events.clear()

    await asyncio.gather(first.refresh(), second.refresh())

    assert [event[0] for event in transport.events] == ["start", "start", "end", "end"]


@pytest.mark.asyncio
async def test_slow_driver_times_out_and_frees_the_slot(transport, start_client) -> None:
    client = await start_client(transport, request_timeout=0.05)
    element = client.session.registry.intern(ElementHandle, "abc")
    transport.delay = 0.5

    with pytest.raises(TransportFailure) as excinfo:
        await client.click(element)

    assert excinfo.value.kind is TransportFailureKind.TIMEOUT
    transport.delay = 0.0
    await client.click(element)
    assert client.is_alive


@pytest.mark.asyncio
async def test_cancelled_command_frees_the_slot(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add("GET", "/session/S1/title", wire("Example"))
    transport.delay = 0.5

    pending = asyncio.create_task(client.title())
    await asyncio.sleep(0.01)
    pending.cancel()
    with pytest.raises(asyncio.CancelledError):
        await pending

    transport.delay = 0.0
    assert await client.title() == "Example"


@pytest.mark.asyncio
async def test_close_is_idempotent(transport, start_client) -> None:
    client = await start_client(transport)

    await client.close()
    await client.close()

    assert client.state is SessionState.CLOSED
    assert len(transport.calls("DELETE", "/session/S1")) == 1


@pytest.mark.asyncio
async def test_close_reports_delete_failure_but_still_closes(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add("DELETE", "/session/S1", wire_error("unknown error", status=500))

    with pytest.raises(UnknownError):
        await client.close()

    assert client.state is SessionState.CLOSED


@pytest.mark.asyncio
async def test_close_before_start_sends_nothing(transport, config) -> None:
    client = WebDriverClient(transport, config=config, owns_transport=True)

    await client.close()

    assert transport.requests == []
    assert transport.closed
    assert client.state is SessionState.CLOSED
    with pytest.raises(SessionStateError):
        await client.start()


@pytest.mark.asyncio
async def test_context_manager_starts_and_closes(transport, config) -> None:
    async with WebDriverClient(transport, config=config) as client:
        assert client.is_alive

    assert client.state is SessionState.CLOSED
    assert transport.calls("DELETE", "/session/S1")
    assert not transport.closed


@pytest.mark.asyncio
async def test_connect_uses_given_transport(transport, config) -> None:
    client = await WebDriverClient.connect(
        DRIVER_URL, {"browserName": "firefox"}, transport=transport, config=config
    )

    assert client.session_id == "S1"
    assert transport.requests[0][2]["capabilities"]["alwaysMatch"]["browserName"] == "firefox"
    await client.close()
    assert not transport.closed


@pytest.mark.asyncio
async def test_found_elements_are_interned(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add("POST", "/session/S1/element", wire({ELEMENT_KEY: "abc123"}))

    first = await client.find(Locator.css("#main"))
    second = await client.find(Locator.css("#main"))

    assert first is second
    assert client.session.registry.lookup(ElementHandle, "abc123") is first
    assert transport.requests[-1] == (
        "POST",
        "/session/S1/element",
        {"using": "css selector", "value": "#main"},
    )


@pytest.mark.asyncio
async def test_find_all_below_an_element(transport, start_client) -> None:
    client = await start_client(transport)
    parent = client.session.registry.intern(ElementHandle, "list")
    transport.add(
        "POST",
        "/session/S1/element/list/elements",
        wire([{ELEMENT_KEY: "one"}, {ELEMENT_KEY: "two"}]),
    )

    items = await client.find_all(Locator.tag_name("li"), parent)

    assert [item.reference for item in items] == ["one", "two"]


@pytest.mark.asyncio
async def test_wait_for_find_polls_until_found(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add(
        "POST",
        "/session/S1/element",
        wire_error("no such element"),
        wire_error("no such element"),
        wire({ELEMENT_KEY: "late"}),
    )

    element = await client.wait_for_find(Locator.css(".late"), timeout=1.0)

    assert element.reference == "late"
    assert len(transport.calls("POST", "/session/S1/element")) == 3


@pytest.mark.asyncio
async def test_wait_for_find_gives_up(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add("POST", "/session/S1/element", wire_error("no such element"))

    with pytest.raises(WaitTimeout):
        await client.wait_for_find(Locator.css(".never"), timeout=0.05)


@pytest.mark.asyncio
async def test_wait_for_navigation_returns_new_url(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add(
        "GET",
        "/session/S1/url",
        wire("https://example.com/form"),
        wire("https://example.com/done"),
    )

    url = await client.wait_for_navigation("https://example.com/form", timeout=1.0)

    assert url == "https://example.com/done"


@pytest.mark.asyncio
async def test_relative_navigation_resolves_against_current_url(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add("GET", "/session/S1/url", wire("https://example.com/docs/index.html"))

    await client.navigate("intro.html")

    assert transport.requests[-1] == (
        "POST",
        "/session/S1/url",
        {"url": "https://example.com/docs/intro.html"},
    )


@pytest.mark.asyncio
async def test_execute_round_trips_handles(transport, start_client) -> None:
    client = await start_client(transport)
    element = client.session.registry.intern(ElementHandle, "abc")
    transport.add(
        "POST",
        "/session/S1/execute/sync",
        wire({"parent": {ELEMENT_KEY: "parent"}, "count": 2}),
    )

    result = await client.execute("return f(arguments[0], arguments[1])", [element, 5])

    assert transport.requests[-1][2] == {
        "script": "return f(arguments[0], arguments[1])",
        "args": [{ELEMENT_KEY: "abc"}, 5],
    }
    assert result["parent"] is client.session.registry.lookup(ElementHandle, "parent")
    assert result["count"] == 2


@pytest.mark.asyncio
async def test_attribute_may_be_absent(transport, start_client) -> None:
    client = await start_client(transport)
    element = client.session.registry.intern(ElementHandle, "abc")

    assert await client.attr(element, "href") is None


@pytest.mark.asyncio
async def test_follow_requires_href(transport, start_client) -> None:
    client = await start_client(transport)
    element = client.session.registry.intern(ElementHandle, "abc")

    with pytest.raises(CommandEncodingError):
        await client.follow(element)


@pytest.mark.asyncio
async def test_html_reads_outer_or_inner_property(transport, start_client) -> None:
    client = await start_client(transport)
    element = client.session.registry.intern(ElementHandle, "abc")
    transport.add("GET", "/session/S1/element/abc/property/outerHTML", wire("<p>hi</p>"))
    transport.add("GET", "/session/S1/element/abc/property/innerHTML", wire("hi"))

    assert await client.html(element) == "<p>hi</p>"
    assert await client.html(element, inner=True) == "hi"


@pytest.mark.asyncio
async def test_switch_to_window_sends_raw_handle(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add("GET", "/session/S1/window/handles", wire(["w1", "w2"]))

    windows = await client.window_handles()
    await client.switch_to_window(windows[1])

    assert all(isinstance(window, WindowHandle) for window in windows)
    assert transport.requests[-1] == ("POST", "/session/S1/window", {"handle": "w2"})


@pytest.mark.asyncio
async def test_invalid_frame_id_is_rejected_locally(transport, start_client) -> None:
    client = await start_client(transport)
    sent = len(transport.requests)

    with pytest.raises(CommandEncodingError):
        await client.switch_to_frame(70000)

    assert len(transport.requests) == sent


@pytest.mark.asyncio
async def test_closing_last_window_ends_session(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add("DELETE", "/session/S1/window", wire([]))

    assert await client.close_window() == []

    assert client.state is SessionState.CLOSED


@pytest.mark.asyncio
async def test_cookies_are_parsed(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add(
        "GET",
        "/session/S1/cookie",
        wire([{"name": "sid", "value": "xyz", "httpOnly": True, "sameSite": "Lax"}]),
    )

    cookies = await client.cookies()
    await client.add_cookie(Cookie(name="theme", value="dark", path="/"))

    assert cookies[0].name == "sid"
    assert cookies[0].http_only is True
    assert transport.requests[-1] == (
        "POST",
        "/session/S1/cookie",
        {"cookie": {"name": "theme", "value": "dark", "path": "/"}},
    )


@pytest.mark.asyncio
async def test_screenshot_is_decoded(transport, start_client) -> None:
    client = await start_client(transport)
    transport.add("GET", "/session/S1/screenshot", wire("iVBORw0KGgo="))

    assert (await client.screenshot()).startswith(b"\x89PNG")


@pytest.mark.asyncio
async def test_raw_request_carries_session_cookies(monkeypatch, transport, start_client) -> None:
    client = await start_client(transport, user_agent="scraper/1.0")
    transport.add("GET", "/session/S1/url", wire("https://example.com/page"))
    transport.add("GET", "/session/S1/cookie", wire([{"name": "sid", "value": "xyz"}]))
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="ok")

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        "async_webdriver.client.httpx.AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )

    response = await client.raw_request("GET", "/api/data")

    assert response.text == "ok"
    assert str(seen[0].url) == "https://example.com/api/data"
    assert seen[0].headers["cookie"] == "sid=xyz"
    assert seen[0].headers["user-agent"] == "scraper/1.0"
    assert [call[2] for call in transport.calls("POST", "/session/S1/url")] == [
        {"url": "https://example.com/please_give_me_your_cookies"}
    ]
    assert transport.calls("POST", "/session/S1/back")


@pytest.mark.asyncio
async def test_close_waits_for_session_being_started(transport, config) -> None:
    client = WebDriverClient(transport, config=config)
    transport.delay = 0.05

    starting = asyncio.create_task(client.start())
    await asyncio.sleep(0.01)
    await client.close()
    await starting

    assert client.state is SessionState.CLOSED
    assert transport.calls("DELETE", "/session/S1")


@pytest.mark.asyncio
async def test_start_scheduled_before_close_never_creates_a_session(transport, config) -> None:
    client = WebDriverClient(transport, config=config)

    starting = asyncio.create_task(client.start())
    await client.close()

    with pytest.raises(SessionStateError):
        await starting
    assert transport.calls("POST", "/session") == []


@pytest.mark.asyncio
async def test_start_cancelled_during_setup_deletes_the_session(transport, config) -> None:
    client = WebDriverClient(
        transport, config=config.model_copy(update={"timeouts": SessionTimeouts(implicit=1.0)})
    )
    transport.delay = 0.1

    starting = asyncio.create_task(client.start())
    await asyncio.sleep(0.15)
    assert transport.calls("POST", "/session/S1/timeouts")
    starting.cancel()
    with pytest.raises(asyncio.CancelledError):
        await starting

    assert client.state is SessionState.CLOSED
    await client.close()
    assert len(transport.calls("DELETE", "/session/S1")) == 1


@pytest.mark.asyncio
async def test_failed_context_entry_releases_owned_transport(transport, config) -> None:
    transport.add("POST", "/session", wire_error("session not created", status=500))

    with pytest.raises(SessionNotCreated):
        async with WebDriverClient(transport, config=config, owns_transport=True):
            pytest.fail("entered without a session")

    assert transport.closed


@pytest.mark.asyncio
async def test_foreign_window_is_rejected_locally(start_client) -> None:
    transport = RecordingTransport()
    transport.add("GET", "/session/S2/window", wire("w-2"))
    first = await start_client(transport)
    second = await start_client(transport)
    foreign = await second.window_handle()
    sent = len(transport.requests)

    with pytest.raises(InvalidHandle):
        await first.switch_to_window(foreign)

    assert len(transport.requests) == sent
