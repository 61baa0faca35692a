"""Connector retry policy, release guarantees and transport error mapping."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from authworker.errors import (
    AuthWorkerError,
    ProfileAccessDeniedError,
    ProfileNotFoundError,
    TransientConnectionError,
)
from authworker.session_manager import connector as connector_module
from authworker.session_manager.connector import (
    CloudBrowserConnector,
    LocalBrowserConnector,
    classify_transport_error,
)

from .conftest import FakeConnector, FakePage


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.example.test/browser/p1")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


@pytest.mark.parametrize(
    "status, expected",
    [
        (401, ProfileAccessDeniedError),
        (403, ProfileAccessDeniedError),
        (404, ProfileNotFoundError),
        (429, TransientConnectionError),
        (502, TransientConnectionError),
    ],
)
def test_http_status_mapping(status, expected):
    assert isinstance(classify_transport_error(_status_error(status), "p1"), expected)


def test_other_client_errors_are_fatal():
    err = classify_transport_error(_status_error(400), "p1")
    assert type(err) is AuthWorkerError


def test_socket_and_timeout_errors_are_transient():
    assert isinstance(classify_transport_error(httpx.ConnectError("refused")), TransientConnectionError)
    assert isinstance(classify_transport_error(PlaywrightTimeoutError("Timeout 90000ms exceeded")), TransientConnectionError)
    assert isinstance(classify_transport_error(ConnectionResetError("reset")), TransientConnectionError)


def test_status_parsed_from_cdp_handshake_message():
    err = classify_transport_error(PlaywrightError("WebSocket error: Unexpected status 403 Forbidden"), "p1")
    assert isinstance(err, ProfileAccessDeniedError)


@pytest.mark.asyncio
async def test_transient_errors_are_retried_until_success():
    connector = FakeConnector(
        FakePage(),
        open_errors=[TransientConnectionError("reset"), TransientConnectionError("503", status_code=503)],
        max_retries=3,
    )
    handle = await connector.acquire("p1")
    assert handle.profile_ref == "p1"
    assert connector.open_calls == 3


@pytest.mark.asyncio
async def test_retries_exhausted_raises_last_transient_error():
    errors = [TransientConnectionError(f"reset {i}") for i in range(3)]
    connector = FakeConnector(FakePage(), open_errors=errors, max_retries=3)
    with pytest.raises(TransientConnectionError) as exc_info:
        await connector.acquire("p1")
    assert exc_info.value is errors[-1]
    assert connector.open_calls == 3


@pytest.mark.asyncio
async def test_fatal_errors_are_not_retried():
    connector = FakeConnector(FakePage(), open_errors=[ProfileAccessDeniedError("403")], max_retries=3)
    with pytest.raises(ProfileAccessDeniedError):
        await connector.acquire("p1")
    assert connector.open_calls == 1


@pytest.mark.asyncio
async def test_release_is_idempotent_and_quiet():
    connector = FakeConnector(FakePage())
    handle = await connector.acquire("p1")
    await connector.release(handle)
    await connector.release(handle)
    await connector.release(None)
    assert connector.close_calls == 1


@pytest.mark.asyncio
async def test_release_swallows_close_errors():
    class BrokenClose(FakeConnector):
        async def _close(self, handle):
            raise RuntimeError("socket already gone")

    connector = BrokenClose(FakePage())
    handle = await connector.acquire("p1")
    await connector.release(handle)
    assert handle.closed


@pytest.mark.asyncio
async def test_session_context_releases_on_error():
    connector = FakeConnector(FakePage())
    with pytest.raises(ValueError):
        async with connector.session("p1"):
            raise ValueError("boom")
    assert connector.close_calls == 1


@pytest.mark.asyncio
async def test_cloud_profile_check_maps_404_without_retry():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404, json={"message": "not found"})

    connector = CloudBrowserConnector("api-token", transport=httpx.MockTransport(handler), backoff_seconds=0)
    with pytest.raises(ProfileNotFoundError):
        await connector.acquire("missing-profile")

    assert len(calls) == 1
    assert calls[0].headers["authorization"] == "Bearer api-token"
    assert calls[0].url.path.endswith("/missing-profile")


@pytest.mark.asyncio
async def test_cloud_profile_check_retries_server_errors():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    connector = CloudBrowserConnector(
        "api-token", transport=httpx.MockTransport(handler), max_retries=2, backoff_seconds=0
    )
    with pytest.raises(TransientConnectionError):
        await connector.acquire("p1")
    assert len(calls) == 2


def _cloud_connector(tab_setup_error=None, **kwargs):
    """A cloud connector wired to a scripted CDP browser with one open tab."""
    tab = MagicMock()
    tab.set_viewport_size = AsyncMock(side_effect=tab_setup_error)
    context = MagicMock(pages=[tab])
    browser = MagicMock(contexts=[context])
    browser.close = AsyncMock()
    playwright = MagicMock()
    playwright.chromium.connect_over_cdp = AsyncMock(return_value=browser)

    connector = CloudBrowserConnector("api-token", verify_profile=False, backoff_seconds=0, **kwargs)
    connector._ensure_playwright = AsyncMock(return_value=playwright)
    return connector, browser


@pytest.mark.asyncio
async def test_cloud_setup_failure_after_connect_closes_browser():
    connector, browser = _cloud_connector(RuntimeError("Target closed"), max_retries=2)

    with pytest.raises(TransientConnectionError):
        await connector.acquire("p1")

    assert browser.close.await_count == 2


@pytest.mark.asyncio
async def test_cloud_session_reuses_open_tab_and_closes_once():
    connector, browser = _cloud_connector()

    handle = await connector.acquire("p1")
    await connector.release(handle)
    await connector.release(handle)

    assert handle.browser is browser
    browser.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_local_context_failure_exits_camoufox(monkeypatch):
    browser = MagicMock()
    browser.new_context = AsyncMock(side_effect=PlaywrightError("Browser has been closed"))
    camoufox = MagicMock()
    camoufox.__aenter__ = AsyncMock(return_value=browser)
    camoufox.__aexit__ = AsyncMock(side_effect=RuntimeError("already exited"))
    monkeypatch.setattr(connector_module, "AsyncCamoufox", MagicMock(return_value=camoufox))

    connector = LocalBrowserConnector(headless=True, max_retries=1, backoff_seconds=0)
    with pytest.raises(AuthWorkerError):
        await connector.acquire("local")

    camoufox.__aexit__.assert_awaited_once_with(None, None, None)
