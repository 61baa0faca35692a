"""Shared fixtures: a scripted page, an in-process connector and a mocked backend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional
from unittest.mock import AsyncMock

import aiosqlite
import pytest
import pytest_asyncio

from authworker.constants import PLATFORM_FEED_URL, PLATFORM_LOGIN_URL
from authworker.database.models import initialize_db
from authworker.database.repository import AttemptRepository
from authworker.session_manager.bridge import HumanChannelBridge
from authworker.session_manager.connector import BrowserConnector, SessionHandle
from authworker.tools.coordination import CoordinationClient

LOGIN_FORM = {"input#username", "input#password", 'button[type="submit"]'}
CHECKPOINT_URL = "https://www.linkedin.com/checkpoint/challenge/abc123"
SESSION_COOKIES = [
    {"name": "li_at", "value": "primary-token"},
    {"name": "li_a", "value": "secondary-token"},
    {"name": "JSESSIONID", "value": "ajax:1"},
    {"name": "bcookie", "value": "b"},
    {"name": "bscookie", "value": "bs"},
]


@dataclass(frozen=True)
class FakeElement:
    selector: str


class FakePage:
    """Stands in for ``PageDriver``: state is set by the test, actions are logged.

    ``routes`` map a URL to a callback run on navigation; ``on_click`` maps a
    selector to a callback run when that element is clicked.
    """

    def __init__(self, url: str = "about:blank", text: str = "", visible: Optional[set[str]] = None):
        self.url = url
        self.text = text
        self.visible: set[str] = set(visible or ())
        self.cookie_jar: list[dict] = []
        self.routes: dict[str, Callable[[FakePage], None]] = {}
        self.on_click: dict[str, Callable[[FakePage], None]] = {}
        self.actions: list[tuple] = []
        self.screenshots_taken = 0
        self.fields: list[dict] = []

    def show(self, url: str, text: str = "", visible: Optional[set[str]] = None):
        self.url = url
        self.text = text
        self.visible = set(visible or ())

    async def navigate(self, url: str, wait_until: str = "networkidle"):
        self.actions.append(("navigate", url))
        route = self.routes.get(url)
        if route:
            route(self)
        else:
            self.url = url

    async def text_content(self) -> str:
        return self.text

    async def find_visible(self, selectors, timeout_ms: int = 500):
        selector = await self.match_visible(selectors, timeout_ms)
        return FakeElement(selector) if selector else None

    async def match_visible(self, selectors, timeout_ms: int = 500):
        return next((s for s in selectors if s in self.visible), None)

    async def click(self, element: FakeElement):
        self.actions.append(("click", element.selector))
        hook = self.on_click.get(element.selector)
        if hook:
            hook(self)

    async def type(self, element: FakeElement, text: str, per_char_delay=(50, 200)):
        self.actions.append(("type", element.selector, text))

    async def clear(self, element: FakeElement):
        self.actions.append(("clear", element.selector))

    async def scroll(self, delta=None):
        self.actions.append(("scroll",))

    async def screenshot(self) -> bytes:
        self.screenshots_taken += 1
        return b"\x89PNG-fake"

    async def cookies(self) -> list[dict]:
        return list(self.cookie_jar)

    async def set_cookies(self, cookies: list[dict]):
        self.cookie_jar.extend(cookies)

    async def save_debug_capture(self, directory: str, name: str):
        return None

    async def form_fields(self, limit: int = 20) -> list[dict]:
        return self.fields[:limit]

    def actions_after(self, action: tuple) -> list[tuple]:
        """Actions logged after the last occurrence of ``action``."""
        index = len(self.actions) - 1 - self.actions[::-1].index(action)
        return self.actions[index + 1:]


class FakeConnector(BrowserConnector):
    """Hands out sessions on a ``FakePage``; ``open_errors`` are raised first, in order."""

    def __init__(self, page: FakePage, open_errors=(), **kwargs):
        kwargs.setdefault("backoff_seconds", 0)
        super().__init__(**kwargs)
        self.page = page
        self.open_errors = list(open_errors)
        self.open_calls = 0
        self.close_calls = 0

    async def _open(self, profile_ref: str) -> SessionHandle:
        self.open_calls += 1
        if self.open_errors:
            raise self.open_errors.pop(0)
        return SessionHandle(profile_ref=profile_ref, page=self.page)

    async def _close(self, handle: SessionHandle):
        self.close_calls += 1


def login_page() -> FakePage:
    """A login form whose routes land on the form and the feed."""
    page = FakePage()
    page.routes[PLATFORM_LOGIN_URL] = lambda p: p.show(PLATFORM_LOGIN_URL, "Sign in", LOGIN_FORM)
    page.routes[PLATFORM_FEED_URL] = lambda p: p.show(PLATFORM_FEED_URL)
    return page


def make_task(payload=None, action_type="linkedin_login", profile_id="profile-1") -> dict:
    data = {
        "id": "task-1",
        "action_type": action_type,
        "agent_id": "agent-1",
        "payload": payload if payload is not None else {"email": "jane@example.com", "password": "hunter2"},
    }
    if profile_id:
        data["gologin_profile"] = {"profile_id": profile_id}
    return data


@pytest.fixture
def page() -> FakePage:
    return login_page()


@pytest.fixture
def channel() -> AsyncMock:
    mock = AsyncMock(spec=CoordinationClient)
    mock.fetch_pending_otp.return_value = None
    return mock


@pytest.fixture
def bridge(channel) -> HumanChannelBridge:
    return HumanChannelBridge(
        channel,
        otp_timeout=0.2,
        otp_poll=0.01,
        captcha_timeout=0.2,
        captcha_poll=0.01,
        captcha_refresh=0.05,
        push_timeout=0.2,
        push_poll=0.01,
        pace=0,
    )


@pytest_asyncio.fixture
async def repo():
    async with aiosqlite.connect(":memory:") as db:
        await initialize_db(db)
        yield AttemptRepository(db)
