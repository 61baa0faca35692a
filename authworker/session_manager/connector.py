"""Remote browser connections: acquire with typed retry, release without raising."""

from __future__ import annotations

import asyncio
import logging
import re
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import httpx
from camoufox.async_api import AsyncCamoufox
from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import (
    BROWSER_HEADLESS,
    CONNECT_BACKOFF_SECONDS,
    CONNECT_MAX_RETRIES,
    CONNECT_TIMEOUT_MS,
    HUMAN_PACE,
)
from ..constants import CLOUD_BROWSER_WS_URL, CLOUD_PROFILE_API_URL
from ..errors import (
    AuthWorkerError,
    ProfileAccessDeniedError,
    ProfileNotFoundError,
    TransientConnectionError,
)
from .browser import PageDriver

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

VIEWPORT = {"width": 1280, "height": 800}

# Playwright reports CDP handshake failures as "... Unexpected status 403 ..."
_HTTP_STATUS_RE = re.compile(r"\b([45]\d\d)\b")


def classify_transport_error(exc: BaseException, profile_ref: str = "") -> AuthWorkerError:
    """Map a transport-level failure onto the worker's typed errors.

    401/403 mean the token cannot use the profile and 404 means the profile
    does not exist; both are configuration errors. 429, 5xx, timeouts and
    socket errors are transient. Other 4xx responses are fatal.
    """
    if isinstance(exc, AuthWorkerError):
        return exc

    status: Optional[int] = None
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
    elif isinstance(exc, PlaywrightError) and not isinstance(exc, PlaywrightTimeoutError):
        match = _HTTP_STATUS_RE.search(str(exc))
        if match:
            status = int(match.group(1))

    if status in (401, 403):
        return ProfileAccessDeniedError(f"Browser profile access denied ({status}): {profile_ref}")
    if status == 404:
        return ProfileNotFoundError(f"Browser profile not found (404): {profile_ref}")
    if status is not None and status < 500 and status != 429:
        return AuthWorkerError(f"Browser connection rejected ({status}): {exc}")
    return TransientConnectionError(f"Browser connection failed: {exc}", status_code=status)


async def _abandon(closing, profile_ref: str):
    """Await a close call for a half-opened session, logging any error."""
    try:
        await closing
    except Exception as e:
        logger.warning(f"Error abandoning half-open session for profile {profile_ref}: {e}")


@dataclass
class SessionHandle:
    """A live browser connection and its single active page."""

    profile_ref: str
    page: PageDriver
    browser: Optional[Browser] = None
    context: Optional[BrowserContext] = None
    owner: Any = None  # provider object that must be shut down with the session
    closed: bool = False


class BrowserConnector:
    """Base connector: retry policy and guaranteed-quiet release.

    Subclasses implement ``_open`` (raising typed errors) and ``_close``.
    """

    def __init__(
        self,
        max_retries: int = CONNECT_MAX_RETRIES,
        backoff_seconds: float = CONNECT_BACKOFF_SECONDS,
        pace: float = HUMAN_PACE,
    ):
        self._max_retries = max(1, max_retries)
        self._backoff_seconds = backoff_seconds
        self._pace = pace

    async def _open(self, profile_ref: str) -> SessionHandle:
        raise NotImplementedError

    async def _close(self, handle: SessionHandle):
        raise NotImplementedError

    async def acquire(self, profile_ref: str) -> SessionHandle:
        """Connect to ``profile_ref``, retrying transient failures with backoff."""
        last_error: Optional[TransientConnectionError] = None
        for attempt in range(1, self._max_retries + 1):
            try:
                logger.info(f"Connecting to browser profile {profile_ref} (attempt {attempt}/{self._max_retries})")
                handle = await self._open(profile_ref)
                logger.info(f"Connected to browser profile {profile_ref} (attempt {attempt})")
                return handle
            except TransientConnectionError as e:
                last_error = e
                logger.warning(f"Connection failed (attempt {attempt}/{self._max_retries}): {e}")
                if attempt < self._max_retries:
                    delay = self._backoff_seconds * 2 ** (attempt - 1)
                    logger.info(f"Retrying in {delay:g}s...")
                    await asyncio.sleep(delay)
        raise last_error

    async def release(self, handle: Optional[SessionHandle]):
        """Close the session. Idempotent; errors are logged, never raised."""
        if handle is None or handle.closed:
            return
        handle.closed = True
        try:
            await self._close(handle)
            logger.info(f"Browser session for profile {handle.profile_ref} closed")
        except Exception as e:
            logger.warning(f"Error closing browser session for profile {handle.profile_ref}: {e}")

    @asynccontextmanager
    async def session(self, profile_ref: str) -> AsyncIterator[SessionHandle]:
        handle = await self.acquire(profile_ref)
        try:
            yield handle
        finally:
            await self.release(handle)

    async def shutdown(self):
        """Release process-wide resources held by the connector."""


class CloudBrowserConnector(BrowserConnector):
    """Connects to cloud-hosted browser profiles over CDP."""

    def __init__(
        self,
        api_token: str,
        verify_profile: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._api_token = api_token
        self._verify_profile = verify_profile
        self._transport = transport
        self._playwright: Optional[Playwright] = None

    async def _ensure_playwright(self) -> Playwright:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return self._playwright

    async def _check_profile(self, profile_ref: str):
        """Look the profile up first so 403/404 surface with a real status code."""
        url = CLOUD_PROFILE_API_URL.format(profile_id=profile_ref)
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                resp = await client.get(url, headers={"Authorization": f"Bearer {self._api_token}"})
                resp.raise_for_status()
        except (httpx.HTTPStatusError, httpx.TransportError) as e:
            raise classify_transport_error(e, profile_ref) from e

    async def _open(self, profile_ref: str) -> SessionHandle:
        if self._verify_profile:
            await self._check_profile(profile_ref)

        ws_url = CLOUD_BROWSER_WS_URL.format(token=self._api_token, profile_id=profile_ref)
        try:
            playwright = await self._ensure_playwright()
            browser = await playwright.chromium.connect_over_cdp(ws_url, timeout=CONNECT_TIMEOUT_MS)
        except (PlaywrightError, OSError) as e:
            raise classify_transport_error(e, profile_ref) from e

        try:
            # The remote profile usually comes with a context and tab already open
            context = browser.contexts[0] if browser.contexts else await browser.new_context()
            page = context.pages[0] if context.pages else await context.new_page()
            await page.set_viewport_size(VIEWPORT)
        except Exception as e:
            await _abandon(browser.close(), profile_ref)
            raise classify_transport_error(e, profile_ref) from e
        return SessionHandle(
            profile_ref=profile_ref,
            page=PageDriver(page, context, pace=self._pace),
            browser=browser,
            context=context,
        )

    async def _close(self, handle: SessionHandle):
        if handle.browser:
            await handle.browser.close()

    async def shutdown(self):
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


class LocalBrowserConnector(BrowserConnector):
    """Launches a local Camoufox browser; for development without cloud profiles."""

    def __init__(self, headless: bool = BROWSER_HEADLESS, **kwargs):
        super().__init__(**kwargs)
        self._headless = headless

    async def _open(self, profile_ref: str) -> SessionHandle:
        logger.info(f"Launching Camoufox (headless={self._headless}) for profile {profile_ref}...")
        camoufox = AsyncCamoufox(headless=self._headless, humanize=True, geoip=True)
        try:
            browser = await camoufox.__aenter__()
        except (PlaywrightError, OSError) as e:
            raise classify_transport_error(e, profile_ref) from e

        try:
            context = await browser.new_context(viewport=VIEWPORT)
            page = await context.new_page()
        except Exception as e:
            await _abandon(camoufox.__aexit__(None, None, None), profile_ref)
            raise classify_transport_error(e, profile_ref) from e
        return SessionHandle(
            profile_ref=profile_ref,
            page=PageDriver(page, context, pace=self._pace),
            browser=browser,
            context=context,
            owner=camoufox,
        )

    async def _close(self, handle: SessionHandle):
        try:
            if handle.context:
                await handle.context.close()
        finally:
            await handle.owner.__aexit__(None, None, None)
