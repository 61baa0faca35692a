"""Playwright page driver: navigation, element lookup and human-like input."""

from __future__ import annotations

import asyncio
import logging
import random
import sys
from pathlib import Path
from typing import Optional, Sequence

from playwright.async_api import BrowserContext, Locator, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import BROWSER_TIMEOUT, HUMAN_PACE

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


async def human_delay(min_ms: int = 500, max_ms: int = 2000, pace: float = HUMAN_PACE):
    """Sleep for a random interval, scaled by ``pace`` (0 skips the wait)."""
    if pace <= 0:
        return
    await asyncio.sleep(random.uniform(min_ms, max_ms) * pace / 1000)


class PageDriver:
    """The single page/tab of a browser session, as seen by the login flow.

    Every method maps onto one browser capability; nothing here knows about
    challenges or credentials.
    """

    def __init__(self, page: Page, context: BrowserContext, pace: float = HUMAN_PACE):
        self._page = page
        self._context = context
        self._pace = pace
        self._page.set_default_timeout(BROWSER_TIMEOUT)

    @property
    def url(self) -> str:
        return self._page.url

    async def navigate(self, url: str, wait_until: str = "networkidle"):
        """Go to ``url``; on timeout retry once waiting only for the commit."""
        logger.info(f"Navigating to {url}")
        try:
            await self._page.goto(url, wait_until=wait_until, timeout=BROWSER_TIMEOUT)
        except PlaywrightTimeoutError:
            logger.warning(f"{wait_until} timed out for {url}, retrying with commit...")
            await self._page.goto(url, wait_until="commit", timeout=BROWSER_TIMEOUT * 2)
        logger.info(f"Landed on {self._page.url}")

    async def text_content(self) -> str:
        """Body text of the current page, or an empty string if unreadable."""
        try:
            return await self._page.text_content("body", timeout=5000) or ""
        except PlaywrightError:
            return ""

    async def _first_visible(self, selectors: Sequence[str], timeout_ms: int) -> Optional[tuple[str, Locator]]:
        for selector in selectors:
            element = self._page.locator(selector).first
            try:
                await element.wait_for(state="visible", timeout=timeout_ms)
            except PlaywrightError:
                continue
            return selector, element
        return None

    async def find_visible(self, selectors: Sequence[str], timeout_ms: int = 500) -> Optional[Locator]:
        """Return the element of the first candidate selector that becomes visible."""
        match = await self._first_visible(selectors, timeout_ms)
        return match[1] if match else None

    async def match_visible(self, selectors: Sequence[str], timeout_ms: int = 500) -> Optional[str]:
        """Return the first candidate selector that has a visible element."""
        match = await self._first_visible(selectors, timeout_ms)
        return match[0] if match else None

    async def click(self, element: Locator):
        """Move the mouse to a random point inside the element, then click."""
        box = await element.bounding_box()
        if not box:
            await element.click()
            return
        x = box["x"] + box["width"] * (0.3 + random.random() * 0.4)
        y = box["y"] + box["height"] * (0.3 + random.random() * 0.4)
        await self._page.mouse.move(x, y, steps=random.randint(5, 14))
        await human_delay(100, 300, self._pace)
        await self._page.mouse.click(x, y)

    async def type(self, element: Locator, text: str, per_char_delay: tuple[int, int] = (50, 200)):
        """Focus the element and type ``text`` one character at a time."""
        await element.click()
        await human_delay(200, 500, self._pace)
        low, high = per_char_delay
        for char in text:
            await element.press_sequentially(char, delay=random.uniform(low, high) * self._pace)
            if random.random() < 0.1:
                await human_delay(300, 800, self._pace)

    async def clear(self, element: Locator):
        await element.fill("")

    async def scroll(self, delta: Optional[int] = None):
        await self._page.mouse.wheel(0, delta if delta is not None else random.randint(200, 500))
        await human_delay(500, 1500, self._pace)

    async def form_fields(self, limit: int = 20) -> list[dict]:
        """Tag, type, name, id, placeholder, text and aria-label of inputs and buttons."""
        try:
            return await self._page.eval_on_selector_all(
                "input, button",
                """(els, limit) => els.slice(0, limit).map(el => ({
                    tag: el.tagName.toLowerCase(),
                    type: el.type || "",
                    name: el.name || "",
                    id: el.id || "",
                    placeholder: el.placeholder || "",
                    text: (el.textContent || "").trim().slice(0, 50),
                    ariaLabel: el.getAttribute("aria-label") || "",
                }))""",
                limit,
            )
        except PlaywrightError:
            return []

    async def screenshot(self) -> bytes:
        return await self._page.screenshot(type="png", full_page=False)

    async def cookies(self) -> list[dict]:
        return await self._context.cookies()

    async def set_cookies(self, cookies: list[dict]):
        await self._context.add_cookies(cookies)

    async def save_debug_capture(self, directory: str, name: str) -> Optional[Path]:
        """Write a screenshot of the current page to ``directory`` for later inspection."""
        path = Path(directory) / f"{name}.png"
        try:
            path.write_bytes(await self.screenshot())
        except (PlaywrightError, OSError) as e:
            logger.warning(f"Could not save debug capture {path}: {e}")
            return None
        return path
