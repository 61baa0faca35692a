"""Human-in-the-loop resolution of OTP, CAPTCHA and push-approval challenges.

The worker never solves a challenge itself. It publishes what the operator
needs through the coordination backend, polls until the operator has acted
or the bound runs out, and reports plain True/False. Turning a False into a
terminal failure is the orchestrator's job.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from playwright.async_api import Error as PlaywrightError

from ..config import (
    CAPTCHA_POLL_SECONDS,
    CAPTCHA_SCREENSHOT_REFRESH_SECONDS,
    CAPTCHA_TIMEOUT_SECONDS,
    HUMAN_PACE,
    OTP_CODE_LENGTH,
    OTP_POLL_SECONDS,
    OTP_TIMEOUT_SECONDS,
    PUSH_POLL_SECONDS,
    PUSH_TIMEOUT_SECONDS,
)
from ..constants import CODE_INPUT_FALLBACK, SELECTORS
from ..errors import CoordinationError
from ..tools.coordination import CoordinationClient
from .browser import PageDriver, human_delay
from .classifier import detect_captcha, is_authenticated, on_authenticated_route, on_checkpoint

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class HumanChannelBridge:
    """Polls the operator channel on behalf of one login attempt at a time."""

    def __init__(
        self,
        channel: CoordinationClient,
        otp_timeout: float = OTP_TIMEOUT_SECONDS,
        otp_poll: float = OTP_POLL_SECONDS,
        captcha_timeout: float = CAPTCHA_TIMEOUT_SECONDS,
        captcha_poll: float = CAPTCHA_POLL_SECONDS,
        captcha_refresh: float = CAPTCHA_SCREENSHOT_REFRESH_SECONDS,
        push_timeout: float = PUSH_TIMEOUT_SECONDS,
        push_poll: float = PUSH_POLL_SECONDS,
        code_length: int = OTP_CODE_LENGTH,
        pace: float = HUMAN_PACE,
    ):
        self._channel = channel
        self.otp_timeout = otp_timeout
        self._otp_poll = otp_poll
        self.captcha_timeout = captcha_timeout
        self._captcha_poll = captcha_poll
        self._captcha_refresh = captcha_refresh
        self.push_timeout = push_timeout
        self._push_poll = push_poll
        self._code_length = code_length
        self._pace = pace

    # ── OTP ──────────────────────────────────────────────────────────────────

    async def deliver_otp(self, page: PageDriver, agent_id: str) -> bool:
        """Wait for the operator's code, type it in and submit it.

        Returns True once the code was submitted or the page already reached
        a signed-in route. The pending code is cleared exactly once, on every
        way out of this call.
        """
        loop = asyncio.get_event_loop()
        deadline = loop.time() + self.otp_timeout
        logger.info(f"[2FA] Polling for code for agent {agent_id} (timeout {self.otp_timeout:g}s)...")

        try:
            while loop.time() < deadline:
                try:
                    code = await self._channel.fetch_pending_otp(agent_id)
                except CoordinationError as e:
                    logger.error(f"[2FA] Error polling for code: {e}")
                    code = None

                if code and len(code) == self._code_length:
                    logger.info("[2FA] Received code, entering on page...")
                    if await self._enter_code(page, code):
                        return True
                    logger.warning("[2FA] Code received but no input field found on page")

                if on_authenticated_route(page.url):
                    logger.info("[2FA] Already navigated to a signed-in page")
                    return True

                await asyncio.sleep(self._otp_poll)

            logger.warning(f"[2FA] Timeout waiting for code for agent {agent_id}")
            return False
        finally:
            await self._clear_otp(agent_id)

    async def _enter_code(self, page: PageDriver, code: str) -> bool:
        element = await page.find_visible(SELECTORS["code_input"] + [CODE_INPUT_FALLBACK])
        if element is None:
            return False

        await page.clear(element)
        await page.type(element, code, per_char_delay=(50, 150))
        await human_delay(500, 1000, self._pace)

        submit = await page.find_visible(SELECTORS["code_submit"])
        if submit is not None:
            logger.info("[2FA] Clicking submit button")
            await page.click(submit)
        else:
            logger.info("[2FA] No submit button found, code may auto-submit")
        return True

    async def _clear_otp(self, agent_id: str):
        try:
            await self._channel.clear_pending_otp(agent_id)
            logger.info("[2FA] Cleared pending code")
        except CoordinationError as e:
            logger.error(f"[2FA] Failed to clear pending code: {e}")

    # ── CAPTCHA ──────────────────────────────────────────────────────────────

    async def relay_captcha(self, page: PageDriver, agent_id: str) -> bool:
        """Show the operator a live-ish view of the CAPTCHA until it is gone.

        Solved means the page reached a signed-in route or no CAPTCHA marker
        is left, even if a follow-up challenge now shows on the same
        checkpoint. The published screenshot is always withdrawn on the way out.
        """
        loop = asyncio.get_event_loop()
        started = loop.time()
        deadline = started + self.captcha_timeout
        logger.info(f"[CAPTCHA] Waiting for operator to solve CAPTCHA for agent {agent_id}...")

        last_published = float("-inf")
        if await self._publish_screenshot(page, agent_id):
            last_published = loop.time()

        try:
            while loop.time() < deadline:
                if on_authenticated_route(page.url):
                    logger.info("[CAPTCHA] Navigated to a signed-in page - CAPTCHA solved")
                    return True
                if not await detect_captcha(page):
                    logger.info("[CAPTCHA] CAPTCHA markers gone")
                    return True

                if loop.time() - last_published >= self._captcha_refresh:
                    if await self._publish_screenshot(page, agent_id):
                        last_published = loop.time()

                logger.info(f"[CAPTCHA] Still waiting... ({int(loop.time() - started)}s elapsed)")
                await asyncio.sleep(self._captcha_poll)

            logger.warning(f"[CAPTCHA] Timeout waiting for CAPTCHA for agent {agent_id}")
            return False
        finally:
            try:
                await self._channel.publish_captcha_screenshot(agent_id, None)
            except CoordinationError as e:
                logger.error(f"[CAPTCHA] Failed to withdraw screenshot: {e}")

    async def _publish_screenshot(self, page: PageDriver, agent_id: str) -> bool:
        try:
            await self._channel.publish_captcha_screenshot(agent_id, await page.screenshot())
        except (CoordinationError, PlaywrightError) as e:
            logger.error(f"[CAPTCHA] Failed to publish screenshot: {e}")
            return False
        logger.info("[CAPTCHA] Screenshot published")
        return True

    # ── Push approval ────────────────────────────────────────────────────────

    async def await_push_approval(self, page: PageDriver, agent_id: str) -> bool:
        """Wait for the member to approve the sign-in from the mobile app."""
        loop = asyncio.get_event_loop()
        deadline = loop.time() + self.push_timeout
        logger.info(f"[PUSH] Waiting for app approval for agent {agent_id}...")

        while loop.time() < deadline:
            if on_authenticated_route(page.url):
                logger.info("[PUSH] Approved")
                return True
            if not on_checkpoint(page.url) and await is_authenticated(page):
                logger.info("[PUSH] Left checkpoint and signed in")
                return True
            await asyncio.sleep(self._push_poll)

        logger.warning(f"[PUSH] Timeout waiting for app approval for agent {agent_id}")
        return False
