"""Login state machine: cookie restore, credentials, challenge resolution, extraction.

    init ─► cookie_restore ─────────────────────────────────────┐
      │          │ (not signed in)                              │
      ▼          ▼                                              │
    navigating ─► entering_credentials ─► submitted ─► classifying
      │ (already signed in)                                │
      │           ┌───────────── none + signed in ─────────┤
      │           │   invalid / locked / unknown ─► rejected
      │           │   captcha / push / otp ─► awaiting_* ─► re_verifying ─┐
      │           │                        (timeout ─► rejected)          │
      │           │                        ◄──── classify again ◄─────────┘
      ▼           ▼
    extracting_profile ─► completed

Unexpected exceptions and broken preconditions end in ``failed``. The
browser session is released on every path.
"""

from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import aiosqlite
from playwright.async_api import Error as PlaywrightError

from ..config import DEBUG_CAPTURE_DIR, HUMAN_PACE, MAX_CHALLENGE_ROUNDS
from ..constants import (
    PLATFORM_COOKIE_DOMAIN,
    PLATFORM_FEED_URL,
    PLATFORM_LOGIN_URL,
    PRIMARY_TOKEN_COOKIE,
    SECONDARY_TOKEN_COOKIE,
    SELECTORS,
)
from ..database.repository import AttemptRepository
from ..errors import (
    AccountLockedError,
    AuthWorkerError,
    ChannelTimeoutError,
    InvalidCredentialsError,
    MissingCredentialsError,
    ProfileNotFoundError,
    UnknownChallengeError,
    UnrecognizedPageError,
)
from ..models.challenge import ChallengeCategory, ChallengeVerdict, OtpChannel
from ..models.session import LoginResult, LoginState, SessionArtifact
from ..models.task import LoginPayload, Task, mask_email
from ..tools.coordination import CoordinationClient
from .bridge import HumanChannelBridge
from .browser import PageDriver, human_delay
from .classifier import classify, is_authenticated
from .connector import BrowserConnector, SessionHandle
from .extractor import SessionExtractor

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

# Agent-facing labels for rejections the operator must act on
_REJECTION_LABELS = {
    InvalidCredentialsError.category: "invalid_credentials",
    AccountLockedError.category: "account_locked",
}


@dataclass
class _Attempt:
    task: Task
    attempt_id: Optional[int] = None
    trace: list[LoginState] = field(default_factory=lambda: [LoginState.INIT])
    verdicts: list[ChallengeVerdict] = field(default_factory=list)

    @property
    def agent_id(self) -> str:
        return self.task.agent_id


class LoginOrchestrator:
    """Runs one login attempt per ``run`` call and always returns a result."""

    def __init__(
        self,
        connector: BrowserConnector,
        channel: CoordinationClient,
        bridge: Optional[HumanChannelBridge] = None,
        extractor: Optional[SessionExtractor] = None,
        journal: Optional[AttemptRepository] = None,
        max_challenge_rounds: int = MAX_CHALLENGE_ROUNDS,
        pace: float = HUMAN_PACE,
        debug_capture_dir: str = DEBUG_CAPTURE_DIR,
    ):
        self._connector = connector
        self._channel = channel
        self._bridge = bridge or HumanChannelBridge(channel, pace=pace)
        self._extractor = extractor or SessionExtractor()
        self._journal = journal
        self._max_rounds = max_challenge_rounds
        self._pace = pace
        self._debug_capture_dir = debug_capture_dir

    async def run(self, task: Task) -> LoginResult:
        attempt = _Attempt(task)
        logger.info(f"[LOGIN] Starting login for agent {task.agent_id} (task {task.id})")
        await self._journal_start(attempt)

        handle: Optional[SessionHandle] = None
        try:
            if not task.profile_ref:
                raise ProfileNotFoundError("No browser profile linked to this agent")
            handle = await self._connector.acquire(task.profile_ref)
            artifact = await self._login(attempt, handle)
            await self._transition(attempt, LoginState.DONE, notify=False)
            result = LoginResult.from_artifact(artifact)
            logger.info(f"[LOGIN] Login completed for agent {task.agent_id}")
        except AuthWorkerError as e:
            state = LoginState.REJECTED if e.terminal_state == "rejected" else LoginState.ERROR
            logger.error(f"[LOGIN] Login failed for agent {task.agent_id}: {e}")
            await self._transition(
                attempt,
                state,
                agent_state=_REJECTION_LABELS.get(e.category, state.value),
                loginError=str(e),
            )
            result = LoginResult.failure(state, e.category, str(e))
        except Exception as e:
            logger.error(f"[LOGIN] Unexpected error for agent {task.agent_id}: {e}", exc_info=True)
            await self._transition(attempt, LoginState.ERROR, loginError=str(e))
            result = LoginResult.failure(LoginState.ERROR, "Unexpected", str(e))
        finally:
            await self._connector.release(handle)

        result.trace = list(attempt.trace)
        await self._journal_finish(attempt, result)
        return result

    # ── Flow ─────────────────────────────────────────────────────────────────

    async def _login(self, attempt: _Attempt, handle: SessionHandle) -> SessionArtifact:
        page = handle.page
        payload = attempt.task.login_payload()

        if payload.can_restore:
            await self._transition(attempt, LoginState.COOKIE_RESTORE)
            if await self._restore_cookies(page, payload):
                logger.info("[LOGIN] Cookie login successful")
                return await self._extract(attempt, handle)
            logger.info("[LOGIN] Cookies invalid or expired, falling back to credentials")

        await self._transition(attempt, LoginState.NAVIGATING)
        await page.navigate(PLATFORM_LOGIN_URL)
        await human_delay(1500, 2500, self._pace)

        if await is_authenticated(page):
            logger.info("[LOGIN] Already logged in")
            return await self._extract(attempt, handle)

        await self._transition(attempt, LoginState.ENTERING_CREDENTIALS)
        await self._enter_credentials(page, payload)

        await self._transition(attempt, LoginState.SUBMITTED)
        # Challenges render asynchronously after the form posts
        await human_delay(4000, 6000, self._pace)

        await self._transition(attempt, LoginState.CLASSIFYING)
        return await self._dispatch(attempt, handle)

    async def _dispatch(self, attempt: _Attempt, handle: SessionHandle) -> SessionArtifact:
        page = handle.page
        rounds = 0
        while True:
            verdict = await classify(page)
            attempt.verdicts.append(verdict)
            logger.info(f"[LOGIN] Challenge detection result: {verdict.describe()}")
            if verdict.is_challenge:
                await self._log_challenge_debug(page, attempt, verdict)

            category = verdict.category
            if category == ChallengeCategory.NONE:
                if await is_authenticated(page):
                    return await self._extract(attempt, handle)
                raise UnrecognizedPageError("Login failed - ended in unknown state")
            if category == ChallengeCategory.INVALID_CREDENTIALS:
                raise InvalidCredentialsError("Invalid email or password")
            if category == ChallengeCategory.ACCOUNT_LOCKED:
                raise AccountLockedError("Account is locked or restricted")
            if category == ChallengeCategory.UNKNOWN_CHALLENGE:
                raise UnknownChallengeError(f"Unknown challenge: {verdict.evidence}")

            if rounds >= self._max_rounds:
                raise UnknownChallengeError(
                    f"Challenge still present after {rounds} resolutions: {verdict.describe()}"
                )
            rounds += 1

            await self._resolve(attempt, page, verdict)
            await self._transition(attempt, LoginState.RE_VERIFYING)
            await human_delay(2000, 3000, self._pace)

    async def _resolve(self, attempt: _Attempt, page: PageDriver, verdict: ChallengeVerdict):
        """Hand the challenge to the human channel; raise if it times out."""
        agent_id = attempt.agent_id
        category = verdict.category

        if category == ChallengeCategory.CAPTCHA:
            await self._transition(attempt, LoginState.RESOLVING_CAPTCHA)
            if not await self._bridge.relay_captcha(page, agent_id):
                raise ChannelTimeoutError("CAPTCHA timeout - please try again", "captcha", self._bridge.captcha_timeout)

        elif category == ChallengeCategory.PUSH_APPROVAL:
            await self._transition(attempt, LoginState.RESOLVING_PUSH, twoFAMethod="linkedin_app")
            if not await self._bridge.await_push_approval(page, agent_id):
                raise ChannelTimeoutError("App approval timeout", "push", self._bridge.push_timeout)

        elif category == ChallengeCategory.OTP_CODE:
            method = verdict.method or OtpChannel.UNKNOWN
            await self._transition(attempt, LoginState.RESOLVING_OTP, twoFAMethod=method.value)
            if not await self._bridge.deliver_otp(page, agent_id):
                raise ChannelTimeoutError("2FA timeout - no code received", f"otp:{method.value}", self._bridge.otp_timeout)

        else:
            raise UnknownChallengeError(f"Unhandled challenge type: {category.value}")

    async def _restore_cookies(self, page: PageDriver, payload: LoginPayload) -> bool:
        cookies = [_session_cookie(PRIMARY_TOKEN_COOKIE, payload.existing_token)]
        if payload.backup_token:
            cookies.append(_session_cookie(SECONDARY_TOKEN_COOKIE, payload.backup_token))
        try:
            await page.set_cookies(cookies)
            await page.navigate(PLATFORM_FEED_URL)
        except PlaywrightError as e:
            logger.warning(f"[LOGIN] Cookie restore navigation failed: {e}")
            return False
        return await is_authenticated(page)

    async def _enter_credentials(self, page: PageDriver, payload: LoginPayload):
        if not payload.email or not payload.password:
            raise MissingCredentialsError("Missing email or password for login")

        username = await page.find_visible(SELECTORS["login_username"], timeout_ms=10000)
        password = await page.find_visible(SELECTORS["login_password"], timeout_ms=10000)
        if username is None or password is None:
            raise UnrecognizedPageError("Login form not found")

        logger.info(f"[LOGIN] Entering credentials for {mask_email(payload.email)}")
        await page.type(username, payload.email)
        await human_delay(500, 1000, self._pace)
        await page.type(password, payload.password)
        await human_delay(500, 1000, self._pace)

        submit = await page.find_visible(SELECTORS["login_submit"], timeout_ms=5000)
        if submit is None:
            raise UnrecognizedPageError("Sign in button not found")
        logger.info("[LOGIN] Clicking sign in button...")
        await page.click(submit)

    async def _extract(self, attempt: _Attempt, handle: SessionHandle) -> SessionArtifact:
        await self._transition(attempt, LoginState.EXTRACTING)
        artifact = await self._extractor.extract(handle)
        await self._channel.persist_session(attempt.agent_id, artifact)
        return artifact

    # ── Status & diagnostics ─────────────────────────────────────────────────

    async def _transition(
        self,
        attempt: _Attempt,
        state: LoginState,
        agent_state: Optional[str] = None,
        notify: bool = True,
        **extra: Any,
    ):
        attempt.trace.append(state)
        logger.info(f"[LOGIN] Agent {attempt.agent_id} -> {state.value}")
        if notify:
            await self._channel.update_agent_state(attempt.agent_id, agent_state or state.value, **extra)
        if self._journal and attempt.attempt_id is not None:
            try:
                await self._journal.record_transition(attempt.attempt_id, state.value, extra)
            except aiosqlite.Error as e:
                logger.warning(f"Could not journal transition {state.value}: {e}")

    async def _journal_start(self, attempt: _Attempt):
        if not self._journal:
            return
        try:
            attempt.attempt_id = await self._journal.start_attempt(
                attempt.task.id, attempt.agent_id, attempt.task.profile_ref or ""
            )
        except aiosqlite.Error as e:
            logger.warning(f"Could not journal attempt start: {e}")

    async def _journal_finish(self, attempt: _Attempt, result: LoginResult):
        if not self._journal or attempt.attempt_id is None:
            return
        try:
            await self._journal.finish_attempt(attempt.attempt_id, result)
        except aiosqlite.Error as e:
            logger.warning(f"Could not journal attempt result: {e}")

    async def _log_challenge_debug(self, page: PageDriver, attempt: _Attempt, verdict: ChallengeVerdict):
        if logger.isEnabledFor(logging.DEBUG):
            text = await page.text_content()
            fields = "\n".join(
                "  " + " ".join(f"{key}={value!r}" for key, value in field.items() if value)
                for field in await page.form_fields()
            )
            logger.debug(
                f"Challenge debug: agent={attempt.agent_id} challenge={verdict.describe()} url={page.url}\n"
                f"{text[:1500]}\n"
                f"Fields:\n{fields or '  (none)'}"
            )
        if self._debug_capture_dir:
            name = f"{attempt.agent_id}-{verdict.category.value}-{int(time.time())}"
            path = await page.save_debug_capture(self._debug_capture_dir, name)
            if path:
                logger.info(f"Challenge screenshot saved to {path}")


def _session_cookie(name: str, value: str) -> dict[str, Any]:
    return {
        "name": name,
        "value": value,
        "domain": PLATFORM_COOKIE_DOMAIN,
        "path": "/",
        "httpOnly": True,
        "secure": True,
    }
