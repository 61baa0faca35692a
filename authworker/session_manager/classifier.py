"""Challenge detection: map the current page onto one challenge category.

Everything here is read-only: page text, URL and visibility of known marker
elements. Checks run in a fixed order and the first match wins. The order
encodes severity, not the order challenges appear in:

1. CAPTCHA (pre-empts everything, it can sit on top of an OTP form)
2. invalid credentials
3. account locked
4. push approval in the mobile app
5. one-time code (visible code input or "we sent a code")
6. authenticator app code
7. bare checkpoint page: approval button or unknown
8. generic "confirm it's you" page: send-code button or unknown

A checkpoint without a recognisable marker is reported as unknown rather
than guessed at; guessing push approval would park the login on the wrong
channel until it times out.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from ..constants import (
    ACCOUNT_LOCKED_PHRASES,
    AUTHENTICATED_URL_MARKERS,
    AUTHENTICATOR_PHRASES,
    CAPTCHA_PHRASES,
    CHECKPOINT_URL_MARKERS,
    EMAIL_HINTS,
    INVALID_CREDENTIAL_PHRASES,
    OTP_SENT_PHRASES,
    PUSH_APPROVAL_PHRASES,
    SECURITY_CHECK_PHRASES,
    SELECTORS,
    SMS_HINTS,
)
from ..models.challenge import ChallengeCategory, ChallengeVerdict, OtpChannel
from .browser import PageDriver

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def _first_phrase(text: str, phrases: list[str]) -> Optional[str]:
    return next((p for p in phrases if p in text), None)


def on_authenticated_route(url: str) -> bool:
    return any(marker in url for marker in AUTHENTICATED_URL_MARKERS)


def on_checkpoint(url: str) -> bool:
    url = url.lower()
    return any(marker in url for marker in CHECKPOINT_URL_MARKERS)


def infer_otp_channel(text: str) -> OtpChannel:
    """Guess where the code was sent from the words around the form."""
    if _first_phrase(text, AUTHENTICATOR_PHRASES):
        return OtpChannel.AUTHENTICATOR
    if _first_phrase(text, SMS_HINTS):
        return OtpChannel.SMS
    if _first_phrase(text, EMAIL_HINTS):
        return OtpChannel.EMAIL
    return OtpChannel.UNKNOWN


async def detect_captcha(page: PageDriver, text: Optional[str] = None) -> Optional[str]:
    """Return the CAPTCHA marker on the page (iframe selector or phrase), or None."""
    iframe = await page.match_visible(SELECTORS["captcha_iframe"], timeout_ms=1000)
    if iframe:
        return iframe
    if text is None:
        text = (await page.text_content()).lower()
    return _first_phrase(text, CAPTCHA_PHRASES)


async def is_authenticated(page: PageDriver) -> bool:
    """True once the page shows a signed-in route or signed-in navigation."""
    if on_authenticated_route(page.url):
        return True
    return await page.match_visible(SELECTORS["signed_in"], timeout_ms=1000) is not None


async def classify(page: PageDriver) -> ChallengeVerdict:
    """Classify the current page into exactly one challenge category."""
    text = (await page.text_content()).lower()
    url = page.url.lower()
    logger.debug(f"Classifying {url}: {text[:500]!r}")

    marker = await detect_captcha(page, text)
    if marker:
        return _verdict(ChallengeCategory.CAPTCHA, marker)

    phrase = _first_phrase(text, INVALID_CREDENTIAL_PHRASES)
    if phrase:
        return _verdict(ChallengeCategory.INVALID_CREDENTIALS, phrase)

    phrase = _first_phrase(text, ACCOUNT_LOCKED_PHRASES)
    if phrase:
        return _verdict(ChallengeCategory.ACCOUNT_LOCKED, phrase)

    phrase = _first_phrase(text, PUSH_APPROVAL_PHRASES)
    if phrase:
        return _verdict(ChallengeCategory.PUSH_APPROVAL, phrase)

    code_input = await page.match_visible(SELECTORS["code_input"])
    if code_input:
        return _verdict(ChallengeCategory.OTP_CODE, code_input, infer_otp_channel(text))

    phrase = _first_phrase(text, OTP_SENT_PHRASES)
    if phrase:
        return _verdict(ChallengeCategory.OTP_CODE, phrase, infer_otp_channel(text))

    phrase = _first_phrase(text, AUTHENTICATOR_PHRASES)
    if phrase:
        return _verdict(ChallengeCategory.OTP_CODE, phrase, OtpChannel.AUTHENTICATOR)

    if on_checkpoint(url):
        button = await page.match_visible(SELECTORS["approval_confirm"])
        if button:
            return _verdict(ChallengeCategory.PUSH_APPROVAL, button)
        return _verdict(ChallengeCategory.UNKNOWN_CHALLENGE, "generic_checkpoint")

    if _first_phrase(text, SECURITY_CHECK_PHRASES):
        button = await page.match_visible(SELECTORS["send_code"])
        if button:
            return _verdict(ChallengeCategory.OTP_CODE, button, OtpChannel.UNKNOWN)
        return _verdict(ChallengeCategory.UNKNOWN_CHALLENGE, "generic_security_check")

    return ChallengeVerdict(category=ChallengeCategory.NONE)


def _verdict(
    category: ChallengeCategory,
    evidence: str,
    method: Optional[OtpChannel] = None,
) -> ChallengeVerdict:
    verdict = ChallengeVerdict(category=category, evidence=evidence, method=method)
    logger.info(f"Challenge detected: {verdict.describe()}")
    return verdict
