"""Challenge classification over scripted pages."""

import pytest

from authworker.constants import PLATFORM_FEED_URL, PLATFORM_LOGIN_URL
from authworker.models.challenge import ChallengeCategory, OtpChannel
from authworker.session_manager.classifier import classify, infer_otp_channel, is_authenticated

from .conftest import CHECKPOINT_URL, FakePage


@pytest.mark.asyncio
async def test_captcha_preempts_otp_markers():
    """A CAPTCHA laid over a code form must be reported as CAPTCHA."""
    page = FakePage(
        CHECKPOINT_URL,
        "Please complete the security check. We sent a code to your email.",
        {'input[name="pin"]'},
    )
    verdict = await classify(page)
    assert verdict.category == ChallengeCategory.CAPTCHA


@pytest.mark.asyncio
async def test_captcha_iframe_detected_without_phrase():
    page = FakePage(CHECKPOINT_URL, "", {'iframe[src*="arkose"]'})
    verdict = await classify(page)
    assert verdict.category == ChallengeCategory.CAPTCHA
    assert verdict.evidence == 'iframe[src*="arkose"]'


@pytest.mark.asyncio
async def test_invalid_credentials_phrase():
    page = FakePage(PLATFORM_LOGIN_URL, "That's not the right password. Try again.")
    verdict = await classify(page)
    assert verdict.category == ChallengeCategory.INVALID_CREDENTIALS


@pytest.mark.asyncio
async def test_invalid_credentials_beats_locked():
    page = FakePage(PLATFORM_LOGIN_URL, "Wrong password. Unusual activity detected.")
    assert (await classify(page)).category == ChallengeCategory.INVALID_CREDENTIALS


@pytest.mark.asyncio
async def test_account_locked_phrase():
    page = FakePage(CHECKPOINT_URL, "Your account has been temporarily restricted")
    assert (await classify(page)).category == ChallengeCategory.ACCOUNT_LOCKED


@pytest.mark.asyncio
async def test_push_approval_phrase():
    page = FakePage(CHECKPOINT_URL, "Open the LinkedIn app to confirm it's you")
    assert (await classify(page)).category == ChallengeCategory.PUSH_APPROVAL


@pytest.mark.asyncio
async def test_visible_code_input_is_otp_with_inferred_channel():
    page = FakePage(CHECKPOINT_URL, "Enter the verification code sent to your phone", {'input[name="pin"]'})
    verdict = await classify(page)
    assert verdict.category == ChallengeCategory.OTP_CODE
    assert verdict.method == OtpChannel.SMS


@pytest.mark.asyncio
async def test_authenticator_phrase_is_otp_authenticator():
    page = FakePage(CHECKPOINT_URL, "Open your authenticator app to get a code")
    verdict = await classify(page)
    assert verdict.category == ChallengeCategory.OTP_CODE
    assert verdict.method == OtpChannel.AUTHENTICATOR


@pytest.mark.asyncio
async def test_bare_checkpoint_with_approval_button_is_push():
    page = FakePage(CHECKPOINT_URL, "Almost there", {'button:has-text("Done")'})
    assert (await classify(page)).category == ChallengeCategory.PUSH_APPROVAL


@pytest.mark.asyncio
async def test_bare_checkpoint_fails_closed_as_unknown():
    """No recognisable marker on a checkpoint must never be guessed as a known challenge."""
    page = FakePage(CHECKPOINT_URL, "Something new the platform shipped")
    verdict = await classify(page)
    assert verdict.category == ChallengeCategory.UNKNOWN_CHALLENGE
    assert verdict.evidence == "generic_checkpoint"


@pytest.mark.asyncio
async def test_security_check_with_send_code_button_is_otp():
    page = FakePage("https://www.linkedin.com/uas/verify", "Let's do a quick security check", {'button:has-text("Send")'})
    verdict = await classify(page)
    assert verdict.category == ChallengeCategory.OTP_CODE
    assert verdict.method == OtpChannel.UNKNOWN


@pytest.mark.asyncio
async def test_clean_page_is_none():
    page = FakePage(PLATFORM_FEED_URL, "Start a post")
    verdict = await classify(page)
    assert verdict.category == ChallengeCategory.NONE
    assert not verdict.is_challenge


@pytest.mark.asyncio
async def test_is_authenticated_by_route_or_navigation():
    assert await is_authenticated(FakePage(PLATFORM_FEED_URL))
    assert await is_authenticated(FakePage("https://www.linkedin.com/in/jane", "", {".global-nav__me"}))
    assert not await is_authenticated(FakePage(PLATFORM_LOGIN_URL, "Sign in"))


def test_infer_otp_channel():
    assert infer_otp_channel("we sent a code to your email") == OtpChannel.EMAIL
    assert infer_otp_channel("check your phone") == OtpChannel.SMS
    assert infer_otp_channel("enter the code") == OtpChannel.UNKNOWN
