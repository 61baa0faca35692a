"""Pydantic models for challenge classification."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ChallengeCategory(str, Enum):
    NONE = "none"
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_LOCKED = "account_locked"
    CAPTCHA = "captcha"
    PUSH_APPROVAL = "push_approval"
    OTP_CODE = "otp_code"
    UNKNOWN_CHALLENGE = "unknown_challenge"


class OtpChannel(str, Enum):
    SMS = "sms"
    EMAIL = "email"
    AUTHENTICATOR = "authenticator"
    UNKNOWN = "unknown"


class ChallengeVerdict(BaseModel):
    """Result of one classification pass over the current page.

    ``evidence`` is the phrase or selector that matched, kept for diagnostics.
    ``method`` is only set for ``OTP_CODE`` verdicts.
    """

    model_config = ConfigDict(frozen=True)

    category: ChallengeCategory
    evidence: Optional[str] = None
    method: Optional[OtpChannel] = None

    @property
    def is_challenge(self) -> bool:
        return self.category != ChallengeCategory.NONE

    def describe(self) -> str:
        label = self.category.value
        if self.method:
            label = f"{label}({self.method.value})"
        return f"{label} [{self.evidence}]" if self.evidence else label
