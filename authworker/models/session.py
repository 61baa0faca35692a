"""Pydantic models for login state and session artifacts."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class LoginState(str, Enum):
    """States of the login state machine. Values double as agent login states."""

    INIT = "init"
    COOKIE_RESTORE = "cookie_restore"
    NAVIGATING = "navigating"
    ENTERING_CREDENTIALS = "entering_credentials"
    SUBMITTED = "submitted"
    CLASSIFYING = "classifying"
    RESOLVING_CAPTCHA = "awaiting_captcha"
    RESOLVING_PUSH = "awaiting_app_approval"
    RESOLVING_OTP = "awaiting_2fa"
    RE_VERIFYING = "re_verifying"
    EXTRACTING = "extracting_profile"
    DONE = "completed"
    REJECTED = "rejected"
    ERROR = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (LoginState.DONE, LoginState.REJECTED, LoginState.ERROR)


class SessionArtifact(BaseModel):
    """Durable session tokens pulled from a signed-in browser context."""

    primary_token: str = Field(repr=False)
    secondary_token: Optional[str] = Field(default=None, repr=False)
    confidence: float = Field(ge=0.0, le=1.0)
    cookie_names: list[str] = Field(default_factory=list)


class LoginResult(BaseModel):
    """Outcome of one login attempt, success or typed failure."""

    success: bool
    final_state: LoginState
    token: Optional[str] = Field(default=None, repr=False)
    backup_token: Optional[str] = Field(default=None, repr=False)
    confidence: Optional[float] = None
    category: Optional[str] = None
    message: str = ""
    trace: list[LoginState] = Field(default_factory=list)

    @classmethod
    def from_artifact(cls, artifact: SessionArtifact) -> LoginResult:
        return cls(
            success=True,
            final_state=LoginState.DONE,
            token=artifact.primary_token,
            backup_token=artifact.secondary_token,
            confidence=artifact.confidence,
            message="Login successful",
        )

    @classmethod
    def failure(cls, state: LoginState, category: str, message: str) -> LoginResult:
        return cls(success=False, final_state=state, category=category, message=message)

    def to_payload(self) -> dict[str, Any]:
        """Shape reported to the coordination backend."""
        if self.success:
            payload: dict[str, Any] = {
                "success": True,
                "token": self.token,
                "confidence": self.confidence,
            }
            if self.backup_token:
                payload["backupToken"] = self.backup_token
            return payload
        return {"success": False, "category": self.category, "message": self.message}
