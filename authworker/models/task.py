"""Pydantic models for tasks handed out by the coordination backend."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

LOGIN_ACTIONS = ("linkedin_login", "login")


def mask_email(email: Optional[str]) -> str:
    """Return a log-safe form of an email address (``j***@example.com``)."""
    if not email:
        return ""
    local, _, domain = email.partition("@")
    if not domain:
        return f"{local[:1]}***"
    return f"{local[:1]}***@{domain}"


class LoginPayload(BaseModel):
    """Credential material for a login task. Read-only; secrets never printed."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("email", "identifier", "linkedinEmail"),
    )
    password: Optional[str] = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("password", "secret", "linkedinPassword"),
    )
    existing_token: Optional[str] = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("existing_token", "existingToken", "liAtCookie"),
    )
    backup_token: Optional[str] = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("backup_token", "backupToken", "liACookie"),
    )
    use_cookies: bool = Field(
        default=True,
        validation_alias=AliasChoices("use_cookies", "useCookies"),
    )

    @property
    def can_restore(self) -> bool:
        return self.use_cookies and bool(self.existing_token)


class ProfileRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    profile_id: str


class Lead(BaseModel):
    model_config = ConfigDict(extra="ignore")

    linkedin_url: Optional[str] = None


class Task(BaseModel):
    """One unit of work polled from the backend."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    action_type: str = Field(validation_alias=AliasChoices("action_type", "actionType"))
    agent_id: str = Field(validation_alias=AliasChoices("agent_id", "agentId"))
    payload: dict[str, Any] = Field(default_factory=dict)
    gologin_profile: Optional[ProfileRef] = None
    lead: Optional[Lead] = None

    @property
    def is_login(self) -> bool:
        return self.action_type in LOGIN_ACTIONS

    @property
    def profile_ref(self) -> Optional[str]:
        return self.gologin_profile.profile_id if self.gologin_profile else None

    @property
    def target_url(self) -> Optional[str]:
        return self.payload.get("linkedin_url") or (self.lead.linkedin_url if self.lead else None)

    def login_payload(self) -> LoginPayload:
        return LoginPayload.model_validate(self.payload)
