"""Worker exceptions.

Hierarchy:
    AuthWorkerError (base)
    ├── TransientConnectionError  - retryable transport fault (reset, timeout, 5xx)
    ├── ProfileAccessDeniedError  - browser profile rejected the token (fatal)
    ├── ProfileNotFoundError      - unknown browser profile reference (fatal)
    ├── MissingCredentialsError   - task payload lacks identifier or secret
    ├── InvalidCredentialsError   - platform rejected the password / account
    ├── AccountLockedError        - platform restricted the account
    ├── UnknownChallengeError     - unrecognised security step, failed closed
    ├── ChannelTimeoutError       - human channel did not resolve in time
    ├── MissingPrimaryTokenError  - session extracted without the auth cookie
    ├── UnrecognizedPageError     - no challenge and not signed in
    ├── CoordinationError         - coordination backend call failed
    └── LoginFailedError          - login task failed, carries the reported result

Each class carries the result ``category`` reported upstream and the
``terminal_state`` the login state machine ends in when it is raised.
"""


class AuthWorkerError(Exception):
    """Base exception for all worker errors."""

    category = "Unexpected"
    terminal_state = "error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class TransientConnectionError(AuthWorkerError):
    """Connection reset, timeout, 5xx or socket-level failure. Safe to retry."""

    category = "TransientConnection"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code:
            return f"{self.message} (status={self.status_code})"
        return self.message


class ProfileAccessDeniedError(AuthWorkerError):
    category = "ProfileAccessDenied"


class ProfileNotFoundError(AuthWorkerError):
    category = "ProfileNotFound"


class MissingCredentialsError(AuthWorkerError):
    category = "MissingCredentials"


class InvalidCredentialsError(AuthWorkerError):
    """Never retried automatically: a retry is indistinguishable from brute force."""

    category = "InvalidCredentials"
    terminal_state = "rejected"


class AccountLockedError(AuthWorkerError):
    category = "AccountLocked"
    terminal_state = "rejected"


class UnknownChallengeError(AuthWorkerError):
    category = "UnknownChallenge"
    terminal_state = "rejected"


class ChannelTimeoutError(AuthWorkerError):
    """The operator did not supply a code, solve or approval within the bound."""

    category = "ChannelTimeout"
    terminal_state = "rejected"

    def __init__(self, message: str, channel: str, timeout_seconds: float | None = None) -> None:
        super().__init__(message)
        self.channel = channel
        self.timeout_seconds = timeout_seconds

    def __str__(self) -> str:
        parts = [self.message, f"channel={self.channel}"]
        if self.timeout_seconds:
            parts.append(f"timeout={self.timeout_seconds:g}s")
        return " | ".join(parts)


class MissingPrimaryTokenError(AuthWorkerError):
    category = "MissingPrimaryToken"


class UnrecognizedPageError(AuthWorkerError):
    category = "UnrecognizedPage"


class CoordinationError(AuthWorkerError):
    """Raised when a coordination backend call fails."""

    category = "Coordination"

    def __init__(self, message: str, function: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.function = function
        self.status_code = status_code

    def __str__(self) -> str:
        parts = [self.message]
        if self.function:
            parts.append(f"function={self.function}")
        if self.status_code:
            parts.append(f"status={self.status_code}")
        return " | ".join(parts)


class LoginFailedError(AuthWorkerError):
    """A login task ended in a typed failure; ``payload`` is the structured result."""

    def __init__(self, message: str, category: str, payload: dict) -> None:
        super().__init__(message)
        self.category = category
        self.payload = payload
