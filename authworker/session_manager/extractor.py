"""Pull the session tokens out of a signed-in browser context."""

from __future__ import annotations

import logging
import sys

from ..constants import CORROBORATING_COOKIES, PRIMARY_TOKEN_COOKIE, SECONDARY_TOKEN_COOKIE
from ..errors import MissingPrimaryTokenError
from ..models.session import SessionArtifact
from .connector import SessionHandle

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def score_confidence(cookie_names: set[str], expected: list[str] = CORROBORATING_COOKIES) -> float:
    """Fraction of the expected session cookies that are present."""
    if not expected:
        return 1.0
    return sum(1 for name in expected if name in cookie_names) / len(expected)


class SessionExtractor:
    """Reads cookies from the session and builds a ``SessionArtifact``.

    The primary token is mandatory. Confidence is metadata for the consumer,
    never a pass/fail gate.
    """

    def __init__(
        self,
        primary: str = PRIMARY_TOKEN_COOKIE,
        secondary: str = SECONDARY_TOKEN_COOKIE,
        corroborating: list[str] = CORROBORATING_COOKIES,
    ):
        self._primary = primary
        self._secondary = secondary
        self._corroborating = corroborating

    async def extract(self, handle: SessionHandle) -> SessionArtifact:
        cookies = {c["name"]: c.get("value", "") for c in await handle.page.cookies() if "name" in c}

        primary = cookies.get(self._primary)
        if not primary:
            raise MissingPrimaryTokenError(f"Failed to extract {self._primary} session cookie")

        artifact = SessionArtifact(
            primary_token=primary,
            secondary_token=cookies.get(self._secondary) or None,
            confidence=score_confidence(set(cookies), self._corroborating),
            cookie_names=sorted(cookies),
        )
        logger.info(
            f"Session cookies extracted: {len(cookies)} cookies, "
            f"confidence={artifact.confidence:.2f}, secondary={'yes' if artifact.secondary_token else 'no'}"
        )
        return artifact
