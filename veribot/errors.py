"""Exception taxonomy for the verification flow."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import VerificationSession


class VerificationError(Exception):
    """Base class for every error raised by the verification core."""


class SessionNotFound(VerificationError):
    def __init__(self, state_token: str) -> None:
        super().__init__(f"Verification session {state_token!r} not found")
        self.state_token = state_token


class SessionExpired(VerificationError):
    """The session exists but is past ``expires_at``; the caller still deletes it."""

    def __init__(self, session: VerificationSession) -> None:
        super().__init__(f"Verification session {session.state_token!r} has expired")
        self.session = session


class IdentityExchangeFailure(VerificationError):
    pass


class ReputationCheckFailure(VerificationError):
    pass


class RoleGrantFailure(VerificationError):
    pass


class PersistenceFailure(VerificationError):
    pass
