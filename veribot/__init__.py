"""Core of the OAuth verification gateway.

The Discord runtime in ``bots`` and the HTTP callback app only wire these
pieces together; everything with real invariants lives here.
"""

from .antiabuse import AntiAbuseEngine
from .coordination import CoordinationChannel, PendingOutcome
from .identity import DiscordIdentity, IdentityExchange, OAuthGrant
from .models import IdentityBinding, OAuthTokenRecord, VerificationAttempt, VerificationSession
from .orchestrator import VerificationOrchestrator
from .reputation import ReputationChecker, ReputationReport
from .roles import RoleGrantService
from .storage import BindingStore, SessionStore

__all__ = [
    "AntiAbuseEngine",
    "BindingStore",
    "CoordinationChannel",
    "DiscordIdentity",
    "IdentityBinding",
    "IdentityExchange",
    "OAuthGrant",
    "OAuthTokenRecord",
    "PendingOutcome",
    "ReputationChecker",
    "ReputationReport",
    "RoleGrantService",
    "SessionStore",
    "VerificationAttempt",
    "VerificationOrchestrator",
    "VerificationSession",
]
