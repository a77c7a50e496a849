"""Result variants produced by the anti-abuse pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Literal

AllowReason = Literal["success", "already_had_role"]
DenyReason = Literal["proxy", "alt_account", "role_error", "error"]

ALT_ACCOUNT_TEXT: Final[str] = (
    "We believe that you have already verified on another Discord account. "
    "If you think we made a mistake, make a ticket and explain your situation."
)

PAGE_MESSAGES: Final[dict[str, str]] = {
    "success": "You have been given access to whatever role you were verifying for.",
    "already_had_role": "You already have this role, so nothing was changed.",
    "proxy": "Verification failed: VPN/Proxy detected. Please disable your VPN and try again.",
    "alt_account": ALT_ACCOUNT_TEXT,
    "role_error": "Verification failed: Unable to grant role. Please contact an admin!",
    "error": "Oh no! An error happened during the verification process. Please try again.",
}

HANDLE_FAILURE_TEXT: Final[dict[str, str]] = {
    "proxy": "VPN/Proxy detected. Please disable your VPN and try again.",
    "alt_account": ALT_ACCOUNT_TEXT,
}
HANDLE_GENERIC_FAILURE: Final[str] = (
    "An error occurred during verification. Please retry or contact support."
)


@dataclass(frozen=True, slots=True)
class Allowed:
    reason: AllowReason

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Denied:
    reason: DenyReason
    original_identity_id: str | None = None

    @property
    def success(self) -> bool:
        return False


VerificationOutcome = Allowed | Denied


def page_message(outcome: VerificationOutcome) -> str:
    return PAGE_MESSAGES[outcome.reason]


def handle_content(outcome: VerificationOutcome) -> str:
    """Markdown shown in place of the ephemeral "click to verify" reply."""
    match outcome:
        case Allowed(reason="already_had_role"):
            return "**Already Verified!**\n\nYou already have this role."
        case Allowed():
            return (
                "**Verification Successful!**\n\n"
                "You have been successfully verified and granted the required role."
            )
        case Denied(reason=reason):
            text = HANDLE_FAILURE_TEXT.get(reason, HANDLE_GENERIC_FAILURE)
            return f"**Verification Failed**\n\n{text}"


def audit_message(outcome: VerificationOutcome) -> str:
    """One-line description for the webhook log."""
    match outcome:
        case Allowed():
            return "Successfully verified"
        case Denied(reason="proxy"):
            return "Verification failed: VPN/Proxy detected"
        case Denied(reason="alt_account", original_identity_id=original):
            return f"Verification failed: Alt account detected. Original account: {original}"
        case Denied(reason="role_error"):
            return "Verification failed: Unable to grant role"
        case Denied():
            return "Verification failed: internal error"


__all__ = [
    "Allowed",
    "Denied",
    "VerificationOutcome",
    "audit_message",
    "handle_content",
    "page_message",
]
