from __future__ import annotations

import logging
from typing import Final

from .errors import PersistenceFailure
from .models import VerificationSession
from .outcomes import Allowed, Denied, VerificationOutcome
from .reputation import ReputationChecker
from .roles import RoleGrantService
from .storage import BindingStore

log: Final = logging.getLogger("veribot")


class AntiAbuseEngine:
    """Decide whether a resolved identity may receive the session's role.

    Checks run in a fixed order and stop at the first decision: address
    reputation, alt accounts sharing a verified address, live role
    membership, and finally the grant itself.
    """

    def __init__(
        self,
        reputation: ReputationChecker,
        bindings: BindingStore,
        roles: RoleGrantService,
    ) -> None:
        self._reputation = reputation
        self._bindings = bindings
        self._roles = roles

    async def evaluate(
        self, identity_id: str, ip_address: str, session: VerificationSession
    ) -> VerificationOutcome:
        report = await self._reputation.check(ip_address)
        if report.suspicious:
            return Denied("proxy")

        try:
            original = self._bindings.find_alt_binding(
                identity_id, session.community_id, session.role_id, ip_address
            )
        except PersistenceFailure as exc:
            log.error("Alt-account lookup failed for %s: %s", identity_id, exc)
            return Denied("error")

        if original is not None:
            log.warning(
                "Alt account: %s shares address with verified %s in guild %s",
                identity_id,
                original.identity_id,
                session.community_id,
            )
            return Denied("alt_account", original_identity_id=original.identity_id)

        if await self._roles.has_role(identity_id, session.community_id, session.role_id):
            return Allowed("already_had_role")

        granted = await self._roles.grant(identity_id, session.community_id, session.role_id)
        if not granted:
            return Denied("role_error")
        return Allowed("success")


__all__ = ["AntiAbuseEngine"]
