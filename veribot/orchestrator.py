"""OAuth callback handling from state token to rendered result page."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Final

from .antiabuse import AntiAbuseEngine
from .coordination import CoordinationChannel
from .errors import PersistenceFailure, SessionExpired, SessionNotFound
from .identity import DiscordIdentity, IdentityExchange, IdentityResult
from .models import OAuthTokenRecord, VerificationSession, utc_now
from .outcomes import Allowed, VerificationOutcome, audit_message, handle_content
from .pages import (
    GENERIC_ERROR,
    INVALID_REQUEST,
    SESSION_EXPIRED,
    SESSION_INVALID,
    render_error_page,
    render_result_page,
)
from .storage import BindingStore, SessionStore
from .webhooks import WebhookNotifier

log: Final = logging.getLogger("veribot")


class CallbackStage(enum.Enum):
    RECEIVED = "received"
    SESSION_RESOLVED = "session_resolved"
    IDENTITY_RESOLVED = "identity_resolved"
    ROLE_DECIDED = "role_decided"
    RECORDED = "recorded"
    DONE = "done"


class VerificationOrchestrator:
    def __init__(
        self,
        *,
        sessions: SessionStore,
        bindings: BindingStore,
        identity: IdentityExchange,
        engine: AntiAbuseEngine,
        channel: CoordinationChannel,
        webhooks: WebhookNotifier,
        log_tokens: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._sessions = sessions
        self._bindings = bindings
        self._identity = identity
        self._engine = engine
        self._channel = channel
        self._webhooks = webhooks
        self._log_tokens = log_tokens
        self._clock = clock

    async def handle_callback(
        self, code: str | None, state: str | None, ip_address: str
    ) -> str:
        """Run one OAuth callback and return the HTML page to show the user.

        Every path renders a page. Only a run that reaches a decision
        deposits an outcome for the waiting Discord interaction; a run that
        fails earlier leaves that interaction to time out.
        """
        if not code or not state:
            return render_error_page(INVALID_REQUEST)

        stage = CallbackStage.RECEIVED
        try:
            try:
                session = self._sessions.consume(state)
            except SessionExpired:
                self._discard_session(state)
                return render_error_page(SESSION_EXPIRED)
            except SessionNotFound:
                return render_error_page(SESSION_INVALID)
            stage = CallbackStage.SESSION_RESOLVED

            resolved = await self._identity.resolve(code)
            identity = resolved.identity
            stage = CallbackStage.IDENTITY_RESOLVED
            if self._log_tokens:
                self._store_token(resolved, ip_address, session)

            outcome = await self._engine.evaluate(identity.id, ip_address, session)
            stage = CallbackStage.ROLE_DECIDED
            log.info(
                "Verification of %s for guild %s role %s: %s",
                identity.id,
                session.community_id,
                session.role_id,
                outcome.reason,
            )

            await self._record(identity, ip_address, session, outcome)
            stage = CallbackStage.RECORDED

            self._channel.deposit(
                identity.id, handle_content(outcome), success=outcome.success
            )
            self._discard_session(state)
            stage = CallbackStage.DONE
            return render_result_page(outcome)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Verification failed after stage %s: %s", stage.value, exc)
            self._discard_session(state)
            return render_error_page(GENERIC_ERROR)

    async def _record(
        self,
        identity: DiscordIdentity,
        ip_address: str,
        session: VerificationSession,
        outcome: VerificationOutcome,
    ) -> None:
        # Re-verifying with the role already held is not a security event.
        if outcome == Allowed("already_had_role"):
            return

        if outcome == Allowed("success"):
            self._bindings.upsert_binding(
                identity.id, session.community_id, session.role_id, ip_address
            )

        try:
            self._bindings.record_attempt(
                identity.id,
                ip_address,
                session.community_id,
                session.role_id,
                success=outcome.success,
                reason=outcome.reason,
            )
        except PersistenceFailure as exc:
            log.exception("Failed to log verification attempt: %s", exc)

        await self._webhooks.notify_verification(
            session.notify_webhook_url,
            identity_id=identity.id,
            identity_name=identity.display,
            ip_address=ip_address,
            success=outcome.success,
            message=audit_message(outcome),
        )

    def _store_token(
        self, resolved: IdentityResult, ip_address: str, session: VerificationSession
    ) -> None:
        grant = resolved.grant
        try:
            self._bindings.record_token(
                OAuthTokenRecord(
                    identity_id=resolved.identity.id,
                    access_token=grant.access_token,
                    token_type=grant.token_type,
                    refresh_token=grant.refresh_token,
                    expires_in=grant.expires_in,
                    scope=grant.scope,
                    ip_address=ip_address,
                    community_id=session.community_id,
                    created_at=self._clock(),
                )
            )
        except PersistenceFailure as exc:
            log.exception("Failed to store OAuth token record: %s", exc)

    def _discard_session(self, state: str) -> None:
        try:
            self._sessions.delete(state)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to delete verification session: %s", exc)


__all__ = ["CallbackStage", "VerificationOrchestrator"]
