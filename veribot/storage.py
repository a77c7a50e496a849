"""DynamoDB persistence for sessions, identity bindings and the audit log."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Final

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from .errors import PersistenceFailure, SessionExpired, SessionNotFound
from .models import (
    DEFAULT_SESSION_TTL,
    IdentityBinding,
    OAuthTokenRecord,
    VerificationAttempt,
    VerificationSession,
    to_iso,
    utc_now,
)

log: Final = logging.getLogger("veribot")

CONDITIONAL_CHECK_FAILED: Final[str] = "ConditionalCheckFailedException"


def _error_code(exc: ClientError) -> str | None:
    return exc.response.get("Error", {}).get("Code")


@contextmanager
def _persistence(action: str) -> Iterator[None]:
    try:
        yield
    except (ClientError, BotoCoreError) as exc:
        raise PersistenceFailure(f"DynamoDB {action} failed: {exc}") from exc


class SessionStore:
    """Verification sessions keyed by opaque state tokens.

    Panel sessions back a reusable button and are never consumed. Every
    button press derives a one-shot session that the OAuth callback
    consumes and then deletes.
    """

    def __init__(
        self,
        table,
        *,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        panel_ttl: timedelta | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._table = table
        self._ttl = ttl
        self._panel_ttl = panel_ttl or ttl
        self._clock = clock

    def ensure_table(self) -> None:
        if self._table is None:
            raise RuntimeError("Verification table is not configured")

    def _insert(self, session: VerificationSession) -> None:
        with _persistence("put_item"):
            self._table.put_item(
                Item=session.to_item(),
                ConditionExpression="attribute_not_exists(pk)",
            )

    def create_panel(
        self,
        community_id: str,
        channel_id: str,
        role_id: str,
        webhook_url: str | None = None,
    ) -> str:
        self.ensure_table()
        session = VerificationSession(
            state_token=str(uuid.uuid4()),
            community_id=str(community_id),
            channel_id=str(channel_id),
            role_id=str(role_id),
            expires_at=self._clock() + self._panel_ttl,
            kind="panel",
            notify_webhook_url=webhook_url or None,
        )
        self._insert(session)
        log.info(
            "Created panel session for guild %s role %s",
            session.community_id,
            session.role_id,
        )
        return session.state_token

    def get(self, state_token: str) -> VerificationSession | None:
        self.ensure_table()
        with _persistence("get_item"):
            resp = self._table.get_item(Key=VerificationSession.key(state_token))
        item = resp.get("Item")
        if not item:
            return None
        return VerificationSession.from_item(item)

    def derive_from_panel(self, panel_token: str) -> str:
        """Create a fresh one-shot session scoped like the panel session."""
        panel = self.get(panel_token)
        if panel is None or panel.kind != "panel" or panel.is_expired(self._clock()):
            raise SessionNotFound(panel_token)

        derived = VerificationSession(
            state_token=str(uuid.uuid4()),
            community_id=panel.community_id,
            channel_id=panel.channel_id,
            role_id=panel.role_id,
            expires_at=self._clock() + self._ttl,
            kind="derived",
            notify_webhook_url=panel.notify_webhook_url,
        )
        self._insert(derived)
        self.sweep_expired()
        return derived.state_token

    def consume(self, state_token: str) -> VerificationSession:
        """Claim a derived session for the callback that presented it.

        The claim is a conditional write, so a retried callback carrying the
        same token is rejected while the first one is still running. The
        caller deletes the session once it is done with it, including on
        ``SessionExpired``.
        """
        session = self.get(state_token)
        if session is None or session.kind != "derived":
            raise SessionNotFound(state_token)
        now = self._clock()
        if session.is_expired(now):
            raise SessionExpired(session)
        try:
            self._table.update_item(
                Key=VerificationSession.key(state_token),
                UpdateExpression="SET claimed_at = :claimed_at",
                ConditionExpression="attribute_exists(pk) AND attribute_not_exists(claimed_at)",
                ExpressionAttributeValues={":claimed_at": to_iso(now)},
            )
        except ClientError as exc:
            if _error_code(exc) == CONDITIONAL_CHECK_FAILED:
                log.warning("Rejected duplicate callback for session %s", state_token)
                raise SessionNotFound(state_token) from exc
            raise PersistenceFailure(f"DynamoDB update_item failed: {exc}") from exc
        except BotoCoreError as exc:
            raise PersistenceFailure(f"DynamoDB update_item failed: {exc}") from exc
        session.claimed_at = now
        return session

    def delete(self, state_token: str) -> None:
        self.ensure_table()
        with _persistence("delete_item"):
            self._table.delete_item(Key=VerificationSession.key(state_token))

    def sweep_expired(self) -> int:
        """Delete every session past its expiry. Never raises."""
        now_iso = to_iso(self._clock())
        removed = 0
        try:
            query_kwargs: dict[str, object] = {
                "KeyConditionExpression": Key("pk").eq(VerificationSession.PARTITION),
                "FilterExpression": Attr("expires_at").lt(now_iso),
                "ProjectionExpression": "pk, sk",
            }
            while True:
                response = self._table.query(**query_kwargs)
                for item in response.get("Items", []):
                    self._table.delete_item(Key={"pk": item["pk"], "sk": item["sk"]})
                    removed += 1
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                query_kwargs["ExclusiveStartKey"] = last_key
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to sweep expired sessions: %s", exc)
            return removed

        if removed:
            log.info("Swept %d expired verification sessions", removed)
        return removed


class BindingStore:
    """Identity bindings, the verification audit log and OAuth token records."""

    def __init__(self, table, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._table = table
        self._clock = clock

    def ensure_table(self) -> None:
        if self._table is None:
            raise RuntimeError("Verification table is not configured")

    # ----- Identity bindings -----
    def get_binding(
        self, identity_id: str, community_id: str, role_id: str
    ) -> IdentityBinding | None:
        self.ensure_table()
        with _persistence("get_item"):
            resp = self._table.get_item(
                Key=IdentityBinding.key(identity_id, community_id, role_id)
            )
        item = resp.get("Item")
        if not item:
            return None
        return IdentityBinding.from_item(item)

    def find_alt_binding(
        self, identity_id: str, community_id: str, role_id: str, ip_address: str
    ) -> IdentityBinding | None:
        """Return a binding for another identity that verified from ``ip_address``."""
        self.ensure_table()
        query_kwargs: dict[str, object] = {
            "KeyConditionExpression": Key("pk").eq(
                IdentityBinding.partition(community_id, role_id)
            ),
            "FilterExpression": Attr("ip_address").eq(ip_address)
            & Attr("identity_id").ne(identity_id),
        }
        with _persistence("query"):
            while True:
                resp = self._table.query(**query_kwargs)
                items = resp.get("Items", [])
                if items:
                    return IdentityBinding.from_item(items[0])
                last_key = resp.get("LastEvaluatedKey")
                if not last_key:
                    return None
                query_kwargs["ExclusiveStartKey"] = last_key

    def upsert_binding(
        self, identity_id: str, community_id: str, role_id: str, ip_address: str
    ) -> IdentityBinding:
        self.ensure_table()
        now_iso = to_iso(self._clock())
        with _persistence("update_item"):
            resp = self._table.update_item(
                Key=IdentityBinding.key(identity_id, community_id, role_id),
                UpdateExpression=(
                    "SET identity_id = :identity_id, community_id = :community_id, "
                    "role_id = :role_id, ip_address = :ip_address, "
                    "verified_at = :now, updated_at = :now"
                ),
                ExpressionAttributeValues={
                    ":identity_id": str(identity_id),
                    ":community_id": str(community_id),
                    ":role_id": str(role_id),
                    ":ip_address": ip_address,
                    ":now": now_iso,
                },
                ReturnValues="ALL_NEW",
            )
        return IdentityBinding.from_item(resp["Attributes"])

    # ----- Audit log -----
    def record_attempt(
        self,
        identity_id: str,
        ip_address: str,
        community_id: str,
        role_id: str,
        *,
        success: bool,
        reason: str,
    ) -> VerificationAttempt:
        self.ensure_table()
        attempt = VerificationAttempt(
            identity_id=str(identity_id),
            ip_address=ip_address,
            community_id=str(community_id),
            role_id=str(role_id),
            success=success,
            reason=reason,
            timestamp=self._clock(),
            attempt_id=uuid.uuid4().hex,
        )
        with _persistence("put_item"):
            self._table.put_item(Item=attempt.to_item())
        return attempt

    def list_attempts(self, community_id: str) -> list[VerificationAttempt]:
        self.ensure_table()
        query_kwargs: dict[str, object] = {
            "KeyConditionExpression": Key("pk").eq(
                VerificationAttempt.PK_TEMPLATE % community_id
            ),
        }
        attempts: list[VerificationAttempt] = []
        with _persistence("query"):
            while True:
                resp = self._table.query(**query_kwargs)
                attempts.extend(
                    VerificationAttempt.from_item(item) for item in resp.get("Items", [])
                )
                last_key = resp.get("LastEvaluatedKey")
                if not last_key:
                    break
                query_kwargs["ExclusiveStartKey"] = last_key
        attempts.sort(key=lambda attempt: attempt.timestamp)
        return attempts

    # ----- OAuth token records -----
    def record_token(self, record: OAuthTokenRecord) -> None:
        self.ensure_table()
        with _persistence("put_item"):
            self._table.put_item(Item=record.to_item())


__all__ = ["BindingStore", "SessionStore"]
