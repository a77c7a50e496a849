from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import ClassVar, Literal

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
DEFAULT_SESSION_TTL = timedelta(minutes=30)

SessionKind = Literal["panel", "derived"]


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(moment: datetime) -> str:
    """Format a timestamp so that string order matches chronological order."""
    return moment.astimezone(UTC).strftime(ISO_FORMAT)


def from_iso(value: str) -> datetime:
    return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=UTC)


@dataclass(slots=True)
class VerificationSession:
    state_token: str
    community_id: str
    channel_id: str
    role_id: str
    expires_at: datetime
    kind: SessionKind = "derived"
    notify_webhook_url: str | None = None
    claimed_at: datetime | None = None

    # All sessions share one partition so expiry sweeps can query them directly.
    PARTITION: ClassVar[str] = "SESSION"

    @classmethod
    def key(cls, state_token: str) -> dict[str, str]:
        return {"pk": cls.PARTITION, "sk": state_token}

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at < (now or utc_now())

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.state_token)
        item.update(
            {
                "state_token": self.state_token,
                "kind": self.kind,
                "community_id": self.community_id,
                "channel_id": self.channel_id,
                "role_id": self.role_id,
                "expires_at": to_iso(self.expires_at),
                # DynamoDB native TTL reaps anything the sweep misses.
                "ttl": int(self.expires_at.timestamp()),
            }
        )
        if self.notify_webhook_url:
            item["webhook_url"] = self.notify_webhook_url
        if self.claimed_at is not None:
            item["claimed_at"] = to_iso(self.claimed_at)
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> VerificationSession:
        token = str(item.get("state_token") or item["sk"])
        claimed_raw = item.get("claimed_at")
        kind = "panel" if item.get("kind") == "panel" else "derived"
        return cls(
            state_token=token,
            community_id=str(item.get("community_id", "")),
            channel_id=str(item.get("channel_id", "")),
            role_id=str(item.get("role_id", "")),
            expires_at=from_iso(str(item["expires_at"])),
            kind=kind,
            notify_webhook_url=str(item["webhook_url"]) if item.get("webhook_url") else None,
            claimed_at=from_iso(str(claimed_raw)) if claimed_raw else None,
        )


@dataclass(slots=True)
class IdentityBinding:
    identity_id: str
    community_id: str
    role_id: str
    ip_address: str
    verified_at: datetime
    updated_at: datetime

    PK_TEMPLATE: ClassVar[str] = "BINDING#%s#%s"
    SK_TEMPLATE: ClassVar[str] = "IDENTITY#%s"

    @classmethod
    def partition(cls, community_id: str, role_id: str) -> str:
        return cls.PK_TEMPLATE % (community_id, role_id)

    @classmethod
    def key(cls, identity_id: str, community_id: str, role_id: str) -> dict[str, str]:
        return {
            "pk": cls.partition(community_id, role_id),
            "sk": cls.SK_TEMPLATE % identity_id,
        }

    @classmethod
    def from_item(cls, item: dict[str, object]) -> IdentityBinding:
        return cls(
            identity_id=str(item["identity_id"]),
            community_id=str(item["community_id"]),
            role_id=str(item["role_id"]),
            ip_address=str(item.get("ip_address", "")),
            verified_at=from_iso(str(item["verified_at"])),
            updated_at=from_iso(str(item.get("updated_at") or item["verified_at"])),
        )


@dataclass(slots=True)
class VerificationAttempt:
    """Append-only audit entry; never updated or deleted."""

    identity_id: str
    ip_address: str
    community_id: str
    role_id: str
    success: bool
    reason: str
    timestamp: datetime
    attempt_id: str

    PK_TEMPLATE: ClassVar[str] = "ATTEMPT#%s"

    def to_item(self) -> dict[str, object]:
        return {
            "pk": self.PK_TEMPLATE % self.community_id,
            "sk": f"{to_iso(self.timestamp)}#{self.attempt_id}",
            "identity_id": self.identity_id,
            "ip_address": self.ip_address,
            "community_id": self.community_id,
            "role_id": self.role_id,
            "success": self.success,
            "reason": self.reason,
            "timestamp": to_iso(self.timestamp),
        }

    @classmethod
    def from_item(cls, item: dict[str, object]) -> VerificationAttempt:
        return cls(
            identity_id=str(item["identity_id"]),
            ip_address=str(item.get("ip_address", "")),
            community_id=str(item["community_id"]),
            role_id=str(item["role_id"]),
            success=bool(item.get("success", False)),
            reason=str(item.get("reason", "")),
            timestamp=from_iso(str(item["timestamp"])),
            attempt_id=str(item["sk"]).rsplit("#", 1)[1],
        )


@dataclass(slots=True)
class OAuthTokenRecord:
    identity_id: str
    access_token: str
    token_type: str
    refresh_token: str | None
    expires_in: int | None
    scope: str | None
    ip_address: str
    community_id: str
    created_at: datetime

    PK_TEMPLATE: ClassVar[str] = "TOKEN#%s"

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = {
            "pk": self.PK_TEMPLATE % self.identity_id,
            "sk": to_iso(self.created_at),
            "identity_id": self.identity_id,
            "access_token": self.access_token,
            "token_type": self.token_type,
            "ip_address": self.ip_address,
            "community_id": self.community_id,
        }
        if self.refresh_token:
            item["refresh_token"] = self.refresh_token
        if self.expires_in is not None:
            item["expires_in"] = self.expires_in
        if self.scope:
            item["scope"] = self.scope
        return item


__all__ = [
    "DEFAULT_SESSION_TTL",
    "ISO_FORMAT",
    "IdentityBinding",
    "OAuthTokenRecord",
    "SessionKind",
    "VerificationAttempt",
    "VerificationSession",
    "from_iso",
    "to_iso",
    "utc_now",
]
