"""Configuration helpers for the verification runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

_SWITCHES = {
    **dict.fromkeys(("1", "true", "yes", "on"), True),
    **dict.fromkeys(("0", "false", "no", "off"), False),
}


def _read(name: str) -> str | None:
    """Return the stripped value of ``name``, or ``None`` when unset or blank."""
    value = (os.getenv(name) or "").strip()
    return value or None


def env_bool(name: str, *, default: bool = False) -> bool:
    value = _read(name)
    if value is None:
        return default
    return _SWITCHES.get(value.lower(), default)


def env_int(name: str, *, default: int | None = None) -> int | None:
    value = _read(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _positive(name: str, default: int) -> int:
    value = env_int(name, default=default)
    if value is None or value <= 0:
        return default
    return value


REQUIRED_VARS = (
    "DISCORD_BOT_TOKEN",
    "DISCORD_CLIENT_ID",
    "DISCORD_CLIENT_SECRET",
    "ADMIN_ROLE_ID",
    "DDB_TABLE_NAME",
    "IPAPI_API_KEY",
)


@dataclass(frozen=True, slots=True)
class EnvironmentConfig:
    discord_token: str
    client_id: str
    client_secret: str
    admin_role_id: int
    table_name: str
    ipapi_api_key: str
    guild_id: int | None = None
    aws_region: str = "us-east-1"
    host: str = "0.0.0.0"
    port: int = 3000
    base_url: str = "http://localhost:3000"
    log_tokens: bool = False
    session_ttl: timedelta = timedelta(minutes=30)
    panel_ttl: timedelta = timedelta(minutes=30)
    poll_timeout_seconds: int = 300
    poll_interval_seconds: int = 2
    log_level: str = "INFO"

    @property
    def redirect_uri(self) -> str:
        return self.base_url.rstrip("/") + "/verify"

    @classmethod
    def load(cls) -> EnvironmentConfig:
        missing = [name for name in REQUIRED_VARS if not os.getenv(name)]
        if missing:
            raise RuntimeError(f"Missing env vars: {', '.join(missing)}")

        admin_role_id = env_int("ADMIN_ROLE_ID")
        if admin_role_id is None:
            raise RuntimeError("ADMIN_ROLE_ID must be a numeric role id")

        session_minutes = _positive("SESSION_TTL_MINUTES", 30)
        return cls(
            discord_token=os.environ["DISCORD_BOT_TOKEN"],
            client_id=os.environ["DISCORD_CLIENT_ID"],
            client_secret=os.environ["DISCORD_CLIENT_SECRET"],
            admin_role_id=admin_role_id,
            table_name=os.environ["DDB_TABLE_NAME"],
            ipapi_api_key=os.environ["IPAPI_API_KEY"],
            guild_id=env_int("GUILD_ID"),
            aws_region=os.getenv("AWS_REGION", "us-east-1"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_positive("PORT", 3000),
            base_url=os.getenv("BASE_URL", "http://localhost:3000"),
            log_tokens=env_bool("LOG_TOKENS"),
            session_ttl=timedelta(minutes=session_minutes),
            panel_ttl=timedelta(minutes=_positive("PANEL_TTL_MINUTES", session_minutes)),
            poll_timeout_seconds=_positive("POLL_TIMEOUT_SECONDS", 300),
            poll_interval_seconds=_positive("POLL_INTERVAL_SECONDS", 2),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
