from __future__ import annotations

import logging
from typing import Final

import discord

from .errors import RoleGrantFailure

log: Final = logging.getLogger("veribot")

GRANT_REASON: Final[str] = "Passed OAuth verification"


def _holds_role(member: discord.Member, role_id: int) -> bool:
    return any(role.id == role_id for role in member.roles)


class RoleGrantService:
    """Apply the verification role using live guild state."""

    def __init__(self, client: discord.Client) -> None:
        self._client = client

    async def _resolve_member(
        self, community_id: str, identity_id: str
    ) -> tuple[discord.Guild, discord.Member] | None:
        guild = self._client.get_guild(int(community_id))
        if guild is None:
            log.error("Guild %s not found", community_id)
            return None
        member = guild.get_member(int(identity_id))
        if member is None:
            try:
                member = await guild.fetch_member(int(identity_id))
            except discord.NotFound:
                log.error("Member %s not found in guild %s", identity_id, community_id)
                return None
        return guild, member

    async def has_role(self, identity_id: str, community_id: str, role_id: str) -> bool:
        """Return ``True`` when the member currently holds the role."""
        try:
            resolved = await self._resolve_member(community_id, identity_id)
        except (ValueError, discord.HTTPException) as exc:
            log.warning("Could not check roles for %s: %s", identity_id, exc)
            return False
        if resolved is None:
            return False
        _, member = resolved
        return _holds_role(member, int(role_id))

    async def _apply(self, identity_id: str, community_id: str, role_id: str) -> None:
        try:
            resolved = await self._resolve_member(community_id, identity_id)
            if resolved is None:
                raise RoleGrantFailure(f"member {identity_id} not found in guild {community_id}")
            guild, member = resolved

            role = guild.get_role(int(role_id))
            if role is None:
                raise RoleGrantFailure(f"role {role_id} not found in guild {community_id}")

            if _holds_role(member, role.id):
                log.info("Member %s already has role %s", identity_id, role.name)
                return

            await member.add_roles(role, reason=GRANT_REASON)
        except ValueError as exc:
            raise RoleGrantFailure(
                f"invalid ids {community_id}/{identity_id}/{role_id}"
            ) from exc
        except discord.Forbidden as exc:
            raise RoleGrantFailure(
                f"forbidden adding role {role_id} to {identity_id} - check role hierarchy"
            ) from exc
        except discord.HTTPException as exc:
            raise RoleGrantFailure(f"adding role {role_id} to {identity_id}: {exc}") from exc

        log.info("Granted role %s to member %s", role.name, identity_id)

    async def grant(self, identity_id: str, community_id: str, role_id: str) -> bool:
        """Ensure the member holds the role. Returns ``False`` instead of raising."""
        try:
            await self._apply(identity_id, community_id, role_id)
        except RoleGrantFailure as exc:
            log.warning("Role grant failed: %s", exc)
            return False
        return True


__all__ = ["RoleGrantService"]
