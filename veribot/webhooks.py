"""Best-effort Discord webhook notifications.

Failures never reach the caller: the primary operation has already
succeeded or failed on its own terms by the time these are sent.
"""

from __future__ import annotations

import logging
from typing import Final

import httpx

from .models import to_iso, utc_now

log: Final = logging.getLogger("veribot")

COLOR_SUCCESS: Final[int] = 0x00FF00
COLOR_FAILURE: Final[int] = 0xFF0000


class WebhookNotifier:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _post(self, webhook_url: str, embed: dict[str, object]) -> bool:
        try:
            response = await self._client.post(webhook_url, json={"embeds": [embed]})
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            log.exception("Failed to deliver webhook: %s", exc)
            return False
        return True

    async def notify_verification(
        self,
        webhook_url: str | None,
        *,
        identity_id: str,
        identity_name: str,
        ip_address: str,
        success: bool,
        message: str,
    ) -> bool:
        if not webhook_url:
            return False
        now = to_iso(utc_now())
        embed = {
            "title": "Verification Successful" if success else "Verification Failed",
            "description": message,
            "fields": [
                {"name": "User", "value": f"{identity_name} ({identity_id})", "inline": True},
                {"name": "IP", "value": ip_address, "inline": True},
                {"name": "Time", "value": now, "inline": True},
            ],
            "color": COLOR_SUCCESS if success else COLOR_FAILURE,
            "timestamp": now,
        }
        return await self._post(webhook_url, embed)

    async def notify_panel_created(
        self,
        webhook_url: str | None,
        *,
        creator: str,
        title: str,
        role_name: str,
        channel_id: int | str,
    ) -> bool:
        if not webhook_url:
            return False
        embed = {
            "title": "Verification Embed Created",
            "description": f"Created by {creator}",
            "fields": [
                {"name": "Title", "value": title, "inline": True},
                {"name": "Role", "value": role_name, "inline": True},
                {"name": "Channel", "value": f"<#{channel_id}>", "inline": True},
            ],
            "color": COLOR_SUCCESS,
            "timestamp": to_iso(utc_now()),
        }
        return await self._post(webhook_url, embed)


__all__ = ["WebhookNotifier"]
