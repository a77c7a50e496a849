"""Tests for best-effort webhook delivery."""

import json

import httpx
import pytest

from veribot.webhooks import COLOR_FAILURE, COLOR_SUCCESS, WebhookNotifier

WEBHOOK_URL = "https://hooks.example/webhook"


def recording_client(status: int = 204):
    posts: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        posts.append(json.loads(request.content))
        return httpx.Response(status, request=request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), posts


@pytest.mark.asyncio
async def test_failed_verification_embed():
    client, posts = recording_client()
    try:
        delivered = await WebhookNotifier(client).notify_verification(
            WEBHOOK_URL,
            identity_id="100",
            identity_name="alice",
            ip_address="203.0.113.7",
            success=False,
            message="Verification failed: VPN/Proxy detected",
        )
    finally:
        await client.aclose()

    assert delivered is True
    [embed] = posts[0]["embeds"]
    assert embed["title"] == "Verification Failed"
    assert embed["color"] == COLOR_FAILURE
    assert embed["description"] == "Verification failed: VPN/Proxy detected"
    assert [field["name"] for field in embed["fields"]] == ["User", "IP", "Time"]


@pytest.mark.asyncio
async def test_panel_created_embed():
    client, posts = recording_client()
    try:
        delivered = await WebhookNotifier(client).notify_panel_created(
            WEBHOOK_URL, creator="admin#1", title="Verify", role_name="Verified", channel_id=5
        )
    finally:
        await client.aclose()

    assert delivered is True
    [embed] = posts[0]["embeds"]
    assert embed["title"] == "Verification Embed Created"
    assert embed["color"] == COLOR_SUCCESS
    fields = {field["name"]: field["value"] for field in embed["fields"]}
    assert fields == {"Title": "Verify", "Role": "Verified", "Channel": "<#5>"}


@pytest.mark.asyncio
async def test_missing_url_sends_nothing():
    client, posts = recording_client()
    try:
        notifier = WebhookNotifier(client)
        assert await notifier.notify_panel_created(
            None, creator="a", title="t", role_name="r", channel_id=1
        ) is False
        assert await notifier.notify_verification(
            "",
            identity_id="1",
            identity_name="a",
            ip_address="1.1.1.1",
            success=True,
            message="ok",
        ) is False
    finally:
        await client.aclose()

    assert posts == []


@pytest.mark.asyncio
async def test_rejected_delivery_is_swallowed():
    client, _ = recording_client(status=404)
    try:
        delivered = await WebhookNotifier(client).notify_panel_created(
            WEBHOOK_URL, creator="a", title="t", role_name="r", channel_id=1
        )
    finally:
        await client.aclose()

    assert delivered is False


@pytest.mark.asyncio
async def test_network_error_is_swallowed():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    try:
        delivered = await WebhookNotifier(client).notify_panel_created(
            WEBHOOK_URL, creator="a", title="t", role_name="r", channel_id=1
        )
    finally:
        await client.aclose()

    assert delivered is False
