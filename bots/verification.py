"""Discord side of the OAuth verification gateway
------------------------------------------------
* `/sendverificationembed` posts a panel with a reusable **Verify** button
  backed by a long-lived panel session.
* Pressing the button derives a one-shot session and replies ephemerally
  with a link to the Discord OAuth consent screen.
* The ephemeral reply is registered with the coordination channel so the
  result of the web callback can be written back into it.

Collaborators are injected by `configure_runtime` from `bots.runtime`.
"""

from __future__ import annotations

import logging
from typing import Final

import discord
from discord import app_commands

from veribot.coordination import CoordinationChannel
from veribot.errors import PersistenceFailure, SessionNotFound
from veribot.identity import IdentityExchange
from veribot.storage import SessionStore
from veribot.webhooks import WebhookNotifier

# ---------- Constants ----------
PANEL_BUTTON_PREFIX: Final[str] = "verify_"
PANEL_COLOR: Final[int] = 0x00B0F4

PANEL_GONE_MESSAGE: Final[str] = (
    "This verification panel is no longer valid. "
    "Please ask an admin to create a new one."
)
BUTTON_ERROR_MESSAGE: Final[str] = "An error occurred during verification. Please try again."
OAUTH_PROMPT: Final[str] = (
    "**Click the button below to complete verification:**\n\n"
    "*This will open Discord authorization in a new tab.*"
)

log = logging.getLogger(__name__)

# ---------- Runtime collaborators ----------
sessions: SessionStore | None = None
identity: IdentityExchange | None = None
channel: CoordinationChannel | None = None
webhooks: WebhookNotifier | None = None
ADMIN_ROLE_ID: int = 0


def configure_runtime(
    *,
    session_store: SessionStore,
    identity_exchange: IdentityExchange,
    coordination: CoordinationChannel,
    notifier: WebhookNotifier,
    admin_role_id: int,
) -> None:
    """Inject the collaborators used by the command and button handlers."""

    global sessions, identity, channel, webhooks, ADMIN_ROLE_ID

    sessions = session_store
    identity = identity_exchange
    channel = coordination
    webhooks = notifier
    ADMIN_ROLE_ID = admin_role_id


# ---------- Helpers ----------
def panel_custom_id(panel_token: str) -> str:
    return f"{PANEL_BUTTON_PREFIX}{panel_token}"


def panel_token_from(custom_id: str) -> str | None:
    if not custom_id.startswith(PANEL_BUTTON_PREFIX):
        return None
    return custom_id[len(PANEL_BUTTON_PREFIX) :] or None


def build_panel_view(panel_token: str) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Button(
            label="Verify",
            style=discord.ButtonStyle.primary,
            custom_id=panel_custom_id(panel_token),
        )
    )
    return view


def build_oauth_view(url: str) -> discord.ui.View:
    view = discord.ui.View()
    view.add_item(
        discord.ui.Button(label="Verify yourself!", style=discord.ButtonStyle.link, url=url)
    )
    return view


def is_admin(user: discord.abc.User) -> bool:
    roles = getattr(user, "roles", None)
    if roles is None:
        return False
    return any(role.id == ADMIN_ROLE_ID for role in roles)


async def _reply(interaction: discord.Interaction, content: str) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=True)
    else:
        await interaction.response.send_message(content, ephemeral=True)


# ---------- /sendverificationembed command ----------
@app_commands.command(
    name="sendverificationembed",
    description="Send a verification embed",
)
@app_commands.describe(
    title="The title of the verification embed",
    description="The description of the verification embed",
    role="The role to give upon successful verification",
    webhookurl="Webhook URL to log verification events (optional)",
)
@app_commands.default_permissions(administrator=True)
@app_commands.guild_only()
async def send_verification_embed(
    interaction: discord.Interaction,
    title: str,
    description: str,
    role: discord.Role,
    webhookurl: str | None = None,
) -> None:
    if getattr(interaction.user, "roles", None) is None:
        await _reply(interaction, "Unable to verify your permissions.")
        return

    if not is_admin(interaction.user):
        await _reply(interaction, "You don't have permission to use this command")
        return

    guild = interaction.guild
    bot_member = guild.me if guild is not None else None
    if bot_member is None:
        await _reply(interaction, "Unable to verify bot perms!")
        return

    top_role = bot_member.top_role
    if role.position >= top_role.position:
        await _reply(
            interaction,
            f"The role {role.mention} is higher than or equal to my highest role "
            f"{top_role.mention}. Please move my role higher in the server settings "
            "or choose a lower role.",
        )
        return

    try:
        panel_token = sessions.create_panel(
            str(guild.id), str(interaction.channel_id), str(role.id), webhookurl
        )

        embed = discord.Embed(
            title=title,
            description=description,
            color=PANEL_COLOR,
            timestamp=discord.utils.utcnow(),
        )
        embed.set_footer(text="Click verify!")

        if interaction.channel is not None and hasattr(interaction.channel, "send"):
            await interaction.channel.send(embed=embed, view=build_panel_view(panel_token))

        await _reply(interaction, "Panel created")
    except (PersistenceFailure, discord.HTTPException) as exc:
        log.exception("Couldn't send or create verification panel: %s", exc)
        await _reply(interaction, "An error occurred!")
        return

    log.info(
        "%s created a verification panel for role %s in guild %s",
        interaction.user,
        role.id,
        guild.id,
    )
    await webhooks.notify_panel_created(
        webhookurl,
        creator=str(interaction.user),
        title=title,
        role_name=role.name,
        channel_id=interaction.channel_id,
    )


# ---------- Verify button ----------
async def handle_interaction(interaction: discord.Interaction) -> None:
    """Route presses of any panel's Verify button, including panels from earlier runs."""
    if interaction.type is not discord.InteractionType.component:
        return
    custom_id = (interaction.data or {}).get("custom_id", "")
    panel_token = panel_token_from(str(custom_id))
    if panel_token is None:
        return

    try:
        state_token = sessions.derive_from_panel(panel_token)
    except SessionNotFound:
        await _reply(interaction, PANEL_GONE_MESSAGE)
        return
    except PersistenceFailure as exc:
        log.exception("Failed to derive verification session: %s", exc)
        await _reply(interaction, BUTTON_ERROR_MESSAGE)
        return

    # register first so a fast callback cannot land before the reply is tracked
    channel.register(str(interaction.user.id), interaction)
    url = identity.authorization_url(state_token)
    try:
        await interaction.response.send_message(
            content=OAUTH_PROMPT, view=build_oauth_view(url), ephemeral=True
        )
    except discord.HTTPException as exc:
        log.exception("Failed to send OAuth prompt to %s: %s", interaction.user, exc)


def register_commands(
    tree: app_commands.CommandTree, guild: discord.abc.Snowflake | None = None
) -> None:
    tree.add_command(send_verification_embed, guild=guild)


__all__ = [
    "build_oauth_view",
    "build_panel_view",
    "configure_runtime",
    "handle_interaction",
    "register_commands",
    "send_verification_embed",
]
