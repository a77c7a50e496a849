"""Runtime that serves the Discord client and the OAuth callback on one event loop."""

from __future__ import annotations

import asyncio
import logging

import boto3
import discord
import httpx
import uvicorn
from botocore.exceptions import BotoCoreError, ClientError
from discord import app_commands

from bots import verification
from bots.config import EnvironmentConfig
from bots.web import create_app
from veribot.antiabuse import AntiAbuseEngine
from veribot.coordination import CoordinationChannel
from veribot.identity import IdentityExchange
from veribot.orchestrator import VerificationOrchestrator
from veribot.reputation import ReputationChecker
from veribot.roles import RoleGrantService
from veribot.storage import BindingStore, SessionStore
from veribot.webhooks import WebhookNotifier

log = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 10.0
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class VerificationRuntime:
    def __init__(self, config: EnvironmentConfig, *, table=None) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True

        self.config = config
        self.bot = discord.Client(intents=intents)
        self.tree = app_commands.CommandTree(self.bot)
        if table is None:
            dynamodb = boto3.resource("dynamodb", region_name=config.aws_region)
            table = dynamodb.Table(config.table_name)
        self.table = table
        self.http = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)

        self.sessions = SessionStore(
            self.table, ttl=config.session_ttl, panel_ttl=config.panel_ttl
        )
        self.bindings = BindingStore(self.table)
        self.channel = CoordinationChannel(
            poll_interval=config.poll_interval_seconds,
            timeout=config.poll_timeout_seconds,
        )
        self.identity = IdentityExchange(
            self.http,
            client_id=config.client_id,
            client_secret=config.client_secret,
            redirect_uri=config.redirect_uri,
        )
        self.webhooks = WebhookNotifier(self.http)
        self.engine = AntiAbuseEngine(
            ReputationChecker(self.http, config.ipapi_api_key),
            self.bindings,
            RoleGrantService(self.bot),
        )
        self.orchestrator = VerificationOrchestrator(
            sessions=self.sessions,
            bindings=self.bindings,
            identity=self.identity,
            engine=self.engine,
            channel=self.channel,
            webhooks=self.webhooks,
            log_tokens=config.log_tokens,
        )
        self.app = create_app(self.orchestrator)

    def check_database(self) -> None:
        """Fail fast when the verification table is unreachable."""
        try:
            self.table.load()
        except (ClientError, BotoCoreError) as exc:
            raise RuntimeError(
                f"Cannot reach DynamoDB table {self.config.table_name}: {exc}"
            ) from exc
        log.info("Connected to DynamoDB table %s", self.config.table_name)

    def configure_features(self) -> None:
        verification.configure_runtime(
            session_store=self.sessions,
            identity_exchange=self.identity,
            coordination=self.channel,
            notifier=self.webhooks,
            admin_role_id=self.config.admin_role_id,
        )
        guild = (
            discord.Object(id=self.config.guild_id)
            if self.config.guild_id is not None
            else None
        )
        verification.register_commands(self.tree, guild)

        @self.bot.event
        async def on_ready() -> None:
            try:
                if guild is not None:
                    await self.tree.sync(guild=guild)
                    log.info("Registered commands for guild %s", guild.id)
                else:
                    await self.tree.sync()
                    log.info("Registered global commands")
            except discord.HTTPException as exc:
                log.exception("Failed to sync commands: %s", exc)

            self.channel.start()
            log.info("Bot ready as %s", self.bot.user)

        @self.bot.event
        async def on_interaction(interaction: discord.Interaction) -> None:
            await verification.handle_interaction(interaction)

    def build_server(self) -> uvicorn.Server:
        config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            # logging already setup
            log_config=None,
        )
        return uvicorn.Server(config)

    async def _run_bot(self) -> None:
        async with self.bot:
            await self.bot.start(self.config.discord_token)

    async def run(self) -> None:
        self.check_database()
        self.configure_features()

        server = self.build_server()
        server_task = asyncio.create_task(server.serve(), name="uvicorn-server")
        bot_task = asyncio.create_task(self._run_bot(), name="discord-client")
        log.info("Callback endpoint at %s", self.config.redirect_uri)
        try:
            done, _ = await asyncio.wait(
                {server_task, bot_task}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                task.result()
        finally:
            server.should_exit = True
            if not bot_task.done():
                await self.bot.close()
            await asyncio.gather(server_task, bot_task, return_exceptions=True)
            self.channel.close()
            await self.http.aclose()


async def main() -> None:
    config = EnvironmentConfig.load()
    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)
    runtime = VerificationRuntime(config)
    await runtime.run()


__all__ = ["VerificationRuntime", "main"]
