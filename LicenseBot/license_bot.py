#!/usr/bin/env python3
"""
License Bot
-----------
Discord slash-command webhook (`/validate`, `/renew`) backed by the FormResponses
Google Sheet, plus a daily DM reminder sweep for licenses about to expire.

One discord client is created at startup and shared by the HTTP handlers and the
reminder loop.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

# Ensure repo root is importable when executed as a script.
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

BASE_DIR = Path(__file__).resolve().parent

import discord
from aiohttp import web
from discord.ext import tasks
from dotenv import load_dotenv

from check_licensebot_config import run as run_config_check
from licensebot_config import mask_secret
from LicenseBot.bot_messages import BotMessages, load_messages
from LicenseBot.client_ids import ClientIdAllocator
from LicenseBot.expiry_reminders import ExpiryReminderSweep
from LicenseBot.interactions_server import InteractionHandler, start_http_server
from LicenseBot.license_lifecycle import LicenseLifecycle
from LicenseBot.license_sheet_store import LicenseSheetStore
from LicenseBot.member_sync import GuildMemberSync
from LicenseBot.settings import LicenseBotSettings, load_settings

log = logging.getLogger("license-bot")


class LicenseBot:
    """Wires the discord client, sheet store, lifecycle, HTTP endpoint and reminder loop."""

    def __init__(self, settings: LicenseBotSettings, messages: BotMessages):
        self.settings = settings
        self.messages = messages

        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        self.bot = discord.Client(intents=intents)

        self.store = LicenseSheetStore(settings)
        self.members = GuildMemberSync(
            self.bot,
            settings.guild_id,
            client_role_name=settings.client_role_name,
            prospect_role_name=settings.prospect_role_name,
        )
        self.lifecycle = LicenseLifecycle(
            self.store,
            ClientIdAllocator(
                settings.client_id_policy,
                settings.client_id_prefix,
                max_attempts=settings.client_id_max_attempts,
            ),
            self.members,
            messages,
            today=settings.today,
            license_days=settings.license_days,
            renew_sync_roles=settings.renew_sync_roles,
        )
        self.sweep = ExpiryReminderSweep(
            self.store,
            self.members,
            messages,
            thresholds=settings.reminder_thresholds_days,
            today=settings.today,
        )
        self.handler = InteractionHandler(settings, self.lifecycle, messages)
        self.reminder_loop = tasks.loop(time=settings.reminder_clock())(self._reminder_tick)
        self.reminder_loop.error(self._reminder_error)
        self._runner: Optional[web.AppRunner] = None

        self._setup_events()

    def _setup_events(self) -> None:
        @self.bot.event
        async def on_ready():
            log.info("=" * 60)
            log.info("  License Bot")
            log.info("=" * 60)
            log.info(f"[Bot] Ready as {self.bot.user} (ID: {self.bot.user.id})")
            guild = self.bot.get_guild(self.settings.guild_id)
            if guild:
                log.info(f"[Bot] Connected to: {guild.name}")
                for name in (self.settings.client_role_name, self.settings.prospect_role_name):
                    role = GuildMemberSync.find_role(guild, name)
                    if role:
                        log.info(f"[Config] Role '{name}' (ID: {role.id})")
                    else:
                        log.warning(f"[Config] Role '{name}' not found in {guild.name}")
            else:
                log.warning(f"[Bot] Guild {self.settings.guild_id} not in cache; members will be fetched over the API")
            log.info(f"[Config] Sheet: {mask_secret(self.settings.spreadsheet_id)} / tab '{self.settings.sheet_tab_name}'")
            log.info(f"[Config] Client ids: {self.settings.client_id_policy} (prefix '{self.settings.client_id_prefix}')")

            # on_ready can fire again after reconnects
            if not self.reminder_loop.is_running():
                self.reminder_loop.start()
                log.info(
                    f"[Reminders] Daily sweep scheduled at {self.settings.reminder_time} "
                    f"{self.settings.timezone_name} (thresholds: {', '.join(str(d) for d in self.settings.reminder_thresholds_days)} days)"
                )
            log.info("=" * 60)

    async def _reminder_tick(self) -> None:
        await self.bot.wait_until_ready()
        await self.sweep.run()

    async def _reminder_error(self, error: BaseException) -> None:
        log.error(f"[Reminders] Sweep crashed: {error!r}")

    async def start(self) -> None:
        # HTTP first: Discord pings the endpoint even while the gateway is still connecting.
        self._runner = await start_http_server(self.handler, self.settings.http_host, self.settings.http_port)
        try:
            async with self.bot:
                await self.bot.start(self.settings.bot_token)
        finally:
            if self.reminder_loop.is_running():
                self.reminder_loop.cancel()
            if self._runner is not None:
                await self._runner.cleanup()
                self._runner = None


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(add_help=True)
    parser.add_argument("--check-config", action="store_true", help="Validate config + secrets and exit (no Discord connection).")
    args = parser.parse_args(argv)

    load_dotenv(BASE_DIR / ".env")
    load_dotenv()

    if args.check_config:
        return run_config_check()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    settings, _, secrets_path = load_settings(BASE_DIR)
    errors = settings.validate()
    if errors:
        for e in errors:
            log.error(f"[Config] {e}")
        raise RuntimeError(f"Invalid configuration (see {secrets_path}); run with --check-config for details")
    messages = load_messages(thresholds=settings.reminder_thresholds_days)

    try:
        asyncio.run(LicenseBot(settings, messages).start())
    except KeyboardInterrupt:
        log.info("[Bot] Shutting down")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
