from __future__ import annotations

import logging

import aiohttp
import discord
from discord.ext import commands, tasks

from .config import Settings, get_settings
from .clients.blizzard_oauth import BlizzardOAuthClient
from .clients.blizzard_api import BlizzardApiClient
from .clients.raiderio_api import RaiderIoClient
from .clients.combined import CombinedWowClient
from .services.character_service import CharacterDataService
from .services.weekly_csv_log import WeeklyCsvLog
from .utils.cache import CharacterCache
from .cogs.wow import WowCog

log = logging.getLogger(__name__)


class MplusBot(commands.Bot):
    def __init__(self, settings: Settings | None = None):
        super().__init__(command_prefix="!", intents=discord.Intents.default())
        self.settings = settings or get_settings(require_discord=True)

        self.http_session: aiohttp.ClientSession | None = None
        self.character_service: CharacterDataService | None = None

    async def setup_hook(self):
        self.http_session = aiohttp.ClientSession()

        oauth = BlizzardOAuthClient(
            self.http_session,
            self.settings.blizzard_client_id,
            self.settings.blizzard_client_secret,
        )
        blizzard = BlizzardApiClient(self.http_session, oauth, locale=self.settings.wow_locale)
        raider = RaiderIoClient(self.http_session)
        combined = CombinedWowClient(
            raider,
            blizzard,
            season_id=self.settings.current_season_id,
            resolve=self.settings.descriptor_for,
        )

        csv_log = WeeklyCsvLog(self.settings.csv_log_dir)
        csv_log.cleanup()

        self.character_service = CharacterDataService(
            self.settings, raider, blizzard, combined, CharacterCache(), csv_log
        )

        await self.add_cog(WowCog(self, self.character_service))

        # Fast sync on the dev server
        if self.settings.discord_guild_id:
            guild = discord.Object(id=self.settings.discord_guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
        else:
            await self.tree.sync()
        self.periodic_refresh.start()
        log.info("Ready with %d characters", len(self.settings.characters))

    @tasks.loop(minutes=60.0)
    async def periodic_refresh(self):
        if self.character_service is None:
            return
        try:
            await self.character_service.refresh_all()
        except Exception:
            # keep the loop alive, the next hour retries
            log.exception("Scheduled refresh failed")

    @periodic_refresh.before_loop
    async def _before_periodic_refresh(self):
        await self.wait_until_ready()

    async def close(self):
        self.periodic_refresh.cancel()
        if self.http_session:
            await self.http_session.close()
        await super().close()
