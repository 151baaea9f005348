from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from ..clients.blizzard_api import BlizzardApiClient
from ..clients.combined import CombinedWowClient
from ..clients.raiderio_api import GEAR, RAID, RECENT_RUNS, RaiderIoClient
from ..config import Settings
from ..domain.errors import WowApiError
from ..domain.models import CharacterDescriptor, CharacterLinks, CharacterView, FetchOutcome, Run, SpecComparison
from ..utils.cache import CharacterCache
from .weekly_csv_log import LogResult, WeeklyCsvLog

T = TypeVar("T")

log = logging.getLogger(__name__)

Fetcher = Callable[[Sequence[CharacterDescriptor]], Awaitable[list[FetchOutcome[T]]]]


class CharacterDataService:
    """What the chat layer calls: roster-wide views behind the shared cache."""

    def __init__(
        self,
        settings: Settings,
        raiderio: RaiderIoClient,
        blizzard: BlizzardApiClient,
        combined: CombinedWowClient,
        cache: CharacterCache,
        csv_log: WeeklyCsvLog | None = None,
    ):
        self._settings = settings
        self._raiderio = raiderio
        self._blizzard = blizzard
        self._combined = combined
        self._cache = cache
        self._csv_log = csv_log

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def roster(self) -> tuple[CharacterDescriptor, ...]:
        return self._settings.characters

    def _fallback(self, slot: str) -> list[Any]:
        stale = self._cache.peek_stale(CharacterCache.key(slot))
        if stale is not None:
            log.warning("Upstream fetch for '%s' failed, using stale cached data", slot)
            return stale
        return []

    async def _cached_fetch(self, slot: str, fetch: Fetcher[T], *, force_refresh: bool) -> list[T]:
        roster = self.roster
        if not roster:
            log.warning("No characters configured, nothing to fetch for '%s'", slot)
            return []

        if not force_refresh:
            cached = self._cache.get_slot(slot)
            if cached is not None:
                return cached

        log.info("Fetching '%s' for %d characters", slot, len(roster))
        try:
            outcomes = await fetch(roster)
        except asyncio.CancelledError:
            log.warning("Fetch for '%s' was cancelled", slot)
            return self._fallback(slot)
        except WowApiError as e:
            log.error("Fetch for '%s' failed: %s", slot, e)
            return self._fallback(slot)

        values = [o.value for o in outcomes if o.ok and o.value is not None]
        failures = [o for o in outcomes if not o.ok]
        if failures:
            log.warning(
                "'%s': %d/%d characters failed (%s)",
                slot, len(failures), len(outcomes),
                ", ".join(f"{o.descriptor.name}={o.error.kind.value if o.error else '?'}" for o in failures),
            )
        if not values and failures:
            return self._fallback(slot)

        self._cache.set_slot(slot, values)
        log.info("Fetched '%s': %d/%d characters", slot, len(values), len(outcomes))
        return values

    # -----------------------------
    # Roster operations
    # -----------------------------
    async def get_best_mplus(self, *, force_refresh: bool = False) -> list[CharacterView]:
        return await self._cached_fetch("character", self._combined.enhanced_outcomes, force_refresh=force_refresh)

    async def get_recent_mplus(self, *, force_refresh: bool = False) -> list[CharacterView]:
        fresh = False

        async def fetch(roster: Sequence[CharacterDescriptor]) -> list[FetchOutcome[CharacterView]]:
            nonlocal fresh
            outcomes = await self._raiderio.fetch_outcomes(roster, RECENT_RUNS)
            fresh = any(o.ok for o in outcomes)
            return outcomes

        views = await self._cached_fetch("mplus", fetch, force_refresh=force_refresh)
        if fresh:
            self._log_week(views)
        return views

    async def get_raid(self, *, force_refresh: bool = False) -> list[CharacterView]:
        return await self._cached_fetch(
            "raid", lambda roster: self._raiderio.fetch_outcomes(roster, RAID), force_refresh=force_refresh
        )

    async def get_gear(self, *, force_refresh: bool = False) -> list[CharacterView]:
        return await self._cached_fetch(
            "gear", lambda roster: self._raiderio.fetch_outcomes(roster, GEAR), force_refresh=force_refresh
        )

    def get_links(self) -> list[CharacterLinks]:
        cached = self._cache.get_slot("links")
        if cached is not None:
            return cached
        links = [
            CharacterLinks(
                descriptor=d,
                raiderio_url=self._raiderio.profile_url(d),
                warcraftlogs_url=self._raiderio.warcraftlogs_url(d),
                armory_url=self._blizzard.armory_character_url(d),
            )
            for d in self.roster
        ]
        self._cache.set_slot("links", links)
        return links

    def _log_week(self, views: list[CharacterView]) -> LogResult | None:
        if self._csv_log is None:
            return None
        try:
            result = self._csv_log.log_week(views)
        except Exception:
            log.exception("Weekly CSV logging failed")
            return None
        if not result.ok:
            log.warning("Weekly CSV not updated: %s", result.error)
        return result

    # -----------------------------
    # Spec queries
    # -----------------------------
    async def specific_runs(self, character_name: str, spec_name: str | None = None) -> list[Run]:
        return await self._combined.specific_runs(character_name, spec_name)

    async def available_specs(self, character_name: str) -> list[str]:
        return await self._combined.available_specs(character_name)

    async def compare_specs(self, character_name: str) -> SpecComparison:
        return await self._combined.compare_specs(character_name)

    # -----------------------------
    # Cache management
    # -----------------------------
    async def refresh_all(self) -> dict[str, int]:
        """Bypass the cache for the Mythic+ slots. Returns characters fetched per slot."""
        best = await self.get_best_mplus(force_refresh=True)
        recent = await self.get_recent_mplus(force_refresh=True)
        counts = {"character": len(best), "mplus": len(recent)}
        log.info("Scheduled refresh done: %s", counts)
        return counts

    def invalidate(self, slot: str | None = None) -> None:
        if slot is None:
            self._cache.clear()
        else:
            self._cache.invalidate(CharacterCache.key(slot))

    def cache_status(self) -> dict[str, Any]:
        return {
            "time_until_refresh_ms": self._cache.time_until_refresh(),
            "timestamps": self._cache.cache_timestamps(),
            "stats": self._cache.stats(),
        }
