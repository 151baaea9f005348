from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

import aiohttp

from ..domain.errors import BlizzardAuthError, BlizzardNotConfigured, ErrorKind, UpstreamError
from ..domain.models import CharacterDescriptor, FetchOutcome, Run, SeasonProfile
from ..utils.text import character_path_name
from .blizzard_oauth import BlizzardOAuthClient
from .http import USER_AGENT, RetryPolicy, get_json, with_retry

log = logging.getLogger(__name__)

SOURCE = "Blizzard"


def _obj(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _season_runs(raw: dict[str, Any]) -> list[Any]:
    runs = raw.get("best_runs")
    if not isinstance(runs, list):
        runs = _obj(raw.get("current_period")).get("best_runs")
    return runs if isinstance(runs, list) else []


def _member_spec(run: dict[str, Any], character_name: str) -> tuple[str | None, int | None]:
    wanted = character_name.lower()
    members = run.get("members")
    for m in members if isinstance(members, list) else []:
        if not isinstance(m, dict):
            continue
        name = _obj(m.get("character")).get("name")
        if isinstance(name, str) and name.lower() == wanted:
            spec = _obj(m.get("specialization"))
            spec_name = spec.get("name")
            spec_id = spec.get("id")
            return (
                spec_name if isinstance(spec_name, str) else None,
                spec_id if isinstance(spec_id, int) else None,
            )
    return None, None


def parse_blizzard_run(run: dict[str, Any], character_name: str) -> Run | None:
    try:
        timed = bool(run.get("is_completed_within_time"))
        upgrades = run.get("keystone_upgrades")
        if not isinstance(upgrades, int):
            # Blizzard only reports in-time or not
            upgrades = 1 if timed else 0
        elif not timed:
            upgrades = 0
        spec_name, spec_id = _member_spec(run, character_name)
        rating = _obj(run.get("mythic_rating")).get("rating")
        affixes = run.get("keystone_affixes")
        return Run(
            dungeon_name=str(_obj(run.get("dungeon"))["name"]),
            mythic_level=int(run["keystone_level"]),
            completed_at=run["completed_timestamp"],
            duration_ms=int(run.get("duration") or 0),
            num_keystone_upgrades=upgrades,
            score=float(rating) if isinstance(rating, (int, float)) else 0.0,
            keystone_run_id=run.get("keystone_run_id") if isinstance(run.get("keystone_run_id"), int) else None,
            spec_name=spec_name,
            spec_id=spec_id,
            affixes=tuple(
                a["name"]
                for a in (affixes if isinstance(affixes, list) else [])
                if isinstance(a, dict) and a.get("name")
            ),
        )
    except (KeyError, TypeError, ValueError) as e:
        log.debug("Dropping malformed Blizzard run: %s", e)
        return None


def parse_season_profile(raw: dict[str, Any], descriptor: CharacterDescriptor, season_id: int) -> SeasonProfile:
    name = _obj(raw.get("character")).get("name")
    if not isinstance(name, str) or not name:
        name = descriptor.name
    runs = [r for r in (parse_blizzard_run(x, name) for x in _season_runs(raw) if isinstance(x, dict)) if r]
    rating = _obj(raw.get("mythic_rating")).get("rating")
    matched = sum(1 for r in runs if r.spec_name)
    log.debug("Blizzard season %s for %s: %d runs, %d with spec", season_id, name, len(runs), matched)
    return SeasonProfile(
        character_name=name,
        season_id=season_id,
        mythic_rating=float(rating) if isinstance(rating, (int, float)) else None,
        best_runs=runs,
    )


class BlizzardApiClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        oauth: BlizzardOAuthClient,
        *,
        retry: RetryPolicy | None = None,
        locale: str = "en_US",
    ):
        self._session = session
        self._oauth = oauth
        self._retry = retry or RetryPolicy(max_retries=2)
        self.locale = locale

    @property
    def is_configured(self) -> bool:
        return self._oauth.is_configured

    @staticmethod
    def base_url(region: str) -> str:
        return f"https://{region}.api.blizzard.com"

    async def _get_once(
        self, descriptor: CharacterDescriptor, path: str, params: dict[str, str], *, force_token: bool = False
    ) -> dict[str, Any]:
        token = await self._oauth.get_access_token(force_refresh=force_token)
        return await get_json(
            self._session,
            self.base_url(descriptor.region) + path,
            params=params,
            headers={"Authorization": f"Bearer {token}", "User-Agent": USER_AGENT},
            timeout=self._retry.request_timeout,
            descriptor=descriptor,
            source=SOURCE,
        )

    async def _get(self, descriptor: CharacterDescriptor, path: str, params: dict[str, str]) -> dict[str, Any]:
        async def attempt() -> dict[str, Any]:
            try:
                return await self._get_once(descriptor, path, params)
            except UpstreamError as e:
                if e.status != 401:
                    raise
                log.info("Blizzard rejected the access token, refreshing once")
                return await self._get_once(descriptor, path, params, force_token=True)

        return await with_retry(attempt, self._retry, label=f"{SOURCE} {descriptor.name}")

    # -----------------------------
    # Character Profile APIs
    # -----------------------------
    async def mythic_keystone_profile(self, descriptor: CharacterDescriptor, season_id: int) -> SeasonProfile:
        if not self.is_configured:
            raise BlizzardNotConfigured("Blizzard API client not configured")
        raw = await self._get(
            descriptor,
            f"/profile/wow/character/{descriptor.realm_slug}/{character_path_name(descriptor.name)}"
            f"/mythic-keystone-profile/season/{season_id}",
            {"namespace": f"profile-{descriptor.region}", "locale": self.locale},
        )
        try:
            return parse_season_profile(raw, descriptor, season_id)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise UpstreamError(
                ErrorKind.PARSE, f"Invalid Blizzard season profile: {e}", descriptor=descriptor, source=SOURCE
            ) from e

    async def _outcome(self, descriptor: CharacterDescriptor, season_id: int) -> FetchOutcome[SeasonProfile]:
        try:
            return FetchOutcome(descriptor, value=await self.mythic_keystone_profile(descriptor, season_id))
        except UpstreamError as e:
            log.warning("No Blizzard season profile for %s: %s", descriptor.name, e)
            return FetchOutcome(descriptor, error=e)
        except BlizzardAuthError as e:
            log.error("Blizzard OAuth failed while fetching %s: %s", descriptor.name, e)
            return FetchOutcome(
                descriptor,
                error=UpstreamError(ErrorKind.HTTP, str(e), status=e.status, descriptor=descriptor, source=SOURCE),
            )

    async def fetch_season_profiles(
        self, descriptors: Iterable[CharacterDescriptor], season_id: int
    ) -> list[FetchOutcome[SeasonProfile]]:
        if not self.is_configured:
            log.debug("Blizzard API not configured, skipping spec lookup")
            return []
        return list(await asyncio.gather(*(self._outcome(d, season_id) for d in descriptors)))

    # -----------------------------
    # Armory URLs
    # -----------------------------
    def armory_character_url(self, descriptor: CharacterDescriptor) -> str:
        locale_web = self.locale.replace("_", "-").lower()
        return (
            f"https://worldofwarcraft.blizzard.com/{locale_web}/character/"
            f"{descriptor.region}/{descriptor.realm_slug}/{character_path_name(descriptor.name)}"
        )
