from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, TypeVar

import aiohttp

from ..domain.errors import ErrorKind, UpstreamError
from ..domain.models import (
    CharacterDescriptor,
    CharacterView,
    FetchOutcome,
    GearItem,
    GearSet,
    RaidProgress,
    Run,
)
from ..domain.specs import normalize_role
from .http import USER_AGENT, RetryPolicy, get_json, with_retry

T = TypeVar("T")

log = logging.getLogger(__name__)

SOURCE = "Raider.IO"

_RUN_ID_RE = re.compile(r"/mythic-plus-runs/[^/]+/(\d+)-")


@dataclass(frozen=True)
class ProfileRequest(Generic[T]):
    """A RaiderIO field projection plus the parser that understands it."""

    name: str
    fields: str
    parse: Callable[[dict[str, Any], CharacterDescriptor], T]


# -----------------------------
# Parsers
# -----------------------------
def _current_score(raw: dict[str, Any]) -> float | None:
    seasons = raw.get("mythic_plus_scores_by_season")
    if isinstance(seasons, list) and seasons:
        cur = seasons[0]  # ":current" yields a single season
        if isinstance(cur, dict):
            scores = cur.get("scores")
            if isinstance(scores, dict):
                all_score = scores.get("all")
                if isinstance(all_score, (int, float)):
                    return float(all_score)
    return None


def _run_id(run: dict[str, Any]) -> int | None:
    rid = run.get("keystone_run_id")
    if isinstance(rid, int):
        return rid
    url = run.get("url")
    if isinstance(url, str):
        m = _RUN_ID_RE.search(url)
        if m:
            return int(m.group(1))
    return None


def parse_run(run: dict[str, Any]) -> Run | None:
    """RaiderIO run object -> Run. Malformed runs are dropped (None)."""
    if not isinstance(run, dict):
        return None
    dungeon = run.get("dungeon")
    if isinstance(dungeon, dict):
        dungeon = dungeon.get("name")
    affixes = run.get("affixes") or []
    try:
        return Run(
            dungeon_name=str(dungeon or "Dungeon"),
            mythic_level=int(run["mythic_level"]),
            completed_at=run["completed_at"],
            duration_ms=int(run.get("clear_time_ms") or 0),
            num_keystone_upgrades=int(run.get("num_keystone_upgrades") or 0),
            score=float(run.get("score") or 0.0),
            keystone_run_id=_run_id(run),
            affixes=tuple(a["name"] for a in affixes if isinstance(a, dict) and a.get("name")),
        )
    except (KeyError, TypeError, ValueError) as e:
        log.debug("Dropping malformed Raider.IO run %r: %s", run.get("dungeon"), e)
        return None


def _runs(raw: dict[str, Any], key: str) -> list[Run]:
    runs = raw.get(key)
    if not isinstance(runs, list):
        return []
    return [r for r in (parse_run(x) for x in runs) if r is not None]


def _base_view(raw: dict[str, Any], descriptor: CharacterDescriptor, **fields: Any) -> CharacterView:
    class_name = raw.get("class")
    return CharacterView(
        descriptor=descriptor,
        class_name=str(class_name) if class_name else None,
        active_role=normalize_role(raw.get("active_spec_role")),
        thumbnail_url=raw.get("thumbnail_url") or None,
        **fields,
    )


def parse_best_runs(raw: dict[str, Any], descriptor: CharacterDescriptor) -> CharacterView:
    return _base_view(
        raw,
        descriptor,
        best_runs=_runs(raw, "mythic_plus_best_runs"),
        overall_mplus_score=_current_score(raw),
    )


def parse_recent_runs(raw: dict[str, Any], descriptor: CharacterDescriptor) -> CharacterView:
    return _base_view(
        raw,
        descriptor,
        recent_runs=_runs(raw, "mythic_plus_recent_runs"),
        overall_mplus_score=_current_score(raw),
    )


def parse_gear(raw: dict[str, Any], descriptor: CharacterDescriptor) -> CharacterView:
    gear = raw.get("gear")
    gear_set: GearSet | None = None
    if isinstance(gear, dict):
        items: dict[str, GearItem] = {}
        raw_items = gear.get("items")
        if isinstance(raw_items, dict):
            for slot, item in raw_items.items():
                if not isinstance(item, dict):
                    continue
                quality = item.get("item_quality", item.get("quality"))
                items[slot] = GearItem(
                    name=str(item.get("name") or "?"),
                    item_level=int(item.get("item_level") or 0),
                    quality_tier=quality if isinstance(quality, int) else None,
                    item_id=item.get("item_id") if isinstance(item.get("item_id"), int) else None,
                )
        avg = gear.get("item_level_equipped")
        gear_set = GearSet(
            average_item_level=float(avg) if isinstance(avg, (int, float)) else 0.0,
            items=items,
        )
    return _base_view(raw, descriptor, gear=gear_set)


def parse_raid(raw: dict[str, Any], descriptor: CharacterDescriptor) -> CharacterView:
    raids: list[RaidProgress] = []
    rp = raw.get("raid_progression")
    if isinstance(rp, dict):
        for raid_slug, data in rp.items():
            if not isinstance(data, dict):
                continue
            raid_name = data.get("name") or raid_slug.replace("-", " ").title()
            summary = data.get("summary")
            if isinstance(summary, str) and summary.strip():
                raids.append(RaidProgress(raid_name=raid_name, summary=summary.strip()))
                continue

            total = data.get("total_bosses")
            if not isinstance(total, int) or total <= 0:
                continue
            parts: list[str] = []
            for key, tag in (("mythic_bosses_killed", "M"), ("heroic_bosses_killed", "H"), ("normal_bosses_killed", "N")):
                killed = data.get(key)
                if isinstance(killed, int) and killed > 0:
                    parts.append(f"{killed}/{total} {tag}")
            if parts:
                raids.append(RaidProgress(raid_name=raid_name, summary=" ".join(parts)))
    return _base_view(raw, descriptor, raids=raids, overall_mplus_score=_current_score(raw))


BEST_RUNS: ProfileRequest[CharacterView] = ProfileRequest(
    "best_runs", "mythic_plus_best_runs,mythic_plus_scores_by_season:current", parse_best_runs
)
RECENT_RUNS: ProfileRequest[CharacterView] = ProfileRequest(
    "recent_runs", "mythic_plus_recent_runs", parse_recent_runs
)
GEAR: ProfileRequest[CharacterView] = ProfileRequest("gear", "gear,thumbnail_url", parse_gear)
RAID: ProfileRequest[CharacterView] = ProfileRequest(
    "raid", "raid_progression,mythic_plus_scores_by_season:current", parse_raid
)


class RaiderIoClient:
    BASE_URL = "https://raider.io/api/v1"
    SITE_URL = "https://raider.io"
    WCL_URL = "https://www.warcraftlogs.com"

    def __init__(self, session: aiohttp.ClientSession, *, retry: RetryPolicy | None = None):
        self._session = session
        self._retry = retry or RetryPolicy()

    async def _get_once(self, descriptor: CharacterDescriptor, fields: str) -> dict[str, Any]:
        data = await get_json(
            self._session,
            self.BASE_URL + "/characters/profile",
            params={
                "region": descriptor.region,
                "realm": descriptor.realm_slug,
                "name": descriptor.name,
                "fields": fields,
            },
            headers={"User-Agent": USER_AGENT},
            timeout=self._retry.request_timeout,
            descriptor=descriptor,
            source=SOURCE,
        )
        if not data.get("name"):
            raise UpstreamError(
                ErrorKind.PARSE, "Invalid Raider.IO response: missing character name", descriptor=descriptor, source=SOURCE
            )
        return data

    async def character_profile(self, descriptor: CharacterDescriptor, fields: str) -> dict[str, Any]:
        return await with_retry(
            lambda: self._get_once(descriptor, fields),
            self._retry,
            label=f"{SOURCE} {descriptor.name}",
        )

    async def _outcome(self, descriptor: CharacterDescriptor, request: ProfileRequest[T]) -> FetchOutcome[T]:
        try:
            raw = await self.character_profile(descriptor, request.fields)
            return FetchOutcome(descriptor, value=request.parse(raw, descriptor))
        except UpstreamError as e:
            log.error(
                "Failed to fetch %s for %s-%s (%s): %s",
                request.name, descriptor.name, descriptor.realm_slug, descriptor.region, e,
            )
            return FetchOutcome(descriptor, error=e)
        except (KeyError, TypeError, ValueError) as e:
            log.error("Could not parse %s for %s: %s", request.name, descriptor.name, e)
            return FetchOutcome(
                descriptor, error=UpstreamError(ErrorKind.PARSE, str(e), descriptor=descriptor, source=SOURCE)
            )

    async def fetch_outcomes(
        self, descriptors: Iterable[CharacterDescriptor], request: ProfileRequest[T]
    ) -> list[FetchOutcome[T]]:
        """Fetch every descriptor concurrently; failures stay per character."""
        return list(await asyncio.gather(*(self._outcome(d, request) for d in descriptors)))

    async def fetch_characters(
        self, descriptors: Iterable[CharacterDescriptor], request: ProfileRequest[T]
    ) -> list[T]:
        outcomes = await self.fetch_outcomes(descriptors, request)
        return [o.value for o in outcomes if o.ok]

    # -----------------------------
    # Profile URLs
    # -----------------------------
    def profile_url(self, descriptor: CharacterDescriptor) -> str:
        return f"{self.SITE_URL}/characters/{descriptor.region}/{descriptor.realm_slug}/{descriptor.name}"

    def warcraftlogs_url(self, descriptor: CharacterDescriptor) -> str:
        return f"{self.WCL_URL}/character/{descriptor.region}/{descriptor.realm_slug}/{descriptor.name}"
