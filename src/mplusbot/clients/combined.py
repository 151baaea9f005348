from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections import Counter
from typing import Callable, Iterable, Sequence

from ..domain.errors import BlizzardAuthError, UpstreamError
from ..domain.models import (
    CharacterDescriptor,
    CharacterView,
    FetchOutcome,
    Run,
    SeasonProfile,
    SpecComparison,
    SpecStats,
    SpecSummary,
)
from ..domain.specs import Role, candidate_roles, role_for
from .blizzard_api import BlizzardApiClient
from .raiderio_api import BEST_RUNS, RaiderIoClient

log = logging.getLogger(__name__)

UNKNOWN_SPEC = "Unknown"


def group_runs_by_spec(runs: Iterable[Run]) -> dict[str, list[Run]]:
    grouped: dict[str, list[Run]] = {}
    for run in runs:
        grouped.setdefault(run.spec_name or UNKNOWN_SPEC, []).append(run)
    return grouped


def observed_specs(runs: Iterable[Run]) -> list[str]:
    seen: dict[str, None] = {}
    for run in runs:
        if run.spec_name:
            seen.setdefault(run.spec_name, None)
    return list(seen)


def filter_runs_by_spec(runs: Iterable[Run], spec_name: str) -> list[Run]:
    wanted = spec_name.strip().lower()
    return [r for r in runs if r.spec_name and r.spec_name.lower() == wanted]


def merge_character(view: CharacterView, profile: SeasonProfile | None) -> CharacterView:
    """Blizzard contributes the spec-tagged runs; everything else stays Raider.IO's."""
    if profile is None:
        return view
    return dataclasses.replace(
        view,
        spec_runs=list(profile.best_runs),
        runs_by_spec=group_runs_by_spec(profile.best_runs),
        available_specs=observed_specs(profile.best_runs),
        mythic_rating=profile.mythic_rating,
    )


class CombinedWowClient:
    """Raider.IO for scores and best runs, Blizzard for which spec ran what."""

    def __init__(
        self,
        raiderio: RaiderIoClient,
        blizzard: BlizzardApiClient,
        *,
        season_id: int,
        resolve: Callable[[str], CharacterDescriptor],
    ):
        self._raiderio = raiderio
        self._blizzard = blizzard
        self.season_id = season_id
        self._resolve = resolve

    @property
    def blizzard_configured(self) -> bool:
        return self._blizzard.is_configured

    async def enhanced_outcomes(self, descriptors: Sequence[CharacterDescriptor]) -> list[FetchOutcome[CharacterView]]:
        log.info(
            "Fetching enhanced character data for %d characters (blizzard=%s)",
            len(descriptors), self.blizzard_configured,
        )
        rio, blizzard = await asyncio.gather(
            self._raiderio.fetch_outcomes(descriptors, BEST_RUNS),
            self._blizzard.fetch_season_profiles(descriptors, self.season_id),
        )
        profiles: dict[str, SeasonProfile] = {}
        for outcome in blizzard:
            if outcome.ok and outcome.value is not None:
                profiles[outcome.value.character_name.lower()] = outcome.value

        merged: list[FetchOutcome[CharacterView]] = []
        for outcome in rio:
            if outcome.ok and outcome.value is not None:
                view = merge_character(outcome.value, profiles.get(outcome.value.name.lower()))
                merged.append(dataclasses.replace(outcome, value=view))
            else:
                merged.append(outcome)

        log.info(
            "Enhanced character data fetch complete: %d ok, %d with spec data",
            sum(1 for o in merged if o.ok), sum(1 for o in merged if o.ok and o.value and o.value.spec_runs),
        )
        return merged

    async def enhanced_view(self, descriptors: Sequence[CharacterDescriptor]) -> list[CharacterView]:
        return [o.value for o in await self.enhanced_outcomes(descriptors) if o.ok and o.value is not None]

    async def _season_profile(self, character_name: str) -> SeasonProfile | None:
        if not self.blizzard_configured:
            log.warning("Blizzard API not configured, cannot fetch spec-specific runs")
            return None
        descriptor = self._resolve(character_name)
        try:
            return await self._blizzard.mythic_keystone_profile(descriptor, self.season_id)
        except (UpstreamError, BlizzardAuthError) as e:
            log.error("Failed to fetch spec-specific runs for %s: %s", character_name, e)
            return None

    async def specific_runs(self, character_name: str, spec_name: str | None = None) -> list[Run]:
        profile = await self._season_profile(character_name)
        if profile is None:
            return []
        runs = [r for r in profile.best_runs if r.spec_name]
        if spec_name:
            return filter_runs_by_spec(runs, spec_name)
        return runs

    async def available_specs(self, character_name: str) -> list[str]:
        profile = await self._season_profile(character_name)
        return observed_specs(profile.best_runs) if profile else []

    async def compare_specs(self, character_name: str) -> SpecComparison:
        if not self.blizzard_configured:
            return SpecComparison(character_name, summary="Blizzard API not configured")
        profile = await self._season_profile(character_name)
        if profile is None:
            return SpecComparison(character_name, summary="No data available")

        specs: dict[str, SpecStats] = {}
        for spec, runs in group_runs_by_spec(profile.best_runs).items():
            levels = [r.mythic_level for r in runs]
            specs[spec] = SpecStats(
                runs=runs,
                total=len(runs),
                avg_level=sum(levels) / len(levels),
                highest=max(levels),
                dungeons=list(dict.fromkeys(r.dungeon_name for r in runs)),
            )
        return SpecComparison(
            character_name,
            specs=specs,
            summary=SpecSummary(total_specs=len(specs), total_runs=len(profile.best_runs), specs=list(specs)),
        )

    async def alternate_spec_runs(self, character_name: str, main_spec: str | None = None) -> list[Run]:
        """Runs done on anything but the main spec (most played spec when not given)."""
        runs = await self.specific_runs(character_name)
        if not runs:
            return []
        if main_spec is None:
            main_spec = Counter(r.spec_name for r in runs).most_common(1)[0][0]
        wanted = (main_spec or "").lower()
        return [r for r in runs if r.spec_name and r.spec_name.lower() != wanted]

    async def runs_by_role(self, character_name: str, role: Role, class_name: str | None = None) -> list[Run]:
        runs = await self.specific_runs(character_name)
        if class_name:
            return [r for r in runs if role_for(r.spec_name, class_name) == role]
        return [r for r in runs if role in candidate_roles(r.spec_name)]
