import asyncio
from datetime import datetime

import pytest

from fakes import FakeResponse, FixedNow
from payloads import blizzard_profile, blizzard_run, rio_profile, rio_run, token
from mplusbot.clients.blizzard_api import BlizzardApiClient
from mplusbot.clients.blizzard_oauth import BlizzardOAuthClient
from mplusbot.clients.combined import CombinedWowClient
from mplusbot.clients.http import RetryPolicy
from mplusbot.clients.raiderio_api import RaiderIoClient
from mplusbot.config import Settings
from mplusbot.domain.models import CharacterDescriptor
from mplusbot.services.character_service import CharacterDataService
from mplusbot.services.weekly_csv_log import WeeklyCsvLog
from mplusbot.utils.cache import CharacterCache
from mplusbot.utils.weekly import WeeklyResetClock

RIO = "raider.io/api/v1/characters/profile"

DAEMOURNE = CharacterDescriptor("Daemourne", "Thrall", "us")
JAINA = CharacterDescriptor("Jaina", "Thrall", "us")


def _service(session, clock, roster=(DAEMOURNE,), csv_log=None, blizzard_credentials=(None, None)):
    settings = Settings(characters=tuple(roster))
    retry = RetryPolicy(max_retries=3, base_delay=0)
    raiderio = RaiderIoClient(session, retry=retry)
    oauth = BlizzardOAuthClient(session, *blizzard_credentials, clock=clock)
    blizzard = BlizzardApiClient(session, oauth, retry=retry)
    combined = CombinedWowClient(raiderio, blizzard, season_id=15, resolve=settings.descriptor_for)
    return CharacterDataService(settings, raiderio, blizzard, combined, CharacterCache(clock=clock), csv_log)


async def test_get_best_mplus_fresh(session, clock):
    session.on("GET", RIO, FakeResponse(payload=rio_profile(best_runs=[rio_run()])))
    service = _service(session, clock)

    [view] = await service.get_best_mplus()

    assert view.name == "Daemourne"
    assert len(view.best_runs) == 1
    assert view.best_runs[0].is_timed
    assert view.overall_mplus_score == 2850.5


async def test_second_call_is_served_from_cache(session, clock):
    session.on("GET", RIO, FakeResponse(payload=rio_profile(best_runs=[rio_run()])))
    service = _service(session, clock)

    first = await service.get_best_mplus()
    clock.advance(60)
    assert await service.get_best_mplus() is first
    assert len(session.calls) == 1

    await service.get_best_mplus(force_refresh=True)
    assert len(session.calls) == 2


async def test_stale_value_served_when_upstream_fails(session, clock):
    session.on("GET", RIO, FakeResponse(payload=rio_profile(best_runs=[rio_run()])))
    service = _service(session, clock)
    fresh = await service.get_best_mplus()
    before = service.cache_status()["stats"]

    session.routes.clear()
    session.on("GET", RIO, FakeResponse(status=500))
    clock.advance(31 * 60)
    stale = await service.get_best_mplus()

    after = service.cache_status()["stats"]
    assert stale == fresh
    assert session.count("GET", RIO) == 4
    assert after.misses - before.misses == 1
    assert after.stale_reads - before.stale_reads == 1
    assert after.sets == before.sets


async def test_failure_without_cache_returns_empty(session, clock):
    session.on("GET", RIO, FakeResponse(status=404))
    service = _service(session, clock)

    assert await service.get_raid() == []
    assert service.cache_status()["stats"].sets == 0


async def test_partial_failure_returns_survivors(session, clock):
    session.on("GET", RIO, FakeResponse(payload=rio_profile(gear={"item_level_equipped": 680})), name="Daemourne")
    session.on("GET", RIO, FakeResponse(status=404), name="Jaina")
    service = _service(session, clock, roster=(DAEMOURNE, JAINA))

    views = await service.get_gear()

    assert [v.name for v in views] == ["Daemourne"]
    assert views[0].gear.average_item_level == 680.0


async def test_cancelled_fetch_returns_fallback(session, clock, monkeypatch):
    service = _service(session, clock)

    async def cancelled(*args, **kwargs):
        raise asyncio.CancelledError

    monkeypatch.setattr(service._raiderio, "fetch_outcomes", cancelled)
    assert await service.get_raid() == []


async def test_empty_roster(session, clock):
    service = _service(session, clock, roster=())
    assert await service.get_best_mplus() == []
    assert service.get_links() == []
    assert session.calls == []


async def test_recent_mplus_is_logged_to_csv(session, clock, tmp_path):
    now = FixedNow(datetime.fromisoformat("2025-07-17T12:00:00+00:00"))
    csv_log = WeeklyCsvLog(tmp_path, WeeklyResetClock(now=now))
    runs = [rio_run(completed_at="2025-07-16T02:00:00.000Z"), rio_run("Halls of Atonement", 11, "2025-07-10T02:00:00Z")]
    session.on("GET", RIO, FakeResponse(payload=rio_profile(recent_runs=runs)))
    service = _service(session, clock, csv_log=csv_log)

    [view] = await service.get_recent_mplus()

    assert len(view.recent_runs) == 2
    assert csv_log.stats().current_rows == 1

    await service.get_recent_mplus()
    assert csv_log.stats().current_rows == 1


async def test_recent_mplus_survives_csv_failure(session, clock, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    session.on("GET", RIO, FakeResponse(payload=rio_profile(recent_runs=[rio_run()])))
    service = _service(session, clock, csv_log=WeeklyCsvLog(blocker))

    assert len(await service.get_recent_mplus()) == 1


def test_links(session, clock):
    service = _service(session, clock, roster=(DAEMOURNE, CharacterDescriptor("Jaina", "Area 52", "eu")))

    links = service.get_links()

    assert [l.raiderio_url for l in links] == [
        "https://raider.io/characters/us/thrall/Daemourne",
        "https://raider.io/characters/eu/area-52/Jaina",
    ]
    assert links[1].warcraftlogs_url == "https://www.warcraftlogs.com/character/eu/area-52/Jaina"
    assert links[1].armory_url == "https://worldofwarcraft.blizzard.com/en-us/character/eu/area-52/jaina"
    assert service.get_links() is links
    assert service.cache_status()["stats"].hits == 1


async def test_invalidate(session, clock):
    session.on("GET", RIO, FakeResponse(payload=rio_profile(best_runs=[])))
    service = _service(session, clock)
    await service.get_best_mplus()
    service.get_links()

    service.invalidate("character")
    assert service.cache_status()["timestamps"] is None
    assert service.cache_status()["stats"].size == 1

    service.invalidate()
    assert service.cache_status()["stats"].size == 0


async def test_spec_queries_without_blizzard(session, clock):
    service = _service(session, clock)
    assert await service.specific_runs("Daemourne", "Blood") == []
    assert await service.available_specs("Daemourne") == []
    assert (await service.compare_specs("Daemourne")).summary == "Blizzard API not configured"


async def test_malformed_blizzard_season_keeps_raiderio_views(session, clock):
    session.on("POST", "oauth.battle.net/token", FakeResponse(payload=token()))
    jaina_run = blizzard_run("The Dawnbreaker", 12, "Frost", name="Jaina")
    jaina_run["mythic_rating"] = 250.0
    session.on("GET", "/daemourne/mythic-keystone-profile", FakeResponse(payload=blizzard_profile(
        runs=[blizzard_run("The Dawnbreaker", 15, "Restoration")],
    )))
    session.on("GET", "/jaina/mythic-keystone-profile", FakeResponse(payload=blizzard_profile("Jaina", [jaina_run])))
    session.on("GET", RIO, FakeResponse(payload=rio_profile(best_runs=[rio_run()])), name="Daemourne")
    session.on("GET", RIO, FakeResponse(payload=rio_profile("Jaina", class_name="Mage", best_runs=[rio_run()])), name="Jaina")
    service = _service(session, clock, roster=(DAEMOURNE, JAINA), blizzard_credentials=("id", "secret"))

    views = await service.get_best_mplus()

    assert [v.name for v in views] == ["Daemourne", "Jaina"]
    assert service.cache_status()["stats"].sets == 1


async def test_refresh_all_bypasses_cache(session, clock, tmp_path):
    now = FixedNow(datetime.fromisoformat("2025-07-17T12:00:00+00:00"))
    csv_log = WeeklyCsvLog(tmp_path, WeeklyResetClock(now=now))
    profile = rio_profile(best_runs=[rio_run()], recent_runs=[rio_run(completed_at="2025-07-16T02:00:00.000Z")])
    session.on("GET", RIO, FakeResponse(payload=profile))
    service = _service(session, clock, csv_log=csv_log)
    await service.get_best_mplus()
    await service.get_recent_mplus()
    assert session.count("GET", RIO) == 2

    counts = await service.refresh_all()

    assert counts == {"character": 1, "mplus": 1}
    assert session.count("GET", RIO) == 4
    assert csv_log.stats().current_rows == 1
