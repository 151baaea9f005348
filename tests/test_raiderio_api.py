import asyncio

import aiohttp
import pytest

from fakes import FakeResponse
from payloads import rio_profile, rio_run
from mplusbot.clients.http import RetryPolicy
from mplusbot.clients.raiderio_api import (
    BEST_RUNS,
    GEAR,
    RAID,
    RECENT_RUNS,
    RaiderIoClient,
    parse_run,
)
from mplusbot.domain.errors import ErrorKind
from mplusbot.domain.models import CharacterDescriptor

PROFILE = "raider.io/api/v1/characters/profile"

DAEMOURNE = CharacterDescriptor("Daemourne", "Thrall", "us")
JAINA = CharacterDescriptor("Jaina", "Area 52", "us")


@pytest.fixture
def client(session):
    return RaiderIoClient(session, retry=RetryPolicy(max_retries=3, base_delay=0))


async def test_fresh_fetch_of_one_character(session, client):
    session.on("GET", PROFILE, FakeResponse(payload=rio_profile(best_runs=[rio_run()])))

    views = await client.fetch_characters([DAEMOURNE], BEST_RUNS)

    assert len(views) == 1
    view = views[0]
    assert view.name == "Daemourne"
    assert view.class_name == "Druid"
    assert view.active_role == "HEALING"
    assert view.overall_mplus_score == 2850.5
    assert len(view.best_runs) == 1
    run = view.best_runs[0]
    assert run.is_timed
    assert run.dungeon_name == "The Dawnbreaker"
    assert run.keystone_run_id == 1234
    assert run.affixes == ("Tyrannical", "Xal'atath's Guile")


async def test_request_shape(session, client):
    session.on("GET", PROFILE, FakeResponse(payload=rio_profile("Jaina")))

    await client.character_profile(JAINA, BEST_RUNS.fields)

    call = session.calls[0]
    assert call.url == "https://raider.io/api/v1/characters/profile"
    assert call.params == {
        "region": "us",
        "realm": "area-52",
        "name": "Jaina",
        "fields": "mythic_plus_best_runs,mythic_plus_scores_by_season:current",
    }
    assert call.headers["User-Agent"].startswith("mplusbot/")


async def test_not_found_is_isolated_and_not_retried(session, client):
    session.on("GET", PROFILE, FakeResponse(payload=rio_profile(best_runs=[])), name="Daemourne")
    session.on("GET", PROFILE, FakeResponse(status=404, text="not found"), name="Jaina")

    outcomes = await client.fetch_outcomes([DAEMOURNE, JAINA], BEST_RUNS)

    assert [o.ok for o in outcomes] == [True, False]
    assert outcomes[1].error.kind is ErrorKind.NOT_FOUND
    assert outcomes[1].error.descriptor == JAINA
    assert sum(1 for c in session.calls if c.params["name"] == "Jaina") == 1
    assert [v.name for v in await client.fetch_characters([DAEMOURNE, JAINA], BEST_RUNS)] == ["Daemourne"]


@pytest.mark.parametrize("first", [FakeResponse(status=429), FakeResponse(status=502), aiohttp.ClientConnectionError("reset")])
async def test_transient_failures_are_retried(session, client, first):
    session.on("GET", PROFILE, first, FakeResponse(payload=rio_profile()))

    [outcome] = await client.fetch_outcomes([DAEMOURNE], BEST_RUNS)

    assert outcome.ok
    assert len(session.calls) == 2


async def test_server_errors_give_up_after_max_retries(session, client):
    session.on("GET", PROFILE, FakeResponse(status=500))

    [outcome] = await client.fetch_outcomes([DAEMOURNE], BEST_RUNS)

    assert outcome.error.kind is ErrorKind.HTTP
    assert outcome.error.status == 500
    assert len(session.calls) == 3


async def test_backoff_doubles(session, monkeypatch):
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    session.on("GET", PROFILE, FakeResponse(status=503))
    client = RaiderIoClient(session, retry=RetryPolicy(max_retries=3, base_delay=1.0))

    [outcome] = await client.fetch_outcomes([DAEMOURNE], BEST_RUNS)

    assert not outcome.ok
    assert delays == [1.0, 2.0]


@pytest.mark.parametrize(
    "result, kind",
    [
        (asyncio.TimeoutError(), ErrorKind.TIMEOUT),
        (FakeResponse(payload=ValueError("bad json")), ErrorKind.PARSE),
        (FakeResponse(payload=["not", "an", "object"]), ErrorKind.PARSE),
        (FakeResponse(payload={"class": "Mage"}), ErrorKind.PARSE),
    ],
)
async def test_terminal_failures(session, client, result, kind):
    session.on("GET", PROFILE, result)

    [outcome] = await client.fetch_outcomes([DAEMOURNE], BEST_RUNS)

    assert outcome.error.kind is kind
    assert len(session.calls) == 1


async def test_recent_runs_request(session, client):
    runs = [rio_run(level=10, upgrades=0), rio_run("Operation: Floodgate", 12, upgrades=1)]
    session.on("GET", PROFILE, FakeResponse(payload=rio_profile(recent_runs=runs, score=None)))

    [view] = await client.fetch_characters([DAEMOURNE], RECENT_RUNS)

    assert session.calls[0].params["fields"] == "mythic_plus_recent_runs"
    assert [r.mythic_level for r in view.recent_runs] == [10, 12]
    assert view.best_runs == []
    assert view.overall_mplus_score is None


async def test_gear_request(session, client):
    gear = {
        "item_level_equipped": 684.4,
        "items": {
            "head": {"item_id": 1, "name": "Crown", "item_level": 688, "item_quality": 4},
            "neck": {"item_id": 2, "name": "Chain", "item_level": 681},
        },
    }
    session.on("GET", PROFILE, FakeResponse(payload=rio_profile(gear=gear)))

    [view] = await client.fetch_characters([DAEMOURNE], GEAR)

    assert view.gear.average_item_level == 684.4
    assert view.gear.items["head"].quality_tier == 4
    assert view.gear.items["neck"].quality_tier is None
    assert view.thumbnail_url.endswith("daemourne.jpg")


async def test_raid_request(session, client):
    progression = {
        "manaforge-omega": {"summary": "5/8 M", "total_bosses": 8, "mythic_bosses_killed": 5},
        "liberation-of-undermine": {"total_bosses": 8, "heroic_bosses_killed": 8, "normal_bosses_killed": 8},
        "nerubar-palace": {"total_bosses": 8},
    }
    session.on("GET", PROFILE, FakeResponse(payload=rio_profile(raid_progression=progression)))

    [view] = await client.fetch_characters([DAEMOURNE], RAID)

    assert [(r.raid_name, r.summary) for r in view.raids] == [
        ("Manaforge Omega", "5/8 M"),
        ("Liberation Of Undermine", "8/8 H 8/8 N"),
    ]


def test_parse_run_handles_shapes():
    run = parse_run({**rio_run(run_id=None), "dungeon": {"name": "Halls of Atonement"}, "keystone_run_id": 77})
    assert run.dungeon_name == "Halls of Atonement"
    assert run.keystone_run_id == 77
    assert parse_run({"dungeon": "X", "mythic_level": 1, "completed_at": "2025-07-15T00:00:00Z"}) is None
    assert parse_run({"dungeon": "X"}) is None


def test_profile_urls(session):
    client = RaiderIoClient(session)
    assert client.profile_url(JAINA) == "https://raider.io/characters/us/area-52/Jaina"
    assert client.warcraftlogs_url(JAINA) == "https://www.warcraftlogs.com/character/us/area-52/Jaina"
