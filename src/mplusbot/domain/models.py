from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from ..utils.text import normalize_character_name, normalize_realm_slug
from .errors import UpstreamError
from .specs import Role

REGIONS: tuple[str, ...] = ("us", "eu", "kr", "tw", "cn")

T = TypeVar("T")


def parse_instant(value: Any) -> datetime:
    """ISO-8601 string, epoch milliseconds or datetime -> aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"not an instant: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class CharacterDescriptor:
    name: str
    realm: str
    region: str

    def __post_init__(self) -> None:
        name = normalize_character_name(self.name)
        if not name:
            raise ValueError(f"invalid character name: {self.name!r}")
        region = self.region.strip().lower()
        if region not in REGIONS:
            raise ValueError(f"invalid region {self.region!r} for {name}")
        if not self.realm.strip():
            raise ValueError(f"missing realm for {name}")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "region", region)
        object.__setattr__(self, "realm", self.realm.strip())

    @property
    def realm_slug(self) -> str:
        return normalize_realm_slug(self.realm)

    @property
    def key(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class Run:
    dungeon_name: str
    mythic_level: int
    completed_at: datetime
    duration_ms: int = 0
    num_keystone_upgrades: int = 0
    score: float = 0.0
    keystone_run_id: int | None = None
    spec_name: str | None = None
    spec_id: int | None = None
    affixes: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.mythic_level < 2:
            raise ValueError(f"mythic level must be >= 2, got {self.mythic_level}")
        if self.duration_ms < 0:
            raise ValueError(f"negative duration: {self.duration_ms}")
        if not 0 <= self.num_keystone_upgrades <= 3:
            raise ValueError(f"keystone upgrades out of range: {self.num_keystone_upgrades}")
        if self.score < 0:
            raise ValueError(f"negative score: {self.score}")
        object.__setattr__(self, "completed_at", parse_instant(self.completed_at))
        object.__setattr__(self, "affixes", tuple(self.affixes))

    @property
    def is_timed(self) -> bool:
        return self.num_keystone_upgrades > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "dungeon_name": self.dungeon_name,
            "mythic_level": self.mythic_level,
            "completed_at": self.completed_at.isoformat(),
            "duration_ms": self.duration_ms,
            "num_keystone_upgrades": self.num_keystone_upgrades,
            "score": self.score,
            "keystone_run_id": self.keystone_run_id,
            "spec_name": self.spec_name,
            "spec_id": self.spec_id,
            "affixes": list(self.affixes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Run:
        return cls(
            dungeon_name=data["dungeon_name"],
            mythic_level=int(data["mythic_level"]),
            completed_at=parse_instant(data["completed_at"]),
            duration_ms=int(data.get("duration_ms") or 0),
            num_keystone_upgrades=int(data.get("num_keystone_upgrades") or 0),
            score=float(data.get("score") or 0.0),
            keystone_run_id=data.get("keystone_run_id"),
            spec_name=data.get("spec_name"),
            spec_id=data.get("spec_id"),
            affixes=tuple(data.get("affixes") or ()),
        )


@dataclass(frozen=True)
class GearItem:
    name: str
    item_level: int
    quality_tier: int | None = None
    item_id: int | None = None


@dataclass(frozen=True)
class GearSet:
    average_item_level: float
    items: dict[str, GearItem] = field(default_factory=dict)


@dataclass(frozen=True)
class RaidProgress:
    raid_name: str
    summary: str


@dataclass(frozen=True)
class CharacterView:
    descriptor: CharacterDescriptor
    class_name: str | None = None
    active_role: Role | None = None
    best_runs: list[Run] = field(default_factory=list)
    recent_runs: list[Run] = field(default_factory=list)
    spec_runs: list[Run] = field(default_factory=list)
    runs_by_spec: dict[str, list[Run]] = field(default_factory=dict)
    available_specs: list[str] = field(default_factory=list)
    overall_mplus_score: float | None = None
    mythic_rating: float | None = None
    gear: GearSet | None = None
    raids: list[RaidProgress] = field(default_factory=list)
    thumbnail_url: str | None = None

    @property
    def name(self) -> str:
        return self.descriptor.name


@dataclass(frozen=True)
class CharacterLinks:
    descriptor: CharacterDescriptor
    raiderio_url: str
    warcraftlogs_url: str
    armory_url: str


@dataclass(frozen=True)
class SeasonProfile:
    character_name: str
    season_id: int
    mythic_rating: float | None = None
    best_runs: list[Run] = field(default_factory=list)


@dataclass(frozen=True)
class SpecStats:
    runs: list[Run]
    total: int
    avg_level: float
    highest: int
    dungeons: list[str]


@dataclass(frozen=True)
class SpecSummary:
    total_specs: int
    total_runs: int
    specs: list[str]


@dataclass(frozen=True)
class SpecComparison:
    character_name: str
    specs: dict[str, SpecStats] = field(default_factory=dict)
    summary: SpecSummary | str = ""


@dataclass(frozen=True)
class FetchOutcome(Generic[T]):
    descriptor: CharacterDescriptor
    value: T | None = None
    error: UpstreamError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None
