from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .domain.errors import ConfigError
from .domain.models import REGIONS, CharacterDescriptor

log = logging.getLogger(__name__)

SEASON_NAME_RE = re.compile(r"^season-[a-z]+-\d+$")

DEFAULT_REGION = "us"
DEFAULT_REALM = "thrall"
DEFAULT_SEASON_ID = 15
DEFAULT_SEASON_NAME = "season-tww-3"
DEFAULT_DUNGEONS: tuple[str, ...] = (
    "Ara-Kara, City of Echoes",
    "Eco-Dome Al'dani",
    "Halls of Atonement",
    "The Dawnbreaker",
    "Priory of the Sacred Flame",
    "Operation: Floodgate",
    "Tazavesh: So'leah's Gambit",
    "Tazavesh: Streets of Wonder",
)


def _load_env() -> None:
    """Load .env from repo root if present; fallback to default behaviour."""
    repo_root = Path(__file__).resolve().parents[2]
    env_path = repo_root / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)
    else:
        # Useful when running in environments where variables are injected
        load_dotenv(override=False)


_load_env()


@dataclass(frozen=True)
class Settings:
    characters: tuple[CharacterDescriptor, ...] = ()
    current_season_id: int = DEFAULT_SEASON_ID
    current_season_name: str = DEFAULT_SEASON_NAME
    default_region: str = DEFAULT_REGION
    default_realm: str = DEFAULT_REALM
    active_dungeons: tuple[str, ...] = DEFAULT_DUNGEONS
    blizzard_client_id: str | None = None
    blizzard_client_secret: str | None = None
    discord_token: str = ""
    discord_guild_id: int | None = None
    csv_log_dir: Path = field(default=Path("csv_logs"))
    log_file: str | None = "logs/mplusbot.log"
    log_level: str = "INFO"
    wow_locale: str = "en_US"

    def descriptor_for(self, name: str) -> CharacterDescriptor:
        """Roster entry for ``name``, or a descriptor on the default realm/region."""
        wanted = name.strip().lower()
        for d in self.characters:
            if d.name.lower() == wanted:
                return d
        return CharacterDescriptor(name=name, realm=self.default_realm, region=self.default_region)


def parse_descriptors(raw: Any, *, default_realm: str, default_region: str) -> tuple[CharacterDescriptor, ...]:
    """Roster entries are either a bare name or ``{name, realm?, region?}``."""
    if raw is None:
        raise ConfigError("Missing 'characters' in configuration")
    if not isinstance(raw, list):
        raise ConfigError("Characters configuration must be an array")

    descriptors: list[CharacterDescriptor] = []
    for entry in raw:
        try:
            if isinstance(entry, str):
                descriptors.append(CharacterDescriptor(entry, default_realm, default_region))
            elif isinstance(entry, dict) and entry.get("name"):
                descriptors.append(
                    CharacterDescriptor(
                        str(entry["name"]),
                        str(entry.get("realm") or default_realm),
                        str(entry.get("region") or default_region),
                    )
                )
            else:
                raise ConfigError(f"Invalid character entry: {entry!r}")
        except ValueError as e:
            raise ConfigError(str(e)) from e

    if not descriptors:
        log.warning("No characters configured")
    return tuple(descriptors)


def load_config_file(path: str | Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Unable to read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def settings_from_dict(data: dict[str, Any]) -> Settings:
    region = str(data.get("defaultRegion") or DEFAULT_REGION).lower()
    if region not in REGIONS:
        raise ConfigError(f"defaultRegion must be one of {', '.join(REGIONS)}")
    realm = str(data.get("defaultRealm") or DEFAULT_REALM)

    season_name = str(data.get("currentSeasonName") or DEFAULT_SEASON_NAME)
    if not SEASON_NAME_RE.match(season_name):
        raise ConfigError(f"currentSeasonName {season_name!r} does not look like 'season-xxx-N'")
    try:
        season_id = int(data.get("currentSeasonId") or DEFAULT_SEASON_ID)
    except (TypeError, ValueError) as e:
        raise ConfigError("currentSeasonId must be an integer") from e

    dungeons = data.get("activeDungeons")
    guild_id = os.getenv("DISCORD_GUILD_ID")

    return Settings(
        characters=parse_descriptors(data.get("characters"), default_realm=realm, default_region=region),
        current_season_id=season_id,
        current_season_name=season_name,
        default_region=region,
        default_realm=realm,
        active_dungeons=tuple(dungeons) if isinstance(dungeons, list) else DEFAULT_DUNGEONS,
        blizzard_client_id=data.get("blizzardClientId") or os.getenv("BLIZZARD_CLIENT_ID") or None,
        blizzard_client_secret=data.get("blizzardClientSecret") or os.getenv("BLIZZARD_CLIENT_SECRET") or None,
        discord_token=os.getenv("DISCORD_TOKEN", ""),
        discord_guild_id=int(guild_id) if guild_id else None,
        csv_log_dir=Path(os.getenv("CSV_LOG_DIR", "csv_logs")),
        log_file=os.getenv("LOG_FILE", "logs/mplusbot.log") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        wow_locale=os.getenv("WOW_LOCALE", "en_US"),
    )


def get_settings(config_path: str | Path | None = None, *, require_discord: bool = False) -> Settings:
    path = config_path or os.getenv("MPLUSBOT_CONFIG", "config.json")
    settings = settings_from_dict(load_config_file(path))

    if require_discord and not settings.discord_token:
        raise ConfigError("Missing environment variable: DISCORD_TOKEN")
    if not (settings.blizzard_client_id and settings.blizzard_client_secret):
        log.info("Blizzard credentials not set; spec-specific data will be empty")
    return settings
