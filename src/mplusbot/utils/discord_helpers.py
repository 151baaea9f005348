from __future__ import annotations

import discord

from ..domain.models import Run

_CLASS_RGB: dict[str, tuple[int, int, int]] = {
    "warrior": (198, 155, 109),
    "paladin": (244, 140, 186),
    "hunter": (170, 211, 114),
    "rogue": (255, 244, 104),
    "priest": (255, 255, 255),
    "death knight": (196, 30, 58),
    "shaman": (0, 112, 222),
    "mage": (63, 199, 235),
    "warlock": (135, 136, 238),
    "monk": (0, 255, 152),
    "druid": (255, 125, 10),
    "demon hunter": (163, 48, 201),
    "evoker": (51, 147, 127),
}

ROLE_ICONS = {"TANK": "🛡️", "HEALING": "💚", "DPS": "⚔️"}

# Embeds allow 25 fields of 1024 chars
MAX_FIELDS = 25
MAX_FIELD_LEN = 1024


def class_color(class_name: str | None) -> discord.Color:
    rgb = _CLASS_RGB.get((class_name or "").strip().lower())
    return discord.Color.from_rgb(*rgb) if rgb else discord.Color.blurple()


def run_line(run: Run) -> str:
    timed = "✅" if run.is_timed else "⏱️"
    upgrades = "+" * run.num_keystone_upgrades
    spec = f" ({run.spec_name})" if run.spec_name else ""
    return f"+{run.mythic_level}{upgrades} {timed} {run.dungeon_name}{spec}"


def clip(text: str, limit: int = MAX_FIELD_LEN) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


def season_label(season_name: str) -> str:
    """``season-tww-3`` -> ``TWW Season 3``."""
    parts = season_name.split("-")
    if len(parts) == 3 and parts[0] == "season":
        return f"{parts[1].upper()} Season {parts[2]}"
    return season_name


def dungeon_coverage(runs: list[Run], dungeons: tuple[str, ...]) -> str:
    if not dungeons:
        return ""
    timed = {r.dungeon_name.lower() for r in runs if r.is_timed}
    missing = [d for d in dungeons if d.lower() not in timed]
    line = f"Timed {len(dungeons) - len(missing)}/{len(dungeons)}"
    return f"{line} · missing: {', '.join(missing)}" if missing else line
