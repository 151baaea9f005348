from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable

from ..domain.models import CharacterView, Run
from ..utils.weekly import WeeklyResetClock

log = logging.getLogger(__name__)

FILE_PREFIX = "weekly-mplus-"
FILE_SUFFIX = ".csv"

HEADER: tuple[str, ...] = (
    "Timestamp",
    "Character_Name",
    "Character_Class",
    "Character_Role",
    "Overall_Score",
    "Highest_Key_Level",
    "Total_Weekly_Runs",
    "Dungeon_Name",
    "Key_Level",
    "Run_Score",
    "Timed_Status",
    "Keystone_Upgrades",
    "Completion_Date",
    "Weekly_Reset_Date",
)

Signature = tuple[str, str, str, str]


@dataclass(frozen=True)
class LogResult:
    path: Path
    written: int = 0
    skipped: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class LogStats:
    total_files: int
    current_file: str
    oldest: str | None
    newest: str | None
    current_size: int = 0
    current_rows: int = 0
    files: list[str] = field(default_factory=list)


def _fmt(value: object) -> str:
    return "" if value is None else str(value)


def row_signature(row: dict[str, str] | list[str]) -> Signature:
    if isinstance(row, dict):
        return (
            row.get("Character_Name", ""),
            row.get("Dungeon_Name", ""),
            row.get("Key_Level", ""),
            row.get("Completion_Date", ""),
        )
    return (row[1], row[7], row[8], row[12])


class WeeklyCsvLog:
    """Append-only CSV backup of the roster's Mythic+ runs, one file per reset week."""

    def __init__(self, directory: str | Path, clock: WeeklyResetClock | None = None):
        self.directory = Path(directory)
        self._clock = clock or WeeklyResetClock()
        self._current_reset = self._clock.last_reset()

    @property
    def current_reset(self) -> datetime:
        return self._current_reset

    @property
    def reset_date(self) -> str:
        return self._current_reset.date().isoformat()

    @property
    def current_path(self) -> Path:
        return self.directory / f"{FILE_PREFIX}{self.reset_date}{FILE_SUFFIX}"

    def _rotate_if_needed(self) -> None:
        latest = self._clock.last_reset()
        if latest != self._current_reset:
            self._current_reset = latest
            log.info("Weekly CSV file rotated for new reset: %s", self.current_path.name)

    def force_rotation(self) -> None:
        old = self.current_path.name
        self._current_reset = self._clock.last_reset()
        log.info("Forced CSV rotation %s -> %s", old, self.current_path.name)

    def _ensure_header(self) -> None:
        path = self.current_path
        if path.exists() and path.stat().st_size > 0:
            return
        self.directory.mkdir(parents=True, exist_ok=True)
        with path.open("w", newline="", encoding="utf-8") as f:
            csv.writer(f, lineterminator="\n").writerow(HEADER)
        log.info("Created new weekly CSV file %s", path.name)

    def _existing_signatures(self) -> set[Signature]:
        with self.current_path.open("r", newline="", encoding="utf-8") as f:
            return {row_signature(row) for row in csv.DictReader(f)}

    def _rows_for(self, view: CharacterView, timestamp: str) -> list[list[str]]:
        weekly: list[Run] = [r for r in view.recent_runs if r.completed_at >= self._current_reset]
        base = [
            timestamp,
            view.name,
            _fmt(view.class_name),
            _fmt(view.active_role),
            _fmt(view.overall_mplus_score),
        ]
        if not weekly:
            return [base + ["0", "0", "", "", "", "", "", "", self.reset_date]]

        highest = str(max(r.mythic_level for r in weekly))
        total = str(len(weekly))
        return [
            base
            + [
                highest,
                total,
                run.dungeon_name,
                str(run.mythic_level),
                _fmt(run.score),
                "Timed" if run.is_timed else "Untimed",
                str(run.num_keystone_upgrades),
                run.completed_at.date().isoformat(),
                self.reset_date,
            ]
            for run in weekly
        ]

    def log_week(self, views: Iterable[CharacterView]) -> LogResult:
        """Append this week's runs for ``views``; rows already in the file are skipped.

        Never raises: a CSV problem is logged and reported in the result.
        """
        self._rotate_if_needed()
        path = self.current_path
        try:
            self._ensure_header()
            existing = self._existing_signatures()
            timestamp = self._clock.now().isoformat()

            new_rows: list[list[str]] = []
            skipped = 0
            for view in views:
                for row in self._rows_for(view, timestamp):
                    sig = row_signature(row)
                    if sig in existing:
                        skipped += 1
                        continue
                    existing.add(sig)
                    new_rows.append(row)

            if not new_rows:
                log.info("No new M+ data to add to %s (%d duplicates)", path.name, skipped)
                return LogResult(path=path, skipped=skipped)

            buf = io.StringIO()
            csv.writer(buf, lineterminator="\n").writerows(new_rows)
            with path.open("a", newline="", encoding="utf-8") as f:
                f.write(buf.getvalue())

            log.info("Logged %d new M+ rows to %s (%d duplicates skipped)", len(new_rows), path.name, skipped)
            return LogResult(path=path, written=len(new_rows), skipped=skipped)
        except (OSError, csv.Error) as e:
            log.error("Failed to log weekly M+ data to %s: %s", path, e)
            return LogResult(path=path, error=str(e))

    def _files(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            p.name
            for p in self.directory.iterdir()
            if p.name.startswith(FILE_PREFIX) and p.name.endswith(FILE_SUFFIX)
        )

    def stats(self) -> LogStats:
        self._rotate_if_needed()
        files = self._files()
        path = self.current_path
        size = rows = 0
        if path.exists():
            size = path.stat().st_size
            with path.open("r", newline="", encoding="utf-8") as f:
                rows = sum(1 for _ in csv.DictReader(f))
        return LogStats(
            total_files=len(files),
            current_file=path.name,
            oldest=files[0] if files else None,
            newest=files[-1] if files else None,
            current_size=size,
            current_rows=rows,
            files=files,
        )

    def cleanup(self, weeks_to_keep: int = 12) -> int:
        """Delete all but the newest ``weeks_to_keep`` weekly files."""
        files = self._files()
        if len(files) <= weeks_to_keep:
            return 0
        deleted = 0
        for name in files[: len(files) - weeks_to_keep]:
            try:
                (self.directory / name).unlink()
                deleted += 1
            except OSError as e:
                log.warning("Failed to delete old CSV file %s: %s", name, e)
        if deleted:
            log.info("Cleaned up %d old CSV files (keeping %d weeks)", deleted, weeks_to_keep)
        return deleted
