"""
Data recording: TrialHistory, non-trial records, CsvWriter, write_manifest,
and the experiment log file.
"""
from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator

import pandas as pd
from psychopy import logging

from apathy.steps import TaskPermutation
from apathy.tapping import TapTrialResult

if TYPE_CHECKING:
    from apathy.settings import Settings


@dataclass(frozen=True)
class AcceptRecord:
    task: str
    accepted: bool
    permutation: TaskPermutation


@dataclass(frozen=True)
class SurveyRecord:
    task: str
    answers: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class MessageRecord:
    task: str
    message: str


# One flat row per record; survey answers become one column per question
HISTORY_COLUMNS: list[str] = [
    "trial_index", "record", "task", "block_type", "tap_count", "start_time_ms",
    "end_time_ms", "level", "bound_lower", "bound_upper", "key_tapped_early",
    "keys_released_early", "success", "reward", "skip", "accepted", "difficulty",
    "reward_tier", "original_bound_lower", "original_bound_upper", "delay_min",
    "delay_max", "message",
]


class TrialHistory:
    """Ordered, append-only record of everything the participant did."""

    def __init__(self) -> None:
        self._records: list[object] = []

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[object]:
        return iter(self._records)

    def append(self, record: object) -> int:
        """Append a record and return its trial_index."""
        self._records.append(record)
        return len(self._records) - 1

    def last(self, n: int = 1, task: str | None = None) -> list[object]:
        records = [r for r in self._records if task is None or r.task == task]
        return records[-n:] if n > 0 else []

    def tap_results(self, task: str | None = None) -> list[TapTrialResult]:
        return [
            r for r in self._records
            if isinstance(r, TapTrialResult) and (task is None or r.task == task)
        ]

    def rows(self) -> list[dict[str, Any]]:
        return [_flatten(i, r) for i, r in enumerate(self._records)]

    def to_dataframe(self) -> pd.DataFrame:
        rows = self.rows()
        extra = sorted({k for row in rows for k in row} - set(HISTORY_COLUMNS))
        return pd.DataFrame(rows, columns=HISTORY_COLUMNS + extra)


def _flatten(index: int, record: object) -> dict[str, Any]:
    row: dict[str, Any] = {"trial_index": index, "record": type(record).__name__, "task": record.task}
    if isinstance(record, TapTrialResult):
        row.update(
            block_type=record.block_type,
            tap_count=record.tap_count,
            start_time_ms=record.start_time_ms,
            end_time_ms=record.end_time_ms,
            level=record.level,
            bound_lower=record.bounds[0],
            bound_upper=record.bounds[1],
            key_tapped_early=int(record.key_tapped_early),
            keys_released_early=int(record.keys_released_early),
            success=int(record.success),
            reward=record.reward,
            skip=int(record.skip),
        )
    elif isinstance(record, AcceptRecord):
        p = record.permutation
        row.update(
            block_type=p.block_type,
            accepted=int(record.accepted),
            difficulty=p.difficulty,
            reward_tier=p.reward_tier,
            reward=p.reward,
            skip=int(p.skip),
            bound_lower=p.bounds[0],
            bound_upper=p.bounds[1],
            original_bound_lower=p.original_bounds[0],
            original_bound_upper=p.original_bounds[1],
            delay_min=p.delay[0],
            delay_max=p.delay[1],
        )
    elif isinstance(record, SurveyRecord):
        row.update(record.answers)
    elif isinstance(record, MessageRecord):
        row["message"] = record.message
    return row


class CsvWriter:
    def __init__(self, path: Path, columns: list[str]) -> None:
        self._file = open(path, "w", newline="")
        self._writer = csv.DictWriter(self._file, fieldnames=columns, restval="")
        self._writer.writeheader()
        self._columns = columns

    def append(self, row: dict[str, Any]) -> None:
        self._writer.writerow({k: row.get(k, "") for k in self._columns})
        self._file.flush()

    def close(self) -> None:
        self._file.close()


def write_history_csv(path: Path, history: TrialHistory) -> None:
    rows = history.rows()
    extra = sorted({k for row in rows for k in row} - set(HISTORY_COLUMNS))
    writer = CsvWriter(path, HISTORY_COLUMNS + extra)
    try:
        for row in rows:
            writer.append(row)
    finally:
        writer.close()


def write_manifest(
    run_dir: Path,
    settings: "Settings",
    state: dict[str, Any],
    status: str,
    abort_reason: str | None,
    total_reward: float,
    n_records: int,
    session_time: datetime | None = None,
) -> None:
    from apathy import __version__

    manifest = {
        "apathy_task_version": __version__,
        "session_time": (session_time or datetime.now()).isoformat(timespec="seconds"),
        "status": status,
        "abort_reason": abort_reason,
        "total_reward": round(total_reward, 2),
        "n_records": n_records,
        "settings": settings.to_dict(),
        "state": state,
    }
    with open(run_dir / "manifest.json", "w") as f:
        json.dump(manifest, f, indent=2)


def open_log_file(run_dir: Path) -> logging.LogFile:
    """Attach run_dir/experiment.log to psychopy logging at EXP level."""
    return logging.LogFile(str(Path(run_dir) / "experiment.log"), level=logging.EXP)

