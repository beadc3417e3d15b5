"""
Reward accumulator. The total is always recomputed from the trial history.
"""
from __future__ import annotations

from typing import Iterable

from apathy import config
from apathy.tapping import TapTrialResult


def total_reward(records: Iterable[object]) -> float:
    """Sum of reward over successful main-task tapping trials."""
    return float(
        sum(
            r.reward
            for r in records
            if isinstance(r, TapTrialResult) and r.task == config.BLOCK and r.success
        )
    )
