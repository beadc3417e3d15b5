"""
Per-participant progress record.

SessionState is owned by one Session and passed explicitly to every
controller. Controllers mutate it through the methods below; the rendering
layer only ever reads it through the accessor queries.
"""
from __future__ import annotations

from typing import Any

from apathy import config


class SessionState:
    def __init__(self) -> None:
        self._median_taps: dict[str, float] = {
            part: config.DEFAULT_MEDIAN_TAPS for part in config.CALIBRATION_PARTS
        }
        self._calibration_passed: dict[str, bool] = {part: False for part in config.CALIBRATION_PARTS}
        self._calibration_successes: dict[str, int] = {part: 0 for part in config.CALIBRATION_PARTS}
        self._validation_failures: dict[str, int] = {part: 0 for part in config.VALIDATION_PARTS}
        self._extra_validation_required = False
        self._validation_passed = True
        self._demo_trial_successes = 0
        self._completed_block_count = 0
        self._practice_loops_completed = 0

    # ── queries ─────────────────────────────────────────────────────────────

    def median_taps(self, part: str) -> float:
        return self._median_taps[part]

    def calibration_passed(self, part: str) -> bool:
        return self._calibration_passed[part]

    def calibration_successes(self, part: str) -> int:
        return self._calibration_successes[part]

    def validation_failures(self, part: str) -> int:
        return self._validation_failures[part]

    @property
    def extra_validation_required(self) -> bool:
        return self._extra_validation_required

    @property
    def validation_passed(self) -> bool:
        return self._validation_passed

    @property
    def demo_trial_successes(self) -> int:
        return self._demo_trial_successes

    @property
    def completed_block_count(self) -> int:
        return self._completed_block_count

    @property
    def practice_loops_completed(self) -> int:
        return self._practice_loops_completed

    def snapshot(self) -> dict[str, Any]:
        """Return a copy of the whole record for summaries and the manifest."""
        return {
            "median_taps": dict(self._median_taps),
            "calibration_passed": dict(self._calibration_passed),
            "calibration_successes": dict(self._calibration_successes),
            "validation_failures": dict(self._validation_failures),
            "extra_validation_required": self._extra_validation_required,
            "validation_passed": self._validation_passed,
            "demo_trial_successes": self._demo_trial_successes,
            "completed_block_count": self._completed_block_count,
            "practice_loops_completed": self._practice_loops_completed,
        }

    # ── calibration ─────────────────────────────────────────────────────────

    def update_median_taps(self, part: str, value: float) -> None:
        self._median_taps[part] = float(value)

    def set_calibration_passed(self, part: str) -> None:
        # Monotonic: never reset within a session
        self._calibration_passed[part] = True

    def increment_calibration_successes(self, part: str) -> int:
        self._calibration_successes[part] += 1
        return self._calibration_successes[part]

    def reset_calibration_successes(self, part: str) -> None:
        self._calibration_successes[part] = 0

    # ── validation ──────────────────────────────────────────────────────────

    def increase_validation_failures(self, part: str) -> int:
        self._validation_failures[part] += 1
        return self._validation_failures[part]

    def set_extra_validation_required(self) -> None:
        self._extra_validation_required = True

    def set_validation_failed(self) -> None:
        self._validation_passed = False

    # ── practice / task ─────────────────────────────────────────────────────

    def increment_demo_trial_successes(self) -> None:
        self._demo_trial_successes += 1

    def reset_demo_trial_successes(self) -> None:
        self._demo_trial_successes = 0

    def increment_completed_blocks(self) -> None:
        self._completed_block_count += 1

    def increment_practice_loops_completed(self) -> None:
        self._practice_loops_completed += 1
