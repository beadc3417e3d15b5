"""
Practice loops before calibration.

Each loop repeats a practice trial (no thermometer) until the participant
taps at least the minimum calibration median without tapping early or
releasing the keys.
"""
from __future__ import annotations

from psychopy import logging

from apathy import config
from apathy.settings import Settings
from apathy.state import SessionState
from apathy.steps import Step, TapStep
from apathy.tapping import TapTrialParams, TapTrialResult

NOT_STARTED = "not_started"
RUNNING = "running"
COMPLETE = "complete"


class PracticeController:
    def __init__(self, state: SessionState, settings: Settings) -> None:
        self.state = state
        self.settings = settings
        self.n_loops = settings.practice.number_of_practice_loops
        self.loops_done = 0
        self.status = NOT_STARTED if self.n_loops > 0 else COMPLETE
        self.last_result: TapTrialResult | None = None

    @property
    def done(self) -> bool:
        return self.status == COMPLETE

    @property
    def abort_reason(self) -> str | None:
        return None

    def current_step(self) -> Step | None:
        if self.done:
            return None
        self.status = RUNNING
        tapping = self.settings.tapping
        params = TapTrialParams(
            task=config.PRACTICE,
            bounds=config.PRACTICE_BOUNDS,
            trial_duration_ms=tapping.trial_duration_ms,
            auto_decrease_amount=tapping.auto_decrease_amount,
            auto_decrease_rate_ms=tapping.auto_decrease_rate_ms,
            taps_without_delay=tapping.taps_without_delay,
            show_thermometer=False,
        )
        return TapStep(task=config.PRACTICE, params=params, rest_ms=config.REST_SLOW_MS)

    def submit(self, outcome: TapTrialResult) -> None:
        if self.done:
            raise RuntimeError("Practice already complete")
        self.last_result = outcome
        minimum = self.settings.calibration.minimum_calibration_median_taps
        if outcome.error_occurred or outcome.tap_count < minimum:
            logging.exp(
                f"Practice loop {self.loops_done + 1}/{self.n_loops} repeated  "
                f"taps={outcome.tap_count}  min={minimum}"
            )
            return

        self.loops_done += 1
        self.state.increment_practice_loops_completed()
        logging.exp(f"Practice loop {self.loops_done}/{self.n_loops} completed  taps={outcome.tap_count}")
        if self.loops_done >= self.n_loops:
            self.status = COMPLETE
