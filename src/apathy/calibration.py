"""
Calibration: measure each participant's tapping rate.

One CalibrationController runs an ordered list of calibration stages (the
initial pass runs stages 1 and 2, the final pass after the task runs the
two final stages). Per stage it repeats tapping trials until the stage's
required number of qualifying trials is reached, then compares the median
tap count with the configured minimum.

States:
  not_started -> running -> (conditional_retry -> running) -> ... -> complete
  conditional_retry of a final stage can end in aborted_low_taps.
"""
from __future__ import annotations

from psychopy import logging

from apathy import config
from apathy.settings import Settings
from apathy.state import SessionState
from apathy.steps import MessageStep, Step, TapStep
from apathy.tapping import TapTrialParams, TapTrialResult, make_params, median_tap_count

NOT_STARTED = "not_started"
RUNNING = "running"
CONDITIONAL_RETRY = "conditional_retry"
COMPLETE = "complete"
ABORTED_LOW_TAPS = "aborted_low_taps"

ABORT_REASON = "calibration_insufficient"

# Per-stage outcomes
PASSED = "passed"
NOT_PASSED = "not_passed"

_THERMOMETER_PARTS = {config.CALIBRATION_PART_2, config.FINAL_CALIBRATION_PART_2}


class CalibrationController:
    def __init__(
        self,
        state: SessionState,
        settings: Settings,
        parts: list[str],
        retry_on_low_median: bool = True,
    ) -> None:
        unknown = [p for p in parts if p not in config.CALIBRATION_PARTS]
        if unknown:
            raise ValueError(f"Unknown calibration parts: {unknown}")
        self.state = state
        self.settings = settings
        self.parts = list(parts)
        self.retry_on_low_median = retry_on_low_median
        self.status = NOT_STARTED if self.parts else COMPLETE
        self.outcomes: dict[str, str] = {}
        self.last_result: TapTrialResult | None = None
        self._index = 0
        self._retried: set[str] = set()
        self._tap_counts: dict[str, list[int]] = {p: [] for p in self.parts}

    @property
    def part(self) -> str | None:
        if self._index < len(self.parts):
            return self.parts[self._index]
        return None

    @property
    def done(self) -> bool:
        return self.status in (COMPLETE, ABORTED_LOW_TAPS)

    @property
    def abort_reason(self) -> str | None:
        return ABORT_REASON if self.status == ABORTED_LOW_TAPS else None

    def qualifying_tap_counts(self, part: str) -> list[int]:
        return list(self._tap_counts[part])

    # ── stepping ────────────────────────────────────────────────────────────

    def current_step(self) -> Step | None:
        if self.done:
            return None
        part = self.part
        if self.status == NOT_STARTED:
            self.status = RUNNING
            logging.exp(f"Calibration {part} started")
        if self.status == CONDITIONAL_RETRY:
            return MessageStep(task=part, message=config.TAP_FASTER_MESSAGE)
        return TapStep(task=part, params=self._params(part), rest_ms=config.REST_SLOW_MS)

    def submit(self, outcome: TapTrialResult | None) -> None:
        if self.done:
            raise RuntimeError(f"Calibration already {self.status}")
        part = self.part
        if self.status == CONDITIONAL_RETRY:
            # Directive acknowledged: the stage starts counting from zero again
            self.state.reset_calibration_successes(part)
            self._tap_counts[part].clear()
            self._retried.add(part)
            self.status = RUNNING
            logging.exp(f"Calibration {part} conditional retry started")
            return

        self.status = RUNNING
        self.last_result = outcome
        if not self._qualifies(part, outcome):
            logging.exp(
                f"Calibration {part}: trial not counted  taps={outcome.tap_count}  "
                f"tapped_early={int(outcome.key_tapped_early)}  "
                f"released_early={int(outcome.keys_released_early)}"
            )
            return

        required = self.settings.calibration.required_successes(part)
        self._tap_counts[part].append(outcome.tap_count)
        successes = self.state.increment_calibration_successes(part)
        median = median_tap_count(self._tap_counts[part][-required:])
        self.state.update_median_taps(part, median)
        logging.exp(
            f"Calibration {part}: success {successes}/{required}  taps={outcome.tap_count}  "
            f"median={median:.1f}"
        )
        if successes >= required:
            self._evaluate(part, median)

    # ── internals ───────────────────────────────────────────────────────────

    def _params(self, part: str) -> TapTrialParams:
        calibration = self.settings.calibration
        reference = self.state.median_taps(calibration.reference_medians[part])
        expected = config.EXPECTED_MAXIMUM_PERCENTAGE_FOR_CALIBRATION
        return make_params(
            self.settings.tapping,
            task=part,
            bounds=(expected, expected),
            reference_median=reference,
            expected_max=expected,
            show_thermometer=part in _THERMOMETER_PARTS,
        )

    def _qualifies(self, part: str, result: TapTrialResult) -> bool:
        if result.error_occurred:
            return False
        if part in config.FINAL_CALIBRATION_PARTS:
            return result.tap_count >= self.settings.calibration.minimum_final_calibration_taps
        return True

    def _evaluate(self, part: str, median: float) -> None:
        minimum = self.settings.calibration.minimum_calibration_median_taps
        if median >= minimum:
            self.state.set_calibration_passed(part)
            self.outcomes[part] = PASSED
            logging.exp(f"Calibration {part} passed  median={median:.1f}  min={minimum}")
            self._next_part()
        elif self.retry_on_low_median and part not in self._retried:
            self.status = CONDITIONAL_RETRY
            logging.exp(f"Calibration {part} below minimum  median={median:.1f}  min={minimum}")
        elif part in config.FINAL_CALIBRATION_PARTS:
            self.status = ABORTED_LOW_TAPS
            self.outcomes[part] = NOT_PASSED
            logging.warning(f"Calibration {part} failed after retry  median={median:.1f}  min={minimum}")
        else:
            self.outcomes[part] = NOT_PASSED
            logging.exp(f"Calibration {part} not passed; continuing  median={median:.1f}  min={minimum}")
            self._next_part()

    def _next_part(self) -> None:
        self._index += 1
        if self._index >= len(self.parts):
            self.status = COMPLETE
            logging.exp("Calibration complete")
        else:
            self.status = RUNNING
            logging.exp(f"Calibration {self.part} started")
