"""
Validation: can the participant hold the level inside a target window?

One stage per included difficulty (easy, medium, hard in that order), each
with number_of_validations_per_type repetitions and the target zone shown.
Too many failures in a regular stage adds an extra stage with the hard
window; too many failures in the extra stage fails validation and, after
the survey and the result message, ends the session.
"""
from __future__ import annotations

from psychopy import logging

from apathy import config
from apathy.settings import Settings
from apathy.state import SessionState
from apathy.steps import MessageStep, Step, SurveyStep, TapStep
from apathy.tapping import TapTrialResult, make_params

NOT_STARTED = "not_started"
RUNNING = "running"
SURVEY = "survey"
RESULT = "result"
COMPLETE = "complete"
ABORTED = "aborted"

ABORT_REASON = "validation_failed"

SURVEY_TASK = "validation_survey"
RESULT_TASK = "validation_result"


def validation_parts(settings: Settings) -> list[str]:
    """Regular validation stages for the included difficulty levels."""
    return [config.VALIDATION_PART_FOR_BOUNDS[b] for b in settings.task.task_bounds_included]


class ValidationController:
    def __init__(self, state: SessionState, settings: Settings) -> None:
        self.state = state
        self.settings = settings
        self.parts = validation_parts(settings)
        self.repetitions = settings.validation.number_of_validations_per_type
        self.status = NOT_STARTED
        self.last_result: TapTrialResult | None = None
        self._index = 0
        self._completed = 0  # repetitions of the current stage with a valid trial

    @property
    def part(self) -> str | None:
        if self._index < len(self.parts):
            return self.parts[self._index]
        return None

    @property
    def done(self) -> bool:
        return self.status in (COMPLETE, ABORTED)

    @property
    def abort_reason(self) -> str | None:
        return ABORT_REASON if self.status == ABORTED else None

    def current_step(self) -> Step | None:
        if self.done:
            return None
        if self.status == NOT_STARTED:
            self.status = RUNNING
            logging.exp(f"Validation started  stages={self.parts}")
        if self.status == SURVEY:
            return SurveyStep(task=SURVEY_TASK, questions=list(config.LIKERT_SURVEY_FINAL))
        if self.status == RESULT:
            message = (
                config.PASSED_VALIDATION_MESSAGE
                if self.state.validation_passed
                else config.FAILED_VALIDATION_MESSAGE
            )
            return MessageStep(task=RESULT_TASK, message=message)

        part = self.part
        params = make_params(
            self.settings.tapping,
            task=part,
            bounds=config.VALIDATION_BOUNDS[part],
            reference_median=self.state.median_taps(self.settings.calibration.task_reference_median),
            target_area=True,
        )
        return TapStep(task=part, params=params, feedback=True, rest_ms=config.REST_FAST_MS)

    def submit(self, outcome: TapTrialResult | dict | None) -> None:
        if self.done:
            raise RuntimeError(f"Validation already {self.status}")
        if self.status == SURVEY:
            self.status = RESULT
            return
        if self.status == RESULT:
            if self.state.validation_passed:
                self.status = COMPLETE
                logging.exp("Validation passed")
            else:
                self.status = ABORTED
                logging.warning("Validation failed; ending session")
            return
        self._record(outcome)

    # ── internals ───────────────────────────────────────────────────────────

    def _record(self, result: TapTrialResult) -> None:
        part = self.part
        self.status = RUNNING
        self.last_result = result
        if not result.success:
            self._fail(part)
        if result.error_occurred:
            logging.exp(f"Validation {part}: flagged trial repeated")
            return

        self._completed += 1
        logging.exp(
            f"Validation {part}: {self._completed}/{self.repetitions}  "
            f"success={int(result.success)}  failures={self.state.validation_failures(part)}"
        )
        if self._completed >= self.repetitions:
            self._next_part()

    def _fail(self, part: str) -> None:
        failures = self.state.increase_validation_failures(part)
        allowed = self.settings.validation.allowed_failures(part)
        if failures <= allowed:
            return
        if part == config.VALIDATION_EXTRA:
            if self.state.validation_passed:
                logging.warning(f"Validation extra failed  failures={failures}  allowed={allowed:g}")
            self.state.set_validation_failed()
        elif not self.state.extra_validation_required:
            logging.exp(f"Validation {part}: extra validation required  failures={failures}  allowed={allowed:g}")
            self.state.set_extra_validation_required()

    def _next_part(self) -> None:
        self._index += 1
        self._completed = 0
        if (
            self._index >= len(self.parts)
            and self.state.extra_validation_required
            and config.VALIDATION_EXTRA not in self.parts
        ):
            self.parts.append(config.VALIDATION_EXTRA)
        if self._index >= len(self.parts):
            self.status = SURVEY
