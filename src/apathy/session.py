"""
Session orchestration: one participant, start to finish.

The trial execution engine drives a Session by pulling steps and submitting
one outcome per step:

    session = Session(settings, on_finish=save)
    while (step := session.current_step()) is not None:
        session.submit(engine.run(step))

apathy.emulator.EmulatedParticipant is the reference engine: it answers
every step type on a virtual clock (countdown included, via
apathy.countdown), so a whole session runs headless:

    result = EmulatedParticipant(taps=30).run(Session(settings))

Stages run in order: practice, calibration (stages 1 and 2), validation,
task blocks, final calibration. A stage that reports an abort reason ends
the session early; everything recorded so far is kept.
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from psychopy import logging

from apathy import config
from apathy.blocks import TaskBlockController
from apathy.calibration import CalibrationController
from apathy.practice import PracticeController
from apathy.recorder import (
    AcceptRecord,
    MessageRecord,
    SurveyRecord,
    TrialHistory,
    write_history_csv,
    write_manifest,
)
from apathy.reward import total_reward
from apathy.settings import Settings
from apathy.state import SessionState
from apathy.steps import AcceptStep, RewardStep, Stage, Step, SurveyStep, TapStep, check_outcome
from apathy.validation import ValidationController

RUNNING = "running"
FINISHED = "finished"
ABORTED = "aborted"


@dataclass
class SessionResult:
    status: str
    abort_reason: str | None
    settings: Settings
    history: TrialHistory
    total_reward: float
    state: dict[str, Any]
    finished_at: datetime


class Session:
    def __init__(
        self,
        settings: Settings | None = None,
        rng: random.Random | None = None,
        on_finish: Callable[[SessionResult], None] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.rng = rng or random.Random()
        self.on_finish = on_finish
        self.state = SessionState()
        self.history = TrialHistory()

        self.practice = PracticeController(self.state, self.settings)
        self.calibration = CalibrationController(
            self.state, self.settings, [config.CALIBRATION_PART_1, config.CALIBRATION_PART_2]
        )
        self.validation = ValidationController(self.state, self.settings)
        self.blocks = TaskBlockController(self.state, self.settings, self.rng, reward_total=self.total_reward)
        self.final_calibration = CalibrationController(
            self.state, self.settings, list(config.FINAL_CALIBRATION_PARTS)
        )
        self.stages: list[Stage] = [
            self.practice,
            self.calibration,
            self.validation,
            self.blocks,
            self.final_calibration,
        ]

        self.status = RUNNING
        self.abort_reason: str | None = None
        self.result: SessionResult | None = None
        self._stage_index = 0
        self._pending: Step | None = None
        logging.exp("Session started")

    @property
    def stage(self) -> Stage | None:
        if self._stage_index < len(self.stages):
            return self.stages[self._stage_index]
        return None

    @property
    def closing_message(self) -> str | None:
        """Text for the final screen once the session is over."""
        if self.abort_reason == "calibration_insufficient":
            return config.FAILED_CALIBRATION_MESSAGE
        if self.abort_reason == "validation_failed":
            return config.FAILED_VALIDATION_MESSAGE
        if self.status == FINISHED:
            return config.END_EXPERIMENT_MESSAGE
        return None

    def total_reward(self) -> float:
        return total_reward(self.history)

    def current_step(self) -> Step | None:
        """The step the engine should run next, or None once the session is over."""
        if self.status != RUNNING:
            return None
        if self._pending is not None:
            return self._pending
        while self.stage is not None:
            step = None if self.stage.done else self.stage.current_step()
            if step is not None:
                self._pending = step
                return step
            self._stage_index += 1
        self._finish(FINISHED)
        return None

    def submit(self, outcome: Any) -> None:
        step = self._pending
        if step is None:
            raise RuntimeError(f"No step pending (session {self.status})")
        check_outcome(step, outcome)
        self.history.append(self._record(step, outcome))
        self._pending = None

        stage = self.stage
        stage.submit(outcome)
        if stage.abort_reason is not None:
            self._finish(ABORTED, stage.abort_reason)
        elif stage.done:
            self._stage_index += 1
            if self.stage is None:
                self._finish(FINISHED)

    # ── internals ───────────────────────────────────────────────────────────

    def _record(self, step: Step, outcome: Any) -> object:
        if isinstance(step, TapStep):
            return outcome
        if isinstance(step, AcceptStep):
            return AcceptRecord(task=step.task, accepted=outcome, permutation=step.permutation)
        if isinstance(step, SurveyStep):
            return SurveyRecord(task=step.task, answers=dict(outcome))
        if isinstance(step, RewardStep):
            return MessageRecord(task=step.task, message=config.REWARD_TOTAL_MESSAGE.format(total=step.total))
        return MessageRecord(task=step.task, message=step.message)

    def _finish(self, status: str, reason: str | None = None) -> None:
        if self.result is not None:
            return
        self.status = status
        self.abort_reason = reason
        self.result = SessionResult(
            status=status,
            abort_reason=reason,
            settings=self.settings,
            history=self.history,
            total_reward=self.total_reward(),
            state=self.state.snapshot(),
            finished_at=datetime.now(),
        )
        if status == ABORTED:
            logging.warning(f"Session aborted: {reason}  records={len(self.history)}")
        else:
            logging.exp(f"Session finished  records={len(self.history)}")
        logging.data(f"Total reward: {self.result.total_reward:.2f}")
        if self.on_finish is not None:
            self.on_finish(self.result)


def save_result(result: SessionResult, run_dir: Path) -> None:
    """Write history.csv and manifest.json for a finished session."""
    run_dir = Path(run_dir)
    run_dir.mkdir(parents=True, exist_ok=True)
    write_history_csv(run_dir / "history.csv", result.history)
    write_manifest(
        run_dir,
        settings=result.settings,
        state=result.state,
        status=result.status,
        abort_reason=result.abort_reason,
        total_reward=result.total_reward,
        n_records=len(result.history),
        session_time=result.finished_at,
    )
