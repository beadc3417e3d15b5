"""
Emulated participant for development without a keyboard or a window.

run_tap_trial() plays one TapStep (countdown plus tapping trial) on a
virtual millisecond clock. EmulatedParticipant answers every step type, so
a whole Session can be driven headless:

    result = EmulatedParticipant(taps=30).run(Session(settings))
"""
from __future__ import annotations

import random
from typing import Any, Callable

from psychopy import logging

from apathy import config
from apathy.countdown import Countdown
from apathy.session import Session, SessionResult
from apathy.steps import AcceptStep, Step, SurveyStep, TapStep, TaskPermutation
from apathy.tapping import TappingTrial, TapTrialResult


def run_tap_trial(
    step: TapStep,
    taps: int,
    release_at_ms: float | None = None,
    tap_during_countdown: bool = False,
    start_ms: float = 0.0,
    rng: random.Random | None = None,
) -> TapTrialResult:
    """
    Hold the keys through the countdown, then spread taps evenly over the trial.

    release_at_ms releases one hold key that many ms after the trial starts.
    """
    clock = float(start_ms)
    key_tapped_early = False
    if step.countdown:
        countdown = Countdown()
        for key in list(countdown.keys_state):
            countdown.key_down(key, clock)
        if tap_during_countdown:
            countdown.key_down(config.KEY_TO_PRESS, clock + 1)
            countdown.key_up(config.KEY_TO_PRESS, clock + 1)
        clock += countdown.wait_ms
        countdown.advance(clock)
        key_tapped_early = countdown.key_tapped_early

    trial = TappingTrial(step.params, key_tapped_early=key_tapped_early, rng=rng)
    result = trial.start(clock)
    if result is not None:
        return result

    duration = max(0, int(step.params.trial_duration_ms))
    events: list[tuple[float, str]] = []
    if taps > 0:
        interval = duration / (taps + 1)
        events.extend((clock + i * interval, "tap") for i in range(1, taps + 1))
    if release_at_ms is not None:
        events.append((clock + release_at_ms, "release"))

    for at, kind in sorted(events):
        if kind == "tap":
            trial.key_down(config.KEY_TO_PRESS, at)
            result = trial.key_up(config.KEY_TO_PRESS, at)
        else:
            result = trial.key_up(config.KEYS_TO_HOLD[0], at)
        if result is not None:
            return result
    return trial.advance(clock + duration)


class EmulatedParticipant:
    """Scripted answers for every step.

    taps and accept may be constants or callables of the step / permutation,
    e.g. ``taps=lambda step: 5 if step.task == "final_calibration_part_1" else 30``.
    """

    def __init__(
        self,
        taps: int | Callable[[TapStep], int] = 30,
        accept: bool | Callable[[TaskPermutation], bool] = True,
        likert: int = 4,
        rng: random.Random | None = None,
    ) -> None:
        self.taps = taps
        self.accept = accept
        self.likert = min(max(int(likert), 1), config.LIKERT_POINTS)
        self.rng = rng or random.Random()
        self.clock_ms = 0.0
        self.n_steps = 0

    def taps_for(self, step: TapStep) -> int:
        return self.taps(step) if callable(self.taps) else int(self.taps)

    def respond(self, step: Step) -> Any:
        self.n_steps += 1
        if isinstance(step, TapStep):
            result = run_tap_trial(step, self.taps_for(step), start_ms=self.clock_ms, rng=self.rng)
            self.clock_ms = result.end_time_ms + result.hold_ms + step.rest_ms
            return result
        if isinstance(step, AcceptStep):
            accepted = self.accept(step.permutation) if callable(self.accept) else bool(self.accept)
            if not accepted:
                self.clock_ms += step.reject_rest_ms
            return accepted
        if isinstance(step, SurveyStep):
            return {q: self.likert for q in step.questions}
        return None

    def run(self, session: Session, max_steps: int = 100_000) -> SessionResult | None:
        """Drive session to its end and return its SessionResult."""
        logging.exp("Emulated participant started")
        for _ in range(max_steps):
            step = session.current_step()
            if step is None:
                return session.result
            session.submit(self.respond(step))
        raise RuntimeError(f"Session still running after {max_steps} steps")
