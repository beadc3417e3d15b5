"""
Steps handed to the trial execution engine, and the Stage protocol every
controller implements.

The engine pulls one step at a time (Stage.current_step()), runs it, and
submits exactly one outcome (Stage.submit()):

  TapStep      -> TapTrialResult
  MessageStep  -> None
  AcceptStep   -> bool (True = accepted)
  SurveyStep   -> dict[str, int] (question -> Likert 1..7)
  RewardStep   -> None
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Union

from apathy import config
from apathy.tapping import TapTrialParams, TapTrialResult


@dataclass(frozen=True)
class TaskPermutation:
    difficulty: str
    reward_tier: str
    bounds: tuple[float, float]          # jittered, used for the trial
    original_bounds: tuple[float, float]  # canonical window of the difficulty
    reward: float
    delay: tuple[int, int]
    block_type: str
    skip: bool = False


@dataclass(frozen=True)
class TapStep:
    task: str
    params: TapTrialParams
    countdown: bool = True
    feedback: bool = False  # show a success / failure banner afterwards
    rest_ms: int = 0
    feedback_ms: int = config.SUCCESS_SCREEN_DURATION_MS

    def release_keys_required(self, result: TapTrialResult) -> bool:
        """True when the participant still holds the keys and must be told to let go."""
        return result.keys_held_at_end and not result.skip

    def error_message(self, result: TapTrialResult) -> str | None:
        """Message to show for result.hold_ms after a protocol violation."""
        if result.key_tapped_early:
            return config.KEY_TAPPED_EARLY_MESSAGE
        if result.keys_released_early:
            return config.PREMATURE_KEY_RELEASE_ERROR_MESSAGE
        return None


@dataclass(frozen=True)
class MessageStep:
    task: str
    message: str
    duration_ms: int | None = None  # None: wait for the participant to continue


@dataclass(frozen=True)
class AcceptStep:
    permutation: TaskPermutation
    task: str = config.ACCEPT
    reject_rest_ms: int = config.REST_FAST_MS  # shown only when the offer is rejected


@dataclass(frozen=True)
class SurveyStep:
    task: str
    questions: list[str] = field(default_factory=list, hash=False)


@dataclass(frozen=True)
class RewardStep:
    total: float
    task: str = "display_reward"


Step = Union[TapStep, MessageStep, AcceptStep, SurveyStep, RewardStep]


class Stage(Protocol):
    """A controller the session can drive step by step."""

    status: str

    @property
    def done(self) -> bool:
        ...

    @property
    def abort_reason(self) -> str | None:
        """Reason code when the stage ends the session early, else None."""
        ...

    def current_step(self) -> Step | None:
        ...

    def submit(self, outcome: Any) -> None:
        ...


def check_outcome(step: Step, outcome: Any) -> None:
    """Raise TypeError when outcome is not what step expects."""
    if isinstance(step, TapStep):
        ok = isinstance(outcome, TapTrialResult)
        expected = "TapTrialResult"
    elif isinstance(step, AcceptStep):
        ok = isinstance(outcome, bool)
        expected = "bool"
    elif isinstance(step, SurveyStep):
        ok = isinstance(outcome, dict)
        expected = "dict"
    else:
        ok = outcome is None
        expected = "None"
    if not ok:
        raise TypeError(
            f"{type(step).__name__} ({step.task}) expects {expected}; got {type(outcome).__name__}"
        )
