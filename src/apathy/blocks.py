"""
Main task: block order, per-block trial permutations, and the block controller.

Each block uses one feedback-delay tier. It opens with demo trials (one per
included difficulty, canonical bounds, no reward), then offers every
(difficulty, reward) permutation for acceptance, runs the accepted ones, and
ends with a survey and the running reward total.
"""
from __future__ import annotations

import itertools
import random
from typing import Callable

from psychopy import logging

from apathy import config
from apathy.settings import Settings
from apathy.state import SessionState
from apathy.steps import AcceptStep, MessageStep, RewardStep, Step, SurveyStep, TapStep, TaskPermutation
from apathy.tapping import TapTrialParams, TapTrialResult, bounds_variation, make_params

NOT_STARTED = "not_started"
INTRO = "intro"
DEMO = "demo"
DEMO_RETRY = "demo_retry"
DEMO_SURVEY = "demo_survey"
OFFER = "offer"
TRIAL = "trial"
BLOCK_SURVEY = "block_survey"
REWARD = "reward"
COMPLETE = "complete"

DEMO_SURVEY_TASK = "demo_survey"
BLOCK_SURVEY_TASK = "block_survey"


def generate_block_order(settings: Settings, rng: random.Random | None = None) -> list[str]:
    """Included delay tiers, shuffled independently for every block repetition."""
    rng = rng or random.Random()
    order: list[str] = []
    for _ in range(settings.task.task_block_repetitions):
        blocks = list(settings.task.task_blocks_included)
        rng.shuffle(blocks)
        order.extend(blocks)
    return order


def generate_permutations(
    settings: Settings, delay: str, rng: random.Random | None = None
) -> list[TaskPermutation]:
    """
    Every (difficulty, reward tier) pair, task_permutation_repetitions times.

    Each repetition is shuffled on its own, so every pair appears exactly once
    per repetition. Concrete values are sampled per trial: a reward from the
    tier's set, jittered bounds, and the skip flag.
    """
    rng = rng or random.Random()
    task = settings.task
    pairs = list(itertools.product(task.task_bounds_included, task.task_rewards_included))
    permutations: list[TaskPermutation] = []
    for _ in range(task.task_permutation_repetitions):
        shuffled = list(pairs)
        rng.shuffle(shuffled)
        for difficulty, reward_tier in shuffled:
            skip = task.random_skip_chance > 0 and rng.random() <= task.random_skip_chance / 100
            permutations.append(
                TaskPermutation(
                    difficulty=difficulty,
                    reward_tier=reward_tier,
                    bounds=bounds_variation(difficulty, rng),
                    original_bounds=config.BOUNDS_DEFINITIONS[difficulty],
                    reward=rng.choice(config.REWARD_DEFINITIONS[reward_tier]),
                    delay=config.DELAY_DEFINITIONS[delay],
                    block_type=delay,
                    skip=skip,
                )
            )
    return permutations


class TaskBlockController:
    """
    Runs every block of the main task.

    reward_total is called whenever the reward display is due; the session
    passes a function that sums the trial history.
    """

    def __init__(
        self,
        state: SessionState,
        settings: Settings,
        rng: random.Random | None = None,
        reward_total: Callable[[], float] | None = None,
    ) -> None:
        self.state = state
        self.settings = settings
        self.rng = rng or random.Random()
        self.reward_total = reward_total or (lambda: 0.0)
        self.block_order = generate_block_order(settings, self.rng)
        self.status = NOT_STARTED if self.block_order else COMPLETE
        self.permutations: list[TaskPermutation] = []
        self.last_result: TapTrialResult | None = None
        self._block_index = 0
        self._demo_index = 0
        self._trial_index = 0
        self._survey_questions: list[str] = []

    @property
    def done(self) -> bool:
        return self.status == COMPLETE

    @property
    def abort_reason(self) -> str | None:
        return None

    @property
    def delay(self) -> str | None:
        if self._block_index < len(self.block_order):
            return self.block_order[self._block_index]
        return None

    @property
    def permutation(self) -> TaskPermutation | None:
        if self._trial_index < len(self.permutations):
            return self.permutations[self._trial_index]
        return None

    # ── stepping ────────────────────────────────────────────────────────────

    def current_step(self) -> Step | None:
        if self.done:
            return None
        if self.status == NOT_STARTED:
            self._start_block()

        if self.status == INTRO:
            message = config.DEMO_TRIAL_MESSAGE.format(
                n_demo=len(self.settings.task.task_bounds_included),
                n_trials=self.settings.task.trials_per_block,
            )
            return MessageStep(task=config.DEMO, message=message)
        if self.status == DEMO:
            return TapStep(task=config.DEMO, params=self._demo_params(), rest_ms=config.REST_FAST_MS)
        if self.status == DEMO_RETRY:
            return MessageStep(
                task=config.DEMO,
                message=config.FAILED_MINIMUM_DEMO_TAPS_MESSAGE,
                duration_ms=config.FAILED_MINIMUM_DEMO_TAPS_DURATION_MS,
            )
        if self.status == DEMO_SURVEY:
            return SurveyStep(task=DEMO_SURVEY_TASK, questions=list(config.LIKERT_SURVEY_DEMO))
        if self.status == OFFER:
            return AcceptStep(permutation=self.permutation)
        if self.status == TRIAL:
            permutation = self.permutation
            return TapStep(
                task=config.BLOCK,
                params=self._trial_params(permutation),
                countdown=not permutation.skip,
                feedback=True,
                rest_ms=config.REST_SLOW_MS,
            )
        if self.status == BLOCK_SURVEY:
            return SurveyStep(task=BLOCK_SURVEY_TASK, questions=list(self._survey_questions))
        return RewardStep(total=self.reward_total())

    def submit(self, outcome: TapTrialResult | bool | dict | None) -> None:
        if self.done:
            raise RuntimeError("Task blocks already complete")
        if self.status == NOT_STARTED:
            raise RuntimeError("No step has been issued yet")

        if self.status == INTRO:
            self.state.reset_demo_trial_successes()
            self._demo_index = 0
            self.status = DEMO
        elif self.status == DEMO:
            self._record_demo(outcome)
        elif self.status == DEMO_RETRY:
            self.status = DEMO
        elif self.status == DEMO_SURVEY:
            self._trial_index = 0
            self.status = OFFER
        elif self.status == OFFER:
            if outcome:
                self.status = TRIAL
            else:
                logging.exp(f"Block {self._block_index + 1}: trial {self._trial_index + 1} rejected")
                self._next_trial()
        elif self.status == TRIAL:
            self.last_result = outcome
            self._next_trial()
        elif self.status == BLOCK_SURVEY:
            self.status = REWARD
        elif self.status == REWARD:
            self._finish_block()

    # ── internals ───────────────────────────────────────────────────────────

    def _reference_median(self) -> float:
        return self.state.median_taps(self.settings.calibration.task_reference_median)

    def _demo_params(self) -> TapTrialParams:
        difficulty = self.settings.task.task_bounds_included[self._demo_index]
        return make_params(
            self.settings.tapping,
            task=config.DEMO,
            bounds=config.BOUNDS_DEFINITIONS[difficulty],
            reference_median=self._reference_median(),
            random_delay=config.DELAY_DEFINITIONS[self.delay],
            block_type=self.delay,
        )

    def _trial_params(self, permutation: TaskPermutation) -> TapTrialParams:
        return make_params(
            self.settings.tapping,
            task=config.BLOCK,
            bounds=permutation.bounds,
            reference_median=self._reference_median(),
            random_delay=permutation.delay,
            reward=permutation.reward,
            block_type=permutation.block_type,
            skip=permutation.skip,
        )

    def _start_block(self) -> None:
        self.permutations = generate_permutations(self.settings, self.delay, self.rng)
        self._trial_index = 0
        self.status = INTRO
        logging.exp(
            f"Block {self._block_index + 1}/{len(self.block_order)} started  "
            f"delay={self.delay}  trials={len(self.permutations)}"
        )

    def _record_demo(self, result: TapTrialResult) -> None:
        self.last_result = result
        if result.error_occurred:
            return
        if result.tap_count <= config.MINIMUM_DEMO_TAPS:
            self.status = DEMO_RETRY
            return
        self.state.increment_demo_trial_successes()
        self._demo_index += 1
        if self._demo_index >= len(self.settings.task.task_bounds_included):
            self.status = DEMO_SURVEY

    def _next_trial(self) -> None:
        self._trial_index += 1
        if self._trial_index < len(self.permutations):
            self.status = OFFER
            return
        questions = list(config.LIKERT_SURVEY_BLOCK)
        self.rng.shuffle(questions)
        self._survey_questions = questions + [config.LIKERT_BLOCK_FINAL_QUESTION]
        self.status = BLOCK_SURVEY

    def _finish_block(self) -> None:
        self.state.increment_completed_blocks()
        logging.data(
            f"Block {self._block_index + 1}/{len(self.block_order)} complete  "
            f"total_reward={self.reward_total():.2f}"
        )
        self._block_index += 1
        if self._block_index < len(self.block_order):
            self._start_block()
        else:
            self.status = COMPLETE
            logging.exp("Task blocks complete")
