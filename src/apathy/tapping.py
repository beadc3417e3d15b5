"""
Tapping engine: the level simulation behind every tapping trial.

The engine is driven entirely by its caller. Key events arrive through
key_down() / key_up() with millisecond timestamps, and advance(now_ms)
lets due timers fire (decay ticks, delayed level increases, the trial
timeout). No clocks are read here and nothing is drawn here.
"""
from __future__ import annotations

import heapq
import itertools
import math
import random
from dataclasses import dataclass, field
from typing import Callable, Iterable

import numpy as np
from psychopy import logging

from apathy import config
from apathy.settings import TappingSettings

# Trial phases
PENDING = "pending"
RUNNING = "running"
ENDED = "ended"


def auto_increase_amount(
    expected_max: float,
    trial_duration_ms: float,
    auto_decrease_rate_ms: float,
    auto_decrease_amount: float,
    median: float | None,
) -> float:
    """
    Level gained per tap such that tapping at exactly the reference median
    rate reaches expected_max by the end of the trial despite the decay.
    """
    if not median:
        median = config.DEFAULT_MEDIAN_TAPS
    median = max(1.0, float(median))
    rate = max(1.0, float(auto_decrease_rate_ms))
    duration = max(0.0, float(trial_duration_ms))
    return (expected_max + (duration / rate) * auto_decrease_amount) / median


def random_number_bm(low: float, high: float, skew: float = 1.0, rng: random.Random | None = None) -> float:
    """Box–Muller sample on [low, high], biased towards the middle of the range."""
    rng = rng or random
    while True:
        u = 0.0
        v = 0.0
        while u == 0.0:
            u = rng.random()
        while v == 0.0:
            v = rng.random()
        num = math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)
        num = num / 10.0 + 0.5
        if 0.0 <= num <= 1.0:
            break
    num **= skew
    return num * (high - low) + low


def bounds_variation(difficulty: str, rng: random.Random | None = None) -> tuple[float, float]:
    """Jitter a canonical target window by up to 10 % while keeping its width."""
    lower, upper = config.BOUNDS_DEFINITIONS[difficulty]
    width = upper - lower
    low = lower - lower * config.BOUNDS_JITTER
    high = upper + upper * config.BOUNDS_JITTER
    centre = random_number_bm(low, high, rng=rng)
    return (centre - width / 2, centre + width / 2)


def median_tap_count(tap_counts: Iterable[int]) -> float:
    counts = np.asarray(list(tap_counts), dtype=float)
    if counts.size == 0:
        return config.DEFAULT_MEDIAN_TAPS
    return float(np.median(counts))


@dataclass(frozen=True)
class TapTrialParams:
    task: str
    bounds: tuple[float, float]
    auto_increase_amount: float = config.DEFAULT_AUTO_INCREASE_AMOUNT
    trial_duration_ms: int = config.TRIAL_DURATION_MS
    auto_decrease_amount: float = config.AUTO_DECREASE_AMOUNT
    auto_decrease_rate_ms: int = config.AUTO_DECREASE_RATE_MS
    random_delay: tuple[int, int] = (0, 0)
    taps_without_delay: int = config.NUM_TAPS_WITHOUT_DELAY
    skip: bool = False
    reward: float = 0.0
    block_type: str | None = None
    show_thermometer: bool = True
    target_area: bool = False


@dataclass(frozen=True)
class TapTrialResult:
    task: str
    tap_count: int
    start_time_ms: float
    end_time_ms: float
    level: float
    bounds: tuple[float, float]
    key_tapped_early: bool
    keys_released_early: bool
    success: bool
    reward: float = 0.0
    block_type: str | None = None
    skip: bool = False
    hold_ms: int = 0  # error display the engine must show before moving on
    keys_state: dict[str, bool] = field(default_factory=dict, hash=False)

    @property
    def error_occurred(self) -> bool:
        return self.key_tapped_early or self.keys_released_early

    @property
    def keys_held_at_end(self) -> bool:
        return bool(self.keys_state) and all(self.keys_state.values())


def make_params(
    tapping: TappingSettings,
    task: str,
    bounds: tuple[float, float],
    reference_median: float,
    expected_max: float = config.EXPECTED_MAXIMUM_PERCENTAGE,
    **kwargs,
) -> TapTrialParams:
    """TapTrialParams whose auto-increase is scaled to reference_median."""
    return TapTrialParams(
        task=task,
        bounds=(float(bounds[0]), float(bounds[1])),
        auto_increase_amount=auto_increase_amount(
            expected_max,
            tapping.trial_duration_ms,
            tapping.auto_decrease_rate_ms,
            tapping.auto_decrease_amount,
            reference_median,
        ),
        trial_duration_ms=tapping.trial_duration_ms,
        auto_decrease_amount=tapping.auto_decrease_amount,
        auto_decrease_rate_ms=tapping.auto_decrease_rate_ms,
        taps_without_delay=tapping.taps_without_delay,
        **kwargs,
    )


class TappingTrial:
    """
    One tapping trial.

    Hold keys are assumed down when the trial starts. A tap is a key-up of
    the response key while the trial runs. Timers due at the same instant
    fire in the order they were scheduled; the timeout is scheduled first.
    """

    def __init__(
        self,
        params: TapTrialParams,
        key_tapped_early: bool = False,
        rng: random.Random | None = None,
        keys_to_hold: list[str] | None = None,
        key_to_press: str = config.KEY_TO_PRESS,
    ) -> None:
        self.params = params
        self.key_tapped_early = key_tapped_early
        self._rng = rng or random.Random()
        self._keys_to_hold = [k.lower() for k in (keys_to_hold or config.KEYS_TO_HOLD)]
        self._key_to_press = key_to_press.lower()
        self._duration_ms = max(0, int(params.trial_duration_ms))
        self._rate_ms = max(1, int(params.auto_decrease_rate_ms))

        self.keys_state: dict[str, bool] = {k: True for k in self._keys_to_hold}
        self.phase = PENDING
        self.level = config.LEVEL_MIN
        self.tap_count = 0
        self.start_time_ms = 0.0
        self.end_time_ms = 0.0
        self.keys_released_early = False
        self.result: TapTrialResult | None = None

        self._response_key_down = False
        self._timers: list[tuple[float, int, Callable[[float], None]]] = []
        self._seq = itertools.count()

    # ── lifecycle ───────────────────────────────────────────────────────────

    def start(self, now_ms: float) -> TapTrialResult | None:
        """Begin the trial. Skip and early-tap trials end immediately."""
        if self.phase != PENDING:
            raise RuntimeError(f"Trial already {self.phase}")
        self.start_time_ms = now_ms
        if self.params.skip:
            return self._stop(now_ms)
        if self.key_tapped_early:
            return self._stop(now_ms, hold_ms=config.KEY_TAPPED_EARLY_ERROR_TIME_MS)

        self.phase = RUNNING
        self._schedule(now_ms + self._duration_ms, self._timeout)
        self._decay(now_ms)
        return self.advance(now_ms)

    def advance(self, now_ms: float) -> TapTrialResult | None:
        """Fire every timer due at or before now_ms. Returns the result once ended."""
        while self.phase == RUNNING and self._timers and self._timers[0][0] <= now_ms:
            due, _, callback = heapq.heappop(self._timers)
            callback(due)
        return self.result

    def key_down(self, key: str, now_ms: float) -> TapTrialResult | None:
        self.advance(now_ms)
        key = key.lower()
        if key in self.keys_state:
            self.keys_state[key] = True
        elif key == self._key_to_press and self.phase == RUNNING:
            self._response_key_down = True
        return self.result

    def key_up(self, key: str, now_ms: float) -> TapTrialResult | None:
        self.advance(now_ms)
        key = key.lower()
        if key in self.keys_state:
            self.keys_state[key] = False
            if self.phase == RUNNING:
                self.keys_released_early = True
                self._stop(now_ms, hold_ms=config.PREMATURE_KEY_RELEASE_ERROR_TIME_MS)
        elif key == self._key_to_press and self.phase == RUNNING:
            self._response_key_down = False
            self._tap(now_ms)
        return self.result

    @property
    def is_success(self) -> bool:
        lower, upper = self.params.bounds
        return (
            lower <= self.level <= upper
            and not self.keys_released_early
            and not self.key_tapped_early
        ) or self.params.skip

    # ── internals ───────────────────────────────────────────────────────────

    def _schedule(self, due_ms: float, callback: Callable[[float], None]) -> None:
        heapq.heappush(self._timers, (due_ms, next(self._seq), callback))

    def _tap(self, now_ms: float) -> None:
        self.tap_count += 1
        low, high = self.params.random_delay
        if high > 0 and self.tap_count > self.params.taps_without_delay:
            delay = random_number_bm(low, high, rng=self._rng)
            self._schedule(now_ms + delay, lambda _due: self._increase())
        else:
            self._increase()

    def _increase(self) -> None:
        self.level = min(self.level + self.params.auto_increase_amount, config.LEVEL_MAX)

    def _decay(self, due_ms: float) -> None:
        self.level = max(self.level - self.params.auto_decrease_amount, config.LEVEL_MIN)
        if self.phase == RUNNING:
            self._schedule(due_ms + self._rate_ms, self._decay)

    def _timeout(self, due_ms: float) -> None:
        self._stop(due_ms)

    def _stop(self, now_ms: float, hold_ms: int = 0) -> TapTrialResult:
        if self.result is not None:
            return self.result
        self.phase = ENDED
        self.end_time_ms = now_ms
        # Delayed increases still pending are dropped with the trial
        self._timers.clear()
        self.result = TapTrialResult(
            task=self.params.task,
            tap_count=self.tap_count,
            start_time_ms=self.start_time_ms,
            end_time_ms=self.end_time_ms,
            level=round(self.level, 6),
            bounds=self.params.bounds,
            key_tapped_early=self.key_tapped_early,
            keys_released_early=self.keys_released_early,
            success=self.is_success,
            reward=self.params.reward,
            block_type=self.params.block_type,
            skip=self.params.skip,
            hold_ms=hold_ms,
            keys_state=dict(self.keys_state),
        )
        logging.exp(
            f"  -> {self.params.task}  taps={self.tap_count}  level={self.level:.1f}  "
            f"bounds=({self.params.bounds[0]:.1f}, {self.params.bounds[1]:.1f})  "
            f"released_early={int(self.keys_released_early)}  "
            f"tapped_early={int(self.key_tapped_early)}  skip={int(self.params.skip)}  "
            f"success={int(self.result.success)}"
        )
        return self.result
