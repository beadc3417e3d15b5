"""
Experiment settings: immutable dataclasses, JSON loading, and clamping.

Settings arrive from an administration UI that stores camelCase keys
(``numberOfValidationsPerType``); snake_case keys are accepted as well.
Out-of-range values never raise here: there is no way to recover
interactively once a participant is in the middle of a session, so every
anomaly is clamped to a safe value and logged as a warning.
"""
from __future__ import annotations

import json
import math
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping

from psychopy import logging

from apathy import config


def _default_required_trials() -> dict[str, int]:
    return {part: 1 for part in config.CALIBRATION_PARTS}


def _default_reference_medians() -> dict[str, str]:
    # Which stage's median scales the auto-increase of each calibration stage
    return {
        config.CALIBRATION_PART_1: config.CALIBRATION_PART_1,
        config.CALIBRATION_PART_2: config.CALIBRATION_PART_1,
        config.FINAL_CALIBRATION_PART_1: config.CALIBRATION_PART_1,
        config.FINAL_CALIBRATION_PART_2: config.FINAL_CALIBRATION_PART_1,
    }


@dataclass(frozen=True)
class PracticeSettings:
    number_of_practice_loops: int = 1


@dataclass(frozen=True)
class CalibrationSettings:
    required_trials_calibration: dict[str, int] = field(default_factory=_default_required_trials, hash=False)
    minimum_calibration_median_taps: int = config.MINIMUM_CALIBRATION_MEDIAN
    minimum_final_calibration_taps: int = config.MINIMUM_FINAL_CALIBRATION_TAPS
    reference_medians: dict[str, str] = field(default_factory=_default_reference_medians, hash=False)
    task_reference_median: str = config.CALIBRATION_PART_2

    def required_successes(self, part: str) -> int:
        return self.required_trials_calibration[part]


@dataclass(frozen=True)
class ValidationSettings:
    number_of_validations_per_type: int = 1
    percentage_of_validation_successes_required: float = 75.0
    percentage_of_extra_validation_successes_required: float = 50.0

    def allowed_failures(self, part: str) -> float:
        """Failures tolerated in a validation stage before it counts as failed."""
        if part == config.VALIDATION_EXTRA:
            pct = self.percentage_of_extra_validation_successes_required
        else:
            pct = self.percentage_of_validation_successes_required
        return self.number_of_validations_per_type * (1 - pct / 100)


@dataclass(frozen=True)
class TaskSettings:
    task_blocks_included: list[str] = field(default_factory=lambda: list(config.DELAY_ORDER), hash=False)
    task_bounds_included: list[str] = field(default_factory=lambda: list(config.BOUNDS_ORDER), hash=False)
    task_rewards_included: list[str] = field(default_factory=lambda: list(config.REWARD_ORDER), hash=False)
    task_block_repetitions: int = 2
    task_permutation_repetitions: int = 1
    random_skip_chance: float = 0.0  # percent

    @property
    def trials_per_block(self) -> int:
        return (
            self.task_permutation_repetitions
            * len(self.task_bounds_included)
            * len(self.task_rewards_included)
        )


@dataclass(frozen=True)
class TappingSettings:
    trial_duration_ms: int = config.TRIAL_DURATION_MS
    auto_decrease_rate_ms: int = config.AUTO_DECREASE_RATE_MS
    auto_decrease_amount: float = config.AUTO_DECREASE_AMOUNT
    taps_without_delay: int = config.NUM_TAPS_WITHOUT_DELAY


@dataclass(frozen=True)
class Settings:
    practice: PracticeSettings = field(default_factory=PracticeSettings)
    calibration: CalibrationSettings = field(default_factory=CalibrationSettings)
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    task: TaskSettings = field(default_factory=TaskSettings)
    tapping: TappingSettings = field(default_factory=TappingSettings)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Settings:
        """Build settings from a (possibly partial, possibly camelCase) mapping."""
        data = _normalise_keys(data)
        practice = _section(data, "practice_settings" if "practice_settings" in data else "practice")
        calibration = _section(data, "calibration_settings" if "calibration_settings" in data else "calibration")
        validation = _section(data, "validation_settings" if "validation_settings" in data else "validation")
        task = _section(data, "task_settings" if "task_settings" in data else "task")
        tapping = _section(data, "tapping_settings" if "tapping_settings" in data else "tapping")

        return cls(
            practice=_build_practice(practice),
            calibration=_build_calibration(calibration),
            validation=_build_validation(validation),
            task=_build_task(task),
            tapping=_build_tapping(tapping),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_settings(path: Path) -> Settings:
    """Read a JSON settings file and return clamped Settings."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Settings file must contain a JSON object; got {type(data).__name__}")
    return Settings.from_dict(data)


# ── normalisation helpers ───────────────────────────────────────────────────


def _snake_case(name: str) -> str:
    """calibrationPart1 -> calibration_part_1, taskBlocksIncluded -> task_blocks_included."""
    return re.sub(r"(?<=[a-z])(?=[A-Z0-9])", "_", name).lower()


def _normalise_keys(data: Mapping[str, Any] | None) -> dict[str, Any]:
    if not data:
        return {}
    return {_snake_case(str(k)): v for k, v in data.items()}


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    """Normalised sub-mapping; anything that is not a mapping is ignored."""
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        logging.warning(f"Setting {name}={value!r} is not a mapping; using defaults")
        return {}
    return _normalise_keys(value)


def _clamp_int(value: Any, default: int, minimum: int, name: str) -> int:
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        logging.warning(f"Setting {name}={value!r} is not a number; using {default}")
        return default
    if number < minimum:
        logging.warning(f"Setting {name}={number} below {minimum}; clamped")
        return minimum
    return number


def _clamp_float(value: Any, default: float, low: float, high: float | None, name: str) -> float:
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        logging.warning(f"Setting {name}={value!r} is not a number; using {default}")
        return default
    if not math.isfinite(number):
        logging.warning(f"Setting {name}={number} is not finite; using {default}")
        return default
    if number < low:
        logging.warning(f"Setting {name}={number} below {low}; clamped")
        return low
    if high is not None and number > high:
        logging.warning(f"Setting {name}={number} above {high}; clamped")
        return high
    return number


def _tiers(values: Any, order: list[str], name: str) -> list[str]:
    """Drop unknown and duplicate tiers, sort canonically, never return empty."""
    if values is None:
        return list(order)
    if isinstance(values, (str, Mapping)) or not isinstance(values, (list, tuple)):
        logging.warning(f"Setting {name}={values!r} is not a list; using all levels {order}")
        return list(order)
    kept: list[str] = []
    for value in values:
        tier = str(value).lower()
        if tier not in order:
            logging.warning(f"Setting {name}: unknown level {value!r} ignored")
            continue
        if tier not in kept:
            kept.append(tier)
    if not kept:
        logging.warning(f"Setting {name} is empty; using all levels {order}")
        return list(order)
    return sorted(kept, key=order.index)


def _build_practice(data: dict[str, Any]) -> PracticeSettings:
    return PracticeSettings(
        number_of_practice_loops=_clamp_int(
            data.get("number_of_practice_loops"), 1, 0, "number_of_practice_loops"
        ),
    )


def _build_calibration(data: dict[str, Any]) -> CalibrationSettings:
    required = _default_required_trials()
    for part, value in _section(data, "required_trials_calibration").items():
        if part not in required:
            logging.warning(f"Setting required_trials_calibration: unknown part {part!r} ignored")
            continue
        required[part] = _clamp_int(value, 1, 1, f"required_trials_calibration.{part}")

    references = _default_reference_medians()
    for part, source in _section(data, "reference_medians").items():
        source = _snake_case(str(source))
        if part not in references or source not in config.CALIBRATION_PARTS:
            logging.warning(f"Setting reference_medians: {part!r} -> {source!r} ignored")
            continue
        references[part] = source

    task_reference = _snake_case(str(data.get("task_reference_median", config.CALIBRATION_PART_2)))
    if task_reference not in config.CALIBRATION_PARTS:
        logging.warning(f"Setting task_reference_median={task_reference!r} unknown; using calibration_part_2")
        task_reference = config.CALIBRATION_PART_2

    return CalibrationSettings(
        required_trials_calibration=required,
        minimum_calibration_median_taps=_clamp_int(
            data.get("minimum_calibration_median_taps"),
            config.MINIMUM_CALIBRATION_MEDIAN, 1, "minimum_calibration_median_taps",
        ),
        minimum_final_calibration_taps=_clamp_int(
            data.get("minimum_final_calibration_taps"),
            config.MINIMUM_FINAL_CALIBRATION_TAPS, 0, "minimum_final_calibration_taps",
        ),
        reference_medians=references,
        task_reference_median=task_reference,
    )


def _build_validation(data: dict[str, Any]) -> ValidationSettings:
    return ValidationSettings(
        number_of_validations_per_type=_clamp_int(
            data.get("number_of_validations_per_type"), 1, 1, "number_of_validations_per_type"
        ),
        percentage_of_validation_successes_required=_clamp_float(
            data.get("percentage_of_validation_successes_required"), 75.0, 0.0, 100.0,
            "percentage_of_validation_successes_required",
        ),
        percentage_of_extra_validation_successes_required=_clamp_float(
            data.get("percentage_of_extra_validation_successes_required"), 50.0, 0.0, 100.0,
            "percentage_of_extra_validation_successes_required",
        ),
    )


def _build_task(data: dict[str, Any]) -> TaskSettings:
    return TaskSettings(
        task_blocks_included=_tiers(data.get("task_blocks_included"), config.DELAY_ORDER, "task_blocks_included"),
        task_bounds_included=_tiers(data.get("task_bounds_included"), config.BOUNDS_ORDER, "task_bounds_included"),
        task_rewards_included=_tiers(data.get("task_rewards_included"), config.REWARD_ORDER, "task_rewards_included"),
        task_block_repetitions=_clamp_int(data.get("task_block_repetitions"), 2, 1, "task_block_repetitions"),
        task_permutation_repetitions=_clamp_int(
            data.get("task_permutation_repetitions"), 1, 1, "task_permutation_repetitions"
        ),
        random_skip_chance=_clamp_float(data.get("random_skip_chance"), 0.0, 0.0, 100.0, "random_skip_chance"),
    )


def _build_tapping(data: dict[str, Any]) -> TappingSettings:
    return TappingSettings(
        trial_duration_ms=_clamp_int(
            data.get("trial_duration_ms"), config.TRIAL_DURATION_MS, 1, "trial_duration_ms"
        ),
        auto_decrease_rate_ms=_clamp_int(
            data.get("auto_decrease_rate_ms"), config.AUTO_DECREASE_RATE_MS, 1, "auto_decrease_rate_ms"
        ),
        auto_decrease_amount=_clamp_float(
            data.get("auto_decrease_amount"), config.AUTO_DECREASE_AMOUNT, 0.0, None, "auto_decrease_amount"
        ),
        taps_without_delay=_clamp_int(
            data.get("taps_without_delay"), config.NUM_TAPS_WITHOUT_DELAY, 0, "taps_without_delay"
        ),
    )
