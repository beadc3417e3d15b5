"""
All task constants. No imports from other apathy modules.
All time values are in milliseconds; names carry a _MS suffix.
"""

# Stage / task tags recorded on every trial
PRACTICE = "practice"
DEMO = "demo"
BLOCK = "block"
ACCEPT = "accept"

CALIBRATION_PART_1 = "calibration_part_1"
CALIBRATION_PART_2 = "calibration_part_2"
FINAL_CALIBRATION_PART_1 = "final_calibration_part_1"
FINAL_CALIBRATION_PART_2 = "final_calibration_part_2"
CALIBRATION_PARTS: list[str] = [
    CALIBRATION_PART_1,
    CALIBRATION_PART_2,
    FINAL_CALIBRATION_PART_1,
    FINAL_CALIBRATION_PART_2,
]
FINAL_CALIBRATION_PARTS: list[str] = [FINAL_CALIBRATION_PART_1, FINAL_CALIBRATION_PART_2]

VALIDATION_EASY = "validation_easy"
VALIDATION_MEDIUM = "validation_medium"
VALIDATION_HARD = "validation_hard"
VALIDATION_EXTRA = "validation_extra"
VALIDATION_PARTS: list[str] = [VALIDATION_EASY, VALIDATION_MEDIUM, VALIDATION_HARD, VALIDATION_EXTRA]

# Difficulty (bounds), reward and delay tiers, in canonical sort order
EASY, MEDIUM, HARD = "easy", "medium", "hard"
LOW, MIDDLE, HIGH = "low", "middle", "high"
SYNC, NARROW_ASYNC, WIDE_ASYNC = "sync", "narrowasync", "wideasync"
BOUNDS_ORDER: list[str] = [EASY, MEDIUM, HARD]
REWARD_ORDER: list[str] = [LOW, MIDDLE, HIGH]
DELAY_ORDER: list[str] = [SYNC, NARROW_ASYNC, WIDE_ASYNC]

# Canonical target windows (level units, 0-100)
BOUNDS_DEFINITIONS: dict[str, tuple[float, float]] = {
    EASY: (30.0, 50.0),
    MEDIUM: (50.0, 70.0),
    HARD: (70.0, 90.0),
}
VALIDATION_BOUNDS: dict[str, tuple[float, float]] = {
    VALIDATION_EASY: BOUNDS_DEFINITIONS[EASY],
    VALIDATION_MEDIUM: BOUNDS_DEFINITIONS[MEDIUM],
    VALIDATION_HARD: BOUNDS_DEFINITIONS[HARD],
    VALIDATION_EXTRA: BOUNDS_DEFINITIONS[HARD],
}
VALIDATION_PART_FOR_BOUNDS: dict[str, str] = {
    EASY: VALIDATION_EASY,
    MEDIUM: VALIDATION_MEDIUM,
    HARD: VALIDATION_HARD,
}
BOUNDS_JITTER: float = 0.10  # ±10 % around the canonical window

# Reward magnitudes offered per tier (sampled uniformly per trial)
REWARD_DEFINITIONS: dict[str, tuple[float, ...]] = {
    LOW: (0.01, 0.02, 0.03),
    MIDDLE: (0.05, 0.06, 0.07),
    HIGH: (0.10, 0.11, 0.12),
}

# Feedback delay windows between tap and level increase
DELAY_DEFINITIONS: dict[str, tuple[int, int]] = {
    SYNC: (0, 0),
    NARROW_ASYNC: (400, 600),
    WIDE_ASYNC: (0, 1000),
}

# Tapping simulation
TRIAL_DURATION_MS: int = 7000
AUTO_DECREASE_RATE_MS: int = 100
AUTO_DECREASE_AMOUNT: float = 2.0
DEFAULT_AUTO_INCREASE_AMOUNT: float = 10.0
NUM_TAPS_WITHOUT_DELAY: int = 5
LEVEL_MIN: float = 0.0
LEVEL_MAX: float = 100.0
EXPECTED_MAXIMUM_PERCENTAGE: float = 100.0
EXPECTED_MAXIMUM_PERCENTAGE_FOR_CALIBRATION: float = 100.0
PRACTICE_BOUNDS: tuple[float, float] = (20.0, 40.0)

# Calibration
DEFAULT_MEDIAN_TAPS: float = 10.0
MINIMUM_CALIBRATION_MEDIAN: int = 10
# Per-trial floor for final calibration trials to count at all
MINIMUM_FINAL_CALIBRATION_TAPS: int = 5
MINIMUM_DEMO_TAPS: int = 10

# Display holds (ms) the engine must respect before the next step
COUNTDOWN_TIME_MS: int = 3000
PREMATURE_KEY_RELEASE_ERROR_TIME_MS: int = 2000
KEY_TAPPED_EARLY_ERROR_TIME_MS: int = 2000
SUCCESS_SCREEN_DURATION_MS: int = 1000
FAILED_MINIMUM_DEMO_TAPS_DURATION_MS: int = 2000
REST_SLOW_MS: int = 3000
REST_FAST_MS: int = 1000

# Keys
KEYS_TO_HOLD: list[str] = ["a", "w", "e"]
KEY_TO_PRESS: str = "o"

# Participant-facing messages
TAP_FASTER_MESSAGE = (
    "Your taps were slower than expected. "
    "Please tap as fast as you can during the next trials."
)
DEMO_TRIAL_MESSAGE = (
    "You will first play {n_demo} practice round(s) of this block, "
    "followed by {n_trials} trials that count towards your reward."
)
FAILED_MINIMUM_DEMO_TAPS_MESSAGE = "You did not tap enough. Please try again."
PREMATURE_KEY_RELEASE_ERROR_MESSAGE = "You released the keys too early!"
KEY_TAPPED_EARLY_MESSAGE = "You tapped too early!"
PASSED_VALIDATION_MESSAGE = "Well done, you passed the validation."
FAILED_VALIDATION_MESSAGE = "Unfortunately you did not pass the validation. The experiment ends here."
FAILED_CALIBRATION_MESSAGE = "Unfortunately your taps were too slow. The experiment ends here."
REWARD_TOTAL_MESSAGE = "You have earned ${total:.2f} so far."
END_EXPERIMENT_MESSAGE = "The experiment has ended. Thank you for participating!"

# Likert surveys (7-point, 1 = strongly disagree … 7 = strongly agree)
LIKERT_POINTS: int = 7
LIKERT_SURVEY_DEMO: list[str] = [
    "I felt I was in control of the bar's movement.",
    "The bar moved at the moment I tapped.",
]
LIKERT_SURVEY_BLOCK: list[str] = [
    "My task performance affects how I feel now.",
    "I felt bad when I did not perform the task successfully.",
    "It was difficult to work out what I had to do to complete the task successfully.",
    "It was difficult to keep my mind on the task.",
    "I set myself the goal to perform the task better.",
    "I felt that I needed a push to continue tapping until the end of the task.",
]
LIKERT_SURVEY_FINAL: list[str] = [
    "I feel tired right now.",
    "I feel motivated right now.",
]
# Asked after the shuffled block items, always last
LIKERT_BLOCK_FINAL_QUESTION = "I feel motivated to continue the task."
