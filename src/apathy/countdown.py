"""
Countdown that precedes a tapping trial.

The countdown only runs while every hold key is down. Releasing a hold key
resets it (and forgets an early tap); pressing the response key while it
runs marks the following trial as tapped early.
"""
from __future__ import annotations

from apathy import config


class Countdown:
    def __init__(
        self,
        wait_ms: int = config.COUNTDOWN_TIME_MS,
        keys_to_hold: list[str] | None = None,
        key_to_press: str = config.KEY_TO_PRESS,
    ) -> None:
        self.wait_ms = max(0, int(wait_ms))
        self.keys_state: dict[str, bool] = {k.lower(): False for k in (keys_to_hold or config.KEYS_TO_HOLD)}
        self._key_to_press = key_to_press.lower()
        self.started_at_ms: float | None = None
        self.key_tapped_early = False
        self.finished = False

    @property
    def keys_held(self) -> bool:
        return all(self.keys_state.values())

    def remaining_ms(self, now_ms: float) -> float | None:
        """Time left for display, or None while waiting for the keys."""
        if self.started_at_ms is None:
            return None
        return max(0.0, self.wait_ms - (now_ms - self.started_at_ms))

    def key_down(self, key: str, now_ms: float) -> bool:
        if self.advance(now_ms):
            return True
        key = key.lower()
        if key in self.keys_state:
            self.keys_state[key] = True
            self._update(now_ms)
        elif key == self._key_to_press and self.started_at_ms is not None:
            self.key_tapped_early = True
        return self.advance(now_ms)

    def key_up(self, key: str, now_ms: float) -> bool:
        if self.advance(now_ms):
            return True
        key = key.lower()
        if key in self.keys_state:
            self.keys_state[key] = False
            self._update(now_ms)
        return self.finished

    def advance(self, now_ms: float) -> bool:
        """Return True once the countdown has run to completion."""
        if not self.finished and self.started_at_ms is not None:
            if now_ms - self.started_at_ms >= self.wait_ms:
                self.finished = True
        return self.finished

    def _update(self, now_ms: float) -> None:
        if self.keys_held and self.started_at_ms is None:
            self.started_at_ms = now_ms
        elif not self.keys_held and self.started_at_ms is not None:
            self.started_at_ms = None
            self.key_tapped_early = False
