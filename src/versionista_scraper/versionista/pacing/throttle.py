"""Throttle primitives for the request scheduler.

Three independent constraints gate every dispatch:

- RateWindow: a fixed-duration window capping dispatches within it
- Cooldown: a pause imposed after every N completed requests
- Throttle: the single "paused until T" state the scheduler is in while
  any pause (cooldown, rate window, retry backoff) is in effect

All methods take the current time explicitly (monotonic seconds, as
returned by ``loop.time()``) so they can be driven deterministically.
"""

from __future__ import annotations

from enum import StrEnum


class PauseReason(StrEnum):
    """Why the scheduler is paused."""

    COOLDOWN = "cooldown"
    RATE_WINDOW = "rate_window"
    BACKOFF = "backoff"


class RateWindow:
    """Fixed-window dispatch counter.

    The window starts at the first refresh. Once a full window has elapsed,
    the start moves forward to the most recent window boundary (keeping
    windows aligned to the first start) and the allowance is restored.

    A ``max_per_window`` of 0 means unlimited.
    """

    def __init__(self, max_per_window: int, window_seconds: float) -> None:
        self._max = max_per_window
        self._window_seconds = window_seconds
        self._window_start: float | None = None
        self._remaining = max_per_window

    @property
    def unlimited(self) -> bool:
        """Whether this window never blocks."""
        return self._max <= 0

    @property
    def window_start(self) -> float | None:
        """Start of the current window (None before first use)."""
        return self._window_start

    @property
    def remaining(self) -> int | None:
        """Dispatches left in the current window (None when unlimited)."""
        if self.unlimited:
            return None
        return self._remaining

    @property
    def has_capacity(self) -> bool:
        """Whether another dispatch fits in the current window."""
        return self.unlimited or self._remaining > 0

    def refresh(self, now: float) -> None:
        """Roll the window forward if it has expired."""
        if self._window_start is None:
            self._window_start = now
            return

        elapsed = now - self._window_start
        if elapsed >= self._window_seconds:
            self._window_start = now - (elapsed % self._window_seconds)
            self._remaining = self._max

    def consume(self) -> None:
        """Record one dispatch against the current window."""
        if not self.unlimited:
            self._remaining -= 1

    def seconds_until_reset(self, now: float) -> float:
        """Seconds until the current window ends."""
        if self._window_start is None:
            return 0.0
        return max(0.0, self._window_start + self._window_seconds - now)


class Cooldown:
    """Counts completed requests until the next mandatory pause.

    A ``sleep_every`` of 0 or less disables cooldown pauses.
    """

    def __init__(self, sleep_every: int) -> None:
        self._sleep_every = sleep_every
        self._countdown = max(0, sleep_every)

    @property
    def enabled(self) -> bool:
        return self._sleep_every > 0

    @property
    def countdown(self) -> int:
        """Completions left before the next pause."""
        return self._countdown

    def record_completion(self) -> bool:
        """Count one completion.

        Returns:
            True when a cooldown pause is now due
        """
        if not self.enabled:
            return False
        if self._countdown > 0:
            self._countdown -= 1
        return self._countdown == 0

    def reset(self) -> None:
        """Start a fresh countdown (after any pause ends)."""
        self._countdown = max(0, self._sleep_every)


class Throttle:
    """The scheduler's single paused state.

    Only one pause is tracked at a time. Requesting a pause that ends later
    than the current one replaces it; a pause that would end sooner is
    ignored, so the most restrictive constraint always wins. Each accepted
    pause gets a new generation number so a timer armed for an earlier
    pause can be recognised as stale.
    """

    def __init__(self) -> None:
        self._active = False
        self._until: float | None = None
        self._reason: PauseReason | None = None
        self._generation = 0

    @property
    def active(self) -> bool:
        return self._active

    @property
    def until(self) -> float | None:
        """Monotonic time the current pause ends (None when not paused)."""
        return self._until

    @property
    def reason(self) -> PauseReason | None:
        return self._reason

    @property
    def generation(self) -> int:
        return self._generation

    def pause(self, now: float, seconds: float, reason: PauseReason) -> bool:
        """Request a pause of ``seconds`` starting at ``now``.

        Returns:
            True if the pause was accepted and a new timer must be armed,
            False if an existing pause already lasts at least as long
        """
        until = now + max(0.0, seconds)
        if self._active and self._until is not None and until <= self._until:
            return False

        self._active = True
        self._until = until
        self._reason = reason
        self._generation += 1
        return True

    def resume(self, generation: int) -> bool:
        """End the pause armed with ``generation``.

        Returns:
            True if the pause ended, False if the generation is stale
        """
        if not self._active or generation != self._generation:
            return False

        self._active = False
        self._until = None
        self._reason = None
        return True

    def remaining(self, now: float) -> float:
        """Seconds left in the current pause (0 when not paused)."""
        if not self._active or self._until is None:
            return 0.0
        return max(0.0, self._until - now)
