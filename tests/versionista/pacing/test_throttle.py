"""Tests for the scheduler's throttle primitives."""

import pytest

from versionista_scraper.versionista.pacing.throttle import (
    Cooldown,
    PauseReason,
    RateWindow,
    Throttle,
)


class TestRateWindow:
    """Tests for the fixed-window counter."""

    def test_unlimited_never_blocks(self) -> None:
        window = RateWindow(0, 60.0)
        window.refresh(0.0)

        for _ in range(1000):
            assert window.has_capacity
            window.consume()

        assert window.unlimited is True
        assert window.remaining is None

    def test_first_refresh_starts_window(self) -> None:
        window = RateWindow(2, 10.0)
        assert window.window_start is None

        window.refresh(100.0)

        assert window.window_start == 100.0
        assert window.remaining == 2

    def test_consume_until_exhausted(self) -> None:
        window = RateWindow(2, 10.0)
        window.refresh(100.0)

        window.consume()
        window.consume()
        window.refresh(105.0)

        assert window.remaining == 0
        assert window.has_capacity is False
        assert window.seconds_until_reset(105.0) == pytest.approx(5.0)

    def test_reset_at_exact_boundary(self) -> None:
        """Elapsed equal to the window length starts a new window."""
        window = RateWindow(1, 10.0)
        window.refresh(100.0)
        window.consume()

        window.refresh(110.0)

        assert window.window_start == 110.0
        assert window.has_capacity is True

    def test_reset_aligns_to_first_window(self) -> None:
        """After a long idle gap the window start snaps to a boundary."""
        window = RateWindow(2, 10.0)
        window.refresh(100.0)
        window.consume()

        window.refresh(125.0)

        assert window.window_start == pytest.approx(120.0)
        assert window.remaining == 2
        assert window.seconds_until_reset(125.0) == pytest.approx(5.0)

    def test_no_reset_inside_window(self) -> None:
        window = RateWindow(3, 10.0)
        window.refresh(100.0)
        window.consume()

        window.refresh(109.9)

        assert window.window_start == 100.0
        assert window.remaining == 2

    def test_seconds_until_reset_before_first_use(self) -> None:
        assert RateWindow(5, 10.0).seconds_until_reset(42.0) == 0.0


class TestCooldown:
    """Tests for the completion countdown."""

    def test_pause_due_every_n_completions(self) -> None:
        cooldown = Cooldown(3)

        assert cooldown.record_completion() is False
        assert cooldown.record_completion() is False
        assert cooldown.record_completion() is True
        assert cooldown.countdown == 0

    def test_reset_restarts_countdown(self) -> None:
        cooldown = Cooldown(2)
        cooldown.record_completion()
        cooldown.record_completion()

        cooldown.reset()

        assert cooldown.countdown == 2
        assert cooldown.record_completion() is False

    @pytest.mark.parametrize("sleep_every", [0, -1])
    def test_disabled(self, sleep_every: int) -> None:
        cooldown = Cooldown(sleep_every)

        assert cooldown.enabled is False
        assert not any(cooldown.record_completion() for _ in range(100))

    def test_stays_due_until_reset(self) -> None:
        """Completions while paused do not push the countdown negative."""
        cooldown = Cooldown(1)
        assert cooldown.record_completion() is True
        assert cooldown.record_completion() is True
        assert cooldown.countdown == 0


class TestThrottle:
    """Tests for the unified pause state."""

    def test_initial_state(self) -> None:
        throttle = Throttle()

        assert throttle.active is False
        assert throttle.until is None
        assert throttle.reason is None
        assert throttle.remaining(0.0) == 0.0

    def test_pause_and_resume(self) -> None:
        throttle = Throttle()

        assert throttle.pause(10.0, 2.0, PauseReason.COOLDOWN) is True
        assert throttle.active is True
        assert throttle.until == 12.0
        assert throttle.reason is PauseReason.COOLDOWN
        assert throttle.remaining(11.0) == pytest.approx(1.0)

        assert throttle.resume(throttle.generation) is True
        assert throttle.active is False
        assert throttle.reason is None

    def test_longer_pause_wins(self) -> None:
        throttle = Throttle()
        throttle.pause(10.0, 1.0, PauseReason.COOLDOWN)

        assert throttle.pause(10.5, 5.0, PauseReason.RATE_WINDOW) is True

        assert throttle.until == 15.5
        assert throttle.reason is PauseReason.RATE_WINDOW

    def test_shorter_pause_ignored(self) -> None:
        throttle = Throttle()
        throttle.pause(10.0, 5.0, PauseReason.RATE_WINDOW)
        generation = throttle.generation

        assert throttle.pause(11.0, 1.0, PauseReason.BACKOFF) is False

        assert throttle.until == 15.0
        assert throttle.reason is PauseReason.RATE_WINDOW
        assert throttle.generation == generation

    def test_stale_timer_ignored(self) -> None:
        throttle = Throttle()
        throttle.pause(10.0, 1.0, PauseReason.COOLDOWN)
        stale = throttle.generation
        throttle.pause(10.0, 3.0, PauseReason.BACKOFF)

        assert throttle.resume(stale) is False
        assert throttle.active is True

        assert throttle.resume(throttle.generation) is True

    def test_negative_duration_clamped(self) -> None:
        throttle = Throttle()
        throttle.pause(10.0, -4.0, PauseReason.RATE_WINDOW)

        assert throttle.until == 10.0
