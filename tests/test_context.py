"""Tests for the deadline/cancellation token."""

import threading
import time

import pytest

from tosclient.context import Context, background, with_timeout
from tosclient.errors import CanceledError, DeadlineExceededError


class TestBackground:
    """Tests for the background context."""

    def test_never_fires(self):
        """background() has no deadline and is never cancelled."""
        ctx = background()

        ctx.check()
        assert ctx.deadline is None
        assert ctx.remaining() is None
        assert not ctx.can_fire
        assert not ctx.fired()

    def test_cancel_is_ignored(self):
        """The shared background context cannot be cancelled."""
        ctx = background()

        ctx.cancel()

        assert not ctx.cancelled


class TestContext:
    """Tests for Context."""

    def test_fired(self):
        """fired() turns true on cancel or once the deadline passes."""
        cancellable = Context()
        expiring = Context(deadline=time.monotonic() - 1)

        assert cancellable.can_fire
        assert not cancellable.fired()
        cancellable.cancel()
        assert cancellable.fired()
        assert expiring.fired()

    def test_cancel(self):
        """A cancelled context raises CanceledError."""
        ctx = Context()

        ctx.cancel()

        with pytest.raises(CanceledError):
            ctx.check()

    def test_expired_deadline(self):
        """A passed deadline raises DeadlineExceededError."""
        ctx = with_timeout(0)

        assert ctx.expired()
        with pytest.raises(DeadlineExceededError):
            ctx.check()

    def test_future_deadline(self):
        """A context with time left does not fire."""
        ctx = with_timeout(60)

        ctx.check()
        assert 0 < ctx.remaining() <= 60

    def test_cancel_wins_over_deadline(self):
        """Cancellation is reported even after the deadline passed."""
        ctx = with_timeout(0)

        ctx.cancel()

        with pytest.raises(CanceledError):
            ctx.check()

    def test_parent_cancellation_propagates(self):
        """Children fire when their parent is cancelled."""
        parent = Context()
        child = with_timeout(60, parent)

        parent.cancel()

        assert child.cancelled
        with pytest.raises(CanceledError):
            child.check()

    def test_child_cancellation_does_not_propagate_up(self):
        """Cancelling a child leaves the parent untouched."""
        parent = Context()
        child = with_timeout(60, parent)

        child.cancel()

        assert not parent.cancelled

    def test_child_inherits_earlier_deadline(self):
        """A child never outlives its parent."""
        parent = with_timeout(1)
        child = with_timeout(100, parent)

        assert child.deadline == parent.deadline

    def test_child_keeps_own_earlier_deadline(self):
        """A shorter child deadline is kept."""
        parent = with_timeout(100)
        child = with_timeout(1, parent)

        assert child.deadline < parent.deadline

    def test_wait_stops_at_deadline(self):
        """wait() returns at the deadline and raises."""
        ctx = with_timeout(0.05)
        start = time.monotonic()

        with pytest.raises(DeadlineExceededError):
            ctx.wait(10)

        assert time.monotonic() - start < 5

    def test_wait_wakes_on_cancel(self):
        """wait() wakes early when another thread cancels."""
        ctx = Context()
        timer = threading.Timer(0.05, ctx.cancel)
        timer.start()
        start = time.monotonic()

        try:
            with pytest.raises(CanceledError):
                ctx.wait(10)
        finally:
            timer.cancel()

        assert time.monotonic() - start < 5

    def test_wait_without_firing(self):
        """A short wait on a live context returns normally."""
        Context().wait(0)
