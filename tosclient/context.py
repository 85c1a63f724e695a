"""Cancellation and deadline token passed to every client operation.

A Context fires either when cancel() is called or when its deadline passes.
Children created with with_timeout() fire when their parent fires.
"""

import threading
import time
from typing import Optional

from tosclient.errors import CanceledError, DeadlineExceededError


class Context:
    """Deadline/cancellation token.

    Args:
        deadline: Absolute deadline on the time.monotonic() clock, or None.
        parent: Optional parent context whose cancellation propagates here.
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        parent: Optional["Context"] = None,
    ):
        if parent is not None and parent.deadline is not None:
            if deadline is None or parent.deadline < deadline:
                deadline = parent.deadline
        self.deadline = deadline
        self._parent = parent
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None if there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def can_fire(self) -> bool:
        """False only for a context that can never be cancelled or expire."""
        return True

    def fired(self) -> bool:
        return self.cancelled or self.expired()

    def check(self) -> None:
        """Raise if the context has fired.

        Raises:
            CanceledError: If cancel() was called on this context or a parent.
            DeadlineExceededError: If the deadline has passed.
        """
        if self.cancelled:
            raise CanceledError()
        if self.expired():
            raise DeadlineExceededError()

    def wait(self, seconds: float) -> None:
        """Sleep up to seconds, waking early if cancelled; then check()."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._cancelled.wait(max(0.0, seconds))
        self.check()


class _BackgroundContext(Context):
    @property
    def can_fire(self) -> bool:
        return False

    def cancel(self) -> None:
        pass


_BACKGROUND = _BackgroundContext()


def background() -> Context:
    """Return the shared context that never fires."""
    return _BACKGROUND


def with_timeout(seconds: float, parent: Optional[Context] = None) -> Context:
    """Create a context that expires after seconds (or earlier with its parent)."""
    return Context(deadline=time.monotonic() + seconds, parent=parent)
