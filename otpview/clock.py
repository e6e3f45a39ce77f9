import time
from typing import Callable, Optional

from otpview.otp import DEFAULT_PERIOD, get_ttn_per


def percentage(period: int = DEFAULT_PERIOD, now: Optional[float] = None) -> int:
    """Position within the current rotation window, in [0, 100)."""
    elapsed_ms = period * 1000 - get_ttn_per(period, now)
    return elapsed_ms * 100 // (period * 1000)


class RefreshClock:
    """Detects rotation-window boundaries from successive progress samples."""

    def __init__(self, source: Optional[Callable[[], int]] = None, period: int = DEFAULT_PERIOD):
        self._source = source or (lambda: percentage(period, time.time()))
        self.progress = self.sample()

    def sample(self) -> int:
        return self._source()

    def tick(self, force: bool = False) -> bool:
        """Sample again; True when the window wrapped or ``force`` is set."""
        new_progress = self.sample()
        wrapped = new_progress < self.progress
        self.progress = new_progress
        return wrapped or force
