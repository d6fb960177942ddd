"""
Poll policy for the batch status loop.

A Binance Pay batch can legitimately sit in PROCESSING for a long, unknown
time, so by default the loop has no ceiling: it stops on the first terminal
status or when the process is killed. ``max_attempts`` and ``deadline`` are
opt-in limits for operators who prefer a bounded wait.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from payout_runner.config import Settings

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class PollPolicy:
    error_backoff: float = 120.0
    pending_backoff: float = 10.0
    max_attempts: Optional[int] = None
    deadline: Optional[float] = None  # seconds since the first query
    sleep: Sleep = field(default=asyncio.sleep, compare=False)
    clock: Callable[[], float] = field(default=time.monotonic, compare=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollPolicy":
        return cls(
            error_backoff=settings.poll_error_backoff_s,
            pending_backoff=settings.poll_pending_backoff_s,
            max_attempts=settings.poll_max_attempts,
            deadline=settings.poll_deadline_s,
        )

    @property
    def bounded(self) -> bool:
        return self.max_attempts is not None or self.deadline is not None

    def exhausted(self, attempts: int, elapsed: float) -> bool:
        if self.max_attempts is not None and attempts >= self.max_attempts:
            return True
        if self.deadline is not None and elapsed >= self.deadline:
            return True
        return False
