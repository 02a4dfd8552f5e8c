from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    The session engine never reads real time directly; the UI injects a
    RealClock and tests inject a fake one.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


@dataclass(frozen=True, slots=True)
class Deadline:
    """A single pending timer owned by a session.

    `generation` ties the deadline to the session run that armed it; a
    deadline whose generation no longer matches the owner's is stale and
    must never fire.
    """

    due_at_s: float
    generation: int

    def is_due(self, now_s: float) -> bool:
        return now_s >= self.due_at_s
