"""Scrub coalescing.

While a scrub gesture is active, seek requests arrive far faster than a
resync is worth doing. The coordinator keeps only the latest requested time
and applies it once the coalescing delay has passed, or immediately when the
gesture ends. The clock is supplied by the caller, so the state machine is
fully deterministic:

    Idle --request(dragging)--> PendingFlush(time, deadline)
    PendingFlush --request--> PendingFlush(new time, same deadline)
    PendingFlush --poll(now >= deadline) / flush / end_drag--> Idle (applied)
    PendingFlush --cancel--> Idle (discarded)
"""

import logging
from dataclasses import dataclass
from typing import Callable

from visualpiano.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingFlush:
    time: float
    deadline: float


class SeekCoordinator:
    """Coalesce rapid seek requests into one authoritative resync."""

    def __init__(self, apply: Callable[[float], None], delay: float | None = None) -> None:
        self._apply = apply
        self.delay = settings.seek_coalesce_ms / 1000.0 if delay is None else delay
        self.dragging = False
        self.pending: PendingFlush | None = None

    @property
    def idle(self) -> bool:
        return self.pending is None

    def begin_drag(self) -> None:
        self.dragging = True

    def end_drag(self) -> float | None:
        """Gesture ended: stop coalescing and apply whatever is pending."""
        self.dragging = False
        return self.flush()

    def request(self, time: float, now: float) -> float | None:
        """Ask for a resync at ``time``.

        Outside a gesture the resync happens right away and the applied time
        is returned. During a gesture the request is stored (last write wins)
        and None is returned.
        """
        if not self.dragging:
            self.pending = PendingFlush(time, now)
            return self.flush()
        deadline = self.pending.deadline if self.pending else now + self.delay
        self.pending = PendingFlush(time, deadline)
        return None

    def poll(self, now: float) -> float | None:
        """Fire the pending resync if its deadline has passed."""
        if self.pending is not None and now >= self.pending.deadline:
            return self.flush()
        return None

    def flush(self) -> float | None:
        """Apply the latest pending time immediately."""
        if self.pending is None:
            return None
        time = self.pending.time
        self.pending = None
        self._apply(time)
        return time

    def cancel(self) -> None:
        """Discard any pending request without applying it."""
        if self.pending is not None:
            logger.debug(f"Discarding pending seek to {self.pending.time:.3f}s")
        self.pending = None
        self.dragging = False
