"""Variable-speed transport clock with an optional loop region.

Transport seconds run at wall-clock rate; song time is transport seconds
multiplied by the playback speed, so changing speed rescales the transport
position rather than the clock.
"""

from enum import Enum


class TransportState(str, Enum):
    STOPPED = "stopped"
    STARTED = "started"
    PAUSED = "paused"


class Transport:
    def __init__(self) -> None:
        self.state = TransportState.STOPPED
        self.seconds = 0.0
        self.loop = False
        self.loop_start = 0.0
        self.loop_end = 0.0
        self._last_now: float | None = None

    @property
    def started(self) -> bool:
        return self.state is TransportState.STARTED

    def start(self, now: float) -> None:
        self.state = TransportState.STARTED
        self._last_now = now

    def pause(self, now: float) -> None:
        if self.started:
            self.advance(now)
            self.state = TransportState.PAUSED
        self._last_now = None

    def stop(self) -> None:
        self.state = TransportState.STOPPED
        self._last_now = None

    def set_loop(self, start: float, end: float, enabled: bool) -> None:
        self.loop_start = start
        self.loop_end = end
        self.loop = enabled

    def advance(self, now: float) -> bool:
        """Move the clock to ``now``. Returns True if the loop region wrapped."""
        if not self.started or self._last_now is None:
            return False
        elapsed = max(0.0, now - self._last_now)
        self._last_now = now
        self.seconds += elapsed

        length = self.loop_end - self.loop_start
        if self.loop and length > 0 and self.seconds >= self.loop_end:
            self.seconds = self.loop_start + (self.seconds - self.loop_end) % length
            return True
        return False
