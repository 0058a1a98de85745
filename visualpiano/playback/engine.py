"""Playback orchestrator - owns every piece of per-file state.

One ``PlaybackEngine`` holds the analysis of the loaded file, the transport,
the note cursor, the scheduling queue, loop marks and the scrub coalescer.
``load_file`` builds the new analysis first and only then swaps it in, so no
state from a previous file can leak into lookups for the next one.

All methods are synchronous; time comes from the injected ``clock``.
"""

import logging
import math
import time
from collections import deque
from typing import Callable

from visualpiano.analysis.engine import AnalysisEngine
from visualpiano.analysis.grid import bar_start_at, beat_index_at, lines_in_window, next_bar_span
from visualpiano.analysis.hands import split_by_hand
from visualpiano.analysis.marks import insert_unique, nearest_mark, next_mark, remove_near, resolve_segment
from visualpiano.analysis.models import AnalysisResult, HandMode, LoopSegment, Note, RawMidiData
from visualpiano.analysis.timeformat import format_time, parse_time_input
from visualpiano.config import settings
from visualpiano.playback.index import PlaybackIndex
from visualpiano.playback.models import FrameSnapshot
from visualpiano.playback.scheduler import NoteScheduler
from visualpiano.playback.seek import SeekCoordinator
from visualpiano.playback.transport import Transport

logger = logging.getLogger(__name__)

_HAND_CYCLE = {
    HandMode.BOTH: HandMode.LEFT,
    HandMode.LEFT: HandMode.RIGHT,
    HandMode.RIGHT: HandMode.BOTH,
}


class PlaybackEngine:
    """Timeline state machine driven by user controls and periodic ticks."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, analyzer: AnalysisEngine | None = None):
        self._clock = clock
        self._analyzer = analyzer or AnalysisEngine()
        self.song: AnalysisResult | None = None
        self.notes_left: list[Note] = []
        self.notes_right: list[Note] = []
        self.transport = Transport()
        self.scheduler = NoteScheduler()
        self.index = PlaybackIndex()
        self.seeker = SeekCoordinator(self._perform_seek_refresh)
        self.marks: list[float] = []
        self.looping = False
        self.loop_start = 0.0
        self.loop_end = 0.0
        self.speed = settings.default_speed
        self.hand_mode = HandMode.BOTH
        self._snap_until = 0.0
        self._release_all = False
        self._notices: deque[str] = deque(maxlen=32)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def loaded(self) -> bool:
        return self.song is not None

    @property
    def duration(self) -> float:
        return self.song.duration if self.song else 0.0

    @property
    def song_time(self) -> float:
        return self.transport.seconds * self.speed

    @property
    def playing(self) -> bool:
        return self.transport.started

    @property
    def active_notes(self) -> list[Note]:
        if self.song is None:
            return []
        if self.hand_mode is HandMode.LEFT:
            return self.notes_left
        if self.hand_mode is HandMode.RIGHT:
            return self.notes_right
        return self.song.notes

    @property
    def loop_segment(self) -> LoopSegment | None:
        if self.looping and self.loop_end > self.loop_start:
            return LoopSegment(self.loop_start, self.loop_end)
        return None

    @property
    def frame_interval(self) -> float:
        """Seconds between ticks the driver should aim for."""
        return 1.0 / (settings.active_fps if self.playing else settings.idle_fps)

    def drain_notices(self) -> list[str]:
        notices = list(self._notices)
        self._notices.clear()
        return notices

    def _notify(self, message: str) -> None:
        logger.info(message)
        self._notices.append(message)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_file(self, raw: RawMidiData) -> AnalysisResult:
        """Analyze ``raw`` and replace all per-file state with the result."""
        song = self._analyzer.analyze(raw)
        left, right = split_by_hand(song.notes, song.split_point)

        self.seeker.cancel()
        self.transport = Transport()
        self.scheduler.clear()
        self.song = song
        self.notes_left, self.notes_right = left, right
        self.marks = []
        self.looping = False
        self.loop_start = 0.0
        self.loop_end = song.duration
        self.speed = settings.default_speed
        self.hand_mode = HandMode.BOTH
        self.index.reset(self.active_notes)
        self._snap_until = 0.0
        self._release_all = True
        self._notices.clear()
        self._sync_transport_loop()
        self._notify("MIDI loaded.")
        return song

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _set_song_time(self, song_time: float) -> None:
        self.transport.seconds = song_time / self.speed

    def _sync_transport_loop(self) -> None:
        self.transport.set_loop(self.loop_start / self.speed, self.loop_end / self.speed, self.looping)

    def _resync(self, song_time: float) -> None:
        """Reposition transport, schedule and cursor for a discontinuous move."""
        self._set_song_time(song_time)
        self._release_all = True
        self.scheduler.rebuild(self.active_notes, song_time, self.speed)
        self.index.resync(song_time)

    def play(self) -> None:
        if self.song is None:
            return
        self._sync_transport_loop()
        self.scheduler.rebuild(self.active_notes, self.song_time, self.speed, keep_offs=True)
        if not self.transport.started:
            self.transport.start(self._clock())

    def pause(self) -> None:
        self.transport.pause(self._clock())

    def stop(self) -> None:
        """Stop and rewind to the loop start (or the beginning)."""
        target = self.loop_start if self.loop_segment else 0.0
        self.transport.stop()
        self._set_song_time(target)
        self.scheduler.clear()
        self._sync_transport_loop()
        self.index.resync(target)
        self._release_all = True

    def set_speed(self, speed: float) -> float:
        """Change playback speed, keeping the song position."""
        if self.song is None:
            return self.speed
        speed = min(settings.speed_max, max(settings.speed_min, float(speed)))
        song_time = self.song_time
        self.speed = speed
        self._sync_transport_loop()
        self._resync(song_time)
        self._notify(f"Speed: {speed:.2f}x")
        return speed

    def adjust_speed(self, delta: float) -> float:
        """Nudge the speed by ``delta``, snapped to the speed step."""
        if self.song is None or not math.isfinite(delta):
            return self.speed
        step = settings.speed_step
        target = min(settings.speed_max, max(settings.speed_min, self.speed + delta))
        snapped = round(round(target / step) * step, 2)
        if abs(snapped - self.speed) < 1e-6:
            return self.speed
        return self.set_speed(snapped)

    def reset_speed(self) -> float:
        return self.set_speed(settings.default_speed)

    def set_hand_mode(self, mode: HandMode | str) -> HandMode:
        self.hand_mode = HandMode(mode)
        if self.song is None:
            return self.hand_mode
        self.index.reset(self.active_notes)
        self._resync(self.song_time)
        label = "Hands: both" if self.hand_mode is HandMode.BOTH else f"Hand: {self.hand_mode.value}"
        self._notify(label)
        return self.hand_mode

    def cycle_hand_mode(self) -> HandMode:
        return self.set_hand_mode(_HAND_CYCLE[self.hand_mode])

    # ------------------------------------------------------------------
    # Seeking
    # ------------------------------------------------------------------

    def _perform_seek_refresh(self, song_time: float) -> None:
        self._resync(song_time)
        if self.looping:
            self._update_loop_from_marks()

    def seek(self, song_time: float) -> float:
        """Move the playhead; the resync is coalesced while scrubbing."""
        if self.song is None:
            return 0.0
        song_time = min(self.duration, max(0.0, song_time))
        self._set_song_time(song_time)
        self.seeker.request(song_time, self._clock())
        return song_time

    def begin_scrub(self) -> None:
        self.seeker.begin_drag()

    def scrub(self, song_time: float) -> float:
        """Seek during a drag gesture, snapping onto nearby marks."""
        if self.song is None:
            return 0.0
        now = self._clock()
        if self.seeker.dragging and self.marks:
            mark, distance = nearest_mark(self.marks, song_time)
            if distance <= settings.snap_threshold or now < self._snap_until:
                song_time = mark
                self._snap_until = now + settings.snap_hold_seconds
            else:
                self._snap_until = 0.0
        return self.seek(song_time)

    def end_scrub(self) -> None:
        self._snap_until = 0.0
        self.seeker.end_drag()

    def seek_by_delta(self, delta: float) -> float:
        if self.song is None or not math.isfinite(delta) or delta == 0:
            return self.song_time
        return self.seek(self.song_time + delta)

    # ------------------------------------------------------------------
    # Marks and looping
    # ------------------------------------------------------------------

    def _update_loop_from_marks(self) -> None:
        segment = resolve_segment(self.marks, self.song_time, self.duration)
        if segment is None:
            return
        self.loop_start, self.loop_end = segment.start, segment.end
        self._sync_transport_loop()
        if self.transport.started:
            self._resync(self.loop_start)

    def mark_loop(self) -> bool:
        """Drop a mark at the start of the current bar. Turns looping off."""
        if self.song is None:
            return False
        mark = bar_start_at(self.song.grid, self.song_time)
        added = insert_unique(self.marks, mark, settings.mark_epsilon)
        self.looping = False
        self._sync_transport_loop()
        if added:
            self._notify(f"Loop mark set at {format_time(mark)}.")
        else:
            self._notify(f"Loop mark already exists at {format_time(mark)}.")
        return added

    def toggle_loop(self) -> bool:
        """Turn looping on (bounds from the marks around the playhead) or off."""
        if self.song is None:
            return False
        if self.looping:
            self.looping = False
        else:
            segment = resolve_segment(self.marks, self.song_time, self.duration)
            if segment is None:
                return False
            self.loop_start, self.loop_end = segment.start, segment.end
            self.looping = True
        self._sync_transport_loop()
        if self.transport.started:
            self.scheduler.rebuild(self.active_notes, self.song_time, self.speed, keep_offs=True)
        if self.looping:
            self._notify(f"Loop on: {format_time(self.loop_start)} - {format_time(self.loop_end)}.")
        else:
            self._notify("Loop off.")
        return self.looping

    def jump_to_next_mark(self) -> float | None:
        if self.song is None:
            return None
        target = next_mark(self.marks, self.song_time, settings.mark_epsilon)
        if target is None:
            return None
        self.seeker.cancel()
        self._resync(target)
        self._notify(f"Jumped to mark {format_time(target)}.")
        return target

    def clear_marks(self) -> None:
        """Forget all marks, stop looping and drop any pending scrub."""
        if self.song is None:
            return
        self.seeker.cancel()
        self.marks = []
        self.looping = False
        self.loop_start = 0.0
        self.loop_end = self.duration
        self._sync_transport_loop()
        self._resync(self.song_time)

    def edit_loop_bounds(self, start_text: str, end_text: str) -> bool:
        """Apply user-typed loop bounds; invalid text leaves everything as it was."""
        if self.song is None or not self.looping:
            return False
        start = parse_time_input(start_text)
        end = parse_time_input(end_text)
        if start is None or end is None:
            self._notify("Invalid loop time. Use m:ss or seconds.")
            return False
        return self.apply_loop_bounds(start, end)

    def apply_loop_bounds(self, start: float, end: float) -> bool:
        """Set loop bounds directly, moving the boundary marks with them."""
        total = self.duration
        if not total:
            return False
        eps = settings.mark_epsilon
        min_len = settings.min_loop_seconds
        prev_start, prev_end = self.loop_start, self.loop_end

        start = max(0.0, min(start, total))
        end = max(0.0, min(end, total))
        if end - start < min_len:
            if start >= total:
                start = max(0.0, total - min_len)
                end = total
            else:
                end = min(total, start + min_len)

        # marks only sit on interior boundaries
        if prev_start > eps:
            remove_near(self.marks, prev_start, eps)
        if prev_end < total - eps:
            remove_near(self.marks, prev_end, eps)
        if start > eps:
            insert_unique(self.marks, start, eps)
        if end < total - eps:
            insert_unique(self.marks, end, eps)

        self.loop_start, self.loop_end = start, end
        self.looping = True
        self._sync_transport_loop()

        song_time = self.song_time
        if song_time < start or song_time > end:
            self._resync(start)
        elif self.transport.started:
            self.scheduler.rebuild(self.active_notes, song_time, self.speed, keep_offs=True)

        self._notify(f"Loop updated: {format_time(start)} - {format_time(end)}.")
        return True

    # ------------------------------------------------------------------
    # Frame tick
    # ------------------------------------------------------------------

    def tick(self) -> FrameSnapshot:
        """Advance the clock and compute everything the renderer and synth need."""
        if self.song is None:
            return FrameSnapshot(song_time=0.0, playing=False, notices=self.drain_notices())

        now = self._clock()
        self.seeker.poll(now)

        if self.transport.started and self.transport.advance(now):
            loop_song_start = self.loop_start
            logger.debug(f"Loop wrapped to {loop_song_start:.3f}s")
            self.scheduler.rebuild(self.active_notes, loop_song_start, self.speed)
            self.index.resync(self.song_time)
            self._release_all = True

        if self.transport.started and not self.looping and self.song_time >= self.duration:
            self.stop()

        # the old schedule is stale while a scrub waits to be applied
        if self.transport.started and self.seeker.idle:
            events = self.scheduler.poll(self.transport.seconds)
        else:
            events = []

        song_time = self.song_time
        start, end = self.index.window(song_time)
        grid = self.song.grid
        window_start = max(0.0, song_time - self.index.look_behind)
        window_end = song_time + self.index.look_ahead

        snapshot = FrameSnapshot(
            song_time=song_time,
            playing=self.transport.started,
            notes=self.index.notes[start:end],
            grid=lines_in_window(grid, window_start, window_end),
            events=events,
            beat_index=beat_index_at(grid, song_time) if grid else -1,
            next_bar=next_bar_span(grid, song_time),
            loop=self.loop_segment,
            release_all=self._release_all,
            notices=self.drain_notices(),
        )
        self._release_all = False
        return snapshot


def load_raw(notes, tempos=None, time_signatures=None, duration=None, title: str = "") -> RawMidiData:
    """Convenience constructor for callers that hold plain lists."""
    return RawMidiData(
        notes=list(notes or []),
        tempos=list(tempos or []),
        time_signatures=list(time_signatures or []),
        duration=duration,
        title=title,
    )
