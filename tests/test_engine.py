"""Integration tests for the playback engine."""

import pytest

from visualpiano.analysis.models import Hand, HandMode, LoopSegment
from visualpiano.playback.engine import PlaybackEngine, load_raw
from visualpiano.playback.models import EventKind
from tests.conftest import generate_song


@pytest.fixture
def engine(clock, song):
    engine = PlaybackEngine(clock=clock)
    engine.load_file(song)
    return engine


def _set_marks(engine, *times):
    for t in times:
        engine.seek(t)
        engine.mark_loop()


# --- Loading ---

def test_load_file_analyzes_song(engine):
    """Loading should produce the grid, key and hand split."""
    song = engine.song
    assert engine.loaded
    assert engine.duration == pytest.approx(16.0)
    assert len(song.notes) == 40
    assert len(song.grid) == 33
    assert song.key.name == "C major"
    assert len(engine.notes_left) == 8
    assert all(n.pitch == 48 for n in engine.notes_left)
    assert len(engine.notes_right) == 32
    assert engine.drain_notices() == ["MIDI loaded."]


def test_load_file_resets_state(engine, clock):
    """A second load must not inherit anything from the previous file."""
    _set_marks(engine, 4.5)
    engine.toggle_loop()
    engine.set_speed(1.5)
    engine.set_hand_mode(HandMode.LEFT)
    engine.play()
    clock.advance(1.0)
    engine.tick()

    engine.load_file(generate_song(bars=4, bpm=90))

    assert engine.marks == []
    assert not engine.looping
    assert engine.speed == 1.0
    assert engine.hand_mode is HandMode.BOTH
    assert not engine.playing
    assert engine.song_time == 0.0
    assert engine.seeker.idle
    assert engine.scheduler.pending() == 0
    assert engine.tick().notices == ["MIDI loaded."]


def test_controls_without_song_are_noops(clock):
    engine = PlaybackEngine(clock=clock)
    engine.play()
    assert not engine.mark_loop()
    assert not engine.toggle_loop()
    assert engine.jump_to_next_mark() is None
    assert engine.seek(5.0) == 0.0

    frame = engine.tick()
    assert frame.song_time == 0.0
    assert not frame.playing
    assert frame.notes == []


def test_load_raw_accepts_js_style_fields(clock):
    raw = load_raw(
        [{"time": 1.0, "midi": 62, "duration": 0.5}, {"startTime": 0.0, "pitch": 60, "duration": 0.5}],
        tempos=[{"time": 0, "bpm": 100}],
        time_signatures=[{"time": 0, "timeSignature": [3, 4]}],
        title="raw",
    )
    engine = PlaybackEngine(clock=clock)
    song = engine.load_file(raw)
    assert [n.pitch for n in song.notes] == [60, 62]
    assert song.duration == pytest.approx(1.5)
    assert song.time_sig_map[0].label == "3/4"
    assert song.initial_bpm == 100.0


# --- Transport ---

def test_tick_emits_frame(engine, clock):
    engine.drain_notices()
    engine.play()
    clock.advance(1.0)

    frame = engine.tick()

    assert frame.playing
    assert frame.song_time == pytest.approx(1.0)
    assert frame.next_bar == pytest.approx((2.0, 4.0))
    assert [g.time for g in frame.grid] == pytest.approx([i * 0.5 for i in range(10)])
    assert all(n.start <= 4.5 for n in frame.notes)
    ons = {e.note_id for e in frame.events if e.kind is EventKind.ON}
    expected = {n.id for n in engine.song.notes if n.start <= 1.0}
    assert ons == expected


def test_frame_interval_depends_on_playback(engine):
    assert engine.frame_interval == pytest.approx(1 / 8)
    engine.play()
    assert engine.frame_interval == pytest.approx(1 / 30)


def test_pause_holds_position(engine, clock):
    engine.play()
    clock.advance(2.0)
    engine.pause()
    clock.advance(5.0)
    frame = engine.tick()
    assert not frame.playing
    assert frame.song_time == pytest.approx(2.0)
    assert frame.events == []


def test_end_of_song_stops_and_rewinds(engine, clock):
    engine.seek(15.5)
    engine.play()
    clock.advance(1.0)

    frame = engine.tick()

    assert not frame.playing
    assert frame.song_time == 0.0


def test_set_speed_keeps_position(engine, clock):
    engine.play()
    clock.advance(2.0)
    engine.tick()

    engine.set_speed(0.5)
    assert engine.song_time == pytest.approx(2.0)

    clock.advance(1.0)
    frame = engine.tick()
    assert frame.song_time == pytest.approx(2.5)
    assert frame.notices == ["Speed: 0.50x"]


def test_set_speed_clamps(engine):
    assert engine.set_speed(5.0) == 2.0
    assert engine.set_speed(0.1) == 0.5
    assert engine.tick().notices[-1] == "Speed: 0.50x"


def test_seek_clamps_to_song(engine):
    assert engine.seek(-3.0) == 0.0
    assert engine.seek(100.0) == pytest.approx(16.0)
    engine.seek(2.0)
    assert engine.seek_by_delta(1.5) == pytest.approx(3.5)
    assert engine.song_time == pytest.approx(3.5)


# --- Hands ---

def test_hand_mode_swaps_active_notes(engine):
    engine.set_hand_mode("left")
    frame = engine.tick()
    assert frame.notes
    assert all(n.hand is Hand.LEFT for n in frame.notes)
    assert "Hand: left" in frame.notices

    engine.set_hand_mode(HandMode.RIGHT)
    assert all(n.hand is Hand.RIGHT for n in engine.tick().notes)


def test_cycle_hand_mode(engine):
    assert engine.cycle_hand_mode() is HandMode.LEFT
    assert engine.cycle_hand_mode() is HandMode.RIGHT
    assert engine.cycle_hand_mode() is HandMode.BOTH
    assert engine.tick().notices[-1] == "Hands: both"


# --- Marks and looping ---

def test_mark_loop_uses_bar_start(engine):
    engine.drain_notices()
    engine.seek(5.3)
    assert engine.mark_loop()
    assert engine.marks == [4.0]
    assert not engine.mark_loop()
    assert engine.marks == [4.0]
    assert engine.drain_notices() == [
        "Loop mark set at 0:04.",
        "Loop mark already exists at 0:04.",
    ]


def test_toggle_loop_uses_marks_around_playhead(engine):
    _set_marks(engine, 4.5, 9.0)
    engine.seek(6.0)
    engine.drain_notices()

    assert engine.toggle_loop()
    assert engine.loop_segment == LoopSegment(4.0, 8.0)
    assert not engine.toggle_loop()
    assert engine.loop_segment is None
    assert engine.drain_notices() == ["Loop on: 0:04 - 0:08.", "Loop off."]


def test_toggle_loop_needs_marks(engine):
    assert not engine.toggle_loop()
    assert not engine.looping


def test_seek_while_looping_follows_marks(engine):
    _set_marks(engine, 4.5, 9.0)
    engine.seek(6.0)
    engine.toggle_loop()

    engine.seek(12.0)
    assert engine.loop_segment == LoopSegment(8.0, 16.0)


def test_loop_wraps_during_playback(engine, clock):
    _set_marks(engine, 4.5, 9.0)
    engine.seek(7.5)
    engine.toggle_loop()
    engine.play()
    engine.tick()
    clock.advance(1.0)

    frame = engine.tick()

    assert frame.playing
    assert frame.song_time == pytest.approx(4.5)
    assert frame.release_all
    assert frame.loop == LoopSegment(4.0, 8.0)
    ons = {e.note_id for e in frame.events if e.kind is EventKind.ON}
    assert {n.id for n in engine.song.notes if 4.0 <= n.start <= 4.5} <= ons


def test_stop_rewinds_to_loop_start(engine):
    _set_marks(engine, 4.5, 9.0)
    engine.seek(6.0)
    engine.toggle_loop()
    engine.play()
    engine.stop()
    assert not engine.playing
    assert engine.song_time == pytest.approx(4.0)


def test_jump_to_next_mark_wraps(engine):
    _set_marks(engine, 4.5, 9.0)
    engine.seek(0.0)
    engine.drain_notices()

    assert engine.jump_to_next_mark() == 4.0
    assert engine.song_time == pytest.approx(4.0)
    assert engine.jump_to_next_mark() == 8.0
    assert engine.jump_to_next_mark() == 4.0
    assert engine.drain_notices()[0] == "Jumped to mark 0:04."


def test_edit_loop_bounds_rejects_invalid_text(engine):
    _set_marks(engine, 4.5, 9.0)
    engine.seek(6.0)
    engine.toggle_loop()
    engine.drain_notices()

    assert not engine.edit_loop_bounds("abc", "0:08")

    assert engine.loop_segment == LoopSegment(4.0, 8.0)
    assert engine.marks == [4.0, 8.0]
    assert engine.drain_notices() == ["Invalid loop time. Use m:ss or seconds."]


def test_edit_loop_bounds_requires_looping(engine):
    assert not engine.edit_loop_bounds("0:01", "0:02")
    assert not engine.looping


def test_edit_loop_bounds_moves_marks(engine):
    _set_marks(engine, 4.5, 9.0)
    engine.seek(6.0)
    engine.toggle_loop()
    engine.drain_notices()

    assert engine.edit_loop_bounds("0:05", "10")

    assert engine.marks == [5.0, 10.0]
    assert engine.loop_segment == LoopSegment(5.0, 10.0)
    assert engine.song_time == pytest.approx(6.0)
    assert engine.drain_notices() == ["Loop updated: 0:05 - 0:10."]


def test_apply_loop_bounds_moves_playhead_into_loop(engine):
    engine.seek(1.0)
    engine.apply_loop_bounds(6.0, 9.0)
    assert engine.looping
    assert engine.song_time == pytest.approx(6.0)
    assert engine.marks == [6.0, 9.0]


def test_apply_loop_bounds_twice_replaces_old_marks(engine):
    _set_marks(engine, 12.0)
    engine.apply_loop_bounds(6.0, 9.0)
    engine.apply_loop_bounds(2.0, 4.0)
    assert engine.marks == [2.0, 4.0, 12.0]

    engine.apply_loop_bounds(0.0, 16.0)
    assert engine.marks == [12.0]


def test_apply_loop_bounds_enforces_minimum_length(engine):
    engine.apply_loop_bounds(7.0, 7.0)
    assert engine.loop_segment.end - engine.loop_segment.start == pytest.approx(0.01)

    engine.apply_loop_bounds(20.0, 30.0)
    assert engine.loop_segment.end == pytest.approx(16.0)
    assert engine.loop_segment.start == pytest.approx(15.99)


def test_clear_marks_cancels_pending_scrub(engine, clock):
    _set_marks(engine, 4.5)
    engine.begin_scrub()
    engine.scrub(10.0)
    assert not engine.seeker.idle

    engine.clear_marks()

    assert engine.marks == []
    assert not engine.looping
    assert engine.seeker.idle
    assert not engine.seeker.dragging
    clock.advance(1.0)
    engine.tick()
    assert engine.seeker.idle


# --- Scrubbing ---

def test_scrub_coalesces_resyncs(engine, clock):
    engine.tick()
    engine.begin_scrub()
    engine.scrub(2.0)
    clock.advance(0.01)
    engine.scrub(3.0)

    assert engine.song_time == pytest.approx(3.0)
    assert engine.seeker.pending.time == pytest.approx(3.0)
    assert not engine.tick().release_all

    clock.advance(0.05)
    frame = engine.tick()
    assert frame.release_all
    assert engine.seeker.idle


def test_end_scrub_applies_immediately(engine):
    engine.tick()
    engine.begin_scrub()
    engine.scrub(6.0)
    engine.end_scrub()
    assert engine.seeker.idle
    assert engine.tick().release_all


def test_scrub_snaps_to_nearby_mark(engine, clock):
    _set_marks(engine, 4.2)
    engine.begin_scrub()

    assert engine.scrub(4.1) == 4.0
    clock.advance(0.5)
    assert engine.scrub(4.5) == 4.0  # still inside the hold
    clock.advance(1.0)
    assert engine.scrub(4.5) == pytest.approx(4.5)
    engine.end_scrub()
    assert engine.song_time == pytest.approx(4.5)


def test_seek_outside_scrub_does_not_snap(engine):
    _set_marks(engine, 4.2)
    assert engine.scrub(4.1) == pytest.approx(4.1)


# --- Note-on / note-off pairing ---

def _unreleased(engine, frames, until):
    """Ids of notes that were triggered, ended before ``until``, and never released."""
    sounding = set()
    for frame in frames:
        if frame.release_all:
            sounding.clear()
        for event in frame.events:
            if event.kind is EventKind.ON:
                sounding.add(event.note_id)
            else:
                sounding.discard(event.note_id)
    return {i for i in sounding if engine.song.notes[i].end < until - 0.05}


def _run(engine, clock, ticks, step=0.1):
    frames = []
    for _ in range(ticks):
        clock.advance(step)
        frames.append(engine.tick())
    return frames


def _on_counts(frames):
    counts = {}
    for frame in frames:
        for event in frame.events:
            if event.kind is EventKind.ON:
                counts[event.note_id] = counts.get(event.note_id, 0) + 1
    return counts


def test_pause_resume_keeps_note_offs(engine, clock):
    """Notes sounding across pause/resume still get their note-off, and are not re-triggered."""
    engine.play()
    frames = [engine.tick()]
    assert {e.note_id for e in frames[0].events if e.kind is EventKind.ON} == {0, 1}

    engine.pause()
    engine.play()
    frames += _run(engine, clock, 40)

    assert _unreleased(engine, frames, engine.song_time) == set()
    assert max(_on_counts(frames).values()) == 1


def test_loop_toggle_keeps_note_offs(engine, clock):
    _set_marks(engine, 4.5, 9.0)
    engine.seek(0.0)
    engine.play()
    frames = [engine.tick()]

    engine.toggle_loop()
    frames += _run(engine, clock, 30)

    assert engine.loop_segment == LoopSegment(0.0, 4.0)
    assert _unreleased(engine, frames, engine.song_time) == set()
    assert max(_on_counts(frames).values()) == 1


def test_apply_loop_bounds_while_playing_keeps_note_offs(engine, clock):
    engine.play()
    frames = [engine.tick()]

    engine.apply_loop_bounds(0.0, 6.0)
    frames += _run(engine, clock, 30)

    assert _unreleased(engine, frames, engine.song_time) == set()


def test_every_note_released_across_resyncs(engine, clock):
    """Seeks, speed changes and loop wraps either deliver the note-off or release everything."""
    _set_marks(engine, 4.5, 9.0)
    engine.seek(0.0)
    engine.play()
    frames = [engine.tick()]
    frames += _run(engine, clock, 5)
    engine.seek(6.0)
    frames += _run(engine, clock, 5)
    engine.set_speed(1.5)
    frames += _run(engine, clock, 5)
    engine.toggle_loop()
    frames += _run(engine, clock, 30)
    engine.set_hand_mode(HandMode.RIGHT)
    frames += _run(engine, clock, 10)

    assert any(frame.release_all for frame in frames[1:])
    assert _unreleased(engine, frames, engine.song_time) == set()


# --- Scrubbing during playback ---

def test_scrub_during_playback_does_not_burst_skipped_notes(engine, clock):
    engine.play()
    engine.tick()
    engine.begin_scrub()
    engine.scrub(12.0)
    clock.advance(0.01)

    waiting = engine.tick()
    assert [e for e in waiting.events if e.kind is EventKind.ON] == []

    clock.advance(0.05)
    applied = engine.tick()
    ons = [e for e in applied.events if e.kind is EventKind.ON]
    assert applied.release_all
    assert ons
    assert all(engine.song.notes[e.note_id].start >= 12.0 for e in ons)
    assert all(e.start_offset > -0.1 for e in ons)


def test_loop_wrap_resyncs_cursor(engine, clock, monkeypatch):
    _set_marks(engine, 4.5, 9.0)
    engine.seek(7.5)
    engine.toggle_loop()
    engine.play()
    engine.tick()

    calls = []
    original = engine.index.resync

    def _record(time):
        calls.append(time)
        return original(time)

    monkeypatch.setattr(engine.index, "resync", _record)
    clock.advance(1.0)
    engine.tick()

    assert calls == [pytest.approx(4.5)]


# --- Speed stepping ---

def test_adjust_speed_snaps_to_step(engine):
    assert engine.adjust_speed(0.05) == pytest.approx(1.05)
    assert engine.adjust_speed(0.03) == pytest.approx(1.1)
    assert engine.adjust_speed(-0.05) == pytest.approx(1.05)


def test_adjust_speed_stops_at_limits(engine):
    engine.set_speed(2.0)
    engine.drain_notices()
    assert engine.adjust_speed(0.05) == 2.0
    assert engine.drain_notices() == []


def test_reset_speed(engine, clock):
    engine.play()
    clock.advance(2.0)
    engine.tick()
    engine.adjust_speed(-0.25)

    assert engine.reset_speed() == 1.0
    assert engine.song_time == pytest.approx(2.0)
