"""Key inference from note statistics.

Krumhansl-Schmuckler correlation with positional weighting: besides the
overall pitch-class histogram, notes in the bass register and in the final
stretch of the piece get their own histograms, which feed a tonic salience
bonus added to every hypothesis' profile fit.
"""

import logging

import numpy as np

from visualpiano.analysis.models import KeyHypothesis, Note, Scale

logger = logging.getLogger(__name__)

# Krumhansl-Kessler probe-tone profiles, tonic at index 0
MAJOR_PROFILE = np.array([6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88])
MINOR_PROFILE = np.array([6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17])

SCALE_STEPS = {
    Scale.MAJOR: (0, 2, 4, 5, 7, 9, 11),
    Scale.MINOR: (0, 2, 3, 5, 7, 8, 10),
}

BASS_PITCH = 60
BASS_WEIGHT = 1.45
ENDING_FRACTION = 0.86
ENDING_WEIGHT = 1.7
SALIENCE_OVERALL = 0.14
SALIENCE_BASS = 0.28
SALIENCE_ENDING = 0.36


def _l1_normalize(vec: np.ndarray) -> np.ndarray:
    total = float(vec.sum())
    return vec / (total if total else 1.0)


def pitch_class_histograms(notes: list[Note]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Return (overall, bass, ending) weighted pitch-class histograms."""
    overall = np.zeros(12)
    bass = np.zeros(12)
    ending = np.zeros(12)

    total_span = max(n.start + n.duration for n in notes)
    ending_start = total_span * ENDING_FRACTION

    for note in notes:
        pc = note.pitch % 12
        weight = max(0.02, note.duration) * max(0.2, note.velocity)
        overall[pc] += weight
        if note.pitch < BASS_PITCH:
            bass[pc] += weight * BASS_WEIGHT
        if note.start >= ending_start:
            ending[pc] += weight * ENDING_WEIGHT

    return overall, bass, ending


def score_keys(notes: list[Note]) -> list[KeyHypothesis]:
    """Score all 24 hypotheses in enumeration order (tonic 0..11, major then minor)."""
    overall, bass, ending = (_l1_normalize(h) for h in pitch_class_histograms(notes))
    profiles = {
        Scale.MAJOR: _l1_normalize(MAJOR_PROFILE),
        Scale.MINOR: _l1_normalize(MINOR_PROFILE),
    }

    hypotheses = []
    for tonic in range(12):
        salience = (
            overall[tonic] * SALIENCE_OVERALL
            + bass[tonic] * SALIENCE_BASS
            + ending[tonic] * SALIENCE_ENDING
        )
        for scale in (Scale.MAJOR, Scale.MINOR):
            # roll moves the profile's tonic (index 0) onto the candidate pitch class
            fit = float(np.dot(overall, np.roll(profiles[scale], tonic)))
            hypotheses.append(KeyHypothesis(tonic=tonic, scale=scale, score=fit + float(salience)))
    return hypotheses


def infer_key(notes: list[Note]) -> KeyHypothesis | None:
    """Most likely key of ``notes``; None when there are no notes."""
    if not notes:
        return None
    hypotheses = score_keys(notes)
    # argmax returns the first maximum, i.e. the enumeration-order tie-break
    best = hypotheses[int(np.argmax([h.score for h in hypotheses]))]
    logger.debug(f"Inferred key {best.name} (score {best.score:.3f})")
    return best


def scale_pitch_classes(key: KeyHypothesis) -> set[int]:
    return {(key.tonic + step) % 12 for step in SCALE_STEPS[key.scale]}


def is_in_scale(key: KeyHypothesis | None, pitch: int) -> bool:
    """Whether ``pitch`` belongs to ``key``; every pitch does when the key is unknown."""
    if key is None:
        return True
    return pitch % 12 in scale_pitch_classes(key)
