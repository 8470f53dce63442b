"""Score value types and beat arithmetic shared by the schema and its collaborators."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from fractions import Fraction

logger = logging.getLogger(__name__)

# Chromatic pitch class names (index 0 = C)
NOTE_NAMES: list[str] = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

SEMITONES_PER_OCTAVE = 12
NUM_OCTAVES = 8

#: Shortest representable note value; beats are counted in 32nd notes.
MIN_DIVISION = 32

#: Pitch of a key, C0 through B7. Members are named like "C4" and "C#4".
Pitch = IntEnum(  # type: ignore[misc]
    "Pitch",
    [
        (f"{name}{octave}", octave * SEMITONES_PER_OCTAVE + pitch_class)
        for octave in range(NUM_OCTAVES)
        for pitch_class, name in enumerate(NOTE_NAMES)
    ],
    module=__name__,
)


class Duration(IntEnum):
    """Note value, as the power of two dividing a whole note."""

    WHOLE = 0
    HALF = 1
    QUARTER = 2
    EIGHTH = 3
    SIXTEENTH = 4
    THIRTY_SECOND = 5

    @property
    def denominator(self) -> int:
        return 1 << self.value


class Bridge(IntEnum):
    """
    Connection from the previous note to this one.

    SLUR stands for both slurs and ties: a slurred note with the same chord
    and decoration as its predecessor is a tie.
    """

    NONE = 0
    SLUR = 1


class Decoration(IntEnum):
    """Decorations on a chord."""

    NONE = 0


class KeySignature(IntEnum):
    """Key signature as its enharmonic major, in circle-of-fifths order."""

    C = 0
    G = 1
    D = 2
    A = 3
    E = 4
    B = 5
    F_SHARP = 6
    D_FLAT = 7
    A_FLAT = 8
    E_FLAT = 9
    B_FLAT = 10
    F = 11

    @property
    def label(self) -> str:
        """Conventional spelling, e.g. 'F#' or 'Bb'."""
        return self.name.replace("_SHARP", "#").replace("_FLAT", "b")


@dataclass(frozen=True)
class Note:
    """
    One step of a voice: a chord (empty for a rest) held for a duration.

    The chord is stored as an ascending tuple so that equal chords always
    serialize identically, whatever order their pitches were given in.
    """

    duration: Duration
    chord: tuple[Pitch, ...] = ()
    bridge: Bridge = Bridge.NONE
    decoration: Decoration = Decoration.NONE

    def __post_init__(self) -> None:
        object.__setattr__(self, "chord", tuple(sorted(self.chord)))

    @property
    def is_rest(self) -> bool:
        return not self.chord


Voice = Sequence[Note]


@dataclass(frozen=True)
class Score:
    """Independent concurrent voices sharing one key signature."""

    voices: tuple[tuple[Note, ...], ...] = ()
    key_signature: KeySignature = KeySignature.C

    def __post_init__(self) -> None:
        object.__setattr__(self, "voices", tuple(tuple(voice) for voice in self.voices))


@dataclass
class TimedNote:
    """A chord held for an arbitrary number of 32nd-note beats."""

    num_beats: float | Fraction
    chord: tuple[Pitch, ...] = ()
    bridge: Bridge = Bridge.NONE
    decoration: Decoration = Decoration.NONE


@dataclass
class DottedDuration:
    duration: Duration
    num_dots: int = 0


@dataclass
class TieGroup:
    """Consecutive notes joined by ties, dotted where a tie halves the value."""

    chord: tuple[Pitch, ...]
    bridge: Bridge
    decoration: Decoration
    notes: list[DottedDuration] = field(default_factory=list)


# ── Pitch conversions ───────────────────────────────────────────────────────

_PITCH_STRING = re.compile(r"^([A-G])(bb|b|n|#|##)?(-?\d+)$")
_STEP_SEMITONES = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}
_ACCIDENTAL_OFFSETS = {None: 0, "n": 0, "bb": -2, "b": -1, "#": 1, "##": 2}


def pitch_class_to_midi(pitch_class: int, octave: int) -> int:
    """
    Convert a pitch class (0-11) and a scientific octave to a MIDI note.

    MIDI octave numbering: C-1 = 0, C0 = 12, ... C4 (Middle C) = 60.
    """
    return (octave + 1) * SEMITONES_PER_OCTAVE + pitch_class


def pitch_to_midi(pitch: Pitch) -> int:
    octave, pitch_class = divmod(int(pitch), SEMITONES_PER_OCTAVE)
    return pitch_class_to_midi(pitch_class, octave)


def midi_to_pitch(midi_value: int) -> Pitch:
    """
    Return the Pitch sounding at *midi_value*.

    Raises:
        ValueError: If the note lies outside C0..B7.
    """
    index = midi_value - SEMITONES_PER_OCTAVE
    if not 0 <= index < len(Pitch):
        raise ValueError(f"MIDI value {midi_value} exceeds Pitch range")
    return Pitch(index)


def string_to_midi(pitch_string: str) -> int:
    """Parse a spelled pitch such as 'C#4', 'Bb3' or 'E##5' into a MIDI note."""
    match = _PITCH_STRING.match(pitch_string.strip())
    if not match:
        raise ValueError(f"Pitch string {pitch_string!r} cannot be parsed")
    step, accidental, octave = match.groups()
    return pitch_class_to_midi(_STEP_SEMITONES[step], int(octave)) + _ACCIDENTAL_OFFSETS[accidental]


def string_to_pitch(pitch_string: str) -> Pitch:
    return midi_to_pitch(string_to_midi(pitch_string))


def note_names(chord: Sequence[Pitch]) -> list[str]:
    return [pitch.name for pitch in chord]


# ── Beats ───────────────────────────────────────────────────────────────────


def duration_to_beats(duration: Duration) -> int:
    """Length of *duration* in 32nd-note beats."""
    return MIN_DIVISION // duration.denominator


def beats_to_duration(num_beats: float) -> Duration:
    for duration in Duration:
        if duration_to_beats(duration) == num_beats:
            return duration
    raise ValueError(f"{num_beats} beats is not a plain note value")


_BEATS_DESCENDING: list[int] = sorted((duration_to_beats(d) for d in Duration), reverse=True)


def _ties_to(note: Note, head: Note) -> bool:
    return note.bridge == Bridge.SLUR and note.chord == head.chord and note.decoration == head.decoration


def time_notes(notes: Voice) -> list[TimedNote]:
    """Merge runs of tied notes into single timed notes."""
    timed_notes: list[TimedNote] = []
    i = 0
    while i < len(notes):
        head = notes[i]
        num_beats = duration_to_beats(head.duration)
        i += 1
        while i < len(notes) and _ties_to(notes[i], head):
            num_beats += duration_to_beats(notes[i].duration)
            i += 1
        timed_notes.append(TimedNote(num_beats, head.chord, head.bridge, head.decoration))
    return timed_notes


def untime_notes(timed_notes: Sequence[TimedNote]) -> list[Note]:
    """
    Split timed notes into plain note values, longest first.

    Every piece after the first is tied to its predecessor unless the chord is
    a rest. A remainder shorter than a 32nd note is dropped with a warning.
    """
    notes: list[Note] = []
    for timed in timed_notes:
        beats_left = timed.num_beats
        tying = False
        for size in _BEATS_DESCENDING:
            while beats_left >= size:
                beats_left -= size
                notes.append(
                    Note(
                        duration=beats_to_duration(size),
                        chord=timed.chord,
                        bridge=Bridge.SLUR if tying else timed.bridge,
                        decoration=timed.decoration,
                    )
                )
                tying = bool(timed.chord)
        if beats_left > 0:
            logger.warning("Timed note is finer than a %dth note. Truncating %s beats.", MIN_DIVISION, beats_left)
    return notes


def dot_and_tie_notes(notes: Voice) -> list[TieGroup]:
    """Group tied notes, turning a tie onto half the previous value into a dot."""
    groups: list[TieGroup] = []
    i = 0
    while i < len(notes):
        head = notes[i]
        current = DottedDuration(head.duration)
        group = TieGroup(head.chord, head.bridge, head.decoration, [current])
        current_beats = duration_to_beats(head.duration)
        i += 1
        while i < len(notes) and _ties_to(notes[i], head):
            beats = duration_to_beats(notes[i].duration)
            if 2 * beats == current_beats:
                current.num_dots += 1
            else:
                current = DottedDuration(notes[i].duration)
                group.notes.append(current)
            current_beats = beats
            i += 1
        groups.append(group)
    return groups


def split_voice(voice: Voice, beat: int) -> tuple[list[Note], list[Note]]:
    """
    Split *voice* at *beat*, cutting and tying a note that straddles it.

    Returns:
        (notes before the beat, notes from the beat on)
    """
    notes = list(voice)
    num_beats = 0
    i = 0
    while i < len(notes) and num_beats + duration_to_beats(notes[i].duration) <= beat:
        num_beats += duration_to_beats(notes[i].duration)
        i += 1

    before, after = notes[:i], notes[i:]
    if after and num_beats < beat:
        note = after[0]
        head_beats = beat - num_beats
        head = TimedNote(head_beats, note.chord, note.bridge, note.decoration)
        tail = TimedNote(
            duration_to_beats(note.duration) - head_beats,
            note.chord,
            Bridge.NONE if note.is_rest else Bridge.SLUR,
            note.decoration,
        )
        before.extend(untime_notes([head]))
        after = untime_notes([tail]) + after[1:]
    return before, after


def voice_num_beats(voice: Voice) -> int:
    """Number of beats in *voice*, ignoring trailing rests."""
    end = len(voice)
    while end > 0 and voice[end - 1].is_rest:
        end -= 1
    return sum(duration_to_beats(note.duration) for note in voice[:end])


def score_num_beats(score: Score) -> int:
    """Number of beats in the longest voice of *score*, ignoring trailing rests."""
    return max((voice_num_beats(voice) for voice in score.voices), default=0)


# ── Key signatures ──────────────────────────────────────────────────────────


def fifths_to_key_signature(fifths: int) -> KeySignature:
    """Map a count of sharps (positive) or flats (negative) to its enharmonic major."""
    return KeySignature(fifths % len(KeySignature))


def key_signature_uses_flat(key_signature: KeySignature) -> bool:
    return key_signature in {
        KeySignature.D_FLAT,
        KeySignature.A_FLAT,
        KeySignature.E_FLAT,
        KeySignature.B_FLAT,
        KeySignature.F,
    }
