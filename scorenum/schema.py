"""ScoreSchema: one integer for every score and one score for every integer."""

from __future__ import annotations

import functools
import math
from collections.abc import Iterable

from scorenum.enumerable import ClosedSet, Enumerable, FiniteEnumerable, Record, Sequence
from scorenum.errors import RoundTripError
from scorenum.music import Bridge, Decoration, Duration, KeySignature, Note, Pitch, Score

# Typical sizes, used only for entropy estimates
AVG_CHORD_SIZE = 1.5
AVG_NUM_NOTES = 2000
AVG_NUM_VOICES = 5


class ChordSequence(Sequence[Pitch]):
    """
    Terminated pitch sequence that serializes pitches in ascending order.

    Keeps the terminated layout, but each pitch is written as its step up
    from the previous one (the first from the lowest pitch), in a radix that
    shrinks with the pitches left above. Every integer therefore decodes to
    an ascending chord, so sorting on encode never breaks the bijection.
    """

    element: FiniteEnumerable[Pitch]

    def encode_to(self, values: Iterable[Pitch], n: int) -> int:
        ranks = sorted(self.element.rank(value) for value in values)
        n <<= 1  # terminator
        for i in reversed(range(len(ranks))):
            floor = ranks[i - 1] if i else 0
            n = n * (self.element.cardinality - floor) + ranks[i] - floor
            n = (n << 1) | 1
        return n

    def decode_from(self, n: int) -> tuple[list[Pitch], int]:
        chord: list[Pitch] = []
        floor = 0
        while n & 1:
            n, step = divmod(n >> 1, self.element.cardinality - floor)
            floor += step
            chord.append(self.element.unrank(floor))
        return chord, n >> 1


class ScoreSchema:
    """
    The codec tree for a full Score, built bottom-up from the combinators.

    ::

        Note  = Record{duration, chord: Sequence(Pitch), bridge, decoration}
        Voice = Sequence(Note)
        Score = Record{voices: Sequence(Voice, unterminated), key_signature}

    The voices list is the only unterminated sequence. It is the first layer
    applied to the accumulator, so the whole score is one plain integer and
    every non-negative integer decodes to a well-formed score.

    Instances are immutable once built and safe to share between callers.
    The size parameters only tune the entropy estimates.
    """

    def __init__(
        self,
        avg_chord_size: float = AVG_CHORD_SIZE,
        avg_num_notes: float = AVG_NUM_NOTES,
        avg_num_voices: float = AVG_NUM_VOICES,
    ) -> None:
        self.pitch = ClosedSet(Pitch)
        self.duration = ClosedSet(Duration)
        self.bridge = ClosedSet(Bridge)
        self.decoration = ClosedSet(Decoration)
        self.key_signature = ClosedSet(KeySignature)

        self.chord = ChordSequence(self.pitch, avg_chord_size)
        self.note = Record(
            {
                "duration": self.duration,
                "chord": self.chord,
                "bridge": self.bridge,
                "decoration": self.decoration,
            },
            factory=Note,
        )
        self.voice = Sequence(self.note, avg_num_notes)
        self.voices = Sequence(self.voice, avg_num_voices, unterminated=True)
        self.score = Record(
            {"voices": self.voices, "key_signature": self.key_signature},
            factory=Score,
        )

    def encode(self, score: Score) -> int:
        return self.score.encode(score)

    def decode(self, code: int) -> Score:
        return self.score.decode(code)

    def verify(self, code: int) -> Score:
        """
        Decode *code* and check that re-encoding reproduces it.

        Raises:
            DecodeError:    If *code* is not a non-negative integer.
            RoundTripError: If the codec tree is inconsistent.
        """
        score = self.decode(code)
        reencoded = self.encode(score)
        if reencoded != code:
            raise RoundTripError(code, reencoded)
        return score

    def entropy_report(self) -> dict[str, float]:
        """Estimated code length of each component, in bits."""
        components: dict[str, Enumerable[object]] = {
            "pitch": self.pitch,
            "duration": self.duration,
            "bridge": self.bridge,
            "decoration": self.decoration,
            "key_signature": self.key_signature,
            "chord": self.chord,
            "note": self.note,
            "voice": self.voice,
            "score": self.score,
        }
        return {name: codec.entropy / math.log(2) for name, codec in components.items()}


@functools.lru_cache(maxsize=None)
def default_schema() -> ScoreSchema:
    """Return the process-wide schema with the default size parameters."""
    return ScoreSchema()
