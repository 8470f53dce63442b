"""SheetExporter: lays a Score out into systems and writes it as sheet music."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from scorenum.music import (
    MIN_DIVISION,
    NOTE_NAMES,
    SEMITONES_PER_OCTAVE,
    Bridge,
    Duration,
    KeySignature,
    Note,
    Pitch,
    Score,
    dot_and_tie_notes,
    key_signature_uses_flat,
    score_num_beats,
    split_voice,
)
from scorenum.sheet_models import ScoreDocument, VexflowNote, VexflowSystem, VexflowVoice
from scorenum.sheet_renderers import SheetRenderer, VexflowMarkdownRenderer


class SheetExporter:
    """
    Convert a Score into sheet output via a pluggable renderer.

    Layout
    ------
    The drawing surface is *width* pixels wide and every system takes
    *line_height* pixels. A system holds as many whole bars as fit the width
    at ``WHOLE_NOTE_WIDTH`` pixels each (at least one). Voices that never
    sound are left out; a note that straddles a system break is split and
    tied across it.
    """

    DEFAULT_WIDTH = 800
    DEFAULT_LINE_HEIGHT = 120
    PADDING = 10
    WHOLE_NOTE_WIDTH = 180

    _DURATION_MAP: Final[dict[Duration, str]] = {
        Duration.WHOLE: "w",
        Duration.HALF: "h",
        Duration.QUARTER: "q",
        Duration.EIGHTH: "8",
        Duration.SIXTEENTH: "16",
        Duration.THIRTY_SECOND: "32",
    }

    # Sharp spellings and their flat enharmonics
    _FLAT_SPELLINGS: Final[dict[str, str]] = {
        "c#": "db",
        "d#": "eb",
        "f#": "gb",
        "g#": "ab",
        "a#": "bb",
    }

    REST_KEY = "b/4"

    def __init__(
        self,
        title: str = "",
        width: int = DEFAULT_WIDTH,
        line_height: int = DEFAULT_LINE_HEIGHT,
        trim: bool = False,
        renderer: SheetRenderer | None = None,
    ) -> None:
        """
        Args:
            title:       Heading of the output document.
            width:       Drawing-surface width in pixels.
            line_height: Height of one system in pixels.
            trim:        Cut every voice at the last sounding beat of the score.
            renderer:    Output renderer; VexFlow Markdown by default.
        """
        if width <= 2 * self.PADDING:
            raise ValueError(f"Width must exceed {2 * self.PADDING} pixels, got {width}.")
        if line_height <= 0:
            raise ValueError(f"Line height must be positive, got {line_height}.")
        self.title = title
        self.width = width
        self.line_height = line_height
        self.trim = trim
        self.renderer = renderer or VexflowMarkdownRenderer()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _bars_per_system(self) -> int:
        return max(1, (self.width - 2 * self.PADDING) // self.WHOLE_NOTE_WIDTH)

    def _read_chord(self, chord: Sequence[Pitch], key_signature: KeySignature) -> list[str]:
        use_flats = key_signature_uses_flat(key_signature)
        keys: list[str] = []
        for pitch in sorted(chord):
            octave, pitch_class = divmod(int(pitch), SEMITONES_PER_OCTAVE)
            letter = NOTE_NAMES[pitch_class].lower()
            if use_flats:
                letter = self._FLAT_SPELLINGS.get(letter, letter)
            keys.append(f"{letter}/{octave}")
        return keys

    def _read_duration(self, duration: Duration, is_rest: bool) -> str:
        token = self._DURATION_MAP[duration]
        return f"{token}r" if is_rest else token

    def _to_voice(self, notes: Sequence[Note], key_signature: KeySignature) -> VexflowVoice:
        tokens: list[VexflowNote] = []
        ties: list[tuple[int, int]] = []
        slurs: list[tuple[int, int]] = []

        slur_start = 0
        slur_end = 0
        in_slur = False

        for group in dot_and_tie_notes(notes):
            is_rest = not group.chord
            keys = [self.REST_KEY] if is_rest else self._read_chord(group.chord, key_signature)

            first = len(tokens)
            for dotted in group.notes:
                tokens.append(
                    VexflowNote(
                        keys=keys,
                        duration=self._read_duration(dotted.duration, is_rest),
                        dots=dotted.num_dots,
                    )
                )
            last = len(tokens) - 1
            ties.extend((i, i + 1) for i in range(first, last))

            if group.bridge == Bridge.SLUR:
                in_slur = True
                slur_end = last
            else:
                if in_slur and slur_start < slur_end:
                    slurs.append((slur_start, slur_end))
                in_slur = False
                slur_start = first

        if in_slur and slur_start < slur_end:
            slurs.append((slur_start, slur_end))

        return VexflowVoice(notes=tokens, ties=ties, slurs=slurs)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_document(self, score: Score) -> ScoreDocument:
        """Slice every sounding voice into systems that fit the drawing surface."""
        voices = [list(voice) for voice in score.voices if any(not note.is_rest for note in voice)]
        if self.trim:
            total_beats = score_num_beats(score)
            voices = [split_voice(voice, total_beats)[0] for voice in voices]

        beats_per_system = self._bars_per_system() * MIN_DIVISION
        systems: list[VexflowSystem] = []
        while any(voices):
            slices: list[list[Note]] = []
            remaining: list[list[Note]] = []
            for voice in voices:
                head, tail = split_voice(voice, beats_per_system)
                slices.append(head)
                remaining.append(tail)
            systems.append(
                VexflowSystem(
                    num_beats=beats_per_system,
                    voices=[self._to_voice(notes, score.key_signature) for notes in slices if notes],
                )
            )
            voices = remaining

        if not systems:
            # an empty stave still gets drawn
            systems.append(VexflowSystem(num_beats=beats_per_system, voices=[]))

        return ScoreDocument(
            title=self.title,
            key_signature=score.key_signature.label,
            width=self.width,
            line_height=self.line_height,
            beat_value=MIN_DIVISION,
            systems=systems,
        )

    def export(self, score: Score, output_path: str) -> None:
        """
        Lay out the score and write the rendered document to disk.

        Raises:
            OSError: If the output file cannot be written.
        """
        content = self.renderer.render(title=self.title, score_document=self.build_document(score))
        with open(output_path, "w", encoding="utf-8") as fh:
            fh.write(content)
