"""MusicXMLParser: reads a MusicXML document into a Score."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from fractions import Fraction
from pathlib import Path

from scorenum.music import (
    MIN_DIVISION,
    Bridge,
    Decoration,
    Pitch,
    Score,
    TimedNote,
    fifths_to_key_signature,
    midi_to_pitch,
    string_to_midi,
    untime_notes,
)

logger = logging.getLogger(__name__)


def _timewise_to_partwise(root: ET.Element) -> ET.Element:
    """Regroup a ``score-timewise`` tree (measures of parts) into ``score-partwise`` form."""
    partwise = ET.Element("score-partwise", root.attrib)
    for child in root:
        if child.tag != "measure":
            partwise.append(child)

    parts: dict[str | None, ET.Element] = {}
    for measure in root.findall("./measure"):
        for part in measure.findall("./part"):
            part_id = part.get("id")
            if part_id not in parts:
                parts[part_id] = ET.SubElement(partwise, "part", {"id": part_id or ""})
            partwise_measure = ET.SubElement(parts[part_id], "measure", measure.attrib)
            partwise_measure.extend(list(part))
    return partwise


def _number(element: ET.Element, path: str) -> Fraction | None:
    text = element.findtext(path)
    if text is None or not text.strip():
        return None
    try:
        return Fraction(text.strip())
    except ValueError:
        return None


class MusicXMLParser:
    """
    Builds a Score out of the parts of a MusicXML document.

    Notes are kept in one arena and tracks are lists of arena indices, each
    with a cached end beat. Every part starts on a fresh track; ``backup`` and
    ``forward`` move the beat cursor and re-select the track that ends latest
    at or before the cursor, padding it with a rest up to the cursor. When no
    track fits, a new one is opened.

    Anomalies never abort parsing. They are logged as warnings and resolved
    by a fixed policy:

    - divisions that do not split into 32nd notes: the cursor stays exact
      and note boundaries are rounded to the nearest beat on output;
    - chord notes whose durations differ: the first duration wins;
    - a later key that differs from the first: the first key wins;
    - pitches outside C0..B7: the pitch is dropped.
    """

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self._arena: list[TimedNote] = []
        self._tracks: list[list[int]] = []
        self._track_ends: list[Fraction] = []
        self._track = 0
        self._note: int | None = None
        self._beat = Fraction(0)
        self._divisions: Fraction | None = None
        self._fifths: int | None = None

    # ------------------------------------------------------------------
    # Track cursors
    # ------------------------------------------------------------------

    def _push(self, track: int, note: TimedNote) -> int:
        self._arena.append(note)
        index = len(self._arena) - 1
        self._tracks[track].append(index)
        self._track_ends[track] += note.num_beats
        return index

    def _select_track(self, end_beat: Fraction) -> None:
        """Point the track cursor at a track that can continue from *end_beat*."""
        fitting = [i for i, end in enumerate(self._track_ends) if end <= end_beat]
        if fitting:
            track = max(fitting, key=lambda i: self._track_ends[i])
        else:
            self._tracks.append([])
            self._track_ends.append(Fraction(0))
            track = len(self._tracks) - 1

        gap = end_beat - self._track_ends[track]
        if gap > 0:
            self._push(track, TimedNote(gap))
        self._track = track
        self._beat = end_beat

    # ------------------------------------------------------------------
    # Element handlers
    # ------------------------------------------------------------------

    def _to_beats(self, element: ET.Element) -> Fraction:
        """Exact length of *element* in beats; rounding happens once, in ``_quantize``."""
        units = _number(element, "./duration") or Fraction(0)
        if self._divisions is None:
            raise ValueError("MusicXML note duration appears before any <divisions>.")
        return units * MIN_DIVISION / (4 * self._divisions)

    def _parse_divisions(self, measure: ET.Element) -> None:
        divisions = _number(measure, "./attributes/divisions")
        if divisions is None or divisions == self._divisions:
            return
        if divisions <= 0:
            raise ValueError(f"MusicXML <divisions> must be positive, got {divisions}.")
        self._divisions = divisions
        unit = MIN_DIVISION / (4 * divisions)
        if unit.denominator != 1:
            logger.warning(
                "Divisions of %s per quarter do not split into 1/%d notes. Using nearest approximation.",
                divisions,
                MIN_DIVISION,
            )

    def _parse_key(self, key: ET.Element | None) -> None:
        if key is None:
            return

        fifths_value = _number(key, "./fifths")
        if fifths_value is None:
            alters = [_number(alter, ".") for alter in key.findall("./key-alter")]
            if not alters:
                return
            logger.warning("Non-traditional key signature may not be supported.")
            fifths_value = sum(alter or 0 for alter in alters)
        fifths = int(fifths_value)

        if self._fifths is None:
            self._fifths = fifths
        elif fifths_to_key_signature(fifths) != fifths_to_key_signature(self._fifths):
            logger.warning("Modulation to an enharmonically different key is not supported. Ignoring.")

    def _parse_pitch(self, note: ET.Element) -> Pitch | None:
        pitch = note.find("./pitch")
        if pitch is None:
            return None
        step = (pitch.findtext("./step") or "").strip().upper()
        octave = _number(pitch, "./octave")
        if octave is None:
            raise ValueError("MusicXML <pitch> is missing its <octave>.")
        alter = int(_number(pitch, "./alter") or 0)
        midi_value = string_to_midi(f"{step}{int(octave)}") + alter
        try:
            return midi_to_pitch(midi_value)
        except ValueError:
            logger.warning("Pitch %s%d (alter %d) is out of range. Dropping it.", step, int(octave), alter)
            return None

    def _parse_note(self, note: ET.Element) -> None:
        if note.find("./grace") is not None:
            return

        pitch = self._parse_pitch(note)
        num_beats = self._to_beats(note)
        ties = {tie.get("type") for tie in note.findall("./tie")}
        slurs = {slur.get("type") for slur in note.findall("./notations/slur")}
        bridge = Bridge.SLUR if "stop" in ties or slurs & {"continue", "stop"} else Bridge.NONE

        if self._note is not None and note.find("./chord") is not None:
            current = self._arena[self._note]
            if pitch is not None:
                current.chord = current.chord + (pitch,)
            if current.num_beats != num_beats:
                logger.warning("Chord with different durations is not allowed. Keeping the first duration.")
            if current.bridge == Bridge.NONE:
                current.bridge = bridge
            return

        chord = (pitch,) if pitch is not None else ()
        self._note = self._push(self._track, TimedNote(num_beats, chord, bridge, Decoration.NONE))
        self._beat += num_beats

    def _parse_measure(self, measure: ET.Element) -> None:
        self._parse_divisions(measure)
        self._parse_key(measure.find("./attributes/key"))

        for step in measure:
            if step.tag in ("backup", "forward"):
                offset = self._to_beats(step)
                self._beat += -offset if step.tag == "backup" else offset
                self._select_track(self._beat)
            elif step.tag == "note":
                self._parse_note(step)

    def _compress_tracks(self) -> None:
        """Re-pack every sounding note into as few tracks as possible, dropping bridges."""
        onsets: list[tuple[Fraction, int]] = []
        for track in self._tracks:
            beat = Fraction(0)
            for index in track:
                note = self._arena[index]
                if note.chord:
                    note.bridge = Bridge.NONE
                    onsets.append((beat, index))
                beat += note.num_beats
        onsets.sort(key=lambda onset: onset[0])

        self._tracks = []
        self._track_ends = []
        for beat, index in onsets:
            self._select_track(beat)
            self._tracks[self._track].append(index)
            self._track_ends[self._track] += self._arena[index].num_beats

    def _quantize(self, track: list[int]) -> list[TimedNote]:
        """
        Snap the notes of *track* to whole beats.

        Onsets and offsets are rounded, not lengths, so a tuplet group still
        fills exactly the span it was written for. Notes that round to
        nothing are dropped.
        """
        timed_notes: list[TimedNote] = []
        onset = Fraction(0)
        for index in track:
            note = self._arena[index]
            offset = onset + note.num_beats
            num_beats = round(offset) - round(onset)
            if num_beats > 0:
                timed_notes.append(TimedNote(num_beats, note.chord, note.bridge, note.decoration))
            onset = offset
        return timed_notes

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(self, source: str | bytes, compress: bool = False) -> Score:
        """
        Parse a MusicXML document.

        Args:
            source:   Raw MusicXML text, partwise or timewise.
            compress: Re-pack notes into as few voices as possible. Bridges
                      are lost.

        Returns:
            The parsed Score. Tracks without a sounding note are dropped.

        Raises:
            ValueError: If the document is not usable MusicXML.
        """
        try:
            root = ET.fromstring(source)
        except ET.ParseError as exc:
            raise ValueError(f"Malformed MusicXML: {exc}") from exc

        if root.tag == "score-timewise":
            root = _timewise_to_partwise(root)
        elif root.tag != "score-partwise":
            raise ValueError(f"Expected a MusicXML score, found <{root.tag}>.")

        self._reset()
        for score_part in root.findall("./part-list/score-part"):
            part = root.find(f"./part[@id='{score_part.get('id')}']")
            if part is None:
                logger.warning("Part %s is listed but missing. Skipping.", score_part.get("id"))
                continue
            self._select_track(0)
            self._note = None
            self._divisions = None
            for measure in part.findall("./measure"):
                self._parse_measure(measure)

        if compress:
            self._compress_tracks()

        voices = []
        for track in self._tracks:
            timed_notes = self._quantize(track)
            if any(note.chord for note in timed_notes):
                voices.append(untime_notes(timed_notes))
        logger.debug("Parsed %d voice(s) from %d track(s).", len(voices), len(self._tracks))

        return Score(voices=voices, key_signature=fifths_to_key_signature(self._fifths or 0))

    def parse_file(self, path: str | Path, compress: bool = False) -> Score:
        """Read and parse a MusicXML file from disk."""
        return self.parse(Path(path).read_bytes(), compress=compress)
