"""MidiExporter: schedules the voices of a Score into a multi-track MIDI file."""

from __future__ import annotations

from dataclasses import dataclass, field

from midiutil import MIDIFile

from scorenum.music import MIN_DIVISION, KeySignature, Score, pitch_to_midi, time_notes

# Track 0 is the conductor track (tempo and key only); voice i goes to track i + 1.
TRACK_CONDUCTOR = 0

DRUM_CHANNEL = 9
NUM_CHANNELS = 16

# midiutil key-signature constants
SHARPS = 1
FLATS = -1
MAJOR = 0

#: 32nd-note beats per quarter note (one MIDI beat)
BEATS_PER_QUARTER = MIN_DIVISION // 4


@dataclass
class ScheduledNote:
    """
    A chord placed on the absolute timeline.

    Attributes:
        track:    MIDI track number (voice index + 1).
        start:    Onset in quarter notes from the start of the score.
        duration: Length in quarter notes, ties already merged.
        pitches:  MIDI note numbers sounding together.
    """

    track: int
    start: float
    duration: float
    pitches: list[int] = field(default_factory=list)


def _channel_for(voice_index: int) -> int:
    """Spread voices over the melodic channels, skipping General MIDI drums."""
    channel = voice_index % (NUM_CHANNELS - 1)
    return channel + 1 if channel >= DRUM_CHANNEL else channel


def _key_signature_accidentals(key_signature: KeySignature) -> tuple[int, int]:
    """Return (number of accidentals, SHARPS or FLATS) for a major key."""
    fifths = int(key_signature)
    if fifths <= 6:
        return fifths, SHARPS
    return len(KeySignature) - fifths, FLATS


class MidiExporter:
    """
    Writes a Score to a Standard MIDI File, one track per voice.

    Track layout (Format 1)
    -----------------------
    Track 0 — conductor track: tempo and key signature, no notes.

    Track i + 1 — voice i, named "Voice i+1".

    Timing
    ------
    Voices are beat-relative sequences of 32nd-note beats. Tied notes are
    merged first, then each chord is placed at its running onset; rests only
    advance the onset. Beats convert to MIDI quarter-note beats with
    quarters = beats / 8.
    """

    DEFAULT_TEMPO = 100    # BPM
    DEFAULT_VELOCITY = 80  # MIDI velocity (0-127)

    def __init__(
        self,
        tempo: int = DEFAULT_TEMPO,
        velocity: int = DEFAULT_VELOCITY,
    ) -> None:
        """
        Args:
            tempo:    Playback tempo in quarter-note beats per minute.
            velocity: MIDI note-on velocity for every note.
        """
        self.tempo = tempo
        self.velocity = velocity

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _beats_to_quarters(self, num_beats: float) -> float:
        return num_beats / BEATS_PER_QUARTER

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def schedule(self, score: Score) -> list[ScheduledNote]:
        """
        Convert every voice into chords on the absolute timeline.

        Returns:
            Scheduled chords ordered by track, then onset. Rests are omitted.
        """
        scheduled: list[ScheduledNote] = []
        for voice_index, voice in enumerate(score.voices):
            beat: float = 0
            for timed in time_notes(voice):
                if timed.chord:
                    scheduled.append(
                        ScheduledNote(
                            track=voice_index + 1,
                            start=self._beats_to_quarters(beat),
                            duration=self._beats_to_quarters(timed.num_beats),
                            pitches=[pitch_to_midi(pitch) for pitch in timed.chord],
                        )
                    )
                beat += timed.num_beats
        return scheduled

    def export(self, score: Score, output_path: str) -> None:
        """
        Render a Score to a Standard MIDI File (SMF format 1).

        Raises:
            OSError: If the output file cannot be opened for writing.
        """
        midi = MIDIFile(numTracks=len(score.voices) + 1, removeDuplicates=False, deinterleave=False)

        midi.addTempo(TRACK_CONDUCTOR, 0, self.tempo)
        accidentals, accidental_type = _key_signature_accidentals(score.key_signature)
        midi.addKeySignature(TRACK_CONDUCTOR, 0, accidentals, accidental_type, MAJOR)

        for voice_index in range(len(score.voices)):
            midi.addTrackName(voice_index + 1, 0, f"Voice {voice_index + 1}")

        for note in self.schedule(score):
            channel = _channel_for(note.track - 1)
            for pitch in note.pitches:
                midi.addNote(
                    track=note.track,
                    channel=channel,
                    pitch=pitch,
                    time=note.start,
                    duration=note.duration,
                    volume=self.velocity,
                )

        with open(output_path, "wb") as f:
            midi.writeFile(f)
