"""Data models for sheet music rendering outputs."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class VexflowNote:
    """A single VexFlow note, chord or rest token."""

    keys: list[str]
    duration: str
    dots: int = 0


@dataclass(frozen=True)
class VexflowVoice:
    """
    One voice's slice of a system.

    Ties and slurs are (first note index, last note index) pairs into *notes*.
    """

    notes: list[VexflowNote]
    ties: list[tuple[int, int]] = field(default_factory=list)
    slurs: list[tuple[int, int]] = field(default_factory=list)


@dataclass(frozen=True)
class VexflowSystem:
    """One line of music: every voice sliced to the same span of beats."""

    num_beats: int
    voices: list[VexflowVoice]


@dataclass(frozen=True)
class ScoreDocument:
    """Neutral layout of a score, consumed by the renderers."""

    title: str
    key_signature: str
    width: int
    line_height: int
    beat_value: int
    systems: list[VexflowSystem]
