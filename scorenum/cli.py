"""scorenum CLI entry point."""

import logging
import sys
from pathlib import Path

import click

from scorenum import __version__
from scorenum.errors import EnumerationError
from scorenum.midi_exporter import MidiExporter
from scorenum.music import Bridge, Note, Score
from scorenum.parser import MusicXMLParser
from scorenum.schema import AVG_CHORD_SIZE, AVG_NUM_NOTES, AVG_NUM_VOICES, ScoreSchema, default_schema
from scorenum.sheet_exporter import SheetExporter


def _read_code(code: str) -> int:
    """Parse a decimal score code, reading it from stdin when *code* is '-'."""
    text = click.get_text_stream("stdin").read() if code == "-" else code
    try:
        value = int(text.strip())
    except ValueError:
        raise click.BadParameter("expected a non-negative decimal integer", param_hint="CODE") from None
    if value < 0:
        raise click.BadParameter("expected a non-negative decimal integer", param_hint="CODE")
    return value


def _decode(code: str, verify: bool = False) -> Score:
    schema = default_schema()
    value = _read_code(code)
    try:
        return schema.verify(value) if verify else schema.decode(value)
    except EnumerationError as exc:
        click.echo(f"  ERROR: Could not decode score — {exc}", err=True)
        sys.exit(1)


def _format_note(note: Note) -> str:
    """Compact note token, e.g. '4:C4+E4', '~2:C4' (slurred) or '8:r' (rest)."""
    pitches = "+".join(pitch.name for pitch in note.chord) or "r"
    prefix = "~" if note.bridge == Bridge.SLUR else ""
    return f"{prefix}{note.duration.denominator}:{pitches}"


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="scorenum")
@click.option("--verbose", "-v", is_flag=True, help="Log debug diagnostics to stderr.")
def main(verbose: bool) -> None:
    """scorenum — address every musical score by a single integer."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    # Score codes routinely exceed the default int/str conversion limit
    if hasattr(sys, "set_int_max_str_digits"):
        sys.set_int_max_str_digits(0)


# ── encode subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("musicxml_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--compress",
    is_flag=True,
    help="Re-pack notes into as few voices as possible (drops slurs and ties).",
)
def encode(musicxml_file: str, compress: bool) -> None:
    """
    Encode a MusicXML file as a score integer.

    MUSICXML_FILE is a partwise or timewise MusicXML document. The integer is
    printed on stdout; progress goes to stderr.

    \b
    Examples:
      scorenum encode ievan-polkka.xml
      scorenum encode ievan-polkka.xml --compress > polkka.txt
    """
    click.echo(f"[1/2] Parsing '{musicxml_file}'...", err=True)
    try:
        score = MusicXMLParser().parse_file(musicxml_file, compress=compress)
    except ValueError as exc:
        click.echo(f"  ERROR: Could not parse MusicXML — {exc}", err=True)
        sys.exit(1)
    click.echo(
        f"      {len(score.voices)} voice(s), key of {score.key_signature.label}",
        err=True,
    )

    click.echo("[2/2] Encoding score...", err=True)
    try:
        code = default_schema().encode(score)
    except EnumerationError as exc:
        click.echo(f"  ERROR: Could not encode score — {exc}", err=True)
        sys.exit(1)
    click.echo(str(code))


# ── decode subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("code")
@click.option("--verify", is_flag=True, help="Check that the decoded score re-encodes to CODE.")
def decode(code: str, verify: bool) -> None:
    """
    Decode a score integer and list its voices.

    CODE is a non-negative decimal integer, or '-' to read it from stdin.

    \b
    Examples:
      scorenum decode 204
      scorenum decode - --verify < polkka.txt
    """
    score = _decode(code, verify=verify)
    click.echo(f"Key    : {score.key_signature.label}")
    click.echo(f"Voices : {len(score.voices)}")
    for index, voice in enumerate(score.voices, start=1):
        tokens = " ".join(_format_note(note) for note in voice)
        click.echo(f"  [{index}] {len(voice)} note(s): {tokens}")


# ── midi subcommand ────────────────────────────────────────────────────────────

@main.command()
@click.argument("code")
@click.option("--output", "-o", required=True, metavar="PATH", help="Destination MIDI file path.")
@click.option(
    "--tempo",
    type=click.IntRange(20, 300),
    default=MidiExporter.DEFAULT_TEMPO,
    show_default=True,
    help="Playback tempo in BPM.",
)
def midi(code: str, output: str, tempo: int) -> None:
    """
    Write the score addressed by CODE as a MIDI file.

    \b
    Examples:
      scorenum midi 204 -o rest.mid
      scorenum midi - -o polkka.mid --tempo 140 < polkka.txt
    """
    score = _decode(code)
    click.echo(f"Writing {len(score.voices)} voice(s) → '{output}'...")
    try:
        MidiExporter(tempo=tempo).export(score, output)
    except OSError as exc:
        click.echo(f"  ERROR: Could not write MIDI file — {exc}", err=True)
        sys.exit(1)
    click.echo("Done!")


# ── sheet subcommand ───────────────────────────────────────────────────────────

@main.command()
@click.argument("code")
@click.option("--output", "-o", required=True, metavar="PATH", help="Destination Markdown file path.")
@click.option("--title", default="", metavar="TEXT", help="Title shown in the output header.")
@click.option(
    "--width",
    type=click.IntRange(min=100),
    default=SheetExporter.DEFAULT_WIDTH,
    show_default=True,
    help="Drawing-surface width in pixels.",
)
@click.option(
    "--line-height",
    type=click.IntRange(min=40),
    default=SheetExporter.DEFAULT_LINE_HEIGHT,
    show_default=True,
    help="Height of one system in pixels.",
)
@click.option("--trim", is_flag=True, help="Drop trailing rests after the last sounding beat.")
def sheet(code: str, output: str, title: str, width: int, line_height: int, trim: bool) -> None:
    """
    Render the score addressed by CODE as Markdown with an embedded VexFlow script.

    \b
    Examples:
      scorenum sheet 204 -o rest.md
      scorenum sheet - -o polkka.md --title "Ievan Polkka" --width 1200 < polkka.txt
    """
    score = _decode(code)
    exporter = SheetExporter(title=title, width=width, line_height=line_height, trim=trim)
    click.echo(f"Rendering {len(score.voices)} voice(s) → '{output}'...")
    try:
        exporter.export(score, output)
    except OSError as exc:
        click.echo(f"  ERROR: Could not write output file — {exc}", err=True)
        sys.exit(1)
    click.echo(f"Done!  Open '{Path(output).name}' in a Markdown viewer that allows embedded JavaScript.")


# ── entropy subcommand ─────────────────────────────────────────────────────────

@main.command()
@click.option("--avg-chord-size", type=float, default=AVG_CHORD_SIZE, show_default=True)
@click.option("--avg-num-notes", type=float, default=AVG_NUM_NOTES, show_default=True)
@click.option("--avg-num-voices", type=float, default=AVG_NUM_VOICES, show_default=True)
def entropy(avg_chord_size: float, avg_num_notes: float, avg_num_voices: float) -> None:
    """Print the estimated code length of each schema component in bits."""
    schema = ScoreSchema(
        avg_chord_size=avg_chord_size,
        avg_num_notes=avg_num_notes,
        avg_num_voices=avg_num_voices,
    )
    for name, bits in schema.entropy_report().items():
        click.echo(f"  {name:<14} {bits:12.2f} bits")
