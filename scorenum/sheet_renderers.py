"""Renderer implementations for sheet music output formats."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import asdict

from scorenum.sheet_models import ScoreDocument


def _escape_html(text: str) -> str:
    """Escape the three characters that are unsafe in HTML text content."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


class SheetRenderer(ABC):
    """Abstract sheet renderer."""

    @property
    @abstractmethod
    def default_extension(self) -> str:
        """Default filename extension for this renderer."""

    @abstractmethod
    def render(self, *, title: str, score_document: ScoreDocument) -> str:
        """Render output into a file content string."""


class VexflowMarkdownRenderer(SheetRenderer):
    """
    Render a score document into Markdown with an embedded VexFlow script.

    Every system is drawn on its own treble stave, one below the other, on a
    single SVG surface sized from the document's width and line height.
    """

    @property
    def default_extension(self) -> str:
        return ".md"

    def render(self, *, title: str, score_document: ScoreDocument) -> str:
        title_safe = _escape_html(title)
        heading = f"# {title_safe}\n\n" if title else ""
        score_json = json.dumps(asdict(score_document), separators=(",", ":"))
        score_json = score_json.replace("</", "<\\/")

        return f"""{heading}This Markdown uses embedded JavaScript + VexFlow. Open it in a Markdown viewer that allows script execution.

<div id="scorenum-score"></div>
<script id="scorenum-score-data" type="application/json">{score_json}</script>
<script type="module">
  import {{
    Accidental,
    Beam,
    Curve,
    Dot,
    Formatter,
    Renderer,
    Stave,
    StaveNote,
    StaveTie,
    Voice
  }} from "https://cdn.jsdelivr.net/npm/vexflow@4.2.3/build/esm/entry/vexflow.js";

  const host = document.getElementById("scorenum-score");
  const payloadNode = document.getElementById("scorenum-score-data");

  if (!host || !payloadNode) {{
    throw new Error("Missing VexFlow score container.");
  }}

  const payload = JSON.parse(payloadNode.textContent || "{{}}");
  const width = Number(payload.width) || 800;
  const lineHeight = Number(payload.line_height) || 120;
  const beatValue = Number(payload.beat_value) || 32;
  const keySignature = payload.key_signature || "C";
  const padding = 10;
  const systems = Array.isArray(payload.systems) ? payload.systems : [];

  const renderer = new Renderer(host, Renderer.Backends.SVG);
  renderer.resize(width, (Math.max(systems.length, 1) + 1) * lineHeight);
  const context = renderer.getContext();

  const toVoice = (entry, numBeats) => {{
    const notes = entry.notes.map((token) => {{
      const staveNote = new StaveNote({{ keys: token.keys, duration: token.duration }});
      for (let i = 0; i < token.dots; i++) {{
        Dot.buildAndAttach([staveNote], {{ all: true }});
      }}
      return staveNote;
    }});

    const decorations = [];
    entry.ties.forEach(([first, last]) => {{
      const indices = notes[first].getKeys().map((_, i) => i);
      decorations.push(new StaveTie({{
        first_note: notes[first],
        last_note: notes[last],
        first_indices: indices,
        last_indices: indices,
      }}));
    }});
    entry.slurs.forEach(([first, last]) => {{
      decorations.push(new Curve(notes[first], notes[last], {{}}));
    }});
    decorations.push(...Beam.generateBeams(notes));

    const voice = new Voice({{ num_beats: numBeats, beat_value: beatValue }});
    voice.setMode(Voice.Mode.SOFT);
    voice.addTickables(notes);
    return {{ voice, decorations }};
  }};

  systems.forEach((system, index) => {{
    const stave = new Stave(padding, padding + (index + 0.5) * lineHeight, width - 2 * padding);
    stave.addClef("treble").addKeySignature(keySignature);
    stave.setContext(context).draw();

    if (!system.voices.length) {{
      return;
    }}

    const built = system.voices.map((entry) => toVoice(entry, system.num_beats));
    const voices = built.map((item) => item.voice);
    Accidental.applyAccidentals(voices, keySignature);
    new Formatter().joinVoices(voices).formatToStave(voices, stave);

    voices.forEach((voice) => voice.draw(context, stave));
    built.forEach((item) => item.decorations.forEach((element) => element.setContext(context).draw()));
  }});
</script>
"""
