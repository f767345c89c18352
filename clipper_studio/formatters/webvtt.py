"""WebVTT documents: player captions, burn payloads, and clip delivery.

WHY: WebVTT serves two consumers. HTML5 players load it next to an
uncaptioned clip, and the subtitle-burn filter reads it as its input
track. The clip caption endpoint must also degrade gracefully: a clip
without a transcript gets a valid, empty document instead of an error.

HOW: render_webvtt() writes the header, optional NOTE title, and one
numbered cue per line. Player documents escape cue text and wrap it at
MAX_LINE_LENGTH characters; burn payloads keep text literal and add the
``align:middle`` cue setting. render_clip_captions() rebases the global
caption track onto a clip window before rendering.

RULES:
- Escaping: & -> &amp;  < -> &lt;  > -> &gt;  --> -> --&gt;
- Wrapping is greedy on spaces; a single long word is never split
- No transcript -> NO_CAPTIONS_DOCUMENT
- No lines inside the clip window -> NO_CLIP_CAPTIONS_DOCUMENT
- MIME type is text/vtt
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from clipper_studio.core.ir import CaptionLine
from clipper_studio.core.segmenter import rebase_lines
from clipper_studio.core.timecode import format_offset, vtt_timestamp
from clipper_studio.formatters.base import BaseFormatter, FormatterOutput

logger = logging.getLogger(__name__)

WEBVTT_MEDIA_TYPE = "text/vtt"
MAX_LINE_LENGTH = 40
NO_CAPTIONS_DOCUMENT = "WEBVTT\n\nNOTE No captions available\n\n"
NO_CLIP_CAPTIONS_DOCUMENT = "WEBVTT\n\nNOTE No captions available for this clip\n\n"


def escape_cue_text(text: str) -> str:
    """Escape characters that WebVTT treats as markup."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace("-->", "--&gt;")
        .strip()
    )


def wrap_cue_text(text: str, max_line_length: int = MAX_LINE_LENGTH) -> str:
    """Greedy word wrap so no line exceeds max_line_length (unless one word does)."""
    rows: List[str] = []
    current = ""
    for word in text.split():
        if not current:
            current = word
        elif len(current) + 1 + len(word) <= max_line_length:
            current = "{} {}".format(current, word)
        else:
            rows.append(current)
            current = word
    if current:
        rows.append(current)
    return "\n".join(rows)


def render_webvtt(
    lines: Iterable[CaptionLine],
    title: Optional[str] = None,
    for_player: bool = True,
) -> str:
    """Render caption lines as a WebVTT document.

    Args:
        lines: Caption lines in display order.
        title: Optional NOTE title placed after the header.
        for_player: True escapes and wraps cue text; False emits the
            literal text with ``align:middle`` for the subtitle-burn filter.
    """
    parts = ["WEBVTT\n"]
    if title:
        parts.append("NOTE {}\n".format(title))
    parts.append("\n")

    for index, line in enumerate(lines, start=1):
        timing = "{} --> {}".format(vtt_timestamp(line.start_time), vtt_timestamp(line.end_time))
        if for_player:
            text = wrap_cue_text(escape_cue_text(line.text))
        else:
            timing += " align:middle"
            text = line.text.strip()
        parts.append("{}\n{}\n{}\n\n".format(index, timing, text))

    return "".join(parts)


def render_clip_captions(
    lines: Optional[Sequence[CaptionLine]],
    clip_start: float,
    clip_end: float,
) -> str:
    """Build the WebVTT document delivered for one stored clip.

    Args:
        lines: The project-level caption track on the source timeline,
            or None when the project has no transcript.
        clip_start: Clip start on the source timeline (seconds).
        clip_end: Clip end on the source timeline (seconds).

    Returns:
        A WebVTT document; a placeholder NOTE document when there is
        nothing to show.
    """
    if lines is None:
        logger.info("No transcript for clip %ss-%ss, serving placeholder", clip_start, clip_end)
        return NO_CAPTIONS_DOCUMENT

    local = rebase_lines(lines, clip_start, clip_end)
    if not local:
        return NO_CLIP_CAPTIONS_DOCUMENT

    title = "Clip {}s-{}s".format(format_offset(clip_start), format_offset(clip_end))
    return render_webvtt(local, title=title)


class WebVTTFormatter(BaseFormatter):
    """Formatter producing a player-ready WebVTT document."""

    @property
    def name(self) -> str:
        return "WebVTT"

    def format(
        self,
        lines: Sequence[CaptionLine],
        title: Optional[str] = None,
    ) -> List[FormatterOutput]:
        return [
            FormatterOutput(
                suffix=".vtt",
                content=render_webvtt(lines, title=title or "Generated Captions"),
                media_type=WEBVTT_MEDIA_TYPE,
            )
        ]
