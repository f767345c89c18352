"""Title resolution for processed clips.

WHY: Every published clip needs a title. An upstream content-analysis
step usually supplies one; when it does not, the clip's own audio can be
transcribed and tidied into a title, and when that fails too a
synthesized "{source} - {offset}s" title is always available. Callers
want to know which of the three happened.

HOW: resolve_title() walks the three sources in order and returns a
ResolvedTitle tagged with a TitleSource. title_from_transcript() applies
the cleanup rules to transcribed text.

RULES:
- Filler words removed (case-insensitive, whole words): um, uh, er, ah,
  like, you know, so
- Whitespace collapsed, first letter upper-cased
- Longer than 60 chars: cut at 60, then back to the last space if it is
  past char 30, then "..." appended
- Fewer than 3 chars after cleanup: rejected (fallback used)
- Re-transcription failures never propagate; they are logged and the
  fallback title is used
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from clipper_studio.core.ir import ClipDescriptor
from clipper_studio.core.timecode import format_offset

logger = logging.getLogger(__name__)

FILLER_WORDS_RE = re.compile(r"\b(um|uh|er|ah|like|you know|so)\b", re.IGNORECASE)
MAX_TITLE_CHARS = 60
MIN_WORD_BOUNDARY = 30
MIN_TITLE_CHARS = 3


class TitleSource(str, enum.Enum):
    """Where a clip's title came from."""

    METADATA = "metadata"
    RESYNTHESIZED = "resynthesized"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ResolvedTitle:
    text: str
    source: TitleSource


def fallback_title(source_name: str, start_time: float) -> str:
    return "{} - {}s".format(source_name or "Video", format_offset(start_time))


def title_from_transcript(text: str) -> Optional[str]:
    """Clean transcribed text into a title, or None if too short."""
    title = FILLER_WORDS_RE.sub("", text or "")
    title = " ".join(title.split())
    if title:
        title = title[0].upper() + title[1:]

    if len(title) > MAX_TITLE_CHARS:
        title = title[:MAX_TITLE_CHARS].strip()
        last_space = title.rfind(" ")
        if last_space > MIN_WORD_BOUNDARY:
            title = title[:last_space]
        title += "..."

    if len(title) < MIN_TITLE_CHARS:
        return None
    return title


async def resolve_title(
    clip: ClipDescriptor,
    source_name: str,
    audio_path: Optional[Path] = None,
    transcriber=None,
) -> ResolvedTitle:
    """Pick the clip title: metadata, then re-transcription, then fallback.

    Args:
        clip: The clip descriptor (its title wins when present).
        source_name: Display name of the source video for the fallback.
        audio_path: Extracted clip audio; re-transcription needs it.
        transcriber: Object with ``async transcribe(path)``; None skips
            re-transcription.

    Returns:
        ResolvedTitle tagged with its TitleSource.
    """
    if clip.title:
        return ResolvedTitle(text=clip.title, source=TitleSource.METADATA)

    if transcriber is not None and audio_path is not None:
        try:
            result = await transcriber.transcribe(audio_path)
            title = title_from_transcript(result.text)
            if title:
                return ResolvedTitle(text=title, source=TitleSource.RESYNTHESIZED)
            logger.warning("Transcribed title for clip %s too short, using fallback", clip.id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Re-transcription failed for clip %s: %s", clip.id, exc)

    return ResolvedTitle(
        text=fallback_title(source_name, clip.start_time),
        source=TitleSource.FALLBACK,
    )
