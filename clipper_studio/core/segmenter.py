"""Caption segmentation from word timestamps, and per-clip rebasing.

WHY: Burned-in social captions show a few words at a time. The
transcript arrives as a flat list of timed words; it has to be grouped
into short on-screen lines once per transcript, then shifted onto each
clip's own 0-based timeline.

HOW: segment_words() greedily fills lines up to max_words_per_line and
extends any line shorter than min_display_time. rebase_lines() shifts
every line by the clip start, clamps it to the clip duration, and drops
lines that do not overlap the clip.

RULES:
- Lines partition the input words in order, with no gaps or duplicates
- start_time is the first word's start; end_time is the last word's end,
  extended to start_time + min_display_time when shorter
- The extension may overlap the next line's start; this is kept as-is
- Empty input returns an empty list
- Rebased lines with end <= start, or starting at/after the clip
  duration, are dropped
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

from clipper_studio.config import (
    DEFAULT_CAPTION_PLATFORM,
    DEFAULT_MAX_WORDS_PER_LINE,
    DEFAULT_MIN_DISPLAY_TIME,
)
from clipper_studio.core.errors import ValidationError
from clipper_studio.core.ir import CaptionLine, CaptionTrack, Word
from clipper_studio.core.presets import CaptionPlatform, resolve_platform

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SegmentOptions:
    """Options for segment_words().

    RULES:
    - max_words_per_line must be >= 1
    - min_display_time must be >= 0
    - platform is any key accepted by resolve_platform()
    """

    max_words_per_line: int = DEFAULT_MAX_WORDS_PER_LINE
    min_display_time: float = DEFAULT_MIN_DISPLAY_TIME
    platform: Union[str, CaptionPlatform] = DEFAULT_CAPTION_PLATFORM

    def validate(self) -> None:
        if self.max_words_per_line < 1:
            raise ValidationError(
                "max_words_per_line must be >= 1, got {}".format(self.max_words_per_line)
            )
        if self.min_display_time < 0:
            raise ValidationError(
                "min_display_time must be >= 0, got {}".format(self.min_display_time)
            )


def _close_line(group: Sequence[Word], min_display_time: float) -> CaptionLine:
    start = group[0].start
    end = group[-1].end
    if end - start < min_display_time:
        end = start + min_display_time
    return CaptionLine(
        words=tuple(group),
        start_time=start,
        end_time=end,
        text=" ".join(w.word for w in group),
    )


def segment_words(
    words: Iterable[Word],
    options: Optional[SegmentOptions] = None,
) -> List[CaptionLine]:
    """Group timed words into caption lines.

    Args:
        words: Transcribed words ordered by start time.
        options: Grouping limits; defaults to SegmentOptions().

    Returns:
        Caption lines in input order.

    Raises:
        ValidationError: If the options are out of range.
    """
    opts = options or SegmentOptions()
    opts.validate()

    lines: List[CaptionLine] = []
    group: List[Word] = []
    for word in words:
        group.append(word)
        if len(group) == opts.max_words_per_line:
            lines.append(_close_line(group, opts.min_display_time))
            group = []
    if group:
        lines.append(_close_line(group, opts.min_display_time))

    logger.debug("Segmented transcript into %d caption lines", len(lines))
    return lines


def build_caption_track(
    words: Iterable[Word],
    options: Optional[SegmentOptions] = None,
) -> CaptionTrack:
    """Segment words and attach the resolved platform preset."""
    opts = options or SegmentOptions()
    lines = segment_words(words, opts)
    return CaptionTrack(lines=tuple(lines), platform=resolve_platform(opts.platform))


def rebase_line(
    line: CaptionLine,
    clip_start: float,
    clip_duration: float,
) -> Optional[CaptionLine]:
    """Shift one line onto a clip's local timeline, or None if it falls outside."""
    local_start = max(0.0, line.start_time - clip_start)
    local_end = min(clip_duration, line.end_time - clip_start)
    if local_end <= local_start or local_start >= clip_duration:
        return None
    return line.retimed(local_start, local_end)


def rebase_lines(
    lines: Iterable[CaptionLine],
    clip_start: float,
    clip_end: float,
) -> List[CaptionLine]:
    """Rebase caption lines to the clip window [clip_start, clip_end].

    Example:
        A line at absolute [10s, 12s] in a clip spanning [8s, 20s]
        becomes [2s, 4s]; a line at [1s, 2s] is dropped.
    """
    clip_duration = clip_end - clip_start
    if clip_duration <= 0:
        return []
    rebased = []
    for line in lines:
        local = rebase_line(line, clip_start, clip_duration)
        if local is not None:
            rebased.append(local)
    return rebased
