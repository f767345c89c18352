"""Subtitle filter builder: drawtext chains and subtitle-burn filters.

WHY: Captions are burned into the picture by the transcoder's filter
graph. Two strategies exist. The drawtext strategy writes each caption's
literal text to its own file and references it with ``textfile=``, so
caption text never has to be escaped for the filter parser. The
subtitle strategy writes one WebVTT track and lets the subtitle renderer
style it with a force_style string and the bundled fonts directory.

HOW: Builders are pure. They decide file names and contents and return
them in a CaptionFilters value (filters + text files) without touching
the disk. The cutter combines them with aspect-ratio filters into a
FilterPlan and calls write_plan_files(), which writes everything through
a ScratchFiles scope so the files are removed on every exit path.

RULES:
- Lines whose end <= start, or whose start is at/after the clip
  duration, are dropped silently
- Drawtext text files are named caption_{ts}_{random}.txt
- Drawtext clauses set expansion=none so the file text is drawn verbatim
- Subtitle tracks are named subtitles_{ts}_{random}.vtt
- Filter scripts are named filter_script_{ts}_{random}.txt and contain
  ``[0:v]{chain}[v]``
- Paths inside filter options are escaped for the filter parser
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from clipper_studio.core.ir import CaptionLine
from clipper_studio.core.presets import CaptionPlatform, platform_styling
from clipper_studio.core.scratch import ScratchFiles, unique_scratch_path
from clipper_studio.core.timecode import format_offset
from clipper_studio.formatters.webvtt import render_webvtt
from clipper_studio.rendering.fonts import resolve_font
from clipper_studio.rendering.style import CaptionPosition, resolve_position

logger = logging.getLogger(__name__)

# Distance in pixels between the caption and the top/bottom edge
DRAWTEXT_EDGE_MARGIN = 150


@dataclass(frozen=True)
class TextFile:
    """A scratch file the transcoder will read: where it goes and what it holds."""

    path: Path
    content: str


@dataclass
class CaptionFilters:
    """Filter clauses plus the files they reference."""

    filters: List[str] = field(default_factory=list)
    text_files: List[TextFile] = field(default_factory=list)

    @property
    def caption_count(self) -> int:
        return len(self.filters)


@dataclass
class FilterPlan:
    """The full video filter chain for one transcoder call.

    RULES:
    - filters is the ordered chain (aspect transform first, captions after)
    - filter_script_path is set only when a script file is needed
    - text_files must exist on disk before the transcoder runs
    """

    filters: List[str] = field(default_factory=list)
    text_files: List[TextFile] = field(default_factory=list)
    filter_script_path: Optional[Path] = None
    caption_count: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.filters

    def script_content(self) -> str:
        return "[0:v]{}[v]".format(",".join(self.filters))


def escape_filter_path(path: Union[str, Path]) -> str:
    """Escape a filesystem path for use inside a quoted filter option."""
    return (
        str(path)
        .replace("\\", "/")
        .replace(":", "\\:")
        .replace("'", "\\'")
    )


def visible_lines(
    lines: Iterable[CaptionLine],
    clip_duration: Optional[float] = None,
) -> List[CaptionLine]:
    """Drop lines that would render nothing inside the clip."""
    kept = []
    for line in lines:
        if line.end_time <= line.start_time:
            continue
        if clip_duration is not None and line.start_time >= clip_duration:
            continue
        kept.append(line)
    return kept


def drawtext_y(position: Union[str, CaptionPosition], margin: int = DRAWTEXT_EDGE_MARGIN) -> str:
    """Vertical drawtext expression for a caption position."""
    resolved = resolve_position(position)
    if resolved == CaptionPosition.TOP:
        return str(margin)
    if resolved == CaptionPosition.CENTER:
        return "(h-text_h)/2"
    return "h-text_h-{}".format(margin)


def build_drawtext_filters(
    lines: Sequence[CaptionLine],
    clip_duration: Optional[float] = None,
    platform: Union[str, CaptionPlatform, None] = None,
    position: Union[str, CaptionPosition] = CaptionPosition.BOTTOM,
    font_key: Optional[str] = None,
    scratch_dir: Optional[Path] = None,
) -> CaptionFilters:
    """Build one drawtext clause per caption line.

    Args:
        lines: Caption lines on the clip-local timeline.
        clip_duration: Clip length; lines starting at/after it are dropped.
        platform: Platform preset key for size and border.
        position: top, center or bottom.
        font_key: Font registry key (default font when unknown).
        scratch_dir: Directory the text files will be written to.

    Returns:
        CaptionFilters; empty when no line is visible.
    """
    styling = platform_styling(platform)
    font = resolve_font(font_key)
    y = drawtext_y(position)

    result = CaptionFilters()
    for line in visible_lines(lines, clip_duration):
        path = unique_scratch_path("caption", ".txt", scratch_dir)
        result.text_files.append(TextFile(path=path, content=line.text.strip()))
        result.filters.append(
            "drawtext=textfile='{path}':x=(w-text_w)/2:y={y}:font='{font}'"
            ":fontsize={size}:fontcolor={color}:bordercolor={border}:borderw={bw}"
            ":enable='between(t,{start},{end})':expansion=none".format(
                path=escape_filter_path(path),
                y=y,
                font=font.display_name,
                size=styling.font_size,
                color=styling.font_color,
                border=styling.outline_color,
                bw=styling.outline_width,
                start=format_offset(line.start_time),
                end=format_offset(line.end_time),
            )
        )

    logger.debug("Built %d drawtext filters (font=%s)", result.caption_count, font.key)
    return result


def build_subtitle_payload(
    lines: Sequence[CaptionLine],
    clip_duration: Optional[float] = None,
) -> str:
    """Serialize visible lines as the WebVTT track read by the burn filter."""
    return render_webvtt(visible_lines(lines, clip_duration), for_player=False)


def build_subtitle_filter(
    subtitle_path: Path,
    force_style: str,
    fonts_dir: Path,
) -> str:
    """Subtitle-burn filter clause for a track, style string and fonts dir."""
    return "subtitles='{}':fontsdir='{}':force_style='{}'".format(
        escape_filter_path(subtitle_path),
        escape_filter_path(fonts_dir),
        force_style,
    )


def build_subtitle_track(
    lines: Sequence[CaptionLine],
    force_style: str,
    fonts_dir: Path,
    clip_duration: Optional[float] = None,
    scratch_dir: Optional[Path] = None,
) -> CaptionFilters:
    """Build the subtitle-burn filter plus its WebVTT track file.

    Returns:
        CaptionFilters with one filter and one text file, or empty when
        no line is visible.
    """
    kept = visible_lines(lines, clip_duration)
    if not kept:
        return CaptionFilters()
    path = unique_scratch_path("subtitles", ".vtt", scratch_dir)
    return CaptionFilters(
        filters=[build_subtitle_filter(path, force_style, fonts_dir)],
        text_files=[TextFile(path=path, content=build_subtitle_payload(kept))],
    )


def compose_filter_plan(
    aspect_filter: Optional[str],
    captions: Optional[CaptionFilters],
    scratch_dir: Optional[Path] = None,
) -> FilterPlan:
    """Combine an aspect-ratio transform and caption filters into one chain.

    A filter script path is allocated only when captions are present;
    a bare aspect transform is passed inline with -vf.
    """
    plan = FilterPlan()
    if aspect_filter:
        plan.filters.append(aspect_filter)
    if captions and captions.filters:
        plan.filters.extend(captions.filters)
        plan.text_files.extend(captions.text_files)
        plan.caption_count = captions.caption_count
        plan.filter_script_path = unique_scratch_path("filter_script", ".txt", scratch_dir)
    return plan


def write_plan_files(plan: FilterPlan, scratch: ScratchFiles) -> None:
    """Write the plan's text files and filter script, tracked by scratch.

    Every path is registered with scratch before it is written so a
    failure part-way through still leaves nothing behind.
    """
    parents = {tf.path.parent for tf in plan.text_files}
    if plan.filter_script_path is not None:
        parents.add(plan.filter_script_path.parent)
    for parent in parents:
        parent.mkdir(parents=True, exist_ok=True)
    for text_file in plan.text_files:
        scratch.track(text_file.path)
        text_file.path.write_text(text_file.content, encoding="utf-8")
    if plan.filter_script_path is not None:
        scratch.track(plan.filter_script_path)
        plan.filter_script_path.write_text(plan.script_content(), encoding="utf-8")
    logger.debug(
        "Wrote %d text files%s",
        len(plan.text_files),
        " and filter script" if plan.filter_script_path else "",
    )
