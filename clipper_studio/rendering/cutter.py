"""Clip cutting: precise sub-segments, aspect conversion, burned captions.

WHY: Each highlight clip is a time range of the source video, usually
reframed for a vertical or cinematic feed and captioned. Re-encoding is
slow and lossy, so it happens only when a pixel-level filter is actually
needed; otherwise packets are copied as-is.

HOW: cut_clip() rebases the caption lines onto the clip timeline, builds
a FilterPlan (aspect transform and caption filters combined into one
chain), writes the plan's files inside a ScratchFiles scope, runs the
transcoder with an input-side seek, and turns the result into a
RenderArtifact. The scope deletes every text file and filter script on
exit, whether the transcoder succeeded, failed, or timed out.

RULES:
- Seek is input-side: -ss START -i SRC -t DURATION
- Aspect transform or visible captions -> libx264/aac re-encode
- Neither -> stream copy (-c copy), no filter graph
- Captions go through -filter_complex_script; a bare aspect transform
  goes inline through -vf
- Output name: clip_{epoch_ms}_{random}_{start}s-{end}s[_{platform}].mp4
- Raises TranscodeError on non-zero exit or missing output
- Raises ValidationError for bad time ranges or unknown aspect ratios
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from clipper_studio.core.errors import ValidationError
from clipper_studio.core.ir import CaptionLine, RenderArtifact, VideoDimensions
from clipper_studio.core.presets import CaptionPlatform
from clipper_studio.core.scratch import ScratchFiles, unique_stamp
from clipper_studio.core.segmenter import rebase_lines
from clipper_studio.core.timecode import format_offset
from clipper_studio.rendering.filters import (
    CaptionFilters,
    FilterPlan,
    build_drawtext_filters,
    build_subtitle_track,
    compose_filter_plan,
    write_plan_files,
)
from clipper_studio.rendering.fonts import fonts_directory
from clipper_studio.rendering.style import CaptionStyleConfig, build_force_style
from clipper_studio.rendering.transcoder import Transcoder, artifact_from_result

logger = logging.getLogger(__name__)


class AspectRatio(str, enum.Enum):
    ORIGINAL = "original"
    VERTICAL = "9:16"
    CINEMATIC = "2.35:1"


class CaptionStrategy(str, enum.Enum):
    """How captions are burned in."""

    DRAWTEXT = "drawtext"
    SUBTITLES = "subtitles"


ASPECT_FILTERS: Dict[AspectRatio, str] = {
    AspectRatio.VERTICAL: "scale=1080:1920:force_original_aspect_ratio=increase,crop=1080:1920",
    AspectRatio.CINEMATIC: (
        "scale=2540:1080:force_original_aspect_ratio=decrease,"
        "pad=2540:1080:(ow-iw)/2:(oh-ih)/2"
    ),
}

OUTPUT_DIMENSIONS: Dict[AspectRatio, VideoDimensions] = {
    AspectRatio.VERTICAL: VideoDimensions(width=1080, height=1920),
    AspectRatio.CINEMATIC: VideoDimensions(width=2540, height=1080),
}

REENCODE_ARGS: Tuple[str, ...] = (
    "-c:v", "libx264",
    "-c:a", "aac",
    "-preset", "medium",
    "-crf", "23",
)

PREVIEW_MAX_DURATION_S = 60.0
PREVIEW_ENCODE_ARGS: Tuple[str, ...] = (
    "-c:v", "libx264",
    "-c:a", "aac",
    "-preset", "ultrafast",
    "-crf", "28",
)


def parse_aspect_ratio(value: Union[str, AspectRatio, None]) -> AspectRatio:
    """Resolve an aspect-ratio key; None means original."""
    if value is None:
        return AspectRatio.ORIGINAL
    if isinstance(value, AspectRatio):
        return value
    try:
        return AspectRatio(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            "Unknown aspect ratio '{}'. Available: {}".format(
                value, ", ".join(a.value for a in AspectRatio)
            )
        )


def parse_caption_strategy(value: Union[str, CaptionStrategy, None]) -> CaptionStrategy:
    if value is None:
        return CaptionStrategy.DRAWTEXT
    if isinstance(value, CaptionStrategy):
        return value
    try:
        return CaptionStrategy(str(value).strip().lower())
    except ValueError:
        raise ValidationError("Unknown caption strategy '{}'".format(value))


@dataclass(frozen=True)
class CutOptions:
    """Options for cut_clip().

    RULES:
    - caption_lines are on the source timeline; cut_clip rebases them
    - platform only affects the output file name
    - caption_platform selects the drawtext size/border preset
    - caption_style supplies the font for both strategies, and the full
      style (size, weight, position) for the subtitle strategy; when it
      is None, caption_position is used with default font/size/weight
    - video_dimensions skips the probe for the subtitle strategy
    - timeout_s overrides the transcoder's default deadline
    """

    aspect_ratio: Union[str, AspectRatio] = AspectRatio.ORIGINAL
    platform: Optional[str] = None
    caption_lines: Sequence[CaptionLine] = ()
    caption_platform: Union[str, CaptionPlatform, None] = None
    caption_position: str = "bottom"
    enable_captions: bool = True
    caption_strategy: Union[str, CaptionStrategy] = CaptionStrategy.DRAWTEXT
    caption_style: Optional[CaptionStyleConfig] = None
    video_dimensions: Optional[VideoDimensions] = None
    timeout_s: Optional[float] = None

    def effective_style(self) -> CaptionStyleConfig:
        if self.caption_style is not None:
            return self.caption_style
        return CaptionStyleConfig(position=self.caption_position)


def clip_file_name(
    start_time: float,
    end_time: float,
    platform: Optional[str] = None,
    stamp: Optional[str] = None,
) -> str:
    stamp = stamp or unique_stamp()
    suffix = "_{}".format(platform) if platform and platform != "none" else ""
    return "clip_{}_{}s-{}s{}.mp4".format(
        stamp, format_offset(start_time), format_offset(end_time), suffix
    )


def _validate_range(start_time: float, end_time: float) -> None:
    if start_time < 0:
        raise ValidationError("Start time must be >= 0, got {}".format(start_time))
    if end_time <= start_time:
        raise ValidationError(
            "End time ({}) must be after start time ({})".format(end_time, start_time)
        )


async def _caption_filters(
    lines: Sequence[CaptionLine],
    clip_duration: float,
    options: CutOptions,
    aspect: AspectRatio,
    source_path: Path,
    transcoder: Transcoder,
    scratch_dir: Optional[Path],
) -> Optional[CaptionFilters]:
    style = options.effective_style()
    strategy = parse_caption_strategy(options.caption_strategy)

    if strategy == CaptionStrategy.DRAWTEXT:
        return build_drawtext_filters(
            lines,
            clip_duration=clip_duration,
            platform=options.caption_platform,
            position=style.position,
            font_key=style.font,
            scratch_dir=scratch_dir,
        )

    dimensions = options.video_dimensions or OUTPUT_DIMENSIONS.get(aspect)
    if dimensions is None:
        dimensions = await transcoder.probe(source_path)
    return build_subtitle_track(
        lines,
        force_style=build_force_style(style, dimensions),
        fonts_dir=fonts_directory(),
        clip_duration=clip_duration,
        scratch_dir=scratch_dir,
    )


def build_cut_args(
    source_path: Path,
    start_time: float,
    duration: float,
    output_path: Path,
    plan: FilterPlan,
) -> List[str]:
    """Assemble the transcoder argument list for one cut."""
    args = [
        "-ss", format_offset(start_time),
        "-i", str(source_path),
        "-t", format_offset(duration),
    ]
    if plan.filter_script_path is not None:
        args += [
            "-filter_complex_script", str(plan.filter_script_path),
            "-map", "[v]",
            "-map", "0:a?",
        ]
        args += REENCODE_ARGS
    elif not plan.is_empty:
        args += ["-vf", ",".join(plan.filters)]
        args += REENCODE_ARGS
    else:
        args += ["-c", "copy"]
    args += ["-avoid_negative_ts", "make_zero", "-y", str(output_path)]
    return args


async def cut_clip(
    source_path: Union[str, Path],
    start_time: float,
    end_time: float,
    output_dir: Union[str, Path],
    options: Optional[CutOptions] = None,
    transcoder: Optional[Transcoder] = None,
    scratch_dir: Optional[Path] = None,
) -> RenderArtifact:
    """Cut [start_time, end_time] out of the source video.

    Args:
        source_path: Local source video.
        start_time: Clip start on the source timeline (seconds).
        end_time: Clip end on the source timeline (seconds).
        output_dir: Directory for the rendered clip.
        options: Aspect ratio, captions and naming options.
        transcoder: Transcoder to use (default: a new Transcoder()).
        scratch_dir: Directory for text files and filter scripts.

    Returns:
        RenderArtifact for the rendered clip, owned by the caller.

    Raises:
        ValidationError: Bad time range, aspect ratio or caption style.
        TranscodeError: The transcoder failed or wrote no file.
    """
    opts = options or CutOptions()
    transcoder = transcoder or Transcoder()
    source_path = Path(source_path)
    output_dir = Path(output_dir)

    _validate_range(start_time, end_time)
    aspect = parse_aspect_ratio(opts.aspect_ratio)
    duration = end_time - start_time

    captions = None  # type: Optional[CaptionFilters]
    if opts.enable_captions and opts.caption_lines:
        local_lines = rebase_lines(opts.caption_lines, start_time, end_time)
        logger.debug(
            "%d/%d caption lines overlap clip %ss-%ss",
            len(local_lines), len(opts.caption_lines), start_time, end_time,
        )
        if local_lines:
            captions = await _caption_filters(
                local_lines, duration, opts, aspect, source_path, transcoder, scratch_dir,
            )

    plan = compose_filter_plan(ASPECT_FILTERS.get(aspect), captions, scratch_dir)

    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / clip_file_name(start_time, end_time, opts.platform)
    args = build_cut_args(source_path, start_time, duration, output_path, plan)

    logger.info(
        "Cutting %s [%ss-%ss] aspect=%s captions=%d mode=%s",
        source_path.name, start_time, end_time, aspect.value, plan.caption_count,
        "copy" if plan.is_empty else "re-encode",
    )

    with ScratchFiles() as scratch:
        write_plan_files(plan, scratch)
        result = await transcoder.run(args, timeout_s=opts.timeout_s)

    return artifact_from_result(result, output_path, duration, action="Clip cut")


async def extract_preview(
    source_path: Union[str, Path],
    start_time: float,
    end_time: float,
    output_dir: Union[str, Path],
    transcoder: Optional[Transcoder] = None,
    max_duration: float = PREVIEW_MAX_DURATION_S,
    timeout_s: Optional[float] = None,
) -> RenderArtifact:
    """Render a fast, low-quality preview of at most max_duration seconds.

    Raises:
        TranscodeError: The transcoder failed or wrote no file.
    """
    _validate_range(start_time, end_time)
    transcoder = transcoder or Transcoder()
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    duration = min(max_duration, end_time - start_time)
    output_path = output_dir / "preview_{}_{}s.mp4".format(unique_stamp(), format_offset(start_time))
    args = [
        "-ss", format_offset(start_time),
        "-i", str(source_path),
        "-t", format_offset(duration),
    ]
    args += PREVIEW_ENCODE_ARGS
    args += ["-avoid_negative_ts", "make_zero", "-y", str(output_path)]

    result = await transcoder.run(args, timeout_s=timeout_s)
    return artifact_from_result(result, output_path, duration, action="Preview")
