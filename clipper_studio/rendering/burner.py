"""Burn a caption track into an already-rendered video.

WHY: Users re-style captions after a clip exists (a different font or
position) without re-cutting from the source. The whole video is
re-encoded once with the new caption filters.

HOW: Same filter builders as the cutter, no seek and no aspect
transform. Files are written inside a ScratchFiles scope and removed on
every exit path.

RULES:
- lines are on the video's own timeline (no rebasing)
- At least one visible line is required, else ValidationError
- The subtitle strategy probes the video for its dimensions
- Output name: captioned_{epoch_ms}_{random}_{font}.mp4
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from clipper_studio.core.errors import ValidationError
from clipper_studio.core.ir import CaptionLine, RenderArtifact
from clipper_studio.core.presets import CaptionPlatform
from clipper_studio.core.scratch import ScratchFiles, unique_stamp
from clipper_studio.rendering.cutter import (
    REENCODE_ARGS,
    CaptionStrategy,
    parse_caption_strategy,
)
from clipper_studio.rendering.filters import (
    build_drawtext_filters,
    build_subtitle_track,
    compose_filter_plan,
    write_plan_files,
)
from clipper_studio.rendering.fonts import fonts_directory, resolve_font
from clipper_studio.rendering.style import CaptionStyleConfig, build_force_style
from clipper_studio.rendering.transcoder import Transcoder, artifact_from_result

logger = logging.getLogger(__name__)


async def burn_captions(
    video_path: Union[str, Path],
    lines: Sequence[CaptionLine],
    output_dir: Union[str, Path],
    style: Optional[CaptionStyleConfig] = None,
    strategy: Union[str, CaptionStrategy] = CaptionStrategy.DRAWTEXT,
    platform: Union[str, CaptionPlatform, None] = None,
    transcoder: Optional[Transcoder] = None,
    scratch_dir: Optional[Path] = None,
    timeout_s: Optional[float] = None,
) -> RenderArtifact:
    """Re-encode video_path with captions burned in.

    The input is not probed for its length, so the returned artifact
    reports a duration of 0.0 (unknown).

    Raises:
        ValidationError: No visible caption lines, or a bad style.
        TranscodeError: The transcoder failed or wrote no file.
    """
    video_path = Path(video_path)
    output_dir = Path(output_dir)
    style = style or CaptionStyleConfig()
    transcoder = transcoder or Transcoder()

    if parse_caption_strategy(strategy) == CaptionStrategy.SUBTITLES:
        dimensions = await transcoder.probe(video_path)
        captions = build_subtitle_track(
            lines,
            force_style=build_force_style(style, dimensions),
            fonts_dir=fonts_directory(),
            scratch_dir=scratch_dir,
        )
    else:
        captions = build_drawtext_filters(
            lines,
            platform=platform,
            position=style.position,
            font_key=style.font,
            scratch_dir=scratch_dir,
        )
    if not captions.filters:
        raise ValidationError("No caption lines to burn into {}".format(video_path.name))

    plan = compose_filter_plan(None, captions, scratch_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / "captioned_{}_{}.mp4".format(
        unique_stamp(), resolve_font(style.font).key
    )
    args = [
        "-i", str(video_path),
        "-filter_complex_script", str(plan.filter_script_path),
        "-map", "[v]",
        "-map", "0:a?",
    ]
    args += REENCODE_ARGS
    args += ["-y", str(output_path)]

    logger.info("Burning %d captions into %s", plan.caption_count, video_path.name)
    with ScratchFiles() as scratch:
        write_plan_files(plan, scratch)
        result = await transcoder.run(args, timeout_s=timeout_s)

    return artifact_from_result(result, output_path, 0.0, action="Caption burn")
