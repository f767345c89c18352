"""Audio segment extraction for re-transcription.

WHY: Re-titling a clip transcribes just that clip's audio. The
transcription collaborator requires mono 16 kHz 16-bit PCM whatever the
source codec, so the segment is always converted to that format.

HOW: One transcoder call with the same input-side seek as the cutter,
video disabled, and a fixed PCM output format.

RULES:
- Output: pcm_s16le, 16000 Hz, 1 channel, .wav
- Output name: audio_{epoch_ms}_{random}_{start}s-{end}s.wav
- Raises ExtractionError on non-zero exit or missing output
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from clipper_studio.core.errors import ExtractionError, ValidationError
from clipper_studio.core.ir import RenderArtifact
from clipper_studio.core.scratch import unique_stamp
from clipper_studio.core.timecode import format_offset
from clipper_studio.rendering.transcoder import Transcoder, artifact_from_result

logger = logging.getLogger(__name__)

SAMPLE_RATE_HZ = 16000
CHANNELS = 1
CODEC = "pcm_s16le"


async def extract_audio_segment(
    source_path: Union[str, Path],
    start_time: float,
    end_time: float,
    output_dir: Union[str, Path],
    transcoder: Optional[Transcoder] = None,
    timeout_s: Optional[float] = None,
) -> RenderArtifact:
    """Extract [start_time, end_time] as mono 16 kHz PCM WAV.

    Raises:
        ValidationError: If the time range is empty or negative.
        ExtractionError: If the transcoder fails or writes no file.
    """
    if start_time < 0 or end_time <= start_time:
        raise ValidationError(
            "Invalid audio range {}s-{}s".format(start_time, end_time)
        )
    transcoder = transcoder or Transcoder()
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    duration = end_time - start_time
    output_path = output_dir / "audio_{}_{}s-{}s.wav".format(
        unique_stamp(), format_offset(start_time), format_offset(end_time)
    )
    args = [
        "-ss", format_offset(start_time),
        "-i", str(source_path),
        "-t", format_offset(duration),
        "-vn",
        "-acodec", CODEC,
        "-ar", str(SAMPLE_RATE_HZ),
        "-ac", str(CHANNELS),
        "-y", str(output_path),
    ]
    logger.info("Extracting audio %ss-%ss from %s", start_time, end_time, Path(source_path).name)
    result = await transcoder.run(args, timeout_s=timeout_s)
    return artifact_from_result(
        result, output_path, duration, error_cls=ExtractionError, action="Audio extraction"
    )
