"""Chunked transcription of a source time range.

WHY: The transcription API rejects uploads over 25 MB, which the PCM
audio it needs passes after roughly thirteen minutes. A long clip span
has to be transcribed piece by piece and stitched back together.

HOW: chunk_ranges() splits [start, end] into consecutive windows of at
most WHISPER_CHUNK_SECONDS. transcribe_range() extracts, transcribes and
deletes each window in turn, shifting every word by the window's start
so the merged result is on the source timeline.

RULES:
- Each chunk's audio file is removed as soon as its request returns,
  whether it succeeded or not
- Words come back in chunk order; chunk texts are joined with a space
- The first failing chunk aborts the whole range
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from clipper_studio import config
from clipper_studio.core.errors import ValidationError
from clipper_studio.core.ir import TranscriptionResult, Word
from clipper_studio.core.scratch import remove_quietly
from clipper_studio.pipeline.orchestrator import Transcriber
from clipper_studio.rendering.audio import extract_audio_segment
from clipper_studio.rendering.transcoder import Transcoder

logger = logging.getLogger(__name__)


def chunk_ranges(
    start_time: float,
    end_time: float,
    chunk_seconds: Optional[float] = None,
) -> List[Tuple[float, float]]:
    """Split [start_time, end_time] into consecutive windows."""
    size = chunk_seconds if chunk_seconds is not None else config.WHISPER_CHUNK_SECONDS
    if size <= 0:
        raise ValidationError("Chunk length must be positive, got {}".format(size))
    if end_time <= start_time:
        raise ValidationError(
            "Invalid transcription range {}s-{}s".format(start_time, end_time)
        )
    ranges = []
    chunk_start = start_time
    while chunk_start < end_time:
        chunk_end = min(chunk_start + size, end_time)
        ranges.append((chunk_start, chunk_end))
        chunk_start = chunk_end
    return ranges


async def transcribe_range(
    source_path: Union[str, Path],
    start_time: float,
    end_time: float,
    transcriber: Transcriber,
    scratch_dir: Union[str, Path],
    transcoder: Optional[Transcoder] = None,
    chunk_seconds: Optional[float] = None,
    timeout_s: Optional[float] = None,
) -> TranscriptionResult:
    """Transcribe [start_time, end_time] of the source in upload-sized chunks.

    Returns:
        TranscriptionResult whose word timings are absolute source offsets.

    Raises:
        ValidationError: Empty range or non-positive chunk length.
        ExtractionError: Audio extraction failed for a chunk.
        TranscriptionError: The transcription request failed for a chunk.
    """
    ranges = chunk_ranges(start_time, end_time, chunk_seconds)
    if len(ranges) > 1:
        logger.info(
            "Transcribing %ss-%ss in %d chunks", start_time, end_time, len(ranges)
        )

    words: List[Word] = []
    texts: List[str] = []
    for index, (chunk_start, chunk_end) in enumerate(ranges):
        audio = await extract_audio_segment(
            source_path, chunk_start, chunk_end, scratch_dir,
            transcoder=transcoder, timeout_s=timeout_s,
        )
        try:
            result = await transcriber.transcribe(audio.file_path)
        finally:
            remove_quietly([audio.file_path])

        words.extend(
            Word(word=w.word, start=w.start + chunk_start, end=w.end + chunk_start)
            for w in result.words
        )
        if result.text:
            texts.append(result.text)
        logger.debug(
            "Chunk %d/%d (%ss-%ss): %d words",
            index + 1, len(ranges), chunk_start, chunk_end, len(result.words),
        )

    return TranscriptionResult(text=" ".join(texts), words=tuple(words))
