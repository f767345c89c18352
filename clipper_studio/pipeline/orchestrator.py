"""Pipeline orchestrator: drives every clip through cut, audio, title, upload.

WHY: A batch of highlight clips is a long, partially-failing process.
One clip's broken time range or a transcoder crash must not cost the
rest of the batch, and a long batch must not fill the disk with
rendered files that were already uploaded.

HOW: ClipPipeline.process() segments the transcript once, then walks
the clips sequentially. Each clip moves through the ClipState machine:

    PENDING -> CUTTING -> AUDIO_EXTRACTING -> TITLE_RESOLVING -> UPLOADING -> DONE
       \\-> FAILED (from any state, on first error)

Every local artifact a clip produces is deleted in a ``finally`` block,
whether the upload happened or not. The caller gets one ClipResult per
input clip, in input order, tagged success or failure.

RULES:
- Clips are processed one at a time; one transcoder process per stage
- Any exception inside a clip is caught and recorded on that clip only
- Upload keys: {project_id}_clip_{start}s_{9x16|2.35x1|original}
- Failed clips are titled "Error: {title or 'Processing failed'}"
- on_state (optional) is called on every state transition
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from clipper_studio import config
from clipper_studio.core.ir import (
    CaptionLine,
    ClipDescriptor,
    RenderArtifact,
    StoredArtifact,
    TranscriptionResult,
    Word,
)
from clipper_studio.core.scratch import remove_quietly
from clipper_studio.core.segmenter import SegmentOptions, build_caption_track
from clipper_studio.core.timecode import format_offset
from clipper_studio.pipeline.titles import TitleSource, resolve_title
from clipper_studio.rendering.audio import extract_audio_segment
from clipper_studio.rendering.cutter import (
    AspectRatio,
    CaptionStrategy,
    CutOptions,
    cut_clip,
    extract_preview,
    parse_aspect_ratio,
)
from clipper_studio.rendering.style import CaptionStyleConfig
from clipper_studio.rendering.transcoder import Transcoder

logger = logging.getLogger(__name__)

# Upload-key label and file-name platform suffix per aspect ratio
ASPECT_KEY_LABELS: Dict[AspectRatio, str] = {
    AspectRatio.ORIGINAL: "original",
    AspectRatio.VERTICAL: "9x16",
    AspectRatio.CINEMATIC: "2.35x1",
}
ASPECT_PLATFORM_SUFFIXES: Dict[AspectRatio, str] = {
    AspectRatio.VERTICAL: "vertical",
    AspectRatio.CINEMATIC: "cinematic",
}


class ClipState(str, enum.Enum):
    """Per-clip processing state."""

    PENDING = "pending"
    CUTTING = "cutting"
    AUDIO_EXTRACTING = "audio_extracting"
    TITLE_RESOLVING = "title_resolving"
    UPLOADING = "uploading"
    DONE = "done"
    FAILED = "failed"


class ArtifactStore(Protocol):
    async def upload(self, data: bytes, key: str, extension: str) -> StoredArtifact:
        ...


class Transcriber(Protocol):
    async def transcribe(self, audio_path: Path) -> TranscriptionResult:
        ...


# ---------------------------------------------------------------------------
# Options and results
# ---------------------------------------------------------------------------


@dataclass
class PipelineOptions:
    """Batch-wide options for ClipPipeline.

    RULES:
    - aspect_ratios: one render per entry, each uploaded separately
    - caption_platform selects the segmenting/drawtext preset and the
      file-name suffix ("{platform}_vertical", "{platform}_cinematic")
    - retitle_from_audio needs a transcriber; without one it is ignored
    - timeout_s applies to every transcoder call (None: transcoder default)
    """

    enable_captions: bool = True
    caption_platform: str = config.DEFAULT_CAPTION_PLATFORM
    max_words_per_line: int = config.DEFAULT_MAX_WORDS_PER_LINE
    min_display_time: float = config.DEFAULT_MIN_DISPLAY_TIME
    caption_position: str = "bottom"
    caption_strategy: str = CaptionStrategy.DRAWTEXT.value
    caption_style: Optional[CaptionStyleConfig] = None
    aspect_ratios: Tuple[str, ...] = (AspectRatio.VERTICAL.value,)
    retitle_from_audio: bool = False
    include_preview: bool = False
    timeout_s: Optional[float] = None
    scratch_dir: Optional[Path] = None


@dataclass
class UploadedRender:
    """One uploaded rendition of a clip."""

    aspect_ratio: str
    url: str
    name: str
    size: int
    duration: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "aspect_ratio": self.aspect_ratio,
            "url": self.url,
            "name": self.name,
            "size": self.size,
            "duration": self.duration,
        }


@dataclass
class ClipResult:
    """Outcome of one clip, success or failure.

    RULES:
    - status is "success" or "failure"
    - failure results carry error and failed_stage, and no renders
    """

    clip_id: str
    status: str
    state: ClipState
    title: str
    title_source: Optional[TitleSource]
    start_time: float
    end_time: float
    virality_score: float = 0.0
    renders: List[UploadedRender] = field(default_factory=list)
    preview: Optional[UploadedRender] = None
    error: Optional[str] = None
    failed_stage: Optional[ClipState] = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clip_id": self.clip_id,
            "status": self.status,
            "state": self.state.value,
            "title": self.title,
            "title_source": self.title_source.value if self.title_source else None,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "virality_score": self.virality_score,
            "renders": [r.to_dict() for r in self.renders],
            "preview": self.preview.to_dict() if self.preview else None,
            "error": self.error,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
        }


def upload_key(project_id: str, start_time: float, aspect: AspectRatio) -> str:
    return "{}_clip_{}s_{}".format(project_id, format_offset(start_time), ASPECT_KEY_LABELS[aspect])


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class ClipPipeline:
    """Processes a batch of clips from one source video.

    Usage:
        pipeline = ClipPipeline(store=LocalArtifactStore(Path("out")))
        results = await pipeline.process(Path("source.mp4"), clips, "project-1", words=words)
    """

    def __init__(
        self,
        store: ArtifactStore,
        transcoder: Optional[Transcoder] = None,
        transcriber: Optional[Transcriber] = None,
        options: Optional[PipelineOptions] = None,
        on_state: Optional[Callable[[str, ClipState], None]] = None,
    ) -> None:
        self.store = store
        self.transcoder = transcoder or Transcoder()
        self.transcriber = transcriber
        self.options = options or PipelineOptions()
        self.on_state = on_state
        self._aspects = [parse_aspect_ratio(a) for a in self.options.aspect_ratios] or [
            AspectRatio.ORIGINAL
        ]

    def _enter(self, clip: ClipDescriptor, state: ClipState) -> ClipState:
        logger.debug("Clip %s -> %s", clip.id, state.value)
        if self.on_state is not None:
            self.on_state(clip.id, state)
        return state

    def caption_lines(self, words: Optional[Sequence[Word]]) -> List[CaptionLine]:
        """Segment the transcript once for the whole batch."""
        if not self.options.enable_captions or not words:
            return []
        track = build_caption_track(
            words,
            SegmentOptions(
                max_words_per_line=self.options.max_words_per_line,
                min_display_time=self.options.min_display_time,
                platform=self.options.caption_platform,
            ),
        )
        logger.info("Built %d caption lines for the batch", len(track))
        return list(track.lines)

    def _cut_options(self, aspect: AspectRatio, lines: Sequence[CaptionLine]) -> CutOptions:
        suffix = ASPECT_PLATFORM_SUFFIXES.get(aspect)
        return CutOptions(
            aspect_ratio=aspect,
            platform="{}_{}".format(self.options.caption_platform, suffix) if suffix else None,
            caption_lines=tuple(lines),
            caption_platform=self.options.caption_platform,
            caption_position=self.options.caption_position,
            enable_captions=self.options.enable_captions,
            caption_strategy=self.options.caption_strategy,
            caption_style=self.options.caption_style,
            timeout_s=self.options.timeout_s,
        )

    async def _upload(self, artifact: RenderArtifact, key: str, label: str) -> UploadedRender:
        stored = await self.store.upload(artifact.file_path.read_bytes(), key, "mp4")
        return UploadedRender(
            aspect_ratio=label,
            url=stored.url,
            name=stored.name,
            size=stored.size,
            duration=artifact.duration,
        )

    async def process_clip(
        self,
        source_path: Path,
        clip: ClipDescriptor,
        project_id: str,
        source_name: str,
        lines: Sequence[CaptionLine],
        work_dir: Path,
    ) -> ClipResult:
        """Run one clip through the state machine; never raises."""
        state = self._enter(clip, ClipState.PENDING)
        local_files: List[Path] = []
        try:
            state = self._enter(clip, ClipState.CUTTING)
            renders: List[Tuple[AspectRatio, RenderArtifact]] = []
            for aspect in self._aspects:
                artifact = await cut_clip(
                    source_path,
                    clip.start_time,
                    clip.end_time,
                    work_dir,
                    options=self._cut_options(aspect, lines),
                    transcoder=self.transcoder,
                    scratch_dir=self.options.scratch_dir,
                )
                local_files.append(artifact.file_path)
                renders.append((aspect, artifact))

            preview = None  # type: Optional[RenderArtifact]
            if self.options.include_preview:
                preview = await extract_preview(
                    source_path,
                    clip.start_time,
                    clip.end_time,
                    work_dir,
                    transcoder=self.transcoder,
                    timeout_s=self.options.timeout_s,
                )
                local_files.append(preview.file_path)

            state = self._enter(clip, ClipState.AUDIO_EXTRACTING)
            audio = await extract_audio_segment(
                source_path,
                clip.start_time,
                clip.end_time,
                work_dir,
                transcoder=self.transcoder,
                timeout_s=self.options.timeout_s,
            )
            local_files.append(audio.file_path)

            state = self._enter(clip, ClipState.TITLE_RESOLVING)
            transcriber = self.transcriber if self.options.retitle_from_audio else None
            title = await resolve_title(clip, source_name, audio.file_path, transcriber)

            state = self._enter(clip, ClipState.UPLOADING)
            uploaded = []
            for aspect, artifact in renders:
                uploaded.append(
                    await self._upload(
                        artifact, upload_key(project_id, clip.start_time, aspect), aspect.value
                    )
                )
            uploaded_preview = None
            if preview is not None:
                uploaded_preview = await self._upload(
                    preview,
                    "{}_preview_{}s".format(project_id, format_offset(clip.start_time)),
                    "preview",
                )

            state = self._enter(clip, ClipState.DONE)
            logger.info("Clip %s done: %r (%s)", clip.id, title.text, title.source.value)
            return ClipResult(
                clip_id=clip.id,
                status="success",
                state=state,
                title=title.text,
                title_source=title.source,
                start_time=clip.start_time,
                end_time=clip.end_time,
                virality_score=clip.virality_score,
                renders=uploaded,
                preview=uploaded_preview,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("Clip %s failed during %s: %s", clip.id, state.value, exc)
            failed_stage = state
            state = self._enter(clip, ClipState.FAILED)
            return ClipResult(
                clip_id=clip.id,
                status="failure",
                state=state,
                title="Error: {}".format(clip.title or "Processing failed"),
                title_source=None,
                start_time=clip.start_time,
                end_time=clip.end_time,
                virality_score=clip.virality_score,
                error=str(exc) or exc.__class__.__name__,
                failed_stage=failed_stage,
            )
        finally:
            removed = remove_quietly(local_files)
            if removed:
                logger.debug("Removed %d local files for clip %s", removed, clip.id)

    async def process(
        self,
        source_path: Path,
        clips: Sequence[ClipDescriptor],
        project_id: str,
        source_name: str = "Video",
        words: Optional[Sequence[Word]] = None,
        work_dir: Optional[Path] = None,
    ) -> List[ClipResult]:
        """Process every clip in order and return one result per clip.

        Args:
            source_path: Local source video.
            clips: Clip descriptors, processed in this order.
            project_id: Prefix for upload keys.
            source_name: Display name of the source, for fallback titles.
            words: Word-level transcript of the whole source (optional).
            work_dir: Where renders are written before upload
                (default: the scratch directory).

        Returns:
            List of ClipResult, same length and order as clips.
        """
        source_path = Path(source_path)
        work_dir = Path(work_dir or self.options.scratch_dir or config.SCRATCH_DIR)
        lines = self.caption_lines(words)

        started = time.monotonic()
        results = []
        for index, clip in enumerate(clips):
            logger.info(
                "Processing clip %d/%d (%s) %ss-%ss",
                index + 1, len(clips), clip.id, clip.start_time, clip.end_time,
            )
            results.append(
                await self.process_clip(source_path, clip, project_id, source_name, lines, work_dir)
            )

        succeeded = sum(1 for r in results if r.succeeded)
        logger.info(
            "Batch finished in %.1fs: %d succeeded, %d failed",
            time.monotonic() - started, succeeded, len(results) - succeeded,
        )
        return results
