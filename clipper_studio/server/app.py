"""FastAPI application with clip-job, caption and font routes.

WHY: The web application submits a source video with its clip list and
transcript, polls for per-clip outcomes, downloads the rendered clips,
and fetches caption documents for stored clips. FastAPI provides
automatic OpenAPI documentation, request validation, and background
task support.

HOW: POST /clip-jobs accepts a multipart upload with JSON form fields,
creates a job, and runs the ClipPipeline in the background with a
LocalArtifactStore inside the job directory. POST /captions/burn does
the same for re-captioning an existing video. Other endpoints provide
polling, file download, caption delivery, font listing, and health.

RULES:
- All endpoints have OpenAPI descriptions on every parameter and response
- Error responses use a consistent ErrorResponse schema
- Background work uses FastAPI BackgroundTasks through job_store.run_in_background
- The job store is a module-level singleton
- File validation checks extension against SUPPORTED_VIDEO_FORMATS
- Malformed JSON or caption configuration -> 422; unknown option keys -> 400
- Caption delivery never errors for a missing transcript; it serves a
  placeholder document
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Any, List, Optional

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response

from clipper_studio import __version__
from clipper_studio.api.storage import LocalArtifactStore
from clipper_studio.api.whisper import WhisperClient
from clipper_studio.config import SUPPORTED_VIDEO_FORMATS
from clipper_studio.core.errors import ValidationError
from clipper_studio.core.ir import ClipDescriptor, clips_from_payload, words_from_payload
from clipper_studio.core.media import FileSource, resolve_media
from clipper_studio.core.presets import resolve_platform
from clipper_studio.core.segmenter import SegmentOptions, build_caption_track, rebase_lines
from clipper_studio.core.timecode import format_offset
from clipper_studio.formatters import FORMATTERS
from clipper_studio.formatters.webvtt import render_clip_captions
from clipper_studio.pipeline.orchestrator import ClipPipeline, PipelineOptions
from clipper_studio.rendering.burner import burn_captions
from clipper_studio.rendering.cutter import parse_aspect_ratio, parse_caption_strategy
from clipper_studio.rendering.fonts import available_fonts, missing_font_files
from clipper_studio.rendering.style import CaptionStyleConfig
from clipper_studio.server.jobs import Job, JobLimitError, JobStatus, JobStore
from clipper_studio.server.models import (
    ClipResultResponse,
    ErrorResponse,
    FileInfo,
    FileListResponse,
    FontInfo,
    HealthResponse,
    JobCreatedResponse,
    JobResponse,
    SubtitleFormat,
)

logger = logging.getLogger(__name__)

# Subdirectory of a job's directory that the artifact store writes into
CLIPS_SUBDIR = "clips"
WORK_SUBDIR = "work"

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

job_store = JobStore()


async def _periodic_cleanup() -> None:
    """Run job cleanup every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        job_store.purge_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup, cancel on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="Clipper Studio API",
    description=(
        "REST API for cutting highlight clips out of a source video, "
        "reframing them for vertical or cinematic feeds, burning in "
        "word-timed captions, and serving caption documents per clip. "
        "Submit a video with its clip list, poll for per-clip results, "
        "and download the rendered clips."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _job_to_response(job: Job) -> JobResponse:
    """Convert an internal Job dataclass to a JobResponse Pydantic model."""
    return JobResponse(
        id=job.id,
        status=job.status.value,
        filename=job.filename,
        created_at=job.created_at,
        config=job.config,
        error=job.error,
        progress=job.progress,
        clip_states=dict(job.clip_states) if job.clip_states else None,
        output_files=job.output_files if job.output_files else None,
        results=[ClipResultResponse(**r) for r in job.results] if job.results else None,
    )


def _validate_file_extension(filename: str) -> None:
    """Raise HTTPException if the file extension is not supported."""
    ext = Path(filename).suffix.lower()
    if ext not in SUPPORTED_VIDEO_FORMATS:
        sorted_formats = sorted(SUPPORTED_VIDEO_FORMATS)
        raise HTTPException(
            status_code=400,
            detail="Unsupported file type '{}'. Supported formats: {}".format(
                ext, ", ".join(sorted_formats)
            ),
        )


def _parse_json_field(name: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail="Invalid JSON in '{}': {}".format(name, exc))


def _parse_style(font: str, size: str, weight: str, position: str) -> CaptionStyleConfig:
    return CaptionStyleConfig(font=font, size=size, weight=weight, position=position)


async def _save_upload(job: Job, file: UploadFile) -> Path:
    content = await file.read()
    job.source_path.write_bytes(content)
    return job.source_path


def _clip_from_job(job: Job, clip_id: str) -> ClipDescriptor:
    for clip_data in job.config.get("clips", []):
        if str(clip_data.get("id")) == clip_id:
            return ClipDescriptor.from_dict(clip_data)
    raise HTTPException(
        status_code=404,
        detail="Clip '{}' not found in job {}.".format(clip_id, job.id),
    )


async def _run_clip_pipeline(job_id: str, store: JobStore) -> None:
    """Run the clip pipeline for a job.

    WHY: This is the background task behind POST /clip-jobs: resolve the
    uploaded source, segment the transcript once, run every clip through
    the pipeline, and record per-clip outcomes on the job.

    RULES:
    - The job is COMPLETED once every clip has an outcome, even if some
      clips failed; per-clip failures live in job.results
    - The job is FAILED only when the batch cannot run at all
    - The uploaded source is deleted when the batch ends
    """
    job = store.get_job(job_id)
    if job is None:
        return

    config = job.config
    media = None
    try:
        store.mark_preparing(job_id)
        media = await resolve_media(FileSource(path=job.source_path))
        clips = clips_from_payload(config["clips"])
        words = words_from_payload(config["words"]) if config.get("words") is not None else None

        if words is not None:
            track = build_caption_track(
                words,
                SegmentOptions(
                    max_words_per_line=config["max_words_per_line"],
                    platform=config["caption_platform"],
                ),
            )
            store.set_caption_lines(job_id, list(track.lines))

        options = PipelineOptions(
            enable_captions=config["enable_captions"],
            caption_platform=config["caption_platform"],
            max_words_per_line=config["max_words_per_line"],
            caption_position=config["caption_style"]["position"],
            caption_strategy=config["caption_strategy"],
            caption_style=CaptionStyleConfig.from_dict(config["caption_style"]),
            aspect_ratios=tuple(config["aspect_ratios"]),
            retitle_from_audio=config["retitle_from_audio"],
            include_preview=config["include_preview"],
        )
        store_dir = job.workspace / CLIPS_SUBDIR

        async with contextlib.AsyncExitStack() as stack:
            transcriber = None
            if options.retitle_from_audio:
                transcriber = await stack.enter_async_context(WhisperClient())
            pipeline = ClipPipeline(
                store=LocalArtifactStore(store_dir),
                transcriber=transcriber,
                options=options,
                on_state=store.clip_state_reporter(job_id),
            )
            store.start_processing(job_id, [clip.id for clip in clips])
            results = await pipeline.process(
                media.path,
                clips,
                project_id=config.get("project_id") or job.id,
                source_name=media.display_name,
                words=words,
                work_dir=job.workspace / WORK_SUBDIR,
            )

        output_files = []
        for result in results:
            output_files.extend(r.name for r in result.renders)
            if result.preview is not None:
                output_files.append(result.preview.name)

        store.finish(job_id, output_files, results=[r.to_dict() for r in results])

    except Exception as exc:
        logger.exception("Clip pipeline failed for job %s", job_id)
        store.fail(job_id, str(exc) or exc.__class__.__name__)

    finally:
        job.source_path.unlink(missing_ok=True)
        if media is not None:
            media.cleanup()


async def _run_burn_pipeline(job_id: str, store: JobStore) -> None:
    """Burn captions into an uploaded video (background task behind POST /captions/burn)."""
    job = store.get_job(job_id)
    if job is None:
        return

    config = job.config
    try:
        store.mark_preparing(job_id)
        words = words_from_payload(config["words"])
        track = build_caption_track(
            words,
            SegmentOptions(
                max_words_per_line=config["max_words_per_line"],
                platform=config["caption_platform"],
            ),
        )
        store.set_caption_lines(job_id, list(track.lines))
        store.start_processing(job_id)
        artifact = await burn_captions(
            job.source_path,
            track.lines,
            job.workspace / CLIPS_SUBDIR,
            style=CaptionStyleConfig.from_dict(config["caption_style"]),
            strategy=config["caption_strategy"],
            platform=config["caption_platform"],
        )
        store.finish(job_id, [artifact.file_name])

    except Exception as exc:
        logger.exception("Caption burn failed for job %s", job_id)
        store.fail(job_id, str(exc) or exc.__class__.__name__)

    finally:
        job.source_path.unlink(missing_ok=True)


def _run_clip_pipeline_sync(job_id: str, store: JobStore) -> None:
    """Synchronous wrapper for the async clip pipeline.

    WHY: FastAPI BackgroundTasks run synchronous callables in a thread
    pool. This wraps the async pipeline with asyncio.run().
    """
    store.run_in_background(job_id, lambda jid, s: asyncio.run(_run_clip_pipeline(jid, s)))


def _run_burn_pipeline_sync(job_id: str, store: JobStore) -> None:
    """Synchronous wrapper for the async caption burn."""
    store.run_in_background(job_id, lambda jid, s: asyncio.run(_run_burn_pipeline(jid, s)))


def _create_job_or_429(filename: str, config: dict) -> Job:
    try:
        return job_store.create_job(filename=filename, config=config)
    except JobLimitError as exc:
        raise HTTPException(status_code=429, detail=str(exc))


def _get_job_or_404(job_id: str) -> Job:
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return job


def _require_completed(job: Job) -> None:
    if job.status != JobStatus.COMPLETED:
        raise HTTPException(
            status_code=409,
            detail="Job is not completed (current status: {}).".format(job.status.value),
        )


# ---------------------------------------------------------------------------
# Endpoints: Clip jobs
# ---------------------------------------------------------------------------


@app.post(
    "/clip-jobs",
    response_model=JobCreatedResponse,
    status_code=201,
    tags=["clip-jobs"],
    summary="Submit a clip batch",
    description=(
        "Upload a source video with its clip list and (optionally) its "
        "word-level transcript. Returns a job ID immediately; clips are "
        "cut, captioned and stored in the background. Poll "
        "GET /clip-jobs/{id} for per-clip results."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid file type or option"},
        422: {"model": ErrorResponse, "description": "Malformed clips, transcript or caption style"},
        429: {"model": ErrorResponse, "description": "Too many active jobs"},
    },
)
async def create_clip_job(
    background_tasks: BackgroundTasks,
    file: Annotated[
        UploadFile,
        File(description="Source video file"),
    ],
    clips: Annotated[
        str,
        Form(
            description=(
                "JSON list of clips: [{\"id\", \"startTime\", \"endTime\", "
                "\"viralityScore\", \"title\"}], or an object with a 'clips' list."
            )
        ),
    ],
    transcript: Annotated[
        Optional[str],
        Form(
            description=(
                "JSON word-level transcript of the source: [{\"word\", \"start\", "
                "\"end\"}] or an object with a 'words' list. Required for captions."
            )
        ),
    ] = None,
    aspect_ratios: Annotated[
        str,
        Form(description="Comma-separated aspect ratios to render: 9:16, 2.35:1, original."),
    ] = "9:16",
    enable_captions: Annotated[
        bool,
        Form(description="Burn word-timed captions into each clip."),
    ] = True,
    caption_platform: Annotated[
        str,
        Form(description="Caption preset: tiktok, instagram, youtube or default."),
    ] = "tiktok",
    caption_strategy: Annotated[
        str,
        Form(description="Caption renderer: drawtext or subtitles."),
    ] = "drawtext",
    font: Annotated[str, Form(description="Caption font key (see GET /fonts).")] = "roboto",
    size: Annotated[str, Form(description="verysmall, small, medium or large.")] = "medium",
    weight: Annotated[
        str,
        Form(description="light, normal, medium, semibold, bold or extrabold."),
    ] = "normal",
    position: Annotated[str, Form(description="top, center or bottom.")] = "bottom",
    max_words_per_line: Annotated[
        int,
        Form(description="Maximum words per caption line.", ge=1),
    ] = 3,
    retitle_from_audio: Annotated[
        bool,
        Form(description="Transcribe each clip's audio to title clips without a title."),
    ] = False,
    include_preview: Annotated[
        bool,
        Form(description="Also render a fast low-quality preview per clip."),
    ] = False,
    project_id: Annotated[
        Optional[str],
        Form(description="Prefix for stored clip names. Defaults to the job ID."),
    ] = None,
) -> JobCreatedResponse:
    # Sanitize filename to prevent path traversal
    raw_filename = file.filename or "upload.mp4"
    filename = Path(raw_filename).name
    _validate_file_extension(filename)

    try:
        clip_list = clips_from_payload(_parse_json_field("clips", clips))
        words_payload = None
        if transcript:
            words_payload = [
                w.to_dict() for w in words_from_payload(_parse_json_field("transcript", transcript))
            ]
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    try:
        ratios = [parse_aspect_ratio(r).value for r in aspect_ratios.split(",") if r.strip()]
        strategy = parse_caption_strategy(caption_strategy)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    config = {
        "kind": "clips",
        "clips": [c.to_dict() for c in clip_list],
        "words": words_payload,
        "aspect_ratios": ratios or ["9:16"],
        "enable_captions": enable_captions,
        "caption_platform": resolve_platform(caption_platform).value,
        "caption_strategy": strategy.value,
        "caption_style": _parse_style(font, size, weight, position).to_dict(),
        "max_words_per_line": max_words_per_line,
        "retitle_from_audio": retitle_from_audio,
        "include_preview": include_preview,
        "project_id": project_id,
    }

    job = _create_job_or_429(filename, config)
    await _save_upload(job, file)
    background_tasks.add_task(_run_clip_pipeline_sync, job.id, job_store)

    return JobCreatedResponse(
        id=job.id,
        status=job.status.value,
        filename=job.filename,
    )


@app.get(
    "/clip-jobs/{job_id}",
    response_model=JobResponse,
    tags=["clip-jobs"],
    summary="Get clip job status",
    description=(
        "Poll this endpoint to track a clip job. Returns the current status, "
        "latest clip progress, and one result per clip when finished."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
    },
)
async def get_clip_job(
    job_id: str,
) -> JobResponse:
    return _job_to_response(_get_job_or_404(job_id))


@app.get(
    "/clip-jobs/{job_id}/files",
    response_model=FileListResponse,
    tags=["clip-jobs"],
    summary="List rendered files for a completed job",
    description="Returns metadata for every clip, preview or captioned video the job stored.",
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
        409: {"model": ErrorResponse, "description": "Job not yet completed"},
    },
)
async def list_clip_job_files(
    job_id: str,
) -> FileListResponse:
    job = _get_job_or_404(job_id)
    _require_completed(job)

    files = []
    for fname in job.output_files:
        fpath = job.workspace / CLIPS_SUBDIR / fname
        if fpath.exists():
            files.append(FileInfo(
                filename=fname,
                media_type=_infer_media_type(fname),
                size=fpath.stat().st_size,
            ))

    return FileListResponse(job_id=job.id, files=files)


@app.get(
    "/clip-jobs/{job_id}/files/{filename}",
    tags=["clip-jobs"],
    summary="Download a single rendered file",
    description=(
        "Download one file from a completed job. The filename must match "
        "one of the files listed in the job's output_files."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid filename"},
        404: {"model": ErrorResponse, "description": "Job or file not found"},
        409: {"model": ErrorResponse, "description": "Job not yet completed"},
    },
)
async def download_clip_job_file(
    job_id: str,
    filename: str,
) -> Response:
    # Ensure filename doesn't contain path separators
    if "/" in filename or "\\" in filename or ".." in filename:
        raise HTTPException(status_code=400, detail="Invalid filename")

    job = _get_job_or_404(job_id)
    _require_completed(job)

    if filename not in job.output_files:
        raise HTTPException(
            status_code=404,
            detail="File '{}' not found in job output files.".format(filename),
        )

    fpath = job.workspace / CLIPS_SUBDIR / filename
    if not fpath.exists():
        raise HTTPException(
            status_code=404,
            detail="File '{}' not found on disk.".format(filename),
        )

    return Response(
        content=fpath.read_bytes(),
        media_type=_infer_media_type(filename),
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)},
    )


@app.delete(
    "/clip-jobs/{job_id}",
    status_code=204,
    tags=["clip-jobs"],
    summary="Delete a clip job",
    description="Delete a job and all its stored files.",
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
    },
)
async def delete_clip_job(
    job_id: str,
) -> Response:
    if not job_store.delete_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Captions
# ---------------------------------------------------------------------------


@app.get(
    "/clip-jobs/{job_id}/clips/{clip_id}/captions",
    tags=["captions"],
    summary="Caption document for one clip",
    description=(
        "Rebases the job's caption track onto the clip's time window and "
        "returns it as a subtitle document. Jobs without a transcript get "
        "a placeholder document instead of an error."
    ),
    responses={
        200: {"content": {"text/vtt": {}, "application/x-subrip": {}}},
        404: {"model": ErrorResponse, "description": "Job or clip not found"},
    },
)
async def get_clip_captions(
    job_id: str,
    clip_id: str,
    format: Annotated[
        SubtitleFormat,
        Query(description="Subtitle document format."),
    ] = SubtitleFormat.vtt,
) -> Response:
    job = _get_job_or_404(job_id)
    clip = _clip_from_job(job, clip_id)

    if format == SubtitleFormat.vtt:
        content = render_clip_captions(job.caption_lines, clip.start_time, clip.end_time)
        media_type = "text/vtt"
    else:
        local = rebase_lines(job.caption_lines or [], clip.start_time, clip.end_time)
        title = "Clip {}s-{}s".format(format_offset(clip.start_time), format_offset(clip.end_time))
        output = FORMATTERS[format.value]().format(local, title=title)[0]
        content = output.content
        media_type = output.media_type

    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": 'inline; filename="{}.{}"'.format(clip.id, format.value),
        },
    )


@app.post(
    "/captions/burn",
    response_model=JobCreatedResponse,
    status_code=201,
    tags=["captions"],
    summary="Burn captions into a video",
    description=(
        "Upload a rendered video and its word-level transcript (on the "
        "video's own timeline). Captions are burned in the background; "
        "poll GET /clip-jobs/{id} and download from its files endpoint."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid file type or option"},
        422: {"model": ErrorResponse, "description": "Malformed transcript"},
        429: {"model": ErrorResponse, "description": "Too many active jobs"},
    },
)
async def create_burn_job(
    background_tasks: BackgroundTasks,
    file: Annotated[UploadFile, File(description="Video to caption")],
    transcript: Annotated[
        str,
        Form(description="JSON word-level transcript: [{\"word\", \"start\", \"end\"}]."),
    ],
    caption_platform: Annotated[
        str,
        Form(description="Caption preset: tiktok, instagram, youtube or default."),
    ] = "tiktok",
    caption_strategy: Annotated[
        str,
        Form(description="Caption renderer: drawtext or subtitles."),
    ] = "drawtext",
    font: Annotated[str, Form(description="Caption font key (see GET /fonts).")] = "roboto",
    size: Annotated[str, Form(description="verysmall, small, medium or large.")] = "medium",
    weight: Annotated[
        str,
        Form(description="light, normal, medium, semibold, bold or extrabold."),
    ] = "normal",
    position: Annotated[str, Form(description="top, center or bottom.")] = "bottom",
    max_words_per_line: Annotated[
        int,
        Form(description="Maximum words per caption line.", ge=1),
    ] = 3,
) -> JobCreatedResponse:
    raw_filename = file.filename or "upload.mp4"
    filename = Path(raw_filename).name
    _validate_file_extension(filename)

    try:
        words = words_from_payload(_parse_json_field("transcript", transcript))
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    if not words:
        raise HTTPException(status_code=422, detail="Transcript contains no words")

    try:
        strategy = parse_caption_strategy(caption_strategy)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    config = {
        "kind": "burn",
        "words": [w.to_dict() for w in words],
        "caption_platform": resolve_platform(caption_platform).value,
        "caption_strategy": strategy.value,
        "caption_style": _parse_style(font, size, weight, position).to_dict(),
        "max_words_per_line": max_words_per_line,
    }

    job = _create_job_or_429(filename, config)
    await _save_upload(job, file)
    background_tasks.add_task(_run_burn_pipeline_sync, job.id, job_store)

    return JobCreatedResponse(id=job.id, status=job.status.value, filename=job.filename)


# ---------------------------------------------------------------------------
# Endpoints: Fonts and health
# ---------------------------------------------------------------------------


@app.get(
    "/fonts",
    response_model=List[FontInfo],
    tags=["fonts"],
    summary="List caption fonts",
    description="Returns every bundled caption font and whether its files are installed.",
)
async def list_fonts() -> List[FontInfo]:
    missing = set(missing_font_files())
    return [
        FontInfo(
            key=font.key,
            display_name=font.display_name,
            description=font.description,
            installed=font.font_file not in missing and font.bold_file not in missing,
        )
        for font in available_fonts()
    ]


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness and readiness check for load balancers and orchestrators.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


# ---------------------------------------------------------------------------
# Helpers (private)
# ---------------------------------------------------------------------------


def run_api():
    """Entry point for the clipper-api console script."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)


def _infer_media_type(filename: str) -> str:
    """Infer MIME type from filename extension.

    RULES:
    - .mp4 -> video/mp4
    - .vtt -> text/vtt, .srt -> application/x-subrip
    - .wav -> audio/wav, .json -> application/json
    - fallback -> application/octet-stream
    """
    ext = Path(filename).suffix.lower()
    mapping = {
        ".mp4": "video/mp4",
        ".vtt": "text/vtt",
        ".srt": "application/x-subrip",
        ".wav": "audio/wav",
        ".json": "application/json",
    }
    return mapping.get(ext, "application/octet-stream")
