"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for response serialization
and automatic OpenAPI documentation. Pydantic models enforce field types
at runtime and generate the JSON Schema shown in the /docs UI.

HOW: One model per response shape. Enums represent closed sets such as
subtitle formats. All models include Field descriptions.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Enum values match internal constants exactly (formatter keys)
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SubtitleFormat(str, Enum):
    """Caption document formats served by the caption endpoint.

    RULES:
    - Values match keys in clipper_studio.formatters.FORMATTERS exactly
    """

    vtt = "vtt"
    srt = "srt"


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RenderInfo(BaseModel):
    """One uploaded rendition of a clip."""

    aspect_ratio: str = Field(description="Aspect ratio of the render ('9:16', '2.35:1', 'original' or 'preview').")
    url: str = Field(description="URL returned by the artifact store.")
    name: str = Field(description="Stored file name; downloadable from the job's files endpoint.")
    size: int = Field(description="File size in bytes.")
    duration: float = Field(description="Render duration in seconds.")


class ClipResultResponse(BaseModel):
    """Outcome of one clip in a batch.

    RULES:
    - status is 'success' or 'failure'
    - title_source is 'metadata', 'resynthesized' or 'fallback' on success
    - error and failed_stage are only set on failure
    """

    clip_id: str = Field(description="Clip identifier from the submitted clip list.")
    status: str = Field(description="'success' or 'failure'.")
    state: str = Field(description="Final clip state ('done' or 'failed').")
    title: str = Field(description="Resolved clip title, or 'Error: ...' on failure.")
    title_source: Optional[str] = Field(
        default=None,
        description="Where the title came from: metadata, resynthesized or fallback.",
    )
    start_time: float = Field(description="Clip start on the source timeline (seconds).")
    end_time: float = Field(description="Clip end on the source timeline (seconds).")
    duration: float = Field(description="Clip duration in seconds.")
    virality_score: float = Field(description="Virality score supplied with the clip.")
    renders: List[RenderInfo] = Field(default_factory=list, description="Uploaded renditions.")
    preview: Optional[RenderInfo] = Field(default=None, description="Uploaded preview, if requested.")
    error: Optional[str] = Field(default=None, description="Failure cause, only on failure.")
    failed_stage: Optional[str] = Field(
        default=None,
        description="State the clip was in when it failed, only on failure.",
    )


class JobResponse(BaseModel):
    """Clip job status response.

    RULES:
    - error is only set when status is 'failed'
    - output_files and results are only populated once the job has run
    """

    id: str = Field(description="Unique job identifier (UUID).")
    status: str = Field(description="Current job status.")
    filename: str = Field(description="Uploaded source filename.")
    created_at: float = Field(description="Job creation timestamp (Unix epoch seconds).")
    config: Dict[str, Any] = Field(description="Configuration used for this job.")
    error: Optional[str] = Field(
        default=None,
        description="Error message, only present when status is 'failed'.",
    )
    progress: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Latest clip progress, e.g. {'clip': 'clip-2', 'state': 'cutting', 'done': 1, 'total': 3}.",
    )
    clip_states: Optional[Dict[str, str]] = Field(
        default=None,
        description="Latest state of every clip by clip ID, once processing has started.",
    )
    output_files: Optional[List[str]] = Field(
        default=None,
        description="Downloadable output filenames, only present once the job has finished.",
    )
    results: Optional[List[ClipResultResponse]] = Field(
        default=None,
        description="One result per submitted clip, in input order.",
    )

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "id": "550e8400e29b41d4a716446655440000",
                "status": "processing",
                "filename": "episode.mp4",
                "created_at": 1739959200.0,
                "config": {
                    "kind": "clips",
                    "aspect_ratios": ["9:16"],
                    "enable_captions": True,
                    "caption_platform": "tiktok",
                },
                "error": None,
                "progress": {"clip": "clip-2", "state": "cutting", "done": 1, "total": 3},
                "clip_states": {"clip-1": "done", "clip-2": "cutting", "clip-3": "pending"},
                "output_files": None,
                "results": None,
            }
        ]
    }}


class JobCreatedResponse(BaseModel):
    """Response returned when a new job is submitted.

    RULES:
    - status is always 'pending' on creation
    """

    id: str = Field(description="Unique job identifier (UUID) for polling status.")
    status: str = Field(description="Initial job status (always 'pending').")
    filename: str = Field(description="Uploaded source filename.")

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "id": "550e8400e29b41d4a716446655440000",
                "status": "pending",
                "filename": "episode.mp4",
            }
        ]
    }}


class FileInfo(BaseModel):
    """Metadata for a single output file."""

    filename: str = Field(description="Output filename.")
    media_type: str = Field(description="MIME type of the file content.")
    size: int = Field(description="File size in bytes.")


class FileListResponse(BaseModel):
    """List of output files for a completed job."""

    job_id: str = Field(description="The job ID these files belong to.")
    files: List[FileInfo] = Field(description="Available output files.")


class FontInfo(BaseModel):
    """Description of a bundled caption font."""

    key: str = Field(description="Font key used in caption style options.")
    display_name: str = Field(description="Font family name used by the renderer.")
    description: str = Field(description="Short description of the font's look.")
    installed: bool = Field(description="Whether the font files exist in the fonts directory.")


class ErrorResponse(BaseModel):
    """Standard error response body.

    RULES:
    - detail is always a human-readable error message
    """

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
