"""Configuration constants, transcoder paths, and .env loading.

WHY: Centralizes every configurable value (binary paths, scratch and font
directories, timeouts, caption defaults, API endpoints) so they are easy
to find, update, and override per deployment without touching logic.

HOW: python-dotenv loads the .env file on import. Constants are plain
module-level values read through os.getenv. load_api_key() gives a clear
error when the transcription key is missing.

RULES:
- All defaults can be overridden via environment variables
- API keys are loaded from .env via python-dotenv, never hardcoded
- TRANSCODE_TIMEOUT_S of 0 disables the per-call deadline
- SUPPORTED_VIDEO_FORMATS lists accepted upload extensions (lowercase, with dot)
- Font files are provided at deploy time (see FONTS_DIR)
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Transcoder binaries and scratch space
# ---------------------------------------------------------------------------

FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
FFPROBE_PATH = os.getenv("FFPROBE_PATH", "ffprobe")

SCRATCH_DIR = Path(os.getenv("CLIPPER_SCRATCH_DIR", tempfile.gettempdir()))
"""Shared scratch directory for subtitle, text and filter-script files."""

FONTS_DIR = Path(
    os.getenv("CLIPPER_FONTS_DIR", str(Path(__file__).resolve().parent / "fonts"))
)
"""Directory holding the caption fonts (.ttf).

The font files are not shipped with the package; deployments copy them
into clipper_studio/fonts/ or point CLIPPER_FONTS_DIR at their own copy.
GET /fonts reports which of them are installed.
"""

TRANSCODE_TIMEOUT_S = float(os.getenv("TRANSCODE_TIMEOUT_S", "600"))


def transcode_timeout() -> Optional[float]:
    """Return the configured per-call deadline, or None when disabled."""
    return TRANSCODE_TIMEOUT_S if TRANSCODE_TIMEOUT_S > 0 else None


# ---------------------------------------------------------------------------
# Supported upload extensions
# ---------------------------------------------------------------------------

SUPPORTED_VIDEO_FORMATS: set[str] = {
    ".mp4", ".mov", ".mkv", ".webm", ".avi", ".m4v",
}

# ---------------------------------------------------------------------------
# Caption defaults
# ---------------------------------------------------------------------------

DEFAULT_MAX_WORDS_PER_LINE = int(os.getenv("DEFAULT_MAX_WORDS_PER_LINE", "3"))
DEFAULT_MIN_DISPLAY_TIME = float(os.getenv("DEFAULT_MIN_DISPLAY_TIME", "0.5"))
DEFAULT_CAPTION_PLATFORM = os.getenv("DEFAULT_CAPTION_PLATFORM", "tiktok")

# ---------------------------------------------------------------------------
# HTTP job limits
# ---------------------------------------------------------------------------

MAX_ACTIVE_JOBS = int(os.getenv("CLIPPER_MAX_ACTIVE_JOBS", "4"))
JOB_TTL_SECONDS = int(os.getenv("CLIPPER_JOB_TTL_SECONDS", "3600"))

# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------

OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
WHISPER_MODEL = os.getenv("WHISPER_MODEL", "whisper-1")
ARTIFACT_UPLOAD_URL = os.getenv("ARTIFACT_UPLOAD_URL", "")

# Mono 16 kHz s16 PCM is 32 KB/s, so 600 s is about 19 MB, under the
# transcription API's 25 MB upload limit.
WHISPER_CHUNK_SECONDS = float(os.getenv("WHISPER_CHUNK_SECONDS", "600"))


def load_api_key() -> str:
    """Load the transcription API key from the environment.

    WHY: Re-transcription titling and the --transcribe CLI flag call the
    Whisper API. Loading the key from the environment (via .env) keeps
    it out of source code.

    HOW: Reads OPENAI_API_KEY from os.environ (populated by python-dotenv).

    RULES:
    - Raises ValueError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("OPENAI_API_KEY", "").strip()
    if not key:
        raise ValueError(
            "Transcription API key not configured. "
            "Add OPENAI_API_KEY to the .env file in the app folder."
        )
    return key
