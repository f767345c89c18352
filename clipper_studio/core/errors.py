"""Error taxonomy for the clip pipeline.

WHY: The orchestrator isolates failures per clip and records the cause
against that clip alone. Typed exceptions let it (and callers such as the
HTTP layer) tell a transcoder failure from bad input or a storage problem
without parsing messages.

HOW: A single ClipperError base with one subclass per failure class.
TranscodeError carries the transcoder's exit code and a stderr tail.

RULES:
- TranscodeError: transcoder exited non-zero or produced no output file
- ExtractionError: same, for audio extraction (subclass of TranscodeError)
- ValidationError: malformed configuration or missing collaborator data;
  raised before any output is produced
- UploadError: the artifact store rejected or failed an upload
- TranscriptionError: the transcription collaborator failed
- None of these are retried automatically
"""

from __future__ import annotations

from typing import Optional

# Number of trailing stderr characters kept on TranscodeError
STDERR_TAIL_CHARS = 2000


class ClipperError(Exception):
    """Base class for every error raised by the clip pipeline."""


class TranscodeError(ClipperError):
    """Raised when the external transcoder fails.

    WHY: Callers need the exit code and the tail of stderr to diagnose
    a failed cut, but not megabytes of progress output.

    HOW: Wraps the exit code and keeps only the last STDERR_TAIL_CHARS
    characters of stderr.

    RULES:
    - exit_code is None when the output file was missing despite exit 0
    - stderr is always a (possibly empty) string
    """

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        self.exit_code = exit_code
        self.stderr = stderr[-STDERR_TAIL_CHARS:] if stderr else ""
        super().__init__(message)


class ExtractionError(TranscodeError):
    """Raised when audio segment extraction fails."""


class ValidationError(ClipperError, ValueError):
    """Raised for malformed caption configuration or missing required data.

    WHY: Bad input must fail fast, before a transcoder process is started
    or any temp file is written.

    RULES:
    - Subclasses ValueError so generic input-validation handlers catch it
    """


class UploadError(ClipperError):
    """Raised when the artifact store fails to accept a rendered file."""


class TranscriptionError(ClipperError):
    """Raised when the transcription collaborator fails.

    RULES:
    - status_code is set for HTTP-level failures, None otherwise
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)
