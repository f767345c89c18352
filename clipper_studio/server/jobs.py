"""Clip job registry for the HTTP API.

WHY: A clip batch runs for minutes, so the API hands back a job ID at
once and renders in the background. Pollers need two views of that run:
where the batch as a whole is, and what each clip is doing right now.
Finished jobs keep their rendered clips on disk until downloaded or
expired, so only running batches should count against the capacity.

HOW:
  JobStatus  - batch lifecycle with a forward-only ordering
  Job        - one batch: workspace directory, config, per-clip states,
               results and the project caption track
  JobStore   - lock-guarded registry exposing the lifecycle transitions
               the background pipelines drive (prepare, process, clip
               state, finish, fail)

RULES:
- Status only moves forward: pending -> preparing -> processing ->
  completed | failed. A transition out of a terminal state is ignored
- At most max_active jobs may be non-terminal at the same time;
  create_job() raises JobLimitError (a ValueError) beyond that
- job.progress is derived from the recorded clip states, never stored
- Each job owns a workspace directory; deleting or expiring the job
  removes it
- Terminal jobs are purged ttl_seconds after they finished
"""

from __future__ import annotations

import enum
import logging
import shutil
import tempfile
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from clipper_studio.config import JOB_TTL_SECONDS, MAX_ACTIVE_JOBS
from clipper_studio.pipeline.orchestrator import ClipState

logger = logging.getLogger(__name__)

_FINISHED_CLIP_STATES = (ClipState.DONE.value, ClipState.FAILED.value)


class JobLimitError(ValueError):
    """Raised when a new job would exceed the active-job cap."""


class JobStatus(str, enum.Enum):
    """Batch states; per-clip failures do not make the batch fail."""

    PENDING = "pending"
    PREPARING = "preparing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.PREPARING: 1,
    JobStatus.PROCESSING: 2,
    JobStatus.COMPLETED: 3,
    JobStatus.FAILED: 3,
}


@dataclass
class Job:
    """One submitted batch.

    RULES:
    - workspace holds the uploaded source (source_path) and the clips/
      and work/ subdirectories the pipeline writes
    - clip_states maps clip ID to its latest ClipState value, in
      submission order; empty for caption-burn jobs
    - caption_lines is the project caption track on the source timeline,
      or None when the job has no transcript
    """

    id: str
    status: JobStatus
    filename: str
    workspace: Path
    created_at: float
    updated_at: float
    finished_at: Optional[float] = None
    error: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)
    clip_states: Dict[str, str] = field(default_factory=dict)
    last_clip: Optional[str] = None
    output_files: List[str] = field(default_factory=list)
    results: List[Dict[str, Any]] = field(default_factory=list)
    caption_lines: Optional[List[Any]] = None

    @property
    def source_path(self) -> Path:
        return self.workspace / self.filename

    @property
    def progress(self) -> Optional[Dict[str, Any]]:
        """Most recent clip transition plus finished/total counts."""
        if self.last_clip is None:
            return None
        finished = sum(1 for s in self.clip_states.values() if s in _FINISHED_CLIP_STATES)
        return {
            "clip": self.last_clip,
            "state": self.clip_states[self.last_clip],
            "done": finished,
            "total": len(self.clip_states),
        }


class JobStore:
    """Thread-safe registry of clip jobs.

    Request handlers and background threads share one store; every read
    and transition happens under self._lock. Getters hand out the live
    Job, so callers treat it as read-only and change it through the
    store's methods.
    """

    def __init__(
        self,
        ttl_seconds: int = JOB_TTL_SECONDS,
        max_active: int = MAX_ACTIVE_JOBS,
    ) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_active = max_active

    # -- registry ---------------------------------------------------------

    def active_count(self) -> int:
        with self._lock:
            return self._active_count()

    def _active_count(self) -> int:
        return sum(1 for job in self._jobs.values() if not job.status.is_terminal)

    def create_job(self, filename: str, config: Optional[Dict[str, Any]] = None) -> Job:
        """Register a PENDING job with a fresh workspace directory.

        Raises:
            JobLimitError: max_active jobs are already pending or running.
        """
        with self._lock:
            active = self._active_count()
            if active >= self.max_active:
                raise JobLimitError(
                    "{} clip jobs are already running (limit {}); retry once one finishes".format(
                        active, self.max_active
                    )
                )
            now = time.time()
            job = Job(
                id=uuid.uuid4().hex,
                status=JobStatus.PENDING,
                filename=filename,
                workspace=Path(tempfile.mkdtemp(prefix="clipper_job_")),
                created_at=now,
                updated_at=now,
                config=config or {},
            )
            self._jobs[job.id] = job

        logger.info("Created job %s for %s (%d active)", job.id, filename, active + 1)
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def delete_job(self, job_id: str) -> bool:
        """Forget a job and remove its workspace; False if it was unknown."""
        with self._lock:
            job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        _remove_workspace(job.workspace)
        logger.info("Deleted job %s", job_id)
        return True

    def purge_expired(self) -> int:
        """Drop terminal jobs that finished more than ttl_seconds ago."""
        cutoff = time.time() - self._ttl_seconds
        with self._lock:
            expired = [
                job for job in self._jobs.values()
                if job.finished_at is not None and job.finished_at < cutoff
            ]
            for job in expired:
                del self._jobs[job.id]

        for job in expired:
            _remove_workspace(job.workspace)
        if expired:
            logger.info("Purged %d expired job(s)", len(expired))
        return len(expired)

    # -- lifecycle --------------------------------------------------------

    def _advance(self, job_id: str, status: JobStatus, **changes: Any) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if job.status.is_terminal or status.rank < job.status.rank:
                logger.warning(
                    "Ignoring %s -> %s for job %s", job.status.value, status.value, job_id
                )
                return job
            for name, value in changes.items():
                setattr(job, name, value)
            job.status = status
            job.updated_at = time.time()
            if status.is_terminal:
                job.finished_at = job.updated_at
            return job

    def mark_preparing(self, job_id: str) -> Optional[Job]:
        return self._advance(job_id, JobStatus.PREPARING)

    def start_processing(self, job_id: str, clip_ids: Iterable[str] = ()) -> Optional[Job]:
        """Enter PROCESSING with every listed clip in the pending state."""
        states = {str(cid): ClipState.PENDING.value for cid in clip_ids}
        return self._advance(job_id, JobStatus.PROCESSING, clip_states=states)

    def finish(
        self,
        job_id: str,
        output_files: List[str],
        results: Optional[List[Dict[str, Any]]] = None,
    ) -> Optional[Job]:
        return self._advance(
            job_id,
            JobStatus.COMPLETED,
            output_files=list(output_files),
            results=list(results or []),
        )

    def fail(self, job_id: str, error: str) -> Optional[Job]:
        return self._advance(job_id, JobStatus.FAILED, error=error)

    def set_caption_lines(self, job_id: str, lines: List[Any]) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                job.caption_lines = list(lines)
                job.updated_at = time.time()

    def record_clip_state(self, job_id: str, clip_id: str, state: ClipState) -> None:
        """Store a clip's latest state; clips not seen before are appended."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status.is_terminal:
                return
            job.clip_states[clip_id] = ClipState(state).value
            job.last_clip = clip_id
            job.updated_at = time.time()

    def clip_state_reporter(self, job_id: str) -> Callable[[str, ClipState], None]:
        """on_state callback for ClipPipeline that records into this job."""

        def on_state(clip_id: str, state: ClipState) -> None:
            self.record_clip_state(job_id, clip_id, state)

        return on_state

    def run_in_background(self, job_id: str, fn: Callable[[str, JobStore], None]) -> None:
        """Run fn(job_id, store); an escaping exception fails the job."""
        try:
            fn(job_id, self)
        except Exception as exc:
            logger.exception("Background task failed for job %s", job_id)
            self.fail(job_id, str(exc) or exc.__class__.__name__)


def _remove_workspace(workspace: Path) -> None:
    try:
        shutil.rmtree(workspace)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove job workspace %s: %s", workspace, exc)
