"""Unit tests for the clip job registry.

WHY: Pollers rely on the job's status never going backwards and on the
per-clip view matching what the pipeline is doing. The active-job cap
must not count finished jobs that only wait for downloads, and every
removed job must take its workspace with it.

HOW: Tests are grouped by concern:
  - TestCapacity: create_job against the active-job cap
  - TestLifecycle: forward-only transitions and terminal stickiness
  - TestClipStates: clip_state_reporter feeding clip_states and progress
  - TestWorkspace: delete and expiry remove the job directory
  - TestBackgroundRunner: crashes turn into failed jobs
  - TestConcurrentReporting: clip reports from several threads

RULES:
- Each test uses its own JobStore from the job_store fixture, which
  removes leftover workspaces afterwards
- Expiry tests monkeypatch time.time()
"""

from __future__ import annotations

import shutil
import threading
import time

import pytest

from clipper_studio.pipeline.orchestrator import ClipState
from clipper_studio.server.jobs import JobLimitError, JobStatus, JobStore


@pytest.fixture
def job_store():
    store = JobStore(ttl_seconds=60, max_active=2)
    yield store
    for job in list(store._jobs.values()):
        shutil.rmtree(job.workspace, ignore_errors=True)


# ---------------------------------------------------------------------------
# TestCapacity
# ---------------------------------------------------------------------------


class TestCapacity:
    """Only pending and running jobs count against max_active."""

    def test_new_job_gets_workspace(self, job_store):
        job = job_store.create_job("episode.mp4", config={"kind": "clips"})
        assert job.status == JobStatus.PENDING
        assert job.workspace.is_dir()
        assert job.workspace.name.startswith("clipper_job_")
        assert job.source_path == job.workspace / "episode.mp4"
        assert job.config == {"kind": "clips"}

    def test_cap_on_running_jobs(self, job_store):
        job_store.create_job("a.mp4")
        job_store.create_job("b.mp4")
        with pytest.raises(JobLimitError, match="limit 2"):
            job_store.create_job("c.mp4")
        assert job_store.active_count() == 2

    def test_limit_error_is_a_value_error(self):
        assert issubclass(JobLimitError, ValueError)

    def test_finished_jobs_do_not_count(self, job_store):
        done = job_store.create_job("a.mp4")
        broken = job_store.create_job("b.mp4")
        job_store.finish(done.id, ["a_clip_0s_9x16.mp4"])
        job_store.fail(broken.id, "Source video not found")

        job_store.create_job("c.mp4")
        job_store.create_job("d.mp4")
        assert job_store.active_count() == 2
        assert len(job_store._jobs) == 4


# ---------------------------------------------------------------------------
# TestLifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    """pending -> preparing -> processing -> completed | failed."""

    def test_clip_batch_path(self, job_store):
        job = job_store.create_job("episode.mp4")
        job_store.mark_preparing(job.id)
        assert job.status == JobStatus.PREPARING
        job_store.start_processing(job.id, ["clip-1", "clip-2"])
        assert job.status == JobStatus.PROCESSING
        assert job.finished_at is None

        results = [{"clip_id": "clip-1", "status": "success"}]
        job_store.finish(job.id, ["p_clip_8s_9x16.mp4"], results=results)
        assert job.status == JobStatus.COMPLETED
        assert job.output_files == ["p_clip_8s_9x16.mp4"]
        assert job.results == results
        assert job.finished_at is not None

    def test_failure_records_error(self, job_store):
        job = job_store.create_job("episode.mp4")
        job_store.mark_preparing(job.id)
        job_store.fail(job.id, "Source video not found")
        assert job.status == JobStatus.FAILED
        assert job.error == "Source video not found"
        assert job.finished_at is not None

    def test_terminal_status_is_final(self, job_store):
        job = job_store.create_job("episode.mp4")
        job_store.finish(job.id, ["a.mp4"])
        finished_at = job.finished_at

        job_store.fail(job.id, "late crash")
        job_store.start_processing(job.id, ["clip-1"])

        assert job.status == JobStatus.COMPLETED
        assert job.error is None
        assert job.clip_states == {}
        assert job.finished_at == finished_at

    def test_status_never_moves_back(self, job_store):
        job = job_store.create_job("episode.mp4")
        job_store.start_processing(job.id, ["clip-1"])
        job_store.mark_preparing(job.id)
        assert job.status == JobStatus.PROCESSING

    def test_caption_lines_stored_in_any_state(self, job_store, sample_words):
        from clipper_studio.core.segmenter import segment_words

        job = job_store.create_job("episode.mp4")
        lines = segment_words(sample_words)
        job_store.set_caption_lines(job.id, lines)
        assert job.caption_lines == lines
        assert job.caption_lines is not lines

    def test_unknown_job(self, job_store):
        assert job_store.get_job("nope") is None
        assert job_store.fail("nope", "boom") is None
        job_store.record_clip_state("nope", "clip-1", ClipState.CUTTING)


# ---------------------------------------------------------------------------
# TestClipStates
# ---------------------------------------------------------------------------


class TestClipStates:
    """Per-clip states and the progress summary derived from them."""

    def test_no_progress_before_first_clip(self, job_store):
        job = job_store.create_job("episode.mp4")
        job_store.start_processing(job.id, ["clip-1", "clip-2"])
        assert job.clip_states == {"clip-1": "pending", "clip-2": "pending"}
        assert job.progress is None

    def test_reporter_drives_progress(self, job_store):
        job = job_store.create_job("episode.mp4")
        job_store.start_processing(job.id, ["clip-1", "clip-2", "clip-3"])
        on_state = job_store.clip_state_reporter(job.id)

        on_state("clip-1", ClipState.CUTTING)
        on_state("clip-1", ClipState.DONE)
        on_state("clip-2", ClipState.AUDIO_EXTRACTING)

        assert job.progress == {"clip": "clip-2", "state": "audio_extracting", "done": 1, "total": 3}
        assert job.clip_states == {
            "clip-1": "done", "clip-2": "audio_extracting", "clip-3": "pending",
        }

    def test_failed_clips_count_as_finished(self, job_store):
        job = job_store.create_job("episode.mp4")
        job_store.start_processing(job.id, ["clip-1", "clip-2"])
        on_state = job_store.clip_state_reporter(job.id)
        on_state("clip-1", ClipState.FAILED)
        on_state("clip-2", ClipState.DONE)
        assert job.progress == {"clip": "clip-2", "state": "done", "done": 2, "total": 2}

    def test_reports_after_completion_are_dropped(self, job_store):
        job = job_store.create_job("episode.mp4")
        job_store.start_processing(job.id, ["clip-1"])
        job_store.record_clip_state(job.id, "clip-1", ClipState.DONE)
        job_store.finish(job.id, [])

        job_store.record_clip_state(job.id, "clip-1", ClipState.FAILED)
        assert job.clip_states == {"clip-1": "done"}


# ---------------------------------------------------------------------------
# TestWorkspace
# ---------------------------------------------------------------------------


class TestWorkspace:
    """Removing a job removes its rendered clips."""

    def test_delete_removes_clips(self, job_store):
        job = job_store.create_job("episode.mp4")
        clips_dir = job.workspace / "clips"
        clips_dir.mkdir()
        (clips_dir / "p_clip_8s_9x16.mp4").write_bytes(b"video")

        assert job_store.delete_job(job.id) is True
        assert not job.workspace.exists()
        assert job_store.delete_job(job.id) is False

    def test_delete_tolerates_missing_workspace(self, job_store):
        job = job_store.create_job("episode.mp4")
        shutil.rmtree(job.workspace)
        assert job_store.delete_job(job.id) is True

    def test_purge_only_expired_terminal_jobs(self, job_store, monkeypatch):
        monkeypatch.setattr(time, "time", lambda: 100.0)
        old = job_store.create_job("old.mp4")
        job_store.finish(old.id, [])
        running = job_store.create_job("running.mp4")
        job_store.start_processing(running.id, ["clip-1"])

        monkeypatch.setattr(time, "time", lambda: 130.0)
        recent = job_store.create_job("recent.mp4")
        job_store.fail(recent.id, "boom")

        monkeypatch.setattr(time, "time", lambda: 161.0)
        assert job_store.purge_expired() == 1
        assert job_store.get_job(old.id) is None
        assert not old.workspace.exists()
        assert job_store.get_job(recent.id) is not None
        assert job_store.get_job(running.id) is not None


# ---------------------------------------------------------------------------
# TestBackgroundRunner
# ---------------------------------------------------------------------------


class TestBackgroundRunner:
    """run_in_background() turns crashes into failed jobs."""

    def test_callable_receives_job_id_and_store(self, job_store):
        job = job_store.create_job("episode.mp4")
        seen = {}

        def task(job_id, store):
            seen["args"] = (job_id, store)
            store.finish(job_id, [])

        job_store.run_in_background(job.id, task)

        assert seen["args"] == (job.id, job_store)
        assert job.status == JobStatus.COMPLETED

    def test_crash_fails_job_and_keeps_clip_states(self, job_store):
        job = job_store.create_job("episode.mp4")

        def task(job_id, store):
            store.start_processing(job_id, ["clip-1"])
            store.record_clip_state(job_id, "clip-1", ClipState.CUTTING)
            raise RuntimeError("transcoder binary missing")

        job_store.run_in_background(job.id, task)

        assert job.status == JobStatus.FAILED
        assert job.error == "transcoder binary missing"
        assert job.progress["state"] == "cutting"

    def test_crash_after_finish_leaves_completed_job(self, job_store):
        job = job_store.create_job("episode.mp4")

        def task(job_id, store):
            store.finish(job_id, ["a.mp4"])
            raise RuntimeError("cleanup failed")

        job_store.run_in_background(job.id, task)
        assert job.status == JobStatus.COMPLETED


# ---------------------------------------------------------------------------
# TestConcurrentReporting
# ---------------------------------------------------------------------------


class TestConcurrentReporting:
    """Clip reports from several threads all land in clip_states."""

    def test_every_clip_recorded(self, job_store):
        job = job_store.create_job("episode.mp4")
        clip_ids = ["clip-{}".format(i) for i in range(20)]
        job_store.start_processing(job.id, clip_ids)
        on_state = job_store.clip_state_reporter(job.id)

        threads = [
            threading.Thread(target=on_state, args=(clip_id, ClipState.DONE))
            for clip_id in clip_ids
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert set(job.clip_states.values()) == {"done"}
        assert job.progress["done"] == 20
        assert job.progress["total"] == 20

    def test_creates_respect_cap_under_contention(self):
        store = JobStore(max_active=5)
        created = []
        rejected = []

        def create(idx):
            try:
                created.append(store.create_job("clip_{}.mp4".format(idx)))
            except JobLimitError:
                rejected.append(idx)

        threads = [threading.Thread(target=create, args=(i,)) for i in range(12)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(created) == 5
        assert len(rejected) == 7
        for job in created:
            store.delete_job(job.id)
