"""Shared test fixtures for the clipper_studio test suite.

WHY: Most modules need the same sample transcript and a stand-in for the
external transcoder. Running real ffmpeg in unit tests would be slow and
machine-dependent, and it would hide what the code actually asks for.

HOW: FakeTranscoder mirrors Transcoder's run()/probe() interface. It
records every argument list, snapshots the filter script and the caption
files it references while the "process" is running, and writes a small
placeholder output file unless told to fail.

RULES:
- SAMPLE_WORDS is the three-word example ("Hi there world")
- TRANSCRIPT_WORDS is a longer transcript spanning 0s-12s
- Every fixture writes only under pytest's tmp_path
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from clipper_studio.core.ir import StoredArtifact, TranscriptionResult, VideoDimensions, Word
from clipper_studio.rendering.transcoder import TranscodeResult


# ---------------------------------------------------------------------------
# Sample transcripts
# ---------------------------------------------------------------------------

SAMPLE_WORDS: List[Dict[str, Any]] = [
    {"word": "Hi",    "start": 0.0, "end": 0.3},
    {"word": "there", "start": 0.3, "end": 0.6},
    {"word": "world", "start": 0.6, "end": 1.0},
]

TRANSCRIPT_WORDS: List[Dict[str, Any]] = [
    {"word": "Welcome", "start": 0.0,  "end": 0.4},
    {"word": "back",    "start": 0.4,  "end": 0.7},
    {"word": "to",      "start": 0.7,  "end": 0.8},
    {"word": "the",     "start": 0.8,  "end": 0.9},
    {"word": "show",    "start": 0.9,  "end": 1.3},
    {"word": "today",   "start": 2.0,  "end": 2.4},
    {"word": "we",      "start": 2.4,  "end": 2.5},
    {"word": "talk",    "start": 2.5,  "end": 2.9},
    {"word": "about",   "start": 2.9,  "end": 3.2},
    {"word": "clips",   "start": 3.2,  "end": 3.8},
    {"word": "that",    "start": 5.0,  "end": 5.2},
    {"word": "go",      "start": 5.2,  "end": 5.4},
    {"word": "viral",   "start": 5.4,  "end": 6.0},
    {"word": "and",     "start": 8.0,  "end": 8.2},
    {"word": "why",     "start": 8.2,  "end": 8.5},
    {"word": "it's",    "start": 10.0, "end": 10.3},
    {"word": "so",      "start": 10.3, "end": 10.5},
    {"word": "hard",    "start": 10.5, "end": 12.0},
]

_REFERENCED_FILE_RE = re.compile(r"(?:textfile|subtitles)='((?:[^'\\]|\\.)+)'")


def _unescape_filter_path(value: str) -> str:
    return value.replace("\\:", ":").replace("\\'", "'")


class FakeTranscoder:
    """In-memory stand-in for rendering.transcoder.Transcoder.

    Attributes:
        calls: Argument lists passed to run(), in order.
        timeouts: timeout_s passed to each run() call.
        scripts: Filter script contents seen during each run (None when
            the call had no -filter_complex_script).
        referenced: For each run, {path: content} of every caption text
            file or subtitle track the script referenced, read while the
            call was in flight.
        probe_calls: Paths passed to probe().
    """

    def __init__(
        self,
        fail_when: Optional[Callable[[List[str]], bool]] = None,
        exit_code: int = 1,
        timed_out: bool = False,
        write_output: bool = True,
        dimensions: Optional[VideoDimensions] = None,
    ) -> None:
        self.fail_when = fail_when
        self.exit_code = exit_code
        self.timed_out = timed_out
        self.write_output = write_output
        self.dimensions = dimensions or VideoDimensions(width=1920, height=1080)
        self.calls: List[List[str]] = []
        self.timeouts: List[Optional[float]] = []
        self.scripts: List[Optional[str]] = []
        self.referenced: List[Dict[str, str]] = []
        self.probe_calls: List[Path] = []

    def _snapshot(self, args: List[str]) -> None:
        script = None
        referenced = {}
        if "-filter_complex_script" in args:
            script_path = Path(args[args.index("-filter_complex_script") + 1])
            script = script_path.read_text(encoding="utf-8")
            for raw in _REFERENCED_FILE_RE.findall(script):
                path = Path(_unescape_filter_path(raw))
                referenced[str(path)] = path.read_text(encoding="utf-8")
        self.scripts.append(script)
        self.referenced.append(referenced)

    async def run(self, args, timeout_s: Optional[float] = None) -> TranscodeResult:
        args = [str(a) for a in args]
        self.calls.append(args)
        self.timeouts.append(timeout_s)
        self._snapshot(args)

        output = Path(args[-1])
        if self.fail_when is not None and self.fail_when(args):
            # Simulate a partial file left behind by a crashed encoder
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_bytes(b"partial")
            return TranscodeResult(
                exit_code=-9 if self.timed_out else self.exit_code,
                stderr="Conversion failed!",
                timed_out=self.timed_out,
            )

        if self.write_output:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_bytes(b"fake media " + output.name.encode())
        return TranscodeResult(exit_code=0, stderr="frame=1 time=00:00:01.00")

    async def probe(self, path, timeout_s: Optional[float] = None) -> VideoDimensions:
        self.probe_calls.append(Path(path))
        return self.dimensions


class MemoryArtifactStore:
    """Artifact store that keeps uploads in a dict keyed by upload key."""

    def __init__(self, fail_keys: Optional[List[str]] = None) -> None:
        self.uploads: Dict[str, bytes] = {}
        self.fail_keys = set(fail_keys or [])

    async def upload(self, data: bytes, key: str, extension: str) -> StoredArtifact:
        from clipper_studio.core.errors import UploadError

        if key in self.fail_keys:
            raise UploadError("Storage rejected {}".format(key))
        name = "{}.{}".format(key, extension)
        self.uploads[key] = data
        return StoredArtifact(url="memory://{}".format(name), name=name, size=len(data))


class FakeTranscriber:
    """Returns a fixed transcription, or raises the given exception."""

    def __init__(self, text: str = "", error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.calls: List[Path] = []

    async def transcribe(self, audio_path: Path) -> TranscriptionResult:
        self.calls.append(Path(audio_path))
        if self.error is not None:
            raise self.error
        return TranscriptionResult(text=self.text, words=())


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_words() -> List[Word]:
    return [Word(**w) for w in SAMPLE_WORDS]


@pytest.fixture
def transcript_words() -> List[Word]:
    return [Word(**w) for w in TRANSCRIPT_WORDS]


@pytest.fixture
def fake_transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def scratch_dir(tmp_path) -> Path:
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def source_video(tmp_path) -> Path:
    path = tmp_path / "episode.mp4"
    path.write_bytes(b"fake source video")
    return path


@pytest.fixture
def make_transcoder():
    """Factory for FakeTranscoders configured per test (failures, dimensions)."""
    return FakeTranscoder


@pytest.fixture
def memory_store() -> MemoryArtifactStore:
    return MemoryArtifactStore()


@pytest.fixture
def make_store():
    return MemoryArtifactStore


@pytest.fixture
def make_transcriber():
    return FakeTranscriber
