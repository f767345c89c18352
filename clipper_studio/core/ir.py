"""Intermediate representation dataclasses for the clip pipeline.

WHY: The segmenter, filter builders, cutter, orchestrator and the HTTP
layer all pass words, caption lines, clip descriptors and rendered files
between each other. One set of well-typed, immutable records keeps those
hand-offs explicit and lets every stage be tested in isolation.

HOW: Frozen dataclasses, leaf-first:
  Word                — one transcribed word with absolute timing
  CaptionLine         — consecutive words shown together on screen
  CaptionTrack        — the caption lines for one rendering pass
  ClipDescriptor      — one externally supplied highlight time range
  VideoDimensions     — pixel size reported by the resolution probe
  RenderArtifact      — one file produced by a transcoder invocation
  StoredArtifact      — what the artifact store returns after upload
  TranscriptionResult — text plus word timings from the transcriber

RULES:
- All times are float seconds; ClipDescriptor times are absolute offsets
  into the source video, rebased CaptionLines are clip-local
- Records are never mutated in place; rebasing produces a new line
- from_dict() accepts both camelCase and snake_case keys and raises
  ValidationError on malformed input
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from clipper_studio.core.errors import ValidationError
from clipper_studio.core.presets import CaptionPlatform


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key's value from data."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _as_seconds(value: Any, field_name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            "Field '{}' must be a number of seconds, got {!r}".format(field_name, value)
        )


def _as_number(value: Any, field_name: str) -> float:
    message = "Field '{}' must be a number, got {!r}".format(field_name, value)
    # bool is an int subclass and would pass float()
    if isinstance(value, bool):
        raise ValidationError(message)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(message)


@dataclass(frozen=True)
class Word:
    """A single transcribed word with absolute start/end time.

    RULES:
    - word: the literal text, stripped of surrounding whitespace
    - start / end: seconds from the start of the source media
    """

    word: str
    start: float
    end: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Word:
        text = _pick(data, "word", "text")
        if text is None:
            raise ValidationError("Word entry is missing 'word': {!r}".format(dict(data)))
        if "start" not in data or "end" not in data:
            raise ValidationError("Word entry is missing timing: {!r}".format(dict(data)))
        return cls(
            word=str(text).strip(),
            start=_as_seconds(data["start"], "start"),
            end=_as_seconds(data["end"], "end"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"word": self.word, "start": self.start, "end": self.end}


def words_from_dicts(items: Iterable[Mapping[str, Any]]) -> List[Word]:
    """Parse a JSON-style word list, dropping entries with empty text."""
    words = [Word.from_dict(item) for item in items]
    return [w for w in words if w.word]


def words_from_payload(payload: Any) -> List[Word]:
    """Parse a transcript payload: a word list or an object with "words"."""
    if isinstance(payload, Mapping):
        payload = payload.get("words")
    if not isinstance(payload, list):
        raise ValidationError("Transcript must be a list of words or an object with 'words'")
    for item in payload:
        if not isinstance(item, Mapping):
            raise ValidationError("Transcript word must be an object, got {!r}".format(item))
    return words_from_dicts(payload)


@dataclass(frozen=True)
class CaptionLine:
    """Consecutive words displayed together as one caption.

    RULES:
    - start_time equals the first grouped word's start
    - end_time >= start_time, possibly extended past the last word's end
      to satisfy the minimum display time
    - text is the words joined with single spaces
    """

    words: Tuple[Word, ...]
    start_time: float
    end_time: float
    text: str

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def retimed(self, start_time: float, end_time: float) -> CaptionLine:
        """Return a copy of this line with new timing."""
        return dataclasses.replace(self, start_time=start_time, end_time=end_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "words": [w.to_dict() for w in self.words],
        }


@dataclass(frozen=True)
class CaptionTrack:
    """All caption lines for one rendering pass plus the platform preset."""

    lines: Tuple[CaptionLine, ...]
    platform: CaptionPlatform = CaptionPlatform.DEFAULT

    @property
    def total_duration(self) -> float:
        if not self.lines:
            return 0.0
        return max(line.end_time for line in self.lines)

    def __len__(self) -> int:
        return len(self.lines)


@dataclass(frozen=True)
class ClipDescriptor:
    """One highlight segment selected upstream.

    WHY: Clip time ranges and their metadata (virality score, optional
    title from a content-analysis step) arrive from outside the core.
    The core only reads them.

    RULES:
    - start_time < end_time, both absolute offsets into the source video
    - duration is derived from the time range
    - title is optional; when present it wins title resolution
    """

    id: str
    start_time: float
    end_time: float
    virality_score: float = 0.0
    title: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], index: int = 0) -> ClipDescriptor:
        start = _as_seconds(_pick(data, "startTime", "start_time", "start"), "startTime")
        end = _as_seconds(_pick(data, "endTime", "end_time", "end"), "endTime")
        if start < 0:
            raise ValidationError("Clip start time must be >= 0, got {}".format(start))
        if end <= start:
            raise ValidationError(
                "Clip end time ({}) must be after start time ({})".format(end, start)
            )
        clip_id = _pick(data, "id", "_id", default="clip-{}".format(index + 1))
        title = _pick(data, "title")
        return cls(
            id=str(clip_id),
            start_time=start,
            end_time=end,
            virality_score=_as_number(
                _pick(data, "viralityScore", "virality_score", default=0.0), "viralityScore"
            ),
            title=str(title).strip() if title else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "virality_score": self.virality_score,
            "title": self.title,
        }


def clips_from_dicts(items: Iterable[Mapping[str, Any]]) -> List[ClipDescriptor]:
    """Parse a JSON-style clip list into ClipDescriptors."""
    return [ClipDescriptor.from_dict(item, index=i) for i, item in enumerate(items)]


def clips_from_payload(payload: Any) -> List[ClipDescriptor]:
    """Parse a clip payload: a list of clips or an object with "clips"."""
    if isinstance(payload, Mapping):
        payload = payload.get("clips")
    if not isinstance(payload, list) or not payload:
        raise ValidationError("Clips must be a non-empty list or an object with 'clips'")
    for item in payload:
        if not isinstance(item, Mapping):
            raise ValidationError("Clip entry must be an object, got {!r}".format(item))
    return clips_from_dicts(payload)


@dataclass(frozen=True)
class VideoDimensions:
    """Pixel dimensions of a video stream."""

    width: int
    height: int


@dataclass(frozen=True)
class RenderArtifact:
    """A file produced by a single transcoder invocation.

    RULES:
    - Owned by the caller until handed to the artifact store, after which
      the local file is deleted
    - size is in bytes, duration in seconds
    """

    file_path: Path
    file_name: str
    size: int
    duration: float


@dataclass(frozen=True)
class StoredArtifact:
    """Location of an uploaded artifact."""

    url: str
    name: str
    size: int


@dataclass(frozen=True)
class TranscriptionResult:
    """Transcript text and word timings from the transcription collaborator."""

    text: str
    words: Tuple[Word, ...] = ()
