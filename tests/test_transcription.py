"""Tests for chunked transcription of long source ranges.

WHY: A clip span longer than the transcription API's upload limit must
still come back as one word list on the source timeline, and none of
the intermediate audio files may outlive the call.

HOW: A FakeTranscoder writes placeholder WAV files; a real WhisperClient
talks to an httpx.MockTransport that answers each chunk with words
relative to that chunk.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from clipper_studio.api.whisper import WhisperClient
from clipper_studio.core.errors import TranscriptionError, ValidationError
from clipper_studio.pipeline.transcription import chunk_ranges, transcribe_range


def _whisper(handler):
    return WhisperClient(
        api_key="test-key",
        base_url="https://api.example.com/v1",
        transport=httpx.MockTransport(handler),
    )


def _run(source, start, end, handler, scratch_dir, transcoder, chunk_seconds):
    async def go():
        async with _whisper(handler) as client:
            return await transcribe_range(
                source, start, end, client, scratch_dir,
                transcoder=transcoder, chunk_seconds=chunk_seconds,
            )

    return asyncio.run(go())


# ---------------------------------------------------------------------------
# Chunk planning
# ---------------------------------------------------------------------------


class TestChunkRanges:
    def test_short_range_is_one_chunk(self):
        assert chunk_ranges(8.0, 40.0, 600.0) == [(8.0, 40.0)]

    def test_long_range_splits_at_chunk_length(self):
        assert chunk_ranges(0.0, 1500.0, 600.0) == [
            (0.0, 600.0), (600.0, 1200.0), (1200.0, 1500.0),
        ]

    def test_exact_multiple_has_no_empty_tail(self):
        assert chunk_ranges(100.0, 1300.0, 600.0) == [(100.0, 700.0), (700.0, 1300.0)]

    def test_default_length_from_config(self, monkeypatch):
        monkeypatch.setattr("clipper_studio.config.WHISPER_CHUNK_SECONDS", 10.0)
        assert len(chunk_ranges(0.0, 25.0)) == 3

    @pytest.mark.parametrize("start, end, size", [(5.0, 5.0, 600.0), (0.0, 10.0, 0.0)])
    def test_invalid_input(self, start, end, size):
        with pytest.raises(ValidationError):
            chunk_ranges(start, end, size)


# ---------------------------------------------------------------------------
# Transcription
# ---------------------------------------------------------------------------


class TestTranscribeRange:
    def test_words_shifted_per_chunk(self, source_video, scratch_dir, fake_transcoder):
        replies = iter([
            {"text": "welcome back", "words": [
                {"word": "welcome", "start": 1.0, "end": 1.5},
                {"word": "back", "start": 1.5, "end": 2.0},
            ]},
            {"text": "", "words": []},
            {"text": "goodbye", "words": [{"word": "goodbye", "start": 0.25, "end": 1.0}]},
        ])

        def handler(request):
            return httpx.Response(200, json=next(replies))

        result = _run(source_video, 100.0, 1300.0, handler, scratch_dir, fake_transcoder, 500.0)

        assert [(w.word, w.start, w.end) for w in result.words] == [
            ("welcome", 101.0, 101.5),
            ("back", 101.5, 102.0),
            ("goodbye", 1100.25, 1101.0),
        ]
        assert result.text == "welcome back goodbye"

        seeks = [c[c.index("-ss") + 1] for c in fake_transcoder.calls]
        lengths = [c[c.index("-t") + 1] for c in fake_transcoder.calls]
        assert seeks == ["100", "600", "1100"]
        assert lengths == ["500", "500", "200"]
        assert list(scratch_dir.iterdir()) == []

    def test_failed_chunk_aborts_and_cleans_up(self, source_video, scratch_dir, fake_transcoder):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 2:
                return httpx.Response(413, text="Maximum content size limit exceeded")
            return httpx.Response(200, json={"text": "ok", "words": []})

        with pytest.raises(TranscriptionError) as exc_info:
            _run(source_video, 0.0, 1500.0, handler, scratch_dir, fake_transcoder, 600.0)

        assert exc_info.value.status_code == 413
        assert len(calls) == 2
        assert len(fake_transcoder.calls) == 2
        assert list(scratch_dir.iterdir()) == []
