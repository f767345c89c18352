"""Tests for audio segment extraction."""

from __future__ import annotations

import asyncio
import re

import pytest

from clipper_studio.core.errors import ExtractionError, TranscodeError, ValidationError
from clipper_studio.rendering.audio import extract_audio_segment


class TestExtractAudioSegment:
    def test_pcm_mono_16k(self, source_video, tmp_path, fake_transcoder):
        artifact = asyncio.run(extract_audio_segment(
            source_video, 8.0, 20.0, tmp_path / "audio", transcoder=fake_transcoder, timeout_s=60.0
        ))

        assert fake_transcoder.calls[0] == [
            "-ss", "8",
            "-i", str(source_video),
            "-t", "12",
            "-vn",
            "-acodec", "pcm_s16le",
            "-ar", "16000",
            "-ac", "1",
            "-y", str(artifact.file_path),
        ]
        assert fake_transcoder.timeouts == [60.0]
        assert re.fullmatch(r"audio_\d+_[0-9a-f]{9}_8s-20s\.wav", artifact.file_name)
        assert artifact.duration == pytest.approx(12.0)
        assert artifact.file_path.is_file()

    def test_failure_raises_extraction_error(self, source_video, tmp_path, make_transcoder):
        transcoder = make_transcoder(fail_when=lambda args: "-vn" in args)
        with pytest.raises(ExtractionError) as exc_info:
            asyncio.run(extract_audio_segment(source_video, 0.0, 5.0, tmp_path, transcoder=transcoder))

        # ExtractionError is still a TranscodeError for generic handlers
        assert isinstance(exc_info.value, TranscodeError)
        assert "Audio extraction failed" in str(exc_info.value)
        assert list(tmp_path.glob("audio_*.wav")) == []

    @pytest.mark.parametrize("start, end", [(5.0, 5.0), (-2.0, 1.0)])
    def test_invalid_range(self, source_video, tmp_path, fake_transcoder, start, end):
        with pytest.raises(ValidationError):
            asyncio.run(extract_audio_segment(
                source_video, start, end, tmp_path, transcoder=fake_transcoder
            ))
        assert fake_transcoder.calls == []
