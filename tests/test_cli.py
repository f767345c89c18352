"""Tests for the clipper-studio command-line interface.

WHY: The CLI is the batch entry point. It must wire every option through
to the pipeline, write clips and caption documents where asked, and exit
non-zero whenever any clip or the setup failed, so scripts can rely on
the exit code.

HOW: main() runs end to end against a local source file, with the
Transcoder class in clipper_studio.cli replaced by a FakeTranscoder
factory. The Whisper client is replaced by an in-memory async context
manager where --transcribe is exercised. The JSON report is validated
against the bundled schema by the CLI itself and re-checked here.
"""

from __future__ import annotations

import json

import httpx
import jsonschema
import pytest

from clipper_studio import __version__
from clipper_studio.api.storage import HttpArtifactStore
from clipper_studio.cli import _report_schema, build_parser, build_report, main
from clipper_studio.core.ir import TranscriptionResult, Word
from clipper_studio.pipeline.orchestrator import ClipResult, ClipState

CLIPS = [
    {"id": "clip-1", "startTime": 8, "endTime": 20, "viralityScore": 0.9},
    {"id": "clip-2", "startTime": 30, "endTime": 40, "title": "Big Reveal"},
]


@pytest.fixture
def clips_file(tmp_path):
    path = tmp_path / "clips.json"
    path.write_text(json.dumps(CLIPS), encoding="utf-8")
    return path


@pytest.fixture
def transcript_file(tmp_path):
    path = tmp_path / "transcript.json"
    path.write_text(json.dumps([
        {"word": "Hello", "start": 10.0, "end": 10.4},
        {"word": "and", "start": 10.4, "end": 10.6},
        {"word": "welcome", "start": 10.6, "end": 11.2},
    ]), encoding="utf-8")
    return path


@pytest.fixture
def out_dir(tmp_path):
    return tmp_path / "out"


@pytest.fixture
def patched_transcoder(monkeypatch, fake_transcoder):
    """Route every Transcoder the CLI builds to one FakeTranscoder."""
    monkeypatch.setattr("clipper_studio.cli.Transcoder", lambda *a, **k: fake_transcoder)
    return fake_transcoder


def _main_exit_code(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args(["ep.mp4", "--clips", "clips.json"])
        assert args.source == "ep.mp4"
        assert args.output_dir == "clips"
        assert args.aspect_ratios == "9:16"
        assert args.captions is True
        assert args.strategy == "drawtext"
        assert args.position == "bottom"
        assert args.transcript is None
        assert args.transcribe is False
        assert args.report is None

    def test_no_captions(self):
        args = build_parser().parse_args(["ep.mp4", "--clips", "c.json", "--no-captions"])
        assert args.captions is False

    def test_clips_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["ep.mp4"])

    def test_transcript_and_transcribe_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(
                ["ep.mp4", "--clips", "c.json", "--transcript", "t.json", "--transcribe"]
            )

    def test_invalid_strategy_choice(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["ep.mp4", "--clips", "c.json", "--strategy", "ass"])


# ---------------------------------------------------------------------------
# End-to-end runs
# ---------------------------------------------------------------------------


class TestRun:
    def test_all_clips_succeed(self, source_video, clips_file, out_dir, patched_transcoder):
        code = _main_exit_code([
            str(source_video), "--clips", str(clips_file), "--output-dir", str(out_dir),
        ])

        assert code == 0
        assert sorted(p.name for p in out_dir.iterdir()) == [
            "episode_clip_30s_9x16.mp4", "episode_clip_8s_9x16.mp4",
        ]
        assert source_video.exists()

    def test_project_id_and_aspects(self, source_video, clips_file, out_dir, patched_transcoder):
        code = _main_exit_code([
            str(source_video), "--clips", str(clips_file), "--output-dir", str(out_dir),
            "--project-id", "ep42", "--aspect-ratios", "9:16,original",
        ])

        assert code == 0
        assert sorted(p.name for p in out_dir.iterdir()) == [
            "ep42_clip_30s_9x16.mp4", "ep42_clip_30s_original.mp4",
            "ep42_clip_8s_9x16.mp4", "ep42_clip_8s_original.mp4",
        ]

    def test_report(self, source_video, clips_file, out_dir, tmp_path, patched_transcoder):
        report_path = tmp_path / "report.json"
        code = _main_exit_code([
            str(source_video), "--clips", str(clips_file), "--output-dir", str(out_dir),
            "--report", str(report_path),
        ])

        assert code == 0
        report = json.loads(report_path.read_text(encoding="utf-8"))
        jsonschema.validate(instance=report, schema=_report_schema())
        assert report["version"] == __version__
        assert report["project_id"] == "episode"
        assert report["summary"] == {"total": 2, "succeeded": 2, "failed": 0}
        assert [c["title"] for c in report["clips"]] == ["episode - 8s", "Big Reveal"]
        assert [c["title_source"] for c in report["clips"]] == ["fallback", "metadata"]

    def test_failing_clip_exits_1(self, source_video, clips_file, out_dir, tmp_path, monkeypatch, make_transcoder):
        transcoder = make_transcoder(fail_when=lambda args: args[:2] == ["-ss", "30"])
        monkeypatch.setattr("clipper_studio.cli.Transcoder", lambda *a, **k: transcoder)
        report_path = tmp_path / "report.json"

        code = _main_exit_code([
            str(source_video), "--clips", str(clips_file), "--output-dir", str(out_dir),
            "--report", str(report_path),
        ])

        assert code == 1
        report = json.loads(report_path.read_text(encoding="utf-8"))
        assert report["summary"] == {"total": 2, "succeeded": 1, "failed": 1}
        failed = report["clips"][1]
        assert failed["status"] == "failure"
        assert failed["failed_stage"] == "cutting"
        assert failed["title"] == "Error: Big Reveal"
        assert [p.name for p in out_dir.iterdir() if p.is_file()] == ["episode_clip_8s_9x16.mp4"]

    def test_captions_burned_from_transcript(self, source_video, clips_file, transcript_file, out_dir, patched_transcoder):
        code = _main_exit_code([
            str(source_video), "--clips", str(clips_file), "--output-dir", str(out_dir),
            "--transcript", str(transcript_file),
        ])

        assert code == 0
        # clip-1 covers the transcript, clip-2 does not
        first_cut = patched_transcoder.scripts[0]
        assert first_cut is not None
        assert "enable='between(t,2,3.2)'" in first_cut
        assert "Hello and welcome" in patched_transcoder.referenced[0].values()

    def test_subtitle_documents(self, source_video, clips_file, transcript_file, out_dir, patched_transcoder):
        code = _main_exit_code([
            str(source_video), "--clips", str(clips_file), "--output-dir", str(out_dir),
            "--transcript", str(transcript_file), "--subtitle-formats", "vtt,srt",
        ])

        assert code == 0
        assert (out_dir / "clip-1.srt").read_text(encoding="utf-8") == (
            "1\n00:00:02,000 --> 00:00:03,200\nHello and welcome\n\n"
        )
        vtt = (out_dir / "clip-1.vtt").read_text(encoding="utf-8")
        assert vtt.startswith("WEBVTT\nNOTE Clip 8s-20s\n")
        assert (out_dir / "clip-2.srt").read_text(encoding="utf-8") == ""

    def test_transcribe_shifts_words_to_source_timeline(self, source_video, clips_file, out_dir, monkeypatch, patched_transcoder):
        class FakeWhisperClient:
            calls = []

            async def __aenter__(self):
                return self

            async def __aexit__(self, exc_type, exc_val, exc_tb):
                return None

            async def transcribe(self, audio_path):
                FakeWhisperClient.calls.append(audio_path)
                return TranscriptionResult(text="hello", words=(Word("hello", 0.5, 1.0),))

        monkeypatch.setattr("clipper_studio.cli.WhisperClient", FakeWhisperClient)

        code = _main_exit_code([
            str(source_video), "--clips", str(clips_file), "--output-dir", str(out_dir),
            "--transcribe", "--subtitle-formats", "srt",
        ])

        assert code == 0
        # Audio spanning 8s-40s is extracted once and then removed
        span_call = patched_transcoder.calls[0]
        assert span_call[:2] == ["-ss", "8"]
        assert span_call[span_call.index("-t") + 1] == "32"
        assert "-vn" in span_call
        assert len(FakeWhisperClient.calls) == 1
        assert not FakeWhisperClient.calls[0].exists()
        assert (out_dir / "clip-1.srt").read_text(encoding="utf-8") == (
            "1\n00:00:00,500 --> 00:00:01,000\nhello\n\n"
        )

    def test_transcribe_long_span_in_chunks(self, source_video, clips_file, out_dir, monkeypatch, patched_transcoder):
        class ChunkWhisperClient:
            calls = []

            async def __aenter__(self):
                return self

            async def __aexit__(self, exc_type, exc_val, exc_tb):
                return None

            async def transcribe(self, audio_path):
                ChunkWhisperClient.calls.append(audio_path)
                return TranscriptionResult(text="hello", words=(Word("hello", 2.5, 3.0),))

        monkeypatch.setattr("clipper_studio.cli.WhisperClient", ChunkWhisperClient)
        monkeypatch.setattr("clipper_studio.config.WHISPER_CHUNK_SECONDS", 20.0)

        code = _main_exit_code([
            str(source_video), "--clips", str(clips_file), "--output-dir", str(out_dir),
            "--transcribe", "--subtitle-formats", "srt", "--max-words", "1",
        ])

        assert code == 0
        # 8s-40s splits into 8s-28s and 28s-40s
        chunk_calls = patched_transcoder.calls[:2]
        assert [c[1] for c in chunk_calls] == ["8", "28"]
        assert [c[c.index("-t") + 1] for c in chunk_calls] == ["20", "12"]
        assert len(ChunkWhisperClient.calls) == 2
        assert not any(p.exists() for p in ChunkWhisperClient.calls)
        # 10.5s lands in clip-1, 30.5s in clip-2
        assert (out_dir / "clip-1.srt").read_text(encoding="utf-8") == (
            "1\n00:00:02,500 --> 00:00:03,000\nhello\n\n"
        )
        assert (out_dir / "clip-2.srt").read_text(encoding="utf-8") == (
            "1\n00:00:00,500 --> 00:00:01,000\nhello\n\n"
        )

    def test_upload_url_posts_clips(self, source_video, clips_file, out_dir, tmp_path, monkeypatch, patched_transcoder):
        uploads = []

        def handler(request):
            uploads.append(request)
            return httpx.Response(201, json={"url": "https://cdn.example.com/v/{}".format(len(uploads))})

        transport = httpx.MockTransport(handler)
        monkeypatch.setattr(
            "clipper_studio.cli.HttpArtifactStore",
            lambda url: HttpArtifactStore(url, transport=transport),
        )
        report_path = tmp_path / "report.json"

        code = _main_exit_code([
            str(source_video), "--clips", str(clips_file), "--output-dir", str(out_dir),
            "--upload-url", "https://uploads.example.com/clips", "--report", str(report_path),
        ])

        assert code == 0
        assert [str(r.url) for r in uploads] == ["https://uploads.example.com/clips"] * 2
        report = json.loads(report_path.read_text(encoding="utf-8"))
        assert [c["renders"][0]["url"] for c in report["clips"]] == [
            "https://cdn.example.com/v/1", "https://cdn.example.com/v/2",
        ]
        assert [c["renders"][0]["name"] for c in report["clips"]] == [
            "episode_clip_8s_9x16.mp4", "episode_clip_30s_9x16.mp4",
        ]
        assert not any(p.suffix == ".mp4" for p in out_dir.iterdir())

    def test_upload_url_from_environment(self, source_video, clips_file, out_dir, monkeypatch, patched_transcoder):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={"url": "https://cdn.example.com/x"})

        transport = httpx.MockTransport(handler)
        monkeypatch.setattr("clipper_studio.config.ARTIFACT_UPLOAD_URL", "https://env.example.com/up")
        monkeypatch.setattr(
            "clipper_studio.cli.HttpArtifactStore",
            lambda url: HttpArtifactStore(url, transport=transport),
        )

        assert _main_exit_code([
            str(source_video), "--clips", str(clips_file), "--output-dir", str(out_dir),
        ]) == 0
        assert seen == ["https://env.example.com/up"] * 2


class TestSetupErrors:
    def test_missing_clips_file(self, source_video, tmp_path, out_dir, patched_transcoder, capsys):
        code = _main_exit_code([
            str(source_video), "--clips", str(tmp_path / "nope.json"), "--output-dir", str(out_dir),
        ])
        assert code == 1
        assert "Cannot read clips file" in capsys.readouterr().err
        assert patched_transcoder.calls == []

    def test_invalid_clips_json(self, source_video, tmp_path, out_dir, patched_transcoder, capsys):
        bad = tmp_path / "clips.json"
        bad.write_text("[{", encoding="utf-8")
        code = _main_exit_code([str(source_video), "--clips", str(bad), "--output-dir", str(out_dir)])
        assert code == 1
        assert "Invalid JSON in clips file" in capsys.readouterr().err

    def test_bad_clip_range(self, source_video, tmp_path, out_dir, patched_transcoder):
        bad = tmp_path / "clips.json"
        bad.write_text(json.dumps([{"startTime": 20, "endTime": 8}]), encoding="utf-8")
        assert _main_exit_code([str(source_video), "--clips", str(bad), "--output-dir", str(out_dir)]) == 1

    def test_missing_source(self, tmp_path, clips_file, out_dir, patched_transcoder, capsys):
        code = _main_exit_code([
            str(tmp_path / "missing.mp4"), "--clips", str(clips_file), "--output-dir", str(out_dir),
        ])
        assert code == 1
        assert "Source video not found" in capsys.readouterr().err

    def test_unknown_subtitle_format(self, source_video, clips_file, out_dir, patched_transcoder, capsys):
        code = _main_exit_code([
            str(source_video), "--clips", str(clips_file), "--output-dir", str(out_dir),
            "--subtitle-formats", "vtt,ass",
        ])
        assert code == 1
        assert "Unknown subtitle format 'ass'" in capsys.readouterr().err

    def test_unknown_aspect_ratio(self, source_video, clips_file, out_dir, patched_transcoder):
        code = _main_exit_code([
            str(source_video), "--clips", str(clips_file), "--output-dir", str(out_dir),
            "--aspect-ratios", "4:3",
        ])
        assert code == 1


# ---------------------------------------------------------------------------
# Report builder
# ---------------------------------------------------------------------------


class TestBuildReport:
    def test_failure_result_conforms(self):
        result = ClipResult(
            clip_id="clip-1",
            status="failure",
            state=ClipState.FAILED,
            title="Error: Processing failed",
            title_source=None,
            start_time=8.0,
            end_time=20.0,
            error="Transcoder failed with code 1",
            failed_stage=ClipState.UPLOADING,
        )
        report = build_report("ep.mp4", "ep", [result])
        assert report["summary"] == {"total": 1, "succeeded": 0, "failed": 1}
        assert report["clips"][0]["failed_stage"] == "uploading"

    def test_rejects_non_conforming_report(self):
        result = ClipResult(
            clip_id="clip-1",
            status="success",
            state=ClipState.DONE,
            title="",
            title_source=None,
            start_time=8.0,
            end_time=20.0,
        )
        with pytest.raises(jsonschema.ValidationError):
            build_report("ep.mp4", "ep", [result])
