"""Command-line interface for Clipper Studio.

WHY: Editors and batch scripts need to cut a set of highlight clips out
of one source video without running the HTTP server. The CLI wires the
whole pipeline (source resolution, transcript loading or transcription,
caption segmentation, cutting, titling and storage) behind one command.

HOW: argparse collects the source, the clip list, caption and aspect
options. The async pipeline runs via asyncio.run(). Rendered clips are
stored in --output-dir through a LocalArtifactStore, or posted to an
upload endpoint through an HttpArtifactStore when --upload-url (or
ARTIFACT_UPLOAD_URL) is set; an optional JSON report lists one result
per clip. Status messages go to stderr.

RULES:
- Positional argument: SOURCE, a local video path or an http(s) URL
- --clips is required; --transcript and --transcribe are mutually exclusive
- --transcribe transcribes the audio spanning all clips in upload-sized
  chunks and shifts the word timings back onto the source timeline
- --subtitle-formats writes per-clip caption documents next to the clips
- Exit code 0 when every clip succeeded, 1 otherwise (including setup errors)
- Status output goes to stderr (not stdout)
- Python 3.9 compatible: no match/case, no X | Y unions
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import jsonschema

from clipper_studio import __version__, config
from clipper_studio.api.storage import HttpArtifactStore, LocalArtifactStore
from clipper_studio.api.whisper import WhisperClient
from clipper_studio.core.errors import ClipperError
from clipper_studio.core.ir import (
    ClipDescriptor,
    Word,
    clips_from_payload,
    words_from_payload,
)
from clipper_studio.core.media import media_source_from_string, resolve_media
from clipper_studio.core.segmenter import rebase_lines
from clipper_studio.core.timecode import format_offset
from clipper_studio.formatters import FORMATTERS
from clipper_studio.pipeline.orchestrator import ClipPipeline, ClipResult, PipelineOptions
from clipper_studio.pipeline.transcription import chunk_ranges, transcribe_range
from clipper_studio.rendering.cutter import parse_aspect_ratio, parse_caption_strategy
from clipper_studio.rendering.style import CaptionStyleConfig
from clipper_studio.rendering.transcoder import Transcoder


_REPORT_SCHEMA_PATH = Path(__file__).resolve().parent / "clip_report_schema.json"

_CACHED_REPORT_SCHEMA = None  # type: Optional[Dict[str, Any]]


def _report_schema() -> Dict[str, Any]:
    """Load the report JSON schema once per process."""
    global _CACHED_REPORT_SCHEMA
    if _CACHED_REPORT_SCHEMA is None:
        with open(_REPORT_SCHEMA_PATH, encoding="utf-8") as f:
            _CACHED_REPORT_SCHEMA = json.load(f)
    return _CACHED_REPORT_SCHEMA


def _status(msg: str) -> None:
    """Print a status message to stderr, flushed immediately."""
    print(msg, file=sys.stderr, flush=True)


def _load_json(path: str, what: str) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except OSError as exc:
        raise ClipperError("Cannot read {} file {}: {}".format(what, path, exc))
    except ValueError as exc:
        raise ClipperError("Invalid JSON in {} file {}: {}".format(what, path, exc))


async def _transcribe_span(
    source_path: Path,
    clips: Sequence[ClipDescriptor],
    transcoder: Transcoder,
    scratch_dir: Path,
) -> List[Word]:
    """Transcribe the audio covering every clip, on the source timeline.

    Only the span from the earliest clip start to the latest clip end is
    transcribed, so a long source is never sent whole.
    """
    span_start = min(c.start_time for c in clips)
    span_end = max(c.end_time for c in clips)
    _status("Transcribing {}s-{}s in {} chunk(s)...".format(
        format_offset(span_start), format_offset(span_end),
        len(chunk_ranges(span_start, span_end)),
    ))
    async with WhisperClient() as client:
        result = await transcribe_range(
            source_path, span_start, span_end, client, scratch_dir, transcoder=transcoder,
        )
    _status("  Transcribed {} words".format(len(result.words)))
    return list(result.words)


def _write_subtitles(
    results: Sequence[ClipResult],
    clips: Sequence[ClipDescriptor],
    words: Optional[Sequence[Word]],
    pipeline: ClipPipeline,
    format_keys: Sequence[str],
    output_dir: Path,
) -> List[Path]:
    """Write one caption document per successful clip and format."""
    lines = pipeline.caption_lines(words)
    saved = []
    for result, clip in zip(results, clips):
        if not result.succeeded:
            continue
        local = rebase_lines(lines, clip.start_time, clip.end_time)
        title = "Clip {}s-{}s".format(format_offset(clip.start_time), format_offset(clip.end_time))
        for key in format_keys:
            for output in FORMATTERS[key]().format(local, title=title):
                path = output_dir / "{}{}".format(clip.id, output.suffix)
                path.write_text(output.content, encoding="utf-8")
                saved.append(path)
    return saved


def build_report(
    source: str,
    project_id: str,
    results: Sequence[ClipResult],
) -> Dict[str, Any]:
    """Build the JSON results report written by --report.

    Raises:
        jsonschema.ValidationError: If the report does not conform to
            clip_report_schema.json.
    """
    succeeded = sum(1 for r in results if r.succeeded)
    report = {
        "version": __version__,
        "source": source,
        "project_id": project_id,
        "summary": {
            "total": len(results),
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
        },
        "clips": [r.to_dict() for r in results],
    }
    jsonschema.validate(instance=report, schema=_report_schema())
    return report


def _pipeline_options(args: argparse.Namespace) -> PipelineOptions:
    style = CaptionStyleConfig(
        font=args.font, size=args.size, weight=args.weight, position=args.position
    )
    return PipelineOptions(
        enable_captions=args.captions,
        caption_platform=args.caption_style,
        max_words_per_line=args.max_words,
        caption_position=args.position,
        caption_strategy=parse_caption_strategy(args.strategy).value,
        caption_style=style,
        aspect_ratios=tuple(
            parse_aspect_ratio(r).value for r in args.aspect_ratios.split(",") if r.strip()
        ),
        retitle_from_audio=args.retitle,
        include_preview=args.preview,
        timeout_s=args.timeout,
    )


async def _run_pipeline(args: argparse.Namespace) -> int:
    """Execute the clip pipeline and return the process exit code.

    RULES:
    - Setup errors (bad files, bad options, missing API key) -> 1
    - Otherwise 0 only when every clip succeeded
    - A downloaded source is deleted before returning
    """
    output_dir = Path(args.output_dir).resolve()
    media = None
    try:
        clips = clips_from_payload(_load_json(args.clips, "clips"))
        words = None  # type: Optional[List[Word]]
        if args.transcript:
            words = words_from_payload(_load_json(args.transcript, "transcript"))

        format_keys = []  # type: List[str]
        if args.subtitle_formats:
            format_keys = [f.strip() for f in args.subtitle_formats.split(",") if f.strip()]
            for key in format_keys:
                if key not in FORMATTERS:
                    raise ClipperError("Unknown subtitle format '{}'. Available: {}".format(
                        key, ", ".join(sorted(FORMATTERS))
                    ))

        options = _pipeline_options(args)
        output_dir.mkdir(parents=True, exist_ok=True)
        transcoder = Transcoder(timeout_s=args.timeout)

        _status("Resolving source {}...".format(args.source))
        media = await resolve_media(media_source_from_string(args.source))
        if args.transcribe:
            words = await _transcribe_span(media.path, clips, transcoder, config.SCRATCH_DIR)

        project_id = args.project_id or media.display_name
        work_dir = output_dir / ".work"

        upload_url = args.upload_url or config.ARTIFACT_UPLOAD_URL
        async with contextlib.AsyncExitStack() as stack:
            if upload_url:
                store = await stack.enter_async_context(HttpArtifactStore(upload_url))
            else:
                store = LocalArtifactStore(output_dir)
            transcriber = None
            if options.retitle_from_audio:
                transcriber = await stack.enter_async_context(WhisperClient())
            pipeline = ClipPipeline(
                store=store,
                transcoder=transcoder,
                transcriber=transcriber,
                options=options,
                on_state=lambda clip_id, state: _status("  [{}] {}".format(clip_id, state.value)),
            )
            _status("Processing {} clip(s)...".format(len(clips)))
            results = await pipeline.process(
                media.path,
                clips,
                project_id=project_id,
                source_name=media.display_name,
                words=words,
                work_dir=work_dir,
            )
        if format_keys:
            for path in _write_subtitles(results, clips, words, pipeline, format_keys, output_dir):
                _status("  Saved: {}".format(path.name))

    except (ClipperError, ValueError, OSError) as exc:
        # Config errors (missing API key, bad clip list, unreadable files)
        print("Error: {}".format(exc), file=sys.stderr)
        return 1
    finally:
        if media is not None:
            media.cleanup()

    if work_dir.is_dir() and not any(work_dir.iterdir()):
        work_dir.rmdir()

    if args.report:
        report = build_report(args.source, project_id, results)
        Path(args.report).write_text(json.dumps(report, indent=2), encoding="utf-8")
        _status("Report written to {}".format(args.report))

    succeeded = sum(1 for r in results if r.succeeded)
    _status("")
    _status("Done! {}/{} clip(s) succeeded, stored in {}".format(
        succeeded, len(results), upload_url or output_dir
    ))
    for result in results:
        if result.succeeded:
            _status("  {} {!r} ({})".format(
                result.clip_id, result.title, ", ".join(r.name for r in result.renders)
            ))
        else:
            _status("  {} FAILED at {}: {}".format(
                result.clip_id,
                result.failed_stage.value if result.failed_stage else "?",
                result.error,
            ))
    return 0 if succeeded == len(results) else 1


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    Kept separate from main() so tests can inspect the parser without
    running the pipeline.
    """
    parser = argparse.ArgumentParser(
        prog="clipper-studio",
        description="Cut highlight clips from a video, reframe them for social "
                    "feeds, and burn in word-timed captions.",
    )

    parser.add_argument(
        "source",
        help="Source video: a local file path or an http(s) URL.",
    )
    parser.add_argument(
        "--clips",
        required=True,
        help="JSON file with the clip list ([{id, startTime, endTime, viralityScore, title}]).",
    )

    transcript_group = parser.add_mutually_exclusive_group()
    transcript_group.add_argument(
        "--transcript",
        default=None,
        help="JSON file with the word-level transcript ([{word, start, end}]).",
    )
    transcript_group.add_argument(
        "--transcribe",
        action="store_true",
        help="Transcribe the source audio instead of reading --transcript.",
    )

    parser.add_argument(
        "--output-dir",
        default="clips",
        help="Directory to store rendered clips in (default: %(default)s).",
    )
    parser.add_argument(
        "--upload-url",
        default=None,
        help="Post clips to this upload endpoint instead of --output-dir "
             "(default: ARTIFACT_UPLOAD_URL).",
    )
    parser.add_argument(
        "--project-id",
        default=None,
        help="Prefix for stored clip names (default: the source name).",
    )
    parser.add_argument(
        "--aspect-ratios",
        default="9:16",
        help="Comma-separated aspect ratios to render: 9:16, 2.35:1, original "
             "(default: %(default)s).",
    )
    parser.add_argument(
        "--captions",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Burn captions into each clip (default: %(default)s).",
    )
    parser.add_argument(
        "--caption-style",
        default=config.DEFAULT_CAPTION_PLATFORM,
        help="Caption preset: tiktok, instagram, youtube, default (default: %(default)s).",
    )
    parser.add_argument(
        "--position",
        default="bottom",
        choices=["top", "center", "bottom"],
        help="Caption position (default: %(default)s).",
    )
    parser.add_argument(
        "--strategy",
        default="drawtext",
        choices=["drawtext", "subtitles"],
        help="Caption renderer (default: %(default)s).",
    )
    parser.add_argument(
        "--font",
        default="roboto",
        help="Caption font key (default: %(default)s).",
    )
    parser.add_argument(
        "--size",
        default="medium",
        help="Caption size: verysmall, small, medium, large (default: %(default)s).",
    )
    parser.add_argument(
        "--weight",
        default="normal",
        help="Caption weight: light ... extrabold (default: %(default)s).",
    )
    parser.add_argument(
        "--max-words",
        type=int,
        default=config.DEFAULT_MAX_WORDS_PER_LINE,
        help="Maximum words per caption line (default: %(default)s).",
    )
    parser.add_argument(
        "--retitle",
        action="store_true",
        help="Transcribe each clip's audio to title clips that have no title.",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Also render a fast low-quality preview per clip.",
    )
    parser.add_argument(
        "--subtitle-formats",
        default=None,
        help="Comma-separated caption documents to write per clip. "
             "Available: {}.".format(", ".join(sorted(FORMATTERS.keys()))),
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Deadline in seconds for each transcoder call (0 disables; "
             "default: TRANSCODE_TIMEOUT_S).",
    )
    parser.add_argument(
        "--report",
        default=None,
        help="Write a JSON report with one result per clip to this file.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log debug output, including every transcoder command.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    - Always exits through sys.exit with the pipeline's exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    sys.exit(asyncio.run(_run_pipeline(args)))


if __name__ == "__main__":
    main()
