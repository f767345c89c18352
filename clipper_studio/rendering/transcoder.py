"""Async invocation of the external transcoder and resolution probe.

WHY: Every cut, extraction, burn and probe is an external process. The
pipeline must suspend on it without blocking the event loop, bound how
long it may run, and interpret only its exit code and stderr. Keeping
that in one class gives tests a single seam to replace.

HOW: Transcoder.run() spawns ``ffmpeg -hide_banner <args>`` with
asyncio.create_subprocess_exec and waits via asyncio.wait_for. A timeout
kills the process. Spawn failures and timeouts are folded into a
TranscodeResult so callers only ever inspect one result shape.
Transcoder.probe() runs ffprobe for the first video stream's size.

RULES:
- run() never raises for process failures; it returns a TranscodeResult
- Spawn failure -> exit_code 127; timeout -> exit_code -9, timed_out=True
- timeout_s per call overrides the instance default; 0 disables it
- probe() raises TranscodeError when ffprobe fails or prints garbage
- The full command is logged at DEBUG, failures at ERROR with a stderr tail
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

from clipper_studio import config
from clipper_studio.core.errors import TranscodeError
from clipper_studio.core.ir import RenderArtifact, VideoDimensions
from clipper_studio.core.scratch import remove_quietly

logger = logging.getLogger(__name__)

SPAWN_FAILED_EXIT_CODE = 127
TIMEOUT_EXIT_CODE = -9

_PROGRESS_RE = re.compile(r"time=(\d{2}:\d{2}:\d{2}\.\d{2})")


@dataclass(frozen=True)
class TranscodeResult:
    """Outcome of one transcoder process."""

    exit_code: int
    stderr: str
    stdout: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def stderr_tail(self, chars: int = 500) -> str:
        return self.stderr[-chars:]


class Transcoder:
    """Runs ffmpeg/ffprobe as async subprocesses.

    Usage:
        transcoder = Transcoder()
        result = await transcoder.run(["-i", "in.mp4", "-y", "out.mp4"], timeout_s=120)
        dims = await transcoder.probe(Path("in.mp4"))
    """

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        ffprobe_path: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path or config.FFMPEG_PATH
        self.ffprobe_path = ffprobe_path or config.FFPROBE_PATH
        self.timeout_s = timeout_s if timeout_s is not None else config.transcode_timeout()

    def _effective_timeout(self, timeout_s: Optional[float]) -> Optional[float]:
        value = self.timeout_s if timeout_s is None else timeout_s
        if value is None or value <= 0:
            return None
        return value

    async def _execute(self, cmd: List[str], timeout_s: Optional[float]) -> TranscodeResult:
        logger.debug("Running: %s", " ".join(cmd))
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
            )
        except OSError as exc:
            logger.error("Failed to start %s: %s", cmd[0], exc)
            return TranscodeResult(
                exit_code=SPAWN_FAILED_EXIT_CODE,
                stderr="spawn failed: {}".format(exc),
            )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout_s)
        except asyncio.TimeoutError:
            try:
                process.kill()
            except ProcessLookupError:
                # exited between the deadline and the kill
                pass
            await process.wait()
            logger.error("%s timed out after %ss", cmd[0], timeout_s)
            return TranscodeResult(
                exit_code=TIMEOUT_EXIT_CODE,
                stderr="timed out after {}s".format(timeout_s),
                timed_out=True,
            )

        result = TranscodeResult(
            exit_code=process.returncode if process.returncode is not None else -1,
            stderr=stderr.decode("utf-8", errors="replace"),
            stdout=stdout.decode("utf-8", errors="replace"),
        )
        progress = _PROGRESS_RE.findall(result.stderr)
        if progress:
            logger.debug("Last reported position: %s", progress[-1])
        if result.ok:
            logger.info("%s exited with code 0", Path(cmd[0]).name)
        else:
            logger.error(
                "%s exited with code %d: %s",
                Path(cmd[0]).name, result.exit_code, result.stderr_tail(),
            )
        return result

    async def run(
        self,
        args: Sequence[str],
        timeout_s: Optional[float] = None,
    ) -> TranscodeResult:
        """Run ffmpeg with the given argument list.

        Args:
            args: Arguments after the binary name.
            timeout_s: Deadline for this call; None uses the instance
                default, 0 disables the deadline.

        Returns:
            TranscodeResult with exit code and captured stderr.
        """
        cmd = [self.ffmpeg_path, "-hide_banner"] + [str(a) for a in args]
        return await self._execute(cmd, self._effective_timeout(timeout_s))

    async def probe(
        self,
        path: Union[str, Path],
        timeout_s: Optional[float] = None,
    ) -> VideoDimensions:
        """Return the pixel dimensions of the first video stream.

        Raises:
            TranscodeError: If ffprobe fails or its output cannot be parsed.
        """
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", "stream=width,height",
            "-of", "csv=p=0",
            str(path),
        ]
        result = await self._execute(cmd, self._effective_timeout(timeout_s))
        if not result.ok:
            raise TranscodeError(
                "ffprobe failed with code {}".format(result.exit_code),
                exit_code=result.exit_code,
                stderr=result.stderr,
            )
        return parse_probe_output(result.stdout)


def parse_probe_output(stdout: str) -> VideoDimensions:
    """Parse ``width,height`` as printed by ffprobe's csv writer."""
    first = stdout.strip().splitlines()[0] if stdout.strip() else ""
    parts = [p for p in first.split(",") if p]
    try:
        width, height = int(parts[0]), int(parts[1])
    except (IndexError, ValueError):
        raise TranscodeError("Failed to parse video dimensions: {!r}".format(stdout))
    logger.debug("Detected video dimensions %dx%d", width, height)
    return VideoDimensions(width=width, height=height)


def artifact_from_result(
    result: TranscodeResult,
    output_path: Path,
    duration: float,
    error_cls: type = TranscodeError,
    action: str = "Transcode",
) -> RenderArtifact:
    """Turn a finished transcoder call into a RenderArtifact or raise.

    A partial output file left by a failed call is deleted before raising.

    Raises:
        TranscodeError (or error_cls): On non-zero exit or missing output.
    """
    if not result.ok:
        remove_quietly([output_path])
        reason = "timed out" if result.timed_out else "failed with code {}".format(result.exit_code)
        raise error_cls(
            "{} {}: {}".format(action, reason, result.stderr_tail(200).strip()),
            exit_code=result.exit_code,
            stderr=result.stderr,
        )
    if not output_path.is_file():
        raise error_cls(
            "{} produced no output file: {}".format(action, output_path),
            exit_code=None,
            stderr=result.stderr,
        )
    size = output_path.stat().st_size
    logger.info("%s wrote %s (%.2f MB)", action, output_path.name, size / 1024 / 1024)
    return RenderArtifact(
        file_path=output_path,
        file_name=output_path.name,
        size=size,
        duration=duration,
    )
