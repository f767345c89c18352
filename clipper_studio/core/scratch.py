"""Scratch-file naming and scoped cleanup.

WHY: Subtitle files, per-line text files, filter scripts, extracted
audio and downloaded sources all land in one shared scratch directory.
Two pipeline runs may overlap, so names must never collide, and every
file must be removed on every exit path by whoever created it.

HOW: unique_stamp() yields "{epoch_ms}_{random}" tokens, which
unique_scratch_path() and every rendered-file name embed. ScratchFiles is
a context manager that remembers the paths registered with it and deletes
them on exit, success or failure.

RULES:
- Names combine a millisecond timestamp with a random hex suffix
- Cleanup never raises; failures are logged as warnings
- Deleting an already-missing file is not an error
"""

from __future__ import annotations

import logging
import time
import uuid
from pathlib import Path
from typing import Iterable, List, Optional

from clipper_studio.config import SCRATCH_DIR

logger = logging.getLogger(__name__)


def unique_stamp(timestamp_ms: Optional[int] = None) -> str:
    """Return "{epoch_ms}_{random}" for naming files that must not collide."""
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return "{}_{}".format(stamp, uuid.uuid4().hex[:9])


def unique_scratch_path(
    prefix: str,
    suffix: str,
    directory: Optional[Path] = None,
) -> Path:
    """Return a collision-free path inside the scratch directory."""
    base = Path(directory) if directory is not None else SCRATCH_DIR
    name = "{}_{}{}".format(prefix, unique_stamp(), suffix)
    return base / name


def remove_quietly(paths: Iterable[Path]) -> int:
    """Delete files best-effort and return how many were removed."""
    removed = 0
    for path in paths:
        try:
            Path(path).unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Failed to remove scratch file %s: %s", path, exc)
    return removed


class ScratchFiles:
    """Scoped set of scratch files deleted together on exit.

    Usage:
        with ScratchFiles() as scratch:
            path = scratch.track(unique_scratch_path("caption", ".txt"))
            path.write_text("...")
        # path is gone here, even if the block raised
    """

    def __init__(self) -> None:
        self._paths: List[Path] = []

    @property
    def paths(self) -> List[Path]:
        return list(self._paths)

    def track(self, path: Path) -> Path:
        self._paths.append(Path(path))
        return Path(path)

    def cleanup(self) -> int:
        removed = remove_quietly(self._paths)
        if self._paths:
            logger.debug("Removed %d/%d scratch files", removed, len(self._paths))
        self._paths = []
        return removed

    def __enter__(self) -> ScratchFiles:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.cleanup()
