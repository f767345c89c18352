"""Media sources: a tagged union resolved once to a local file.

WHY: A source video may arrive as a URL to download, a path already on
disk, or raw bytes from an upload. Downstream stages only ever want a
local path, so the shape is settled once at ingestion instead of being
probed ad hoc by every caller.

HOW: Three frozen dataclasses (UrlSource, FileSource, BytesSource) form
the MediaSource union. resolve_media() dispatches on the variant and
returns a ResolvedMedia holding the local path and whether the pipeline
owns (and must delete) that file.

RULES:
- FileSource paths are used in place and never deleted
- UrlSource downloads stream into the scratch dir via httpx
- BytesSource content is written to the scratch dir
- Owned files are removed by ResolvedMedia.cleanup()
- A missing file or a failed download raises ValidationError
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

import httpx

from clipper_studio.core.errors import ValidationError
from clipper_studio.core.scratch import remove_quietly, unique_scratch_path

logger = logging.getLogger(__name__)

_DOWNLOAD_TIMEOUT = httpx.Timeout(600.0, connect=30.0)


@dataclass(frozen=True)
class UrlSource:
    url: str


@dataclass(frozen=True)
class FileSource:
    path: Path


@dataclass(frozen=True)
class BytesSource:
    data: bytes
    filename: str = "source.mp4"


MediaSource = Union[UrlSource, FileSource, BytesSource]


@dataclass
class ResolvedMedia:
    """A media source materialized as a local file."""

    path: Path
    owned: bool
    display_name: str

    def cleanup(self) -> None:
        if self.owned:
            remove_quietly([self.path])


def media_source_from_string(value: str) -> MediaSource:
    """Classify a CLI/config string as a URL or a file path."""
    scheme = urlparse(value).scheme.lower()
    if scheme in ("http", "https"):
        return UrlSource(url=value)
    return FileSource(path=Path(value))


def _suffix_for(name: str, default: str = ".mp4") -> str:
    suffix = Path(name).suffix.lower()
    return suffix if suffix else default


async def _download(
    url: str,
    scratch_dir: Optional[Path],
    client: Optional[httpx.AsyncClient],
) -> Path:
    target = unique_scratch_path("source", _suffix_for(urlparse(url).path), scratch_dir)
    target.parent.mkdir(parents=True, exist_ok=True)
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=_DOWNLOAD_TIMEOUT, follow_redirects=True)
    try:
        async with http.stream("GET", url) as resp:
            if resp.status_code != 200:
                raise ValidationError(
                    "Failed to download source video ({}): {}".format(resp.status_code, url)
                )
            with open(target, "wb") as f:
                async for chunk in resp.aiter_bytes():
                    f.write(chunk)
    except httpx.HTTPError as exc:
        remove_quietly([target])
        raise ValidationError("Failed to download source video: {}".format(exc))
    except ValidationError:
        remove_quietly([target])
        raise
    finally:
        if owns_client:
            await http.aclose()

    logger.info("Downloaded %s (%d bytes)", url, target.stat().st_size)
    return target


async def resolve_media(
    source: MediaSource,
    scratch_dir: Optional[Path] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ResolvedMedia:
    """Materialize a MediaSource as a local file.

    Args:
        source: The URL, file, or bytes variant.
        scratch_dir: Where downloaded/written files go (default SCRATCH_DIR).
        client: Optional httpx client used for URL downloads.

    Returns:
        ResolvedMedia with the local path and ownership flag.

    Raises:
        ValidationError: If the file is missing or the download fails.
    """
    if isinstance(source, FileSource):
        path = Path(source.path)
        if not path.is_file():
            raise ValidationError("Source video not found: {}".format(path))
        return ResolvedMedia(path=path, owned=False, display_name=path.stem)

    if isinstance(source, UrlSource):
        path = await _download(source.url, scratch_dir, client)
        name = Path(urlparse(source.url).path).stem or "Video"
        return ResolvedMedia(path=path, owned=True, display_name=name)

    if isinstance(source, BytesSource):
        if not source.data:
            raise ValidationError("Source video is empty")
        path = unique_scratch_path("source", _suffix_for(source.filename), scratch_dir)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(source.data)
        return ResolvedMedia(
            path=path, owned=True, display_name=Path(source.filename).stem or "Video"
        )

    raise ValidationError("Unsupported media source: {!r}".format(source))
