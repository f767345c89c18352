"""Artifact stores: where finished clips are uploaded.

WHY: The orchestrator hands each rendered clip's bytes to a store and
only keeps the returned URL, name and size. The storage backend is not
its concern. A local-directory store serves the CLI and the HTTP job
server; an HTTP store forwards to an external upload endpoint.

HOW: Both classes expose ``async upload(data, key, extension)`` and
return a StoredArtifact. Keys are sanitized into safe file names.

RULES:
- Names are "{key}.{extension}" with unsafe characters replaced by "_"
- Any I/O or HTTP failure raises UploadError
- HttpArtifactStore expects a JSON body {url, name, size} on success
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

import httpx

from clipper_studio.config import ARTIFACT_UPLOAD_URL
from clipper_studio.core.errors import UploadError
from clipper_studio.core.ir import StoredArtifact

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def artifact_name(key: str, extension: str) -> str:
    safe_key = _UNSAFE_CHARS.sub("_", key).strip("._") or "artifact"
    return "{}.{}".format(safe_key, extension.lstrip("."))


class LocalArtifactStore:
    """Stores artifacts as files in a directory."""

    def __init__(self, root: Path, base_url: Optional[str] = None) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/") if base_url else None

    async def upload(self, data: bytes, key: str, extension: str) -> StoredArtifact:
        name = artifact_name(key, extension)
        path = self.root / name
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise UploadError("Failed to store {}: {}".format(name, exc))

        url = "{}/{}".format(self.base_url, name) if self.base_url else path.resolve().as_uri()
        logger.info("Stored artifact %s (%d bytes)", name, len(data))
        return StoredArtifact(url=url, name=name, size=len(data))


class HttpArtifactStore:
    """Uploads artifacts to an HTTP endpoint as multipart form data.

    RULES:
    - Use as: async with HttpArtifactStore() as store: ...
    - upload_url defaults to ARTIFACT_UPLOAD_URL from config
    """

    def __init__(
        self,
        upload_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._upload_url = upload_url or ARTIFACT_UPLOAD_URL
        if not self._upload_url:
            raise ValueError(
                "Artifact upload URL not configured. "
                "Add ARTIFACT_UPLOAD_URL to the .env file in the app folder."
            )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> HttpArtifactStore:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(300.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    async def upload(self, data: bytes, key: str, extension: str) -> StoredArtifact:
        if self._client is None:
            raise RuntimeError("HttpArtifactStore must be used as an async context manager")
        name = artifact_name(key, extension)
        try:
            resp = await self._client.post(
                self._upload_url,
                files={"file": (name, data, "application/octet-stream")},
                data={"key": key, "extension": extension.lstrip(".")},
            )
        except httpx.HTTPError as exc:
            raise UploadError("Upload of {} failed: {}".format(name, exc))

        if resp.status_code not in (200, 201):
            raise UploadError(
                "Upload of {} rejected ({}): {}".format(name, resp.status_code, resp.text[:200])
            )
        try:
            body = resp.json()
            return StoredArtifact(
                url=str(body["url"]),
                name=str(body.get("name", name)),
                size=int(body.get("size", len(data))),
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise UploadError("Malformed upload response for {}: {}".format(name, exc))
