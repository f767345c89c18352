"""Async HTTP client for the Whisper speech-to-text API.

WHY: Clips without an upstream title can be re-titled from their own
audio, and the CLI can transcribe a source that arrives without a word
list. Both need text plus word-level timestamps from one upload.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. WhisperClient is an
async context manager: enter it to get an authenticated client, exit to
close the connection pool. transcribe() posts the audio file as
multipart form data requesting verbose JSON with word granularity.

RULES:
- Always use the async context manager (async with WhisperClient() as client:)
- api_key defaults to load_api_key() from .env
- Non-2xx responses raise TranscriptionError with the status code
- Network errors raise TranscriptionError (status_code None)
- Words with empty text are dropped
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from clipper_studio.config import OPENAI_BASE_URL, WHISPER_MODEL, load_api_key
from clipper_studio.core.errors import TranscriptionError
from clipper_studio.core.ir import TranscriptionResult, Word

logger = logging.getLogger(__name__)


def parse_verbose_json(data: Dict[str, Any]) -> TranscriptionResult:
    """Convert a verbose_json response body into a TranscriptionResult."""
    words: List[Word] = []
    for item in data.get("words") or []:
        text = str(item.get("word", "")).strip()
        if not text:
            continue
        words.append(Word(word=text, start=float(item["start"]), end=float(item["end"])))
    return TranscriptionResult(text=str(data.get("text", "")).strip(), words=tuple(words))


class WhisperClient:
    """Async client for the audio transcription endpoint.

    RULES:
    - Use as: async with WhisperClient() as client: ...
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key or load_api_key()
        self._base_url = (base_url or OPENAI_BASE_URL).rstrip("/")
        self._model = model or WHISPER_MODEL
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> WhisperClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": "Bearer {}".format(self._api_key)},
            timeout=httpx.Timeout(300.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "WhisperClient must be used as an async context manager: "
                "async with WhisperClient() as client: ..."
            )
        return self._client

    async def transcribe(self, audio_path: Path) -> TranscriptionResult:
        """Transcribe an audio file and return text plus word timings.

        Args:
            audio_path: Path to the audio file (WAV/MP3/M4A...).

        Returns:
            TranscriptionResult with text and words.

        Raises:
            TranscriptionError: On HTTP or network failure.
        """
        client = self._ensure_client()
        audio_path = Path(audio_path)
        logger.info("Transcribing %s (%d bytes)", audio_path.name, audio_path.stat().st_size)

        try:
            with open(audio_path, "rb") as f:
                resp = await client.post(
                    "/audio/transcriptions",
                    files={"file": (audio_path.name, f, "audio/wav")},
                    data={
                        "model": self._model,
                        "response_format": "verbose_json",
                        "timestamp_granularities[]": "word",
                    },
                )
        except httpx.HTTPError as exc:
            raise TranscriptionError("Transcription request failed: {}".format(exc))

        if resp.status_code != 200:
            raise TranscriptionError(
                "Transcription API error {}: {}".format(resp.status_code, resp.text[:200]),
                status_code=resp.status_code,
            )

        result = parse_verbose_json(resp.json())
        logger.info("Transcribed %d words", len(result.words))
        return result
