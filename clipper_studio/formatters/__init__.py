"""Subtitle formatter registry.

WHY: The CLI and HTTP layers look formatters up by a short key (the
caption endpoint's ``format`` query parameter, the CLI's
``--subtitle-formats`` flag). A central dict makes adding a format a
one-line change.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["vtt"]()``.

RULES:
- Keys are lowercase file-extension style identifiers
- Values are BaseFormatter subclasses (not instances)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from clipper_studio.formatters.srt_captions import SRTCaptionFormatter
from clipper_studio.formatters.webvtt import WebVTTFormatter

if TYPE_CHECKING:
    from clipper_studio.formatters.base import BaseFormatter

FORMATTERS: dict[str, type[BaseFormatter]] = {
    "vtt": WebVTTFormatter,
    "srt": SRTCaptionFormatter,
}
