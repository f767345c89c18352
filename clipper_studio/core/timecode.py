"""Timestamp formatting shared by filters, subtitle documents and titles.

RULES:
- format_offset renders seconds compactly: 12.0 -> "12", 12.5 -> "12.5"
- srt_timestamp uses a comma separator: 00:01:02,345
- vtt_timestamp uses a dot separator:   00:01:02.345
- Negative inputs are clamped to zero
"""

from __future__ import annotations

import math


def format_offset(seconds: float) -> str:
    """Render a seconds value without trailing zeros (max 3 decimals)."""
    text = "{:.3f}".format(max(0.0, float(seconds))).rstrip("0").rstrip(".")
    return text or "0"


def _split(seconds: float):
    # Truncate to whole milliseconds; the epsilon absorbs float error (0.3 * 1000)
    total_ms = int(math.floor(max(0.0, float(seconds)) * 1000 + 1e-6))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return hours, minutes, secs, millis


def srt_timestamp(seconds: float) -> str:
    """Format seconds as an SRT timestamp (HH:MM:SS,mmm)."""
    return "{:02d}:{:02d}:{:02d},{:03d}".format(*_split(seconds))


def vtt_timestamp(seconds: float) -> str:
    """Format seconds as a WebVTT timestamp (HH:MM:SS.mmm)."""
    return "{:02d}:{:02d}:{:02d}.{:03d}".format(*_split(seconds))
