"""Per-platform caption presets for the drawtext overlay path.

WHY: Each social platform gets slightly different caption styling
(TikTok captions are larger with a heavier border than YouTube's).
Keeping the presets as a closed enum-to-struct map means an unknown
platform string can never reach the filter builder; it is resolved to a
real preset once, at the boundary.

HOW: CaptionPlatform enumerates the known platforms. PLATFORM_STYLES maps
every member to a frozen PlatformStyling record. resolve_platform() turns
any caller-supplied key into a member, falling back to DEFAULT.

RULES:
- Every CaptionPlatform member has an entry in PLATFORM_STYLES
- Unknown or empty keys resolve to CaptionPlatform.DEFAULT (no error)
- Key matching is case-insensitive
- All presets use white text with a black border
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Optional, Union


class CaptionPlatform(str, enum.Enum):
    """Platforms with a dedicated caption preset."""

    TIKTOK = "tiktok"
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"
    DEFAULT = "default"


@dataclass(frozen=True)
class PlatformStyling:
    """Drawtext styling for one platform."""

    font_size: int
    font_color: str
    outline_color: str
    outline_width: int
    font_family: str


PLATFORM_STYLES: Dict[CaptionPlatform, PlatformStyling] = {
    CaptionPlatform.TIKTOK: PlatformStyling(
        font_size=48,
        font_color="white",
        outline_color="black",
        outline_width=3,
        font_family="Arial Black",
    ),
    CaptionPlatform.INSTAGRAM: PlatformStyling(
        font_size=44,
        font_color="white",
        outline_color="black",
        outline_width=2,
        font_family="Arial Bold",
    ),
    CaptionPlatform.YOUTUBE: PlatformStyling(
        font_size=40,
        font_color="white",
        outline_color="black",
        outline_width=2,
        font_family="Arial",
    ),
    CaptionPlatform.DEFAULT: PlatformStyling(
        font_size=42,
        font_color="white",
        outline_color="black",
        outline_width=2,
        font_family="Arial",
    ),
}


def resolve_platform(key: Optional[Union[str, CaptionPlatform]]) -> CaptionPlatform:
    """Resolve a platform key to a CaptionPlatform, defaulting on unknowns."""
    if isinstance(key, CaptionPlatform):
        return key
    if not key:
        return CaptionPlatform.DEFAULT
    try:
        return CaptionPlatform(str(key).strip().lower())
    except ValueError:
        return CaptionPlatform.DEFAULT


def platform_styling(key: Optional[Union[str, CaptionPlatform]]) -> PlatformStyling:
    """Return the styling for a platform key (DEFAULT for unknown keys)."""
    return PLATFORM_STYLES[resolve_platform(key)]
