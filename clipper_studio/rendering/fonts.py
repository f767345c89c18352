"""Font registry for burned-in captions.

WHY: Users choose a caption font by a short key ("roboto", "anton").
The subtitle renderer needs the family name it will match inside the
bundled .ttf files, plus the directory those files live in.

HOW: CAPTION_FONTS is a static table of CaptionFont records.
resolve_font() maps a key to a record with a silent fallback to the
default font; get_font() is the strict variant. fonts_directory() returns
the configured fonts dir for the renderer's fontsdir option.

RULES:
- DEFAULT_FONT_KEY is "roboto"
- Keys are matched exactly first, then case-insensitively
- The only I/O is checking that bundled font files exist
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from clipper_studio import config
from clipper_studio.core.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_FONT_KEY = "roboto"


@dataclass(frozen=True)
class CaptionFont:
    """One bundled caption font.

    RULES:
    - display_name is the family name the renderer matches on
    - font_file / bold_file are names relative to the fonts directory
    """

    key: str
    display_name: str
    font_file: str
    bold_file: str
    description: str


CAPTION_FONTS: Dict[str, CaptionFont] = {
    font.key: font
    for font in (
        CaptionFont("raleway", "Raleway", "Raleway-Regular.ttf", "Raleway-Bold.ttf",
                    "Elegant & Modern - Sophisticated style"),
        CaptionFont("inter", "Inter", "Inter-Regular.ttf", "Inter-Bold.ttf",
                    "Digital & Clean - Perfect readability"),
        CaptionFont("bebasNeue", "Bebas Neue", "BebasNeue-Regular.ttf", "BebasNeue-Regular.ttf",
                    "Bold & Condensed - Perfect for viral content"),
        CaptionFont("montserrat", "Montserrat", "Montserrat-Regular.ttf", "Montserrat-Bold.ttf",
                    "Clean & Modern - Professional look"),
        CaptionFont("anton", "Anton", "Anton-Regular.ttf", "Anton-Regular.ttf",
                    "Heavy & Impactful - Attention-grabbing"),
        CaptionFont("oswald", "Oswald", "Oswald-Regular.ttf", "Oswald-Bold.ttf",
                    "Tall & Narrow - Space-efficient"),
        CaptionFont("roboto", "Roboto", "Roboto-Regular.ttf", "Roboto-Bold.ttf",
                    "Standard & Reliable - Universal support"),
    )
}

_KEYS_BY_LOWER = {key.lower(): key for key in CAPTION_FONTS}


def _lookup(key: Optional[str]) -> Optional[CaptionFont]:
    if not key:
        return None
    font = CAPTION_FONTS.get(key)
    if font is None:
        canonical = _KEYS_BY_LOWER.get(str(key).lower())
        font = CAPTION_FONTS.get(canonical) if canonical else None
    return font


def is_font_supported(key: Optional[str]) -> bool:
    return _lookup(key) is not None


def get_font(key: str) -> CaptionFont:
    """Return the font for key, raising ValidationError if unknown."""
    font = _lookup(key)
    if font is None:
        raise ValidationError(
            "Unknown font: {}. Available fonts: {}".format(key, ", ".join(CAPTION_FONTS))
        )
    return font


def resolve_font(key: Optional[str]) -> CaptionFont:
    """Return the font for key, falling back to the default font."""
    font = _lookup(key)
    if font is None:
        if key:
            logger.warning("Unknown caption font %r, using %s", key, DEFAULT_FONT_KEY)
        font = CAPTION_FONTS[DEFAULT_FONT_KEY]
    return font


def available_fonts() -> List[CaptionFont]:
    return list(CAPTION_FONTS.values())


def fonts_directory() -> Path:
    """Absolute path of the directory holding the bundled font files."""
    return config.FONTS_DIR.resolve()


def missing_font_files(directory: Optional[Path] = None) -> List[str]:
    """List bundled font files that are absent from the fonts directory."""
    base = Path(directory) if directory is not None else fonts_directory()
    names = sorted({f.font_file for f in CAPTION_FONTS.values()}
                   | {f.bold_file for f in CAPTION_FONTS.values()})
    return [name for name in names if not (base / name).is_file()]
