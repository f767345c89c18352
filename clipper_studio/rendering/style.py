"""Force-style generation for the subtitle-burn renderer.

WHY: The subtitle-burn path styles captions through a single
comma-separated override string. The renderer assumes a tiny default
canvas unless told the real resolution, which silently breaks horizontal
centering, so the actual video dimensions are encoded in every string.

HOW: CaptionStyleConfig holds the four user-facing keys (font, size,
weight, position). resolve_style() validates and resolves them against
the font registry and the size/weight/margin tables into a StyleSpec;
StyleSpec.to_force_style() renders the string.

RULES:
- Unknown keys fall back to roboto / medium / normal / bottom
- Non-string keys and missing or non-positive dimensions raise ValidationError
- Text is white with no outline, shadow or border
- Alignment is always 2 (bottom-centre); position only changes MarginV
- build_force_style() is pure
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from clipper_studio.core.errors import ValidationError
from clipper_studio.core.ir import VideoDimensions
from clipper_studio.rendering.fonts import DEFAULT_FONT_KEY, resolve_font


class CaptionPosition(str, enum.Enum):
    TOP = "top"
    CENTER = "center"
    BOTTOM = "bottom"


# Bold flag per weight key (-1 renders as semibold)
FONT_WEIGHTS: Dict[str, int] = {
    "light": 0,
    "normal": 0,
    "medium": 0,
    "semibold": -1,
    "bold": 1,
    "extrabold": 1,
}

# Point sizes, relative to PlayResY
FONT_SIZES: Dict[str, int] = {
    "verysmall": 27,
    "small": 33,
    "medium": 39,
    "large": 49,
}

# Vertical margin measured up from the bottom edge
POSITION_MARGINS: Dict[CaptionPosition, int] = {
    CaptionPosition.TOP: 1650,
    CaptionPosition.CENTER: 900,
    CaptionPosition.BOTTOM: 50,
}

DEFAULT_SIZE = "medium"
DEFAULT_WEIGHT = "normal"
DEFAULT_POSITION = CaptionPosition.BOTTOM


def resolve_position(value: Any) -> CaptionPosition:
    """Map a position key to CaptionPosition, defaulting to bottom."""
    if isinstance(value, CaptionPosition):
        return value
    try:
        return CaptionPosition(str(value).strip().lower())
    except ValueError:
        return DEFAULT_POSITION


@dataclass(frozen=True)
class CaptionStyleConfig:
    """User-facing caption style keys."""

    font: str = DEFAULT_FONT_KEY
    size: str = DEFAULT_SIZE
    weight: str = DEFAULT_WEIGHT
    position: str = DEFAULT_POSITION.value

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> CaptionStyleConfig:
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValidationError("Caption style must be an object, got {!r}".format(data))
        values = {}
        for name in ("font", "size", "weight", "position"):
            value = data.get(name)
            if value is None:
                continue
            if not isinstance(value, str):
                raise ValidationError(
                    "Caption style '{}' must be a string, got {!r}".format(name, value)
                )
            values[name] = value
        return cls(**values)

    def to_dict(self) -> Dict[str, str]:
        return {
            "font": self.font,
            "size": self.size,
            "weight": self.weight,
            "position": self.position,
        }


@dataclass(frozen=True)
class StyleSpec:
    """Resolved style values for one render call."""

    play_res_x: int
    play_res_y: int
    font_name: str
    font_size: int
    bold: int
    position: CaptionPosition
    margin_v: int

    def to_force_style(self) -> str:
        params = [
            "PlayResX={}".format(self.play_res_x),
            "PlayResY={}".format(self.play_res_y),
            "FontName={}".format(self.font_name),
            "FontSize={}".format(self.font_size),
            "Bold={}".format(self.bold),
            "PrimaryColour=&Hffffff&",
            "OutlineColour=&H000000&",
            "Outline=0",
            "Shadow=0",
            "BorderStyle=0",
            "Alignment=2",
            "MarginV={}".format(self.margin_v),
        ]
        return ",".join(params)


def _validate_dimensions(dimensions: Optional[VideoDimensions]) -> VideoDimensions:
    if dimensions is None:
        raise ValidationError("Video dimensions are required to build a caption style")
    try:
        width, height = int(dimensions.width), int(dimensions.height)
    except (AttributeError, TypeError, ValueError):
        raise ValidationError("Invalid video dimensions: {!r}".format(dimensions))
    if width <= 0 or height <= 0:
        raise ValidationError("Invalid video dimensions: {}x{}".format(width, height))
    return VideoDimensions(width=width, height=height)


def resolve_style(
    style: Optional[CaptionStyleConfig],
    dimensions: Optional[VideoDimensions],
) -> StyleSpec:
    """Resolve style keys and video dimensions into a StyleSpec.

    Raises:
        ValidationError: If dimensions are missing or invalid, or the
            config is not a CaptionStyleConfig.
    """
    dims = _validate_dimensions(dimensions)
    if style is None:
        style = CaptionStyleConfig()
    elif not isinstance(style, CaptionStyleConfig):
        style = CaptionStyleConfig.from_dict(style)

    position = resolve_position(style.position)
    return StyleSpec(
        play_res_x=dims.width,
        play_res_y=dims.height,
        font_name=resolve_font(style.font).display_name,
        font_size=FONT_SIZES.get(style.size, FONT_SIZES[DEFAULT_SIZE]),
        bold=FONT_WEIGHTS.get(style.weight, FONT_WEIGHTS[DEFAULT_WEIGHT]),
        position=position,
        margin_v=POSITION_MARGINS[position],
    )


def build_force_style(
    style: Optional[CaptionStyleConfig],
    dimensions: Optional[VideoDimensions],
) -> str:
    """Build the force_style override string for the subtitle-burn filter.

    Example:
        >>> build_force_style(CaptionStyleConfig(), VideoDimensions(1080, 1920))
        'PlayResX=1080,PlayResY=1920,FontName=Roboto,FontSize=39,Bold=0,...,MarginV=50'
    """
    return resolve_style(style, dimensions).to_force_style()
