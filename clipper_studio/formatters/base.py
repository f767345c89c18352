"""Abstract base formatter and output container.

WHY: Caption lines are delivered as subtitle documents in more than one
format (WebVTT for players and the subtitle-burn filter, SRT for
editors). A shared base class lets the CLI, HTTP layer and filter
builder work with any formatter generically.

HOW: BaseFormatter is an ABC with two requirements, a ``name`` property
and a ``format()`` method. FormatterOutput is a plain dataclass that
bundles a file suffix with its content and MIME type.

RULES:
- Subclasses MUST implement ``name`` (human-readable) and ``format()``
- ``format()`` returns a list; current formatters return one item
- ``suffix`` starts with a dot or hyphen, e.g. ``".vtt"``
- The caller is responsible for prepending the file stem
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from clipper_studio.core.ir import CaptionLine


@dataclass
class FormatterOutput:
    """One output file produced by a formatter.

    Attributes:
        suffix: File suffix appended to the stem, e.g. ``".srt"``.
        content: The document text.
        media_type: MIME type for the content, e.g. ``"text/vtt"``.
    """

    suffix: str
    content: str
    media_type: str


class BaseFormatter(ABC):
    """Abstract base for subtitle document formatters.

    To add a new output format:
    1. Create a new file in formatters/
    2. Subclass BaseFormatter
    3. Implement format() and name
    4. Register in FORMATTERS dict in formatters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'WebVTT'."""

    @abstractmethod
    def format(
        self,
        lines: Sequence[CaptionLine],
        title: Optional[str] = None,
    ) -> List[FormatterOutput]:
        """Render caption lines as one or more subtitle documents.

        Args:
            lines: Caption lines, already on the target timeline.
            title: Optional document title (emitted where the format has
                   a place for it).

        Returns:
            List of FormatterOutput objects.
        """
