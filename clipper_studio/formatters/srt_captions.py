"""SRT caption formatter.

WHY: Editors importing clips into an NLE expect SubRip files next to the
video. SRT has no header or title, just numbered cues.

RULES:
- Timestamps use HH:MM:SS,mmm (comma before milliseconds)
- Cues are separated by one blank line
- An empty line list produces an empty document
- Media type is application/x-subrip
"""

from typing import Iterable, List, Optional, Sequence

from clipper_studio.core.ir import CaptionLine
from clipper_studio.core.timecode import srt_timestamp
from clipper_studio.formatters.base import BaseFormatter, FormatterOutput


def render_srt(lines: Iterable[CaptionLine]) -> str:
    cues = []
    for index, line in enumerate(lines, start=1):
        cues.append("{}\n{} --> {}\n{}\n\n".format(
            index,
            srt_timestamp(line.start_time),
            srt_timestamp(line.end_time),
            line.text.strip(),
        ))
    return "".join(cues)


class SRTCaptionFormatter(BaseFormatter):
    """Formatter that produces a single SRT caption file."""

    @property
    def name(self) -> str:
        return "SRT Captions"

    def format(
        self,
        lines: Sequence[CaptionLine],
        title: Optional[str] = None,
    ) -> List[FormatterOutput]:
        return [
            FormatterOutput(
                suffix=".srt",
                content=render_srt(lines),
                media_type="application/x-subrip",
            )
        ]
