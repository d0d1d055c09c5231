"""SubRip (SRT) exporter.

WHY: SRT is the interchange format every player and editor accepts. It
requires sequential 1-based indices in time order, while the document
keeps events in editing order and allows overlaps. Export therefore
sorts and re-numbers without touching the document.

HOW: A stable sort by start_time (ties keep document order), then one
block per event:

    1
    00:00:01,000 --> 00:00:03,500
    Caption text

Blocks end with a newline and are joined by a newline, which leaves one
blank line between consecutive blocks.

RULES:
- Indices are reassigned 1..n at export time; event ids never appear
- Timecodes use the comma separator
- Multi-line text is written as-is
- No events → empty string
"""

from __future__ import annotations

from collections.abc import Sequence

from caption_studio.core.model import CaptionEvent
from caption_studio.core.timecode import format_timecode
from caption_studio.formatters.base import BaseFormatter, FormatterOutput

SRT_MEDIA_TYPE = "application/x-subrip"


def export_srt(events: Sequence[CaptionEvent]) -> str:
    """Render events as an SRT document string."""
    ordered = sorted(events, key=lambda e: e.start_time)
    blocks = [
        "{}\n{} --> {}\n{}\n".format(
            index,
            format_timecode(event.start_time),
            format_timecode(event.end_time),
            event.text,
        )
        for index, event in enumerate(ordered, start=1)
    ]
    return "\n".join(blocks)


class SRTFormatter(BaseFormatter):
    """Formatter producing one ``.srt`` file."""

    @property
    def name(self) -> str:
        return "SubRip (SRT)"

    def format(self, events: Sequence[CaptionEvent]) -> FormatterOutput:
        return FormatterOutput(
            suffix=".srt",
            content=export_srt(events),
            media_type=SRT_MEDIA_TYPE,
        )
