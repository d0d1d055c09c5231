"""Export formatter registry — pluggable format hub.

WHY: The CLI and API layers need a single lookup to find the right
formatter by name. A central dict makes it trivial to add new formats:
create the formatter class, import it here, add one line.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["srt"]()``.

RULES:
- Keys are lowercase identifiers (used in CLI flags and query strings)
- Values are BaseFormatter subclasses (not instances)
- Every formatter listed here must be importable without side effects
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from caption_studio.formatters.json_export import JSONFormatter
from caption_studio.formatters.srt import SRTFormatter, export_srt

if TYPE_CHECKING:
    from caption_studio.formatters.base import BaseFormatter

FORMATTERS: dict[str, type[BaseFormatter]] = {
    "srt": SRTFormatter,
    "json": JSONFormatter,
}

__all__ = ["FORMATTERS", "JSONFormatter", "SRTFormatter", "export_srt"]
