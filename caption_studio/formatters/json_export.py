"""JSON exporter: the raw event list, for re-import or other tools.

WHY: SRT drops ids, speakers, confidence and the pre-translation text.
The JSON export keeps everything, in the same camelCase shape the
project store uses.

HOW: Serializes events in document order with CaptionEvent.to_dict()
and validates the result with jsonschema before returning.

RULES:
- Document order is kept (no sorting)
- indent=2, non-ASCII characters written as-is
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import jsonschema

from caption_studio.core.model import CaptionEvent
from caption_studio.formatters.base import BaseFormatter, FormatterOutput

JSON_MEDIA_TYPE = "application/json"

EVENT_LIST_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "id": {"type": "string"},
            "startTime": {"type": "number", "minimum": 0},
            "endTime": {"type": "number", "minimum": 0},
            "text": {"type": "string"},
            "originalText": {"type": "string"},
            "speaker": {"type": "string"},
            "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        },
        "required": ["id", "startTime", "endTime", "text"],
        "additionalProperties": False,
    },
}


class JSONFormatter(BaseFormatter):
    """Formatter producing one ``.json`` file of caption events."""

    @property
    def name(self) -> str:
        return "Caption JSON"

    def format(self, events: Sequence[CaptionEvent]) -> FormatterOutput:
        """Serialize events to JSON.

        Raises:
            jsonschema.ValidationError: If an event cannot be represented
                (e.g. a negative time).
        """
        output = [event.to_dict() for event in events]
        jsonschema.validate(instance=output, schema=EVENT_LIST_SCHEMA)
        return FormatterOutput(
            suffix=".json",
            content=json.dumps(output, indent=2, ensure_ascii=False),
            media_type=JSON_MEDIA_TYPE,
        )
