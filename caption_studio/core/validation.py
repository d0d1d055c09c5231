"""Caption checks against the project's settings.

WHY: The editor flags captions that are hard to read (lines over the
character limit, flashes shorter than the minimum duration, walls of
text held too long) without blocking the edit. Validation reports these
as issues and leaves the events untouched.

RULES:
- Pure read: never mutates events
- Issues come out in document order, one per problem found
- invalid_timing suppresses the duration checks for that event
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from caption_studio.core.model import CaptionEvent, ProjectSettings

LINE_TOO_LONG = "line_too_long"
TOO_SHORT = "too_short"
TOO_LONG = "too_long"
INVALID_TIMING = "invalid_timing"


@dataclass(frozen=True)
class CaptionIssue:
    """One problem found on one caption."""

    event_id: str
    kind: str
    message: str


def validate_events(
    events: Iterable[CaptionEvent],
    settings: ProjectSettings | None = None,
) -> list[CaptionIssue]:
    """Check every event and return the problems found.

    Args:
        events: Events to check, in display order.
        settings: Limits to check against; defaults apply when omitted.

    Returns:
        A list of CaptionIssue, empty when everything passes.
    """
    settings = settings or ProjectSettings()
    issues: list[CaptionIssue] = []

    for event in events:
        for line_no, line in enumerate(event.text.splitlines() or [""], start=1):
            if len(line) > settings.max_chars_per_line:
                issues.append(CaptionIssue(
                    event.id,
                    LINE_TOO_LONG,
                    "Line {} has {} characters (max {})".format(
                        line_no, len(line), settings.max_chars_per_line
                    ),
                ))

        if event.end_time <= event.start_time:
            issues.append(CaptionIssue(
                event.id,
                INVALID_TIMING,
                "End ({:.3f}s) is not after start ({:.3f}s)".format(
                    event.end_time, event.start_time
                ),
            ))
            continue

        if event.duration < settings.min_duration:
            issues.append(CaptionIssue(
                event.id,
                TOO_SHORT,
                "Shown for {:.2f}s (min {:.2f}s)".format(event.duration, settings.min_duration),
            ))
        elif event.duration > settings.max_duration:
            issues.append(CaptionIssue(
                event.id,
                TOO_LONG,
                "Shown for {:.2f}s (max {:.2f}s)".format(event.duration, settings.max_duration),
            ))

    return issues
