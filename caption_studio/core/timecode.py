"""SRT timecode codec: seconds ⇄ ``HH:MM:SS,mmm``.

WHY: The subtitle format and the editable time fields both show time as
``HH:MM:SS,mmm``. The editor feeds this codec half-typed values on every
keystroke, so neither direction may raise: bad input degrades to zero
and the caller decides whether to accept it.

HOW: format_timecode() rounds through Decimal on the exact binary value
of the float (half-even, the same rule as ``round(x, 3)``) and splits the
integer millisecond count. parse_timecode() matches one, two or three
colon-separated fields with a regex and sums them as Decimals, so a
formatted value parses back to exactly ``round(x, 3)``.

RULES:
- Negative, NaN or infinite input formats as 00:00:00,000
- Hours/minutes/seconds always render as two digits, milliseconds as three;
  hours wrap past 99 (out of range for a caption editor)
- Comma and period are interchangeable fractional separators
- Accepted forms: H:M:S[.ms], M:S[.ms], S[.ms]; anything else parses to 0.0
- parse_timecode(format_timecode(x)) == round(x, 3) for finite x >= 0
"""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_EVEN, Decimal

ZERO_TIMECODE = "00:00:00,000"

_MILLISECOND = Decimal("0.001")

_SECONDS_FIELD = r"(\d+(?:\.\d*)?|\.\d+)"
_TIMECODE_RE = re.compile(
    r"^(?:(?:(\d+):)?(\d+):)?" + _SECONDS_FIELD + r"$"
)


def format_timecode(seconds: float, separator: str = ",") -> str:
    """Convert seconds to ``HH:MM:SS,mmm`` (or ``HH:MM:SS.mmm``).

    Args:
        seconds: Time in seconds. Invalid values clamp to zero.
        separator: Fractional separator, "," for SRT or "." for display.

    Returns:
        The zero-padded timecode string.
    """
    if not isinstance(seconds, (int, float)) or not math.isfinite(seconds) or seconds < 0:
        return ZERO_TIMECODE.replace(",", separator)

    total_ms = int(
        Decimal(seconds).quantize(_MILLISECOND, rounding=ROUND_HALF_EVEN) * 1000
    )
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return "{:02d}:{:02d}:{:02d}{}{:03d}".format(
        hours % 100, minutes, secs, separator, millis
    )


def parse_timecode(text: str) -> float:
    """Convert a timecode or bare seconds string to float seconds.

    Unparseable input returns 0.0 instead of raising, so a malformed
    manual edit snaps to zero rather than crashing the editor.

    Args:
        text: e.g. "01:02:03,456", "1:02.5", "62.5".

    Returns:
        Time in seconds.
    """
    if not isinstance(text, str):
        return 0.0

    match = _TIMECODE_RE.match(text.strip().replace(",", "."))
    if match is None:
        return 0.0

    hours, minutes, secs = match.groups()
    total = Decimal(secs)
    if minutes is not None:
        total += Decimal(minutes) * 60
    if hours is not None:
        total += Decimal(hours) * 3600
    return float(total)
