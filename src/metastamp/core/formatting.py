"""Date/time format mini-language.

A format string is scanned for a fixed vocabulary of tokens::

    YYYY  4-digit year            HH  2-digit 24-hour
    MMMM  full month name         hh  2-digit 12-hour (12 at noon/midnight)
    MMM   abbreviated month name  mm  2-digit minute
    MM    2-digit month           ss  2-digit second
    DD    2-digit day             A   AM / PM

Tokens are substituted in the order above, each kind at most once (first
occurrence only) on the running string. A second ``YYYY`` in the same format
is left as literal text, and a substituted month name is visible to the later
tokens (``A`` matches the capital in ``April``). Both quirks are kept so that
stamps match the ones produced by earlier releases.
"""

from datetime import datetime
from typing import Callable, List, NamedTuple, Optional, Tuple

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

MONTH_SHORT = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def _pad(value: int) -> str:
    return f"{value:02d}"


def _hours12(instant: datetime) -> int:
    return instant.hour % 12 or 12


# Longer tokens precede the shorter ones they overlap with.
TOKENS: Tuple[Tuple[str, Callable[[datetime], str]], ...] = (
    ("YYYY", lambda t: str(t.year)),
    ("MMMM", lambda t: MONTH_NAMES[t.month - 1]),
    ("MMM", lambda t: MONTH_SHORT[t.month - 1]),
    ("MM", lambda t: _pad(t.month)),
    ("DD", lambda t: _pad(t.day)),
    ("HH", lambda t: _pad(t.hour)),
    ("hh", lambda t: _pad(_hours12(t))),
    ("mm", lambda t: _pad(t.minute)),
    ("ss", lambda t: _pad(t.second)),
    ("A", lambda t: "PM" if t.hour >= 12 else "AM"),
)


def format_timestamp(token_string: str, instant: datetime) -> str:
    """Render ``instant`` through ``token_string``.

    Args:
        token_string: Format template, e.g. ``"YYYY-MM-DD HH:mm:ss"``
        instant: Timestamp to render

    Returns:
        The display string. Text that is not a token passes through verbatim.
    """
    result = token_string
    for token, render in TOKENS:
        if token in result:
            result = result.replace(token, render(instant), 1)
    return result


def combine_formats(date_format: str, time_format: str) -> str:
    """Join a date and a time format with a single space."""
    if not time_format:
        return date_format
    return f"{date_format} {time_format}"


class FormatPreset(NamedTuple):
    value: str
    label: str
    example: str


DATE_FORMAT_PRESETS: List[FormatPreset] = [
    FormatPreset("YYYY-MM-DD", "ISO (2026-01-18)", "2026-01-18"),
    FormatPreset("MM/DD/YYYY", "US (01/18/2026)", "01/18/2026"),
    FormatPreset("DD/MM/YYYY", "EU (18/01/2026)", "18/01/2026"),
    FormatPreset("DD MMM YYYY", "Short (18 Jan 2026)", "18 Jan 2026"),
    FormatPreset("MMMM DD, YYYY", "Long (January 18, 2026)", "January 18, 2026"),
    FormatPreset("DD.MM.YYYY", "Dotted (18.01.2026)", "18.01.2026"),
]

TIME_FORMAT_PRESETS: List[FormatPreset] = [
    FormatPreset("HH:mm:ss", "24h with seconds (14:30:45)", "14:30:45"),
    FormatPreset("HH:mm", "24h (14:30)", "14:30"),
    FormatPreset("hh:mm:ss A", "12h with seconds (02:30:45 PM)", "02:30:45 PM"),
    FormatPreset("hh:mm A", "12h (02:30 PM)", "02:30 PM"),
    FormatPreset("", "No time", ""),
]


def preview_timestamp(token_string: str, now: Optional[datetime] = None) -> str:
    """Render the format against the current time."""
    return format_timestamp(token_string, now or datetime.now())
