"""Duration literals used by filter expressions, such as ``24hour`` or ``2weeks``."""

from __future__ import annotations

import datetime as dt
import re

from ..models import FilterParseError

DURATION_RE = re.compile(r"^(\d+)(month|week|day|hour|min)s?$")

UNIT_SPANS = {
    "min": dt.timedelta(minutes=1),
    "hour": dt.timedelta(hours=1),
    "day": dt.timedelta(days=1),
    "week": dt.timedelta(days=7),
    "month": dt.timedelta(days=30),
}


def is_duration_literal(text: str) -> bool:
    return DURATION_RE.match(text.lower()) is not None


def parse_duration(text: str) -> dt.timedelta:
    match = DURATION_RE.match(text.lower())
    if match is None:
        raise FilterParseError(f"invalid filter: invalid duration {text!r}")
    try:
        return int(match.group(1)) * UNIT_SPANS[match.group(2)]
    except OverflowError as exc:
        raise FilterParseError(f"invalid filter: duration {text!r} is out of range") from exc
