from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

import pytz
from dateutil import parser


Timestamp = Union[str, dt.datetime]

_MIN_INSTANT = dt.datetime.min.replace(tzinfo=pytz.UTC)


@dataclass(frozen=True)
class HistoryEvent:
    """A single state change taken from an issue's workflow history.

    ``timestamp`` is kept exactly as supplied; it is only parsed when an
    instant is needed, so a malformed value affects the computations that
    use it and nothing else.
    """

    timestamp: Optional[Timestamp]
    from_state: Optional[str]
    to_state: Optional[str]

    @property
    def has_states(self) -> bool:
        return bool(self.from_state) and bool(self.to_state)

    @property
    def occurred_at(self) -> Optional[dt.datetime]:
        return parse_timestamp(self.timestamp)


def parse_timestamp(value: Optional[Timestamp]) -> Optional[dt.datetime]:
    """
    Parse a tracker timestamp into a timezone-aware UTC datetime.

    Naive values are assumed to be UTC.

    Args:
        value: ISO-8601 string or datetime

    Returns:
        Parsed datetime in UTC or None if the value is empty or not a valid instant
    """
    if value is None or value == "":
        return None

    if isinstance(value, dt.datetime):
        dt_obj = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            if text.endswith("Z"):
                dt_obj = dt.datetime.fromisoformat(text[:-1] + "+00:00")
            else:
                dt_obj = dt.datetime.fromisoformat(text)
        except ValueError:
            # Offsets without a colon (+0000) and other ISO variants
            try:
                dt_obj = parser.isoparse(text)
            except (ValueError, OverflowError):
                logging.debug("Unparseable timestamp: %r", value)
                return None
    else:
        logging.debug("Unsupported timestamp type: %r", type(value))
        return None

    if dt_obj.tzinfo is None:
        dt_obj = dt_obj.replace(tzinfo=pytz.UTC)
    try:
        return dt_obj.astimezone(pytz.UTC)
    except (ValueError, OverflowError):
        logging.debug("Timestamp out of range: %r", value)
        return None


def to_iso(value: Optional[Timestamp]) -> Optional[str]:
    """Serialize a timestamp as an ISO-8601 UTC string, or None if it does not parse."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return parsed.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sort_events(events: Iterable[HistoryEvent]) -> List[HistoryEvent]:
    """
    Return events in chronological order.

    The sort is stable; events whose timestamp does not parse are placed first.
    """
    return sorted(events, key=lambda e: e.occurred_at or _MIN_INSTANT)
