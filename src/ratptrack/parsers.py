"""Parsers and validity checks for the raw text returned by the RATP API."""

import logging
import math
import re
from datetime import datetime
from typing import Optional, Sequence

from .models import NextPass

logger = logging.getLogger(__name__)

SCHEDULES_UNAVAILABLE = "Schedules unavailable"

# The accent on the "a" comes and goes depending on the line
TRAIN_AT_PLATFORM_RE = re.compile(r"^Train (a|à) (quai|l'approche)$", re.IGNORECASE)
MINUTES_RE = re.compile(r"^([0-9]+) mn$", re.IGNORECASE)
CLOCK_TIME_RE = re.compile(r"^([0-9]{1,2}):([0-9]{2})(?::([0-9]{2}))?$")

TRAFFIC_STATUSES = {
    "normal_trav": "work",
    "alerte": "protest",
    "critical": "incident",
}

LINE_TYPE_PATHS = {
    "bus": "buses",
    "metro": "metros",
    "rer": "rers",
    "tramway": "tramways",
}


def round_half_up(value: float) -> int:
    """Round .5 away from zero on the positive side, like the display layer does."""
    return int(math.floor(value + 0.5))


def parse_waiting_time(text, now: Optional[datetime] = None) -> Optional[int]:
    """
    Convert a raw schedule message into minutes until the next pass.

    Formats are tried in order, first match wins:
        "Schedules unavailable"      -> None
        "Train à quai", "Train a l'approche" -> 0
        "7 mn"                       -> 7
        "23:59 ..." or "23:59:30 ..." (RER clock time) -> minutes from now, may be negative

    Args:
        text: Raw message from the schedules endpoint.
        now: Reference time for clock-time messages. Defaults to datetime.now().

    Returns:
        Minutes until the pass, or None if unknown.
    """
    if not isinstance(text, str):
        return None

    if text == SCHEDULES_UNAVAILABLE:
        return None

    if TRAIN_AT_PLATFORM_RE.match(text):
        return 0

    match = MINUTES_RE.match(text)
    if match:
        return int(match.group(1))

    if ":" in text:
        return _minutes_until_clock_time(text.split(" ")[0], now or datetime.now())

    return None


def _minutes_until_clock_time(token: str, now: datetime) -> Optional[int]:
    match = CLOCK_TIME_RE.match(token)
    if not match:
        logger.debug(f"Unparseable clock time '{token}'")
        return None

    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        logger.debug(f"Out of range clock time '{token}'")
        return None

    passing_time = now.replace(hour=hour, minute=minute, second=second, microsecond=0)
    return round_half_up((passing_time - now).total_seconds() / 60)


def parse_traffic_status(text: str) -> str:
    """Map a raw traffic code to a display category, passing unknown codes through."""
    return TRAFFIC_STATUSES.get(text, text)


def format_line_type(line_type) -> str:
    """
    Get the API path segment for a line type (e.g. "metro" -> "metros").

    Raises:
        ValueError: If the line type is not known to the API.
    """
    key = getattr(line_type, "value", line_type)
    try:
        return LINE_TYPE_PATHS[key]
    except KeyError:
        raise ValueError(f"Unsupported line type '{line_type}'") from None


def is_waiting_time_valid(time: Optional[int]) -> bool:
    """Unknown (None) or non-negative waiting times can be displayed."""
    return time is None or time >= 0


def is_timetable_available(passes: Sequence[NextPass]) -> bool:
    """A timetable is available when its first pass has a known waiting time."""
    return len(passes) > 0 and passes[0].waiting_time is not None
