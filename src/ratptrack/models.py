"""Data models for the RATP fetcher."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class LineType(str, Enum):
    """Line types known to the API."""
    BUS = "bus"
    METRO = "metro"
    RER = "rer"
    TRAMWAY = "tramway"


class Direction(str, Enum):
    """Travel direction: A (aller) or R (retour)."""
    A = "A"
    R = "R"


@dataclass(frozen=True)
class RequestSpec:
    """One configured line query."""
    line_type: LineType
    line: str
    station: Optional[str] = None  # Station slug, timetables only
    direction: Optional[Direction] = None  # Timetables only


@dataclass(frozen=True)
class NextPass:
    """Represents an upcoming vehicle pass."""
    waiting_time: Optional[int]  # Minutes, None when unknown
    destination: str

    def to_dict(self) -> Dict[str, Any]:
        return {"waitingTime": self.waiting_time, "destination": self.destination}


@dataclass(frozen=True)
class StationTimetable:
    """Next passes at one station for one line and direction."""
    line_type: LineType
    line: str
    station_name: str
    passes: Tuple[NextPass, ...]  # Soonest first, in API order
    requested_at: datetime
    is_estimated: bool = False
    # Passes as observed at requested_at; estimations decay these, not the previous estimate
    observed: Tuple[NextPass, ...] = field(default=(), compare=False, repr=False)

    @property
    def observed_passes(self) -> Tuple[NextPass, ...]:
        return self.observed if self.is_estimated else self.passes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lineType": self.line_type.value,
            "lineName": self.line,
            "stationName": self.station_name,
            "timetable": [next_pass.to_dict() for next_pass in self.passes],
            "requestedAt": int(self.requested_at.timestamp() * 1000),
            "estimation": self.is_estimated,
        }


@dataclass(frozen=True)
class TrafficInfo:
    """Traffic status of a line."""
    line_type: LineType
    line: str
    status: str  # normal, work, protest, incident or the raw API code
    title: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lineType": self.line_type.value,
            "lineName": self.line,
            "lineStatus": self.status,
            "title": self.title,
            "message": self.message,
        }


@dataclass(frozen=True)
class Snapshot:
    """Results of the last completed cycle of each category."""
    timetables: Tuple[StationTimetable, ...] = ()
    traffic: Tuple[TrafficInfo, ...] = ()


CATEGORIES = ("timetables", "traffic")


@dataclass(frozen=True)
class SnapshotState:
    previous: Snapshot = field(default_factory=Snapshot)
    current: Snapshot = field(default_factory=Snapshot)


class SnapshotStore:
    """
    Holds the previous/current snapshot pair.

    The only transition is commit(): the category slot of ``current`` moves to
    ``previous`` and the new entries become ``current``. Both snapshots are
    immutable and swapped in a single assignment, so readers always see either
    the whole old state or the whole new one.
    """

    def __init__(self, state: Optional[SnapshotState] = None):
        self._state = state or SnapshotState()

    @classmethod
    def initial(cls) -> "SnapshotStore":
        return cls()

    @property
    def current(self) -> Snapshot:
        return self._state.current

    @property
    def previous(self) -> Snapshot:
        return self._state.previous

    def commit(self, category: str, entries) -> Tuple:
        """
        Install new entries for a category, rotating the old ones to previous.

        Args:
            category: "timetables" or "traffic".
            entries: Iterable of StationTimetable or TrafficInfo.

        Returns:
            The committed entries as a tuple.
        """
        if category not in CATEGORIES:
            raise ValueError(f"Unknown snapshot category '{category}'")

        entries = tuple(entries)
        state = self._state
        self._state = SnapshotState(
            previous=replace(state.previous, **{category: getattr(state.current, category)}),
            current=replace(state.current, **{category: entries}),
        )
        return entries
