"""ratptrack - Real-time RATP timetables and traffic for dashboard displays."""

__version__ = "0.1.0"

from .models import (
    Direction,
    LineType,
    NextPass,
    RequestSpec,
    Snapshot,
    SnapshotStore,
    StationTimetable,
    TrafficInfo,
)
from .config import Config, configure_logging, parse_request, parse_requests
from .ratp_client import RATPClient
from .notifications import Notification, NotificationDispatcher, NotificationRouter
from .fetcher import RATPFetcher

__all__ = [
    "RATPFetcher",
    "RATPClient",
    "Config",
    "configure_logging",
    "parse_request",
    "parse_requests",
    "Notification",
    "NotificationDispatcher",
    "NotificationRouter",
    "Direction",
    "LineType",
    "NextPass",
    "RequestSpec",
    "Snapshot",
    "SnapshotStore",
    "StationTimetable",
    "TrafficInfo",
]
