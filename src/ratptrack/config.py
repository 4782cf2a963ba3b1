"""Configuration loading and logging setup."""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional

from .models import Direction, LineType, RequestSpec
from .ratp_client import DEFAULT_TIMEOUT, RATP_API_URL as DEFAULT_BASE_URL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Bus and night-bus lines are not supported
SUPPORTED_LINE_TYPES = (LineType.METRO, LineType.RER, LineType.TRAMWAY)


def parse_request(entry: Mapping[str, Any], kind: str = "timetables") -> RequestSpec:
    """
    Build a RequestSpec from a host config entry.

    Args:
        entry: Dict with "type" and "line", plus "station" and "direction" for timetables.
        kind: "timetables" or "traffic".

    Returns:
        RequestSpec object.

    Raises:
        ValueError: If the entry is incomplete or uses an unsupported line type.
    """
    if not isinstance(entry, Mapping):
        raise ValueError(f"Invalid {kind} entry: {entry!r}")

    try:
        line_type = LineType(entry.get("type"))
    except ValueError:
        raise ValueError(f"Unknown line type '{entry.get('type')}'") from None
    if line_type not in SUPPORTED_LINE_TYPES:
        raise ValueError(f"Line type '{line_type.value}' is not supported")

    line = entry.get("line")
    if line is None or str(line) == "":
        raise ValueError(f"Missing line in {kind} entry {dict(entry)}")

    if kind == "traffic":
        return RequestSpec(line_type=line_type, line=str(line))

    station = entry.get("station")
    if not station:
        raise ValueError(f"Missing station in timetable entry {dict(entry)}")
    try:
        direction = Direction(entry.get("direction"))
    except ValueError:
        raise ValueError(f"Direction must be 'A' or 'R', got '{entry.get('direction')}'") from None

    return RequestSpec(line_type=line_type, line=str(line), station=station, direction=direction)


def parse_requests(entries: Optional[Iterable[Mapping[str, Any]]], kind: str = "timetables") -> List[RequestSpec]:
    """Build RequestSpecs for a list of config entries."""
    return [parse_request(entry, kind) for entry in entries or []]


@dataclass
class Config:
    """Runtime configuration."""
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    debug: bool = False
    timetables: List[RequestSpec] = field(default_factory=list)
    traffic: List[RequestSpec] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """
        Load a config dict, with RATPTRACK_BASE_URL and RATPTRACK_TIMEOUT
        environment variables taking precedence over the defaults.
        """
        base_url = data.get("baseUrl")
        if base_url is None:
            base_url = os.getenv("RATPTRACK_BASE_URL", DEFAULT_BASE_URL)
        timeout = data.get("timeout")
        if timeout is None:
            timeout = os.getenv("RATPTRACK_TIMEOUT", DEFAULT_TIMEOUT)
        try:
            timeout = float(timeout)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid timeout '{timeout}'") from None
        # A zero timeout would fail every request
        if timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {timeout}")

        return cls(
            base_url=base_url,
            timeout=timeout,
            debug=bool(data.get("debug", False)),
            timetables=parse_requests(data.get("timetables"), "timetables"),
            traffic=parse_requests(data.get("traffic"), "traffic"),
        )


def configure_logging(debug: bool = False) -> None:
    """Set up root logging; debug mode also lowers the package level to DEBUG."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    logging.getLogger("ratptrack").setLevel(logging.DEBUG if debug else logging.INFO)
