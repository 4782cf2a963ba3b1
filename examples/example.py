"""Example usage of RATPFetcher.

Usage:
    python examples/example.py metro 1 bastille A
    python examples/example.py rer A nation R
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add src to path so we can import ratptrack
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ratptrack.config import Config, configure_logging
from ratptrack.fetcher import RATPFetcher
from ratptrack.ratp_client import RATPClient

logger = logging.getLogger(__name__)


async def print_station_data(config: Config):
    """
    Fetch and display next passes and traffic for the configured lines.

    Args:
        config: Config with timetable and traffic requests.
    """
    async with RATPClient(base_url=config.base_url, timeout=config.timeout) as client:
        fetcher = RATPFetcher(client)
        result = await fetcher.fetch_all(config.timetables, config.traffic)

    print(f"\n{'='*70}")
    print("NEXT PASSES:")
    print("-" * 70)
    for timetable in result["timetables"]:
        suffix = " (estimated)" if timetable.is_estimated else ""
        print(f"\n{timetable.line_type.value.upper()} {timetable.line} - {timetable.station_name}{suffix}")
        if not timetable.passes:
            print("  No passes")
        for next_pass in timetable.passes:
            waiting = "?" if next_pass.waiting_time is None else f"{next_pass.waiting_time} min"
            print(f"  {waiting:>8} → {next_pass.destination}")

    print("\n" + "=" * 70)
    print("TRAFFIC:")
    print("-" * 70)
    for traffic in result["traffic"]:
        print(f"\n{traffic.line_type.value.upper()} {traffic.line} [{traffic.status}]: {traffic.title}")
        if traffic.message:
            print(f"  {traffic.message}")
    print("\n" + "=" * 70 + "\n")


def main():
    if len(sys.argv) != 5:
        print(__doc__)
        sys.exit(1)

    line_type, line, station, direction = sys.argv[1:]
    try:
        config = Config.from_dict({
            "timetables": [{"type": line_type, "line": line, "station": station, "direction": direction}],
            "traffic": [{"type": line_type, "line": line}],
        })
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    configure_logging(config.debug)
    try:
        asyncio.run(print_station_data(config))
    except Exception as e:
        logger.error(f"Failed to fetch data: {e}", exc_info=True)
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
