"""Fetch orchestration: fan out API calls, normalize results, keep snapshots."""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from .models import NextPass, RequestSpec, Snapshot, SnapshotStore, StationTimetable, TrafficInfo
from .notifications import Notification, NotificationDispatcher
from .parsers import (
    is_timetable_available,
    is_waiting_time_valid,
    parse_traffic_status,
    parse_waiting_time,
    round_half_up,
)
from .ratp_client import RATPClient

logger = logging.getLogger(__name__)


class RATPFetcher:
    """
    Fetches timetables and traffic for configured lines and relays them.

    Timetables and traffic are committed independently to a SnapshotStore.
    When a station's live timetable is unavailable, its previous timetable is
    aged by the elapsed time and used instead, flagged as an estimation.
    """

    def __init__(
        self,
        client: RATPClient,
        dispatcher: Optional[NotificationDispatcher] = None,
        store: Optional[SnapshotStore] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the fetcher.

        Args:
            client: API client (anything with get_stations/get_schedules/get_traffic coroutines).
            dispatcher: Where to send DATA_* notifications. None disables notifications.
            store: Snapshot store, a fresh one by default.
            clock: Returns the current local time.
        """
        self.client = client
        self.dispatcher = dispatcher
        self.store = store or SnapshotStore.initial()
        self._clock = clock
        self._locks = {"timetables": asyncio.Lock(), "traffic": asyncio.Lock()}

    @property
    def current(self) -> Snapshot:
        return self.store.current

    @property
    def previous(self) -> Snapshot:
        return self.store.previous

    async def fetch_timetables(self, requests: Sequence[RequestSpec], notify: bool = True) -> List[StationTimetable]:
        """
        Fetch the next passes for every configured station.

        Args:
            requests: Timetable requests, each with station and direction set.
            notify: Send DATA_TIMETABLES once committed.

        Returns:
            The committed timetables, in request order.

        Raises:
            httpx.HTTPError, ValueError: If any request fails. Nothing is committed then.
        """
        async with self._locks["timetables"]:
            fetched = await asyncio.gather(*(self._fetch_station_timetable(request) for request in requests))

            previous = self.store.current.timetables
            now = self._clock()
            timetables = [
                _filter_passes(self._with_fallback(timetable, previous, idx, now))
                for idx, timetable in enumerate(fetched)
            ]

            committed = list(self.store.commit("timetables", timetables))
            logger.info(f"Fetched {len(committed)} timetables")

        if notify:
            self._dispatch(Notification.DATA_TIMETABLES, committed)
        return committed

    async def _fetch_station_timetable(self, request: RequestSpec) -> StationTimetable:
        station, passes = await asyncio.gather(
            self._find_station(request),
            self._fetch_passes(request),
        )
        return StationTimetable(
            line_type=request.line_type,
            line=request.line,
            station_name=station["name"],
            passes=passes,
            requested_at=self._clock(),
        )

    async def _find_station(self, request: RequestSpec) -> Dict:
        stations = await self.client.get_stations(request.line_type, request.line)
        for station in stations:
            if station.get("slug") == request.station:
                return station
        raise ValueError(
            f"No station '{request.station}' on {request.line_type.value} line {request.line}"
        )

    async def _fetch_passes(self, request: RequestSpec) -> tuple:
        schedules = await self.client.get_schedules(
            request.line_type, request.line, request.station, request.direction
        )
        now = self._clock()
        return tuple(
            NextPass(
                waiting_time=parse_waiting_time(schedule.get("message"), now=now),
                destination=schedule.get("destination", ""),
            )
            for schedule in schedules
        )

    @staticmethod
    def _with_fallback(
        timetable: StationTimetable,
        previous: Sequence[StationTimetable],
        idx: int,
        now: datetime,
    ) -> StationTimetable:
        """Replace an unavailable timetable with an estimation from the previous cycle."""
        if is_timetable_available(timetable.passes):
            return timetable
        if idx >= len(previous) or not is_timetable_available(previous[idx].passes):
            return timetable

        last = previous[idx]
        elapsed_minutes = (now - last.requested_at).total_seconds() / 60
        logger.warning(
            f"Timetable unavailable for {timetable.station_name} ({timetable.line_type.value} "
            f"{timetable.line}), estimating from data fetched at {last.requested_at:%H:%M:%S}"
        )
        return replace(
            timetable,
            passes=tuple(
                NextPass(
                    waiting_time=_decay(next_pass.waiting_time, elapsed_minutes),
                    destination=next_pass.destination,
                )
                for next_pass in last.observed_passes
            ),
            requested_at=last.requested_at,
            is_estimated=True,
            observed=last.observed_passes,
        )

    async def fetch_traffic(self, requests: Sequence[RequestSpec], notify: bool = True) -> List[TrafficInfo]:
        """
        Fetch the traffic status of every configured line.

        Args:
            requests: Traffic requests; station and direction are ignored.
            notify: Send DATA_TRAFFIC once committed.

        Returns:
            The committed traffic entries, in request order.
        """
        async with self._locks["traffic"]:
            traffic = await asyncio.gather(*(self._fetch_line_traffic(request) for request in requests))
            committed = list(self.store.commit("traffic", traffic))
            logger.info(f"Fetched traffic for {len(committed)} lines")

        if notify:
            self._dispatch(Notification.DATA_TRAFFIC, committed)
        return committed

    async def _fetch_line_traffic(self, request: RequestSpec) -> TrafficInfo:
        traffic = await self.client.get_traffic(request.line_type, request.line)
        return TrafficInfo(
            line_type=request.line_type,
            line=request.line,
            status=parse_traffic_status(traffic.get("slug", "")),
            title=traffic.get("title", ""),
            message=traffic.get("message", ""),
        )

    async def fetch_all(
        self,
        timetables: Sequence[RequestSpec],
        traffic: Sequence[RequestSpec],
    ) -> Dict[str, list]:
        """
        Fetch both categories concurrently and send them in a single DATA_ALL notification.

        Returns:
            {"timetables": [...], "traffic": [...]}
        """
        fetched_timetables, fetched_traffic = await asyncio.gather(
            self.fetch_timetables(timetables, notify=False),
            self.fetch_traffic(traffic, notify=False),
        )
        result = {"timetables": fetched_timetables, "traffic": fetched_traffic}
        self._dispatch(Notification.DATA_ALL, result)
        return result

    def _dispatch(self, notification: Notification, payload) -> None:
        if self.dispatcher is None:
            return
        self.dispatcher.dispatch(notification, payload)


def _decay(waiting_time: Optional[int], elapsed_minutes: float) -> Optional[int]:
    if waiting_time is None:
        return None
    return round_half_up(waiting_time - elapsed_minutes)


def _filter_passes(timetable: StationTimetable) -> StationTimetable:
    passes = tuple(p for p in timetable.passes if is_waiting_time_valid(p.waiting_time))
    if len(passes) == len(timetable.passes):
        return timetable
    logger.debug(f"Dropped {len(timetable.passes) - len(passes)} passes at {timetable.station_name}")
    return replace(timetable, passes=passes)
