"""Tests for RATPFetcher."""

import asyncio
import unittest
from unittest.mock import MagicMock
from datetime import datetime, timedelta
import sys
from pathlib import Path

import httpx

# Add src to path so we can import ratptrack
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ratptrack.fetcher import RATPFetcher
from ratptrack.models import Direction, LineType, NextPass, RequestSpec
from ratptrack.notifications import NotificationDispatcher
from ratptrack.ratp_client import RATPClient

T0 = datetime(2024, 5, 1, 12, 0)

BASTILLE = RequestSpec(LineType.METRO, "1", station="bastille", direction=Direction.A)
NATION = RequestSpec(LineType.RER, "A", station="nation", direction=Direction.R)


class FakeClient:
    """In-memory stand-in for RATPClient."""

    def __init__(self):
        self.stations = {
            ("metro", "1"): [
                {"name": "Louvre-Rivoli", "slug": "louvre+rivoli"},
                {"name": "Bastille", "slug": "bastille"},
            ],
            ("rer", "A"): [{"name": "Nation", "slug": "nation"}],
        }
        self.schedules = {}
        self.traffic = {}
        self.error = None

    async def get_stations(self, line_type, line):
        return self.stations[(line_type.value, line)]

    async def get_schedules(self, line_type, line, station, direction):
        if self.error:
            raise self.error
        return self.schedules[(line_type.value, line, station, direction.value)]

    async def get_traffic(self, line_type, line):
        if self.error:
            raise self.error
        return self.traffic[(line_type.value, line)]

    def set_messages(self, request, messages, destination="Château de Vincennes"):
        key = (request.line_type.value, request.line, request.station, request.direction.value)
        self.schedules[key] = [{"message": m, "destination": destination} for m in messages]


class FetcherTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.now = T0
        self.client = FakeClient()
        self.send = MagicMock()
        self.fetcher = RATPFetcher(
            self.client,
            dispatcher=NotificationDispatcher(self.send),
            clock=lambda: self.now,
        )


class TestFetchTimetables(FetcherTestCase):
    """Test timetable fetching, estimation and filtering."""

    async def test_parses_and_keeps_unknown_passes(self):
        self.client.set_messages(BASTILLE, ["3 mn", "Schedules unavailable"])

        timetables = await self.fetcher.fetch_timetables([BASTILLE])

        self.assertEqual(len(timetables), 1)
        timetable = timetables[0]
        self.assertEqual(timetable.station_name, "Bastille")
        self.assertEqual([p.waiting_time for p in timetable.passes], [3, None])
        self.assertEqual(timetable.requested_at, T0)
        self.assertFalse(timetable.is_estimated)

    async def test_keeps_request_order(self):
        self.client.set_messages(BASTILLE, ["2 mn"])
        self.client.set_messages(NATION, ["Train à quai"], destination="Boissy-Saint-Léger")

        timetables = await self.fetcher.fetch_timetables([NATION, BASTILLE])

        self.assertEqual([t.station_name for t in timetables], ["Nation", "Bastille"])
        self.assertEqual(timetables[0].passes[0], NextPass(0, "Boissy-Saint-Léger"))

    async def test_drops_negative_passes(self):
        self.client.set_messages(BASTILLE, ["1 mn", "11:58 Voie 1", "6 mn"])

        timetables = await self.fetcher.fetch_timetables([BASTILLE])

        self.assertEqual([p.waiting_time for p in timetables[0].passes], [1, 6])

    async def test_estimates_from_previous_timetable(self):
        self.client.set_messages(BASTILLE, ["5 mn"])
        await self.fetcher.fetch_timetables([BASTILLE])

        self.now = T0 + timedelta(minutes=2)
        self.client.set_messages(BASTILLE, ["Schedules unavailable"])
        timetables = await self.fetcher.fetch_timetables([BASTILLE])

        timetable = timetables[0]
        self.assertTrue(timetable.is_estimated)
        self.assertEqual(timetable.requested_at, T0)
        self.assertEqual(timetable.passes, (NextPass(3, "Château de Vincennes"),))

    async def test_estimation_stays_anchored_to_first_observation(self):
        self.client.set_messages(BASTILLE, ["10 mn"])
        await self.fetcher.fetch_timetables([BASTILLE])

        self.client.set_messages(BASTILLE, [])
        self.now = T0 + timedelta(minutes=2)
        await self.fetcher.fetch_timetables([BASTILLE])
        self.now = T0 + timedelta(minutes=5)
        timetables = await self.fetcher.fetch_timetables([BASTILLE])

        # Second estimation decays the original observation, not the first estimate
        self.assertEqual(timetables[0].passes[0].waiting_time, 5)
        self.assertEqual(timetables[0].requested_at, T0)

    async def test_estimation_filters_expired_passes(self):
        self.client.set_messages(BASTILLE, ["2 mn", "Schedules unavailable"])
        await self.fetcher.fetch_timetables([BASTILLE])

        self.now = T0 + timedelta(minutes=5)
        self.client.set_messages(BASTILLE, ["Schedules unavailable"])
        timetables = await self.fetcher.fetch_timetables([BASTILLE])

        self.assertTrue(timetables[0].is_estimated)
        self.assertEqual([p.waiting_time for p in timetables[0].passes], [None])

    async def test_no_estimation_without_previous(self):
        self.client.set_messages(BASTILLE, ["Schedules unavailable", "4 mn"])

        timetables = await self.fetcher.fetch_timetables([BASTILLE])

        self.assertFalse(timetables[0].is_estimated)
        self.assertEqual([p.waiting_time for p in timetables[0].passes], [None, 4])

    async def test_no_estimation_from_unavailable_previous(self):
        self.client.set_messages(BASTILLE, ["Schedules unavailable"])
        await self.fetcher.fetch_timetables([BASTILLE])

        self.now = T0 + timedelta(minutes=1)
        timetables = await self.fetcher.fetch_timetables([BASTILLE])

        self.assertFalse(timetables[0].is_estimated)
        self.assertEqual(timetables[0].requested_at, self.now)

    async def test_estimation_matches_by_index(self):
        self.client.set_messages(BASTILLE, ["4 mn"])
        await self.fetcher.fetch_timetables([BASTILLE])

        self.client.set_messages(BASTILLE, ["Schedules unavailable"])
        self.client.set_messages(NATION, ["Schedules unavailable"])
        timetables = await self.fetcher.fetch_timetables([BASTILLE, NATION])

        self.assertTrue(timetables[0].is_estimated)
        self.assertFalse(timetables[1].is_estimated)

    async def test_rotates_snapshots(self):
        self.client.set_messages(BASTILLE, ["4 mn"])
        first = await self.fetcher.fetch_timetables([BASTILLE])
        self.client.set_messages(BASTILLE, ["2 mn"])
        second = await self.fetcher.fetch_timetables([BASTILLE])

        self.assertEqual(list(self.fetcher.previous.timetables), first)
        self.assertEqual(list(self.fetcher.current.timetables), second)
        self.assertEqual(self.fetcher.current.traffic, ())

    async def test_notifies(self):
        self.client.set_messages(BASTILLE, ["4 mn"])
        await self.fetcher.fetch_timetables([BASTILLE])

        self.send.assert_called_once()
        name, payload = self.send.call_args[0]
        self.assertEqual(name, "DATA_TIMETABLES")
        self.assertEqual(payload[0]["stationName"], "Bastille")
        self.assertEqual(payload[0]["timetable"], [{"waitingTime": 4, "destination": "Château de Vincennes"}])
        self.assertFalse(payload[0]["estimation"])

    async def test_notify_disabled(self):
        self.client.set_messages(BASTILLE, ["4 mn"])
        timetables = await self.fetcher.fetch_timetables([BASTILLE], notify=False)

        self.send.assert_not_called()
        self.assertEqual(len(timetables), 1)

    async def test_failure_aborts_batch(self):
        self.client.set_messages(BASTILLE, ["4 mn"])
        committed = await self.fetcher.fetch_timetables([BASTILLE])
        self.send.reset_mock()

        self.client.error = httpx.ConnectError("connection refused")
        with self.assertRaises(httpx.ConnectError):
            await self.fetcher.fetch_timetables([BASTILLE])

        self.assertEqual(list(self.fetcher.current.timetables), committed)
        self.send.assert_not_called()

    async def test_unknown_station_aborts_batch(self):
        request = RequestSpec(LineType.METRO, "1", station="chatelet", direction=Direction.A)
        self.client.set_messages(request, ["4 mn"])

        with self.assertRaises(ValueError):
            await self.fetcher.fetch_timetables([request])
        self.send.assert_not_called()


class TestFetchTraffic(FetcherTestCase):
    """Test traffic fetching."""

    def setUp(self):
        super().setUp()
        self.client.traffic[("metro", "1")] = {
            "slug": "normal_trav", "title": "Travaux", "message": "Travaux de modernisation.",
        }
        self.client.traffic[("rer", "A")] = {
            "slug": "normal", "title": "Trafic normal", "message": "",
        }

    async def test_maps_status(self):
        traffic = await self.fetcher.fetch_traffic([
            RequestSpec(LineType.METRO, "1"),
            RequestSpec(LineType.RER, "A"),
        ])

        self.assertEqual([t.status for t in traffic], ["work", "normal"])
        self.assertEqual(traffic[0].title, "Travaux")
        self.assertEqual(traffic[0].message, "Travaux de modernisation.")

    async def test_notifies(self):
        await self.fetcher.fetch_traffic([RequestSpec(LineType.METRO, "1")])

        self.send.assert_called_once_with("DATA_TRAFFIC", [{
            "lineType": "metro",
            "lineName": "1",
            "lineStatus": "work",
            "title": "Travaux",
            "message": "Travaux de modernisation.",
        }])

    async def test_does_not_touch_timetables(self):
        self.client.set_messages(BASTILLE, ["4 mn"])
        timetables = await self.fetcher.fetch_timetables([BASTILLE])
        await self.fetcher.fetch_traffic([RequestSpec(LineType.METRO, "1")])

        self.assertEqual(list(self.fetcher.current.timetables), timetables)
        self.assertEqual(self.fetcher.previous.timetables, ())

    async def test_api_error_answer_is_shown_as_is(self):
        """A line the API rejects still yields an entry with the API's message."""
        def handler(request):
            if request.url.path == "/v4/traffic/metros/99":
                return httpx.Response(400, json={"result": {"code": 400, "message": "Invalid line"}})
            return httpx.Response(200, json={
                "result": {"slug": "normal", "title": "Trafic normal", "message": "Trafic normal."},
            })

        session = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.addAsyncCleanup(session.aclose)
        fetcher = RATPFetcher(
            RATPClient(base_url="https://api.test/v4", session=session),
            dispatcher=NotificationDispatcher(self.send),
            clock=lambda: self.now,
        )

        traffic = await fetcher.fetch_traffic([
            RequestSpec(LineType.METRO, "1"),
            RequestSpec(LineType.METRO, "99"),
        ])

        self.assertEqual(len(traffic), 2)
        self.assertEqual(traffic[0].status, "normal")
        self.assertEqual(traffic[1].message, "Invalid line")
        self.assertEqual(traffic[1].status, "")
        self.assertEqual(self.send.call_args[0][0], "DATA_TRAFFIC")

    async def test_overlapping_cycles_commit_in_start_order(self):
        release = asyncio.Event()
        get_traffic = self.client.get_traffic

        async def slow_get_traffic(line_type, line):
            if line == "1":
                await release.wait()
            return await get_traffic(line_type, line)

        self.client.get_traffic = slow_get_traffic

        first = asyncio.create_task(self.fetcher.fetch_traffic([RequestSpec(LineType.METRO, "1")]))
        await asyncio.sleep(0)
        second = asyncio.create_task(self.fetcher.fetch_traffic([RequestSpec(LineType.RER, "A")]))
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(first, second)

        self.assertEqual(self.fetcher.previous.traffic[0].line, "1")
        self.assertEqual(self.fetcher.current.traffic[0].line, "A")


class TestFetchAll(FetcherTestCase):
    """Test combined fetches."""

    async def test_single_notification(self):
        self.client.set_messages(BASTILLE, ["4 mn"])
        self.client.traffic[("metro", "1")] = {"slug": "critical", "title": "Incident", "message": "Trafic interrompu."}

        result = await self.fetcher.fetch_all([BASTILLE], [RequestSpec(LineType.METRO, "1")])

        self.assertEqual(result["traffic"][0].status, "incident")
        self.assertEqual(result["timetables"][0].station_name, "Bastille")

        self.send.assert_called_once()
        name, payload = self.send.call_args[0]
        self.assertEqual(name, "DATA_ALL")
        self.assertEqual(payload["timetables"][0]["stationName"], "Bastille")
        self.assertEqual(payload["traffic"][0]["lineStatus"], "incident")

    async def test_without_dispatcher(self):
        fetcher = RATPFetcher(self.client, clock=lambda: self.now)
        self.client.set_messages(BASTILLE, ["4 mn"])

        result = await fetcher.fetch_all([BASTILLE], [])

        self.assertEqual(len(result["timetables"]), 1)
        self.assertEqual(result["traffic"], [])


if __name__ == "__main__":
    unittest.main()
