"""Messages exchanged with the display layer."""

import logging
from enum import Enum
from typing import Any, Callable, Mapping

from .config import parse_requests

logger = logging.getLogger(__name__)


class Notification(str, Enum):
    """Message names on the channel between the fetcher and the display."""
    # Inbound
    FETCH_ALL = "FETCH_ALL"
    FETCH_TIMETABLES = "FETCH_TIMETABLES"
    FETCH_TRAFFIC = "FETCH_TRAFFIC"
    # Outbound
    DATA_ALL = "DATA_ALL"
    DATA_TIMETABLES = "DATA_TIMETABLES"
    DATA_TRAFFIC = "DATA_TRAFFIC"


def notification_category(notification) -> str:
    """"DATA_TIMETABLES" -> "timetables"."""
    name = getattr(notification, "value", notification)
    return name.split("_")[1].lower()


def notification_title(notification) -> str:
    """"DATA_TIMETABLES" -> "Timetables"."""
    return notification_category(notification).capitalize()


def to_wire(payload: Any) -> Any:
    """Convert models (and lists/dicts of them) to plain JSON-ready values."""
    if hasattr(payload, "to_dict"):
        return payload.to_dict()
    if isinstance(payload, Mapping):
        return {key: to_wire(value) for key, value in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [to_wire(item) for item in payload]
    return payload


class NotificationDispatcher:
    """Sends DATA_* notifications over the host's message channel."""

    def __init__(self, send: Callable[[str, Any], None]):
        """
        Args:
            send: Channel callable taking (notification_name, payload).
        """
        self._send = send

    def dispatch(self, notification: Notification, payload: Any) -> None:
        logger.debug(f"Sending {notification.value}")
        self._send(notification.value, to_wire(payload))


class NotificationRouter:
    """Routes FETCH_* notifications from the display to a RATPFetcher."""

    def __init__(self, fetcher):
        self.fetcher = fetcher

    async def handle(self, notification: str, payload: Any) -> None:
        """
        Run the fetch cycle asked for by an inbound notification.

        A failed cycle is logged and no DATA_* notification is sent, leaving the
        display on its last received data.
        """
        try:
            notification = Notification(notification)
        except ValueError:
            logger.debug(f"Ignoring notification {notification}")
            return

        try:
            if notification is Notification.FETCH_ALL:
                await self.fetcher.fetch_all(
                    parse_requests(payload.get("timetables", []), "timetables"),
                    parse_requests(payload.get("traffic", []), "traffic"),
                )
            elif notification is Notification.FETCH_TIMETABLES:
                await self.fetcher.fetch_timetables(parse_requests(payload, "timetables"))
            elif notification is Notification.FETCH_TRAFFIC:
                await self.fetcher.fetch_traffic(parse_requests(payload, "traffic"))
            else:
                logger.debug(f"Ignoring outbound notification {notification.value}")
        except Exception as e:
            logger.error(f"{notification_title(notification)} fetch failed: {e}", exc_info=True)
