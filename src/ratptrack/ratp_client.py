"""Async client for the RATP REST API."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .parsers import format_line_type

logger = logging.getLogger(__name__)

RATP_API_URL = "https://api-ratp.pierre-grimaud.fr/v4"
DEFAULT_TIMEOUT = 10.0


class RATPClient:
    """Fetches stations, schedules and traffic from the RATP API."""

    def __init__(
        self,
        base_url: str = RATP_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API endpoint, without trailing slash.
            timeout: Per-request timeout in seconds.
            session: Optional shared httpx.AsyncClient. One is created on first use otherwise.
        """
        self.base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "RATPClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP session if this client created it."""
        if self._session is not None and self._owns_session:
            await self._session.aclose()
            self._session = None

    def _get_session(self) -> httpx.AsyncClient:
        if self._session is None:
            self._session = httpx.AsyncClient(timeout=self._timeout)
        return self._session

    async def request(self, path: str, check_status: bool = True) -> Dict[str, Any]:
        """
        GET a path under the API endpoint and return the decoded JSON body.

        Args:
            path: Path under the endpoint, with a leading slash.
            check_status: If False, a non-2xx response whose body still carries a
                "result" object is returned as-is instead of raising.

        Raises:
            httpx.HTTPError: On network failure, timeout or non-2xx status.
            ValueError: If the body is not a JSON object.
        """
        url = f"{self.base_url}{path}"
        logger.debug(f"Fetching {url}")
        try:
            response = await self._get_session().get(url, timeout=self._timeout)
            if check_status or not _has_result(response):
                response.raise_for_status()
            elif response.is_error:
                logger.warning(f"API answered {response.status_code} for {url}, passing its result through")
            body = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch {url}: {e}")
            raise

        if not isinstance(body, dict):
            raise ValueError(f"Unexpected response from {url}: expected a JSON object")
        return body

    async def _get_result(self, path: str, check_status: bool = True) -> Dict[str, Any]:
        body = await self.request(path, check_status=check_status)
        result = body.get("result")
        if not isinstance(result, dict):
            raise ValueError(f"Missing 'result' object in response to {path}")
        return result

    async def get_stations(self, line_type, line: str) -> List[Dict[str, Any]]:
        """
        Get the stations of a line.

        Returns:
            Raw station dicts, each with at least "name" and "slug".
        """
        result = await self._get_result(f"/stations/{format_line_type(line_type)}/{line}")
        return _get_list(result, "stations")

    async def get_schedules(self, line_type, line: str, station: str, direction) -> List[Dict[str, Any]]:
        """
        Get the next passes at a station.

        Returns:
            Raw schedule dicts, each with "message" and "destination".
        """
        direction = getattr(direction, "value", direction)
        result = await self._get_result(
            f"/schedules/{format_line_type(line_type)}/{line}/{station}/{direction}"
        )
        return _get_list(result, "schedules")

    async def get_traffic(self, line_type, line: str) -> Dict[str, Any]:
        """
        Get the traffic status of a line.

        An error status is not raised when the API still sends a "result"
        object, e.g. {"code": 400, "message": "Invalid line"}, so the display
        shows the API's own message.

        Returns:
            Raw traffic dict with "slug", "title" and "message".
        """
        return await self._get_result(
            f"/traffic/{format_line_type(line_type)}/{line}", check_status=False
        )


def _has_result(response: httpx.Response) -> bool:
    try:
        body = response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and isinstance(body.get("result"), dict)


def _get_list(result: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    items = result.get(key)
    if not isinstance(items, list):
        raise ValueError(f"Missing '{key}' list in API result")
    return items
