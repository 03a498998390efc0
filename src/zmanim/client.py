# zmanimbot - WhatsApp Zmanim Reminder Service
# Copyright (c) 2025-2026 Slash Daemon slashdaemon@protonmail.com
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, version 3 of the License.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.
#
# Commercial licensing: [slashdaemon@protonmail.com]

"""
Hebcal API Client

Thin async wrapper around the two Hebcal endpoints the reminder engine needs:

- /hebcal  (calendar): city geocoding and Friday candle-lighting times
- /zmanim  (halachic times): sunset, nightfall and morning Shema by coordinates

Times come back as ISO-8601 strings with an embedded UTC offset, already in
the location's own timezone. We only ever read their wall-clock digits.
"""

import asyncio
import logging
import re
from datetime import date
from typing import Any, Optional

import aiohttp

from .models import GeoLocation

logger = logging.getLogger("zmanimbot.zmanim.client")

DEFAULT_CALENDAR_URL = "https://www.hebcal.com/hebcal"
DEFAULT_ZMANIM_URL = "https://www.hebcal.com/zmanim"

_WALL_CLOCK_RE = re.compile(r"T(\d{2}):(\d{2})")


class ZmanimError(Exception):
    """Base exception for time-calculation service failures."""
    pass


class LocationNotFound(ZmanimError):
    """Raised when the service does not recognize a location."""
    pass


class ZmanimServiceUnavailable(ZmanimError):
    """Raised when the service is unreachable or returns unusable data."""
    pass


def extract_wall_clock(iso_value: Optional[str]) -> Optional[str]:
    """
    Extract "HH:MM" from an ISO-8601 timestamp without timezone conversion.

    "2025-12-09T16:35:12+02:00" -> "16:35"
    """
    if not iso_value:
        return None
    match = _WALL_CLOCK_RE.search(iso_value)
    if not match:
        return None
    return f"{match.group(1)}:{match.group(2)}"


class HebcalClient:
    """Async client for the Hebcal calendar and zmanim endpoints."""

    def __init__(
        self,
        calendar_url: str = DEFAULT_CALENDAR_URL,
        zmanim_url: str = DEFAULT_ZMANIM_URL,
        timeout_seconds: float = 5.0,
    ):
        self.calendar_url = calendar_url
        self.zmanim_url = zmanim_url
        self.timeout_seconds = timeout_seconds

    async def _get_json(self, url: str, params: dict[str, str]) -> dict[str, Any]:
        """
        GET a Hebcal endpoint and decode the JSON body.

        Raises:
            LocationNotFound: On HTTP 404
            ZmanimServiceUnavailable: On transport errors, timeouts or other statuses
        """
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=params) as resp:
                    if resp.status == 404:
                        raise LocationNotFound(f"Hebcal returned 404 for {params}")
                    if resp.status != 200:
                        raise ZmanimServiceUnavailable(
                            f"Hebcal API error: {resp.status}"
                        )
                    return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ZmanimServiceUnavailable(f"Hebcal request failed: {e}") from e

    async def lookup_city(self, city: str) -> GeoLocation:
        """
        Geocode a city name via the calendar endpoint.

        Raises:
            LocationNotFound: If Hebcal does not know the city
        """
        data = await self._get_json(
            self.calendar_url,
            {"v": "1", "cfg": "json", "geo": "city", "city": city},
        )
        if data.get("error"):
            raise LocationNotFound(f"Unknown location '{city}': {data['error']}")

        location = data.get("location") or {}
        latitude = location.get("latitude")
        longitude = location.get("longitude")
        tzid = location.get("tzid")
        if latitude is None or longitude is None or not tzid:
            raise LocationNotFound(f"No coordinates for location '{city}'")

        return GeoLocation(
            name=location.get("city") or city,
            latitude=float(latitude),
            longitude=float(longitude),
            timezone=tzid,
        )

    async def get_zmanim(self, geo: GeoLocation, day: date) -> dict[str, str]:
        """Fetch the raw zmanim times (ISO strings keyed by name) for a place and date."""
        data = await self._get_json(
            self.zmanim_url,
            {
                "cfg": "json",
                "latitude": str(geo.latitude),
                "longitude": str(geo.longitude),
                "tzid": geo.timezone,
                "date": day.isoformat(),
            },
        )
        times = data.get("times")
        if not isinstance(times, dict):
            raise ZmanimServiceUnavailable(f"Zmanim response for {geo.name} has no times")

        logger.info(f"Zmanim data retrieved for {geo.name} ({geo.latitude}, {geo.longitude}) on {day}")
        return times

    async def get_candle_lighting(self, geo: GeoLocation, day: date) -> Optional[str]:
        """Return the candle-lighting wall-clock time for a date, or None if there is none."""
        data = await self._get_json(
            self.calendar_url,
            {
                "v": "1",
                "cfg": "json",
                "geo": "pos",
                "latitude": str(geo.latitude),
                "longitude": str(geo.longitude),
                "tzid": geo.timezone,
                "c": "on",
                "start": day.isoformat(),
                "end": day.isoformat(),
            },
        )
        for item in data.get("items") or []:
            title = (item.get("title") or "").lower()
            if item.get("category") == "candles" or "candle" in title:
                return extract_wall_clock(item.get("date"))
        return None
