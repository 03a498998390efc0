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
Event Time Resolver

Turns (location, date) into the event times reminders are scheduled against.

Resolution order:
1. In-process cache (TTL, default one hour)
2. Hebcal, using hard-coded coordinates for well-known cities or a
   geocoding lookup for anything else
3. Ordered fallback locations, first success wins
4. Seasonal approximation keyed only by month, so a user never stalls

Outcomes of steps 3 and 4 are remembered for a few minutes. Expired
entries are pruned on every write.
"""

import logging
import re
import time
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Iterable, Optional

from .client import HebcalClient, ZmanimError, ZmanimServiceUnavailable, extract_wall_clock
from .models import EventTimes, GeoLocation

logger = logging.getLogger("zmanimbot.zmanim.resolver")

DEFAULT_CACHE_TTL_SECONDS = 60 * 60
DEFAULT_FALLBACK_CACHE_TTL_SECONDS = 5 * 60
DEFAULT_TIMEZONE = "Asia/Jerusalem"
DEFAULT_FALLBACK_LOCATIONS = ("Jerusalem", "Tel Aviv", "Haifa", "New York", "Los Angeles")

# Zmanim response keys, per event class
SUNSET_KEY = "sunset"
TZEIT_KEYS = ("tzeit7083deg", "tzeit85deg", "tzeit42min")
SHEMA_KEY = "sofZmanShma"

_JERUSALEM = GeoLocation("Jerusalem", 31.7683, 35.2137, "Asia/Jerusalem")
_TEL_AVIV = GeoLocation("Tel Aviv", 32.0853, 34.7818, "Asia/Jerusalem")
_HAIFA = GeoLocation("Haifa", 32.7940, 34.9896, "Asia/Jerusalem")
_BEER_SHEVA = GeoLocation("Beer Sheva", 31.2520, 34.7915, "Asia/Jerusalem")
_EILAT = GeoLocation("Eilat", 29.5577, 34.9519, "Asia/Jerusalem")
_NEW_YORK = GeoLocation("New York", 40.7128, -74.0060, "America/New_York")
_LOS_ANGELES = GeoLocation("Los Angeles", 34.0522, -118.2437, "America/Los_Angeles")

# Normalized name -> coordinates; skips the geocoding round trip
KNOWN_LOCATIONS: dict[str, GeoLocation] = {
    "jerusalem": _JERUSALEM,
    "ירושלים": _JERUSALEM,
    "tel aviv": _TEL_AVIV,
    "telaviv": _TEL_AVIV,
    "תל אביב": _TEL_AVIV,
    "haifa": _HAIFA,
    "חיפה": _HAIFA,
    "beer sheva": _BEER_SHEVA,
    "beersheba": _BEER_SHEVA,
    "beer sheba": _BEER_SHEVA,
    "באר שבע": _BEER_SHEVA,
    "eilat": _EILAT,
    "אילת": _EILAT,
    "new york": _NEW_YORK,
    "newyork": _NEW_YORK,
    "los angeles": _LOS_ANGELES,
    "losangeles": _LOS_ANGELES,
}

# Winter months with their own approximation; everything else falls in a band
_WINTER_SUNSETS = {11: "16:45", 12: "16:30", 1: "16:45", 2: "17:15"}
SUMMER_MONTHS = range(4, 10)  # April-September
SUMMER_SUNSET = "19:30"
WINTER_SUNSET = "17:00"


def normalize_location(name: str) -> str:
    """Lowercase, trim and collapse separators so aliases compare equal."""
    return re.sub(r"[\s\-_']+", " ", name.strip().lower())


def seasonal_sunset(month: int) -> str:
    """Static sunset approximation for a month (1-12)."""
    if month in _WINTER_SUNSETS:
        return _WINTER_SUNSETS[month]
    return SUMMER_SUNSET if month in SUMMER_MONTHS else WINTER_SUNSET


@dataclass
class CacheEntry:
    """Cached event times with expiration."""
    times: EventTimes
    expires_at: float


class EventTimeResolver:
    """
    Resolves event times for a location and date with caching and fallbacks.

    A single instance is shared by the scheduler for the whole process, so the
    cache is shared by every user in the same city.
    """

    def __init__(
        self,
        client: HebcalClient,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        fallback_locations: Iterable[str] = DEFAULT_FALLBACK_LOCATIONS,
        default_timezone: str = DEFAULT_TIMEZONE,
        clock: Callable[[], float] = time.time,
        fallback_cache_ttl_seconds: int = DEFAULT_FALLBACK_CACHE_TTL_SECONDS,
    ):
        """
        Initialize the resolver.

        Args:
            client: Hebcal API client
            cache_ttl_seconds: How long resolved times stay valid
            fallback_locations: Ordered alternate locations tried after a failure
            default_timezone: Timezone for seasonal approximations of unknown places
            clock: Time source for cache expiry (injectable for tests)
            fallback_cache_ttl_seconds: How long a fallback or seasonal outcome
                stands in for a location that failed
        """
        self.client = client
        self.cache_ttl_seconds = cache_ttl_seconds
        self.fallback_cache_ttl_seconds = fallback_cache_ttl_seconds
        self.fallback_locations = tuple(fallback_locations)
        self.default_timezone = default_timezone
        self._clock = clock
        self._cache: dict[tuple, CacheEntry] = {}
        # Outcomes for locations whose own lookup failed, keyed with the caller's timezone
        self._fallback_cache: dict[tuple, CacheEntry] = {}

    def _get_cached(self, cache: dict[tuple, CacheEntry], key: tuple) -> Optional[EventTimes]:
        entry = cache.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del cache[key]
            return None
        return entry.times

    def _set_cached(
        self, cache: dict[tuple, CacheEntry], key: tuple, times: EventTimes, ttl: int
    ) -> None:
        self._prune()
        cache[key] = CacheEntry(times, self._clock() + ttl)

    def _prune(self) -> None:
        """Drop expired entries; past dates are never read again."""
        now = self._clock()
        for cache in (self._cache, self._fallback_cache):
            expired = [key for key, entry in cache.items() if now >= entry.expires_at]
            for key in expired:
                del cache[key]

    def cache_size(self) -> int:
        return len(self._cache) + len(self._fallback_cache)

    async def _geolocate(self, location: str) -> GeoLocation:
        known = KNOWN_LOCATIONS.get(normalize_location(location))
        if known is not None:
            return known
        return await self.client.lookup_city(location)

    async def resolve(self, location: str, day: date) -> EventTimes:
        """
        Resolve event times for one location, without fallbacks.

        Raises:
            LocationNotFound: Unknown location
            ZmanimServiceUnavailable: Service unreachable or response unusable
        """
        key = (normalize_location(location), day)
        cached = self._get_cached(self._cache, key)
        if cached is not None:
            return cached

        geo = await self._geolocate(location)
        times = await self.client.get_zmanim(geo, day)

        sunset = extract_wall_clock(times.get(SUNSET_KEY))
        if sunset is None:
            raise ZmanimServiceUnavailable(f"No usable sunset for {location} on {day}")

        tzeit = next(
            (extract_wall_clock(times[key]) for key in TZEIT_KEYS if times.get(key)),
            None,
        )
        shema = extract_wall_clock(times.get(SHEMA_KEY))

        candle_lighting = None
        if day.weekday() == 4:  # Friday
            try:
                candle_lighting = await self.client.get_candle_lighting(geo, day)
            except ZmanimError as e:
                logger.warning(f"Candle lighting lookup failed for {location} on {day}: {e}")

        event_times = EventTimes(
            date=day,
            location=location,
            timezone=geo.timezone,
            sunset=sunset,
            tzeit=tzeit,
            shema=shema,
            candle_lighting=candle_lighting,
        )
        self._set_cached(self._cache, key, event_times, self.cache_ttl_seconds)
        logger.debug(f"Resolved event times for {location} on {day}: {event_times}")
        return event_times

    def _candidates(self, location: str) -> list[str]:
        seen = {normalize_location(location)}
        candidates = [location]
        for fallback in self.fallback_locations:
            key = normalize_location(fallback)
            if key not in seen:
                seen.add(key)
                candidates.append(fallback)
        return candidates

    async def resolve_with_fallback(
        self, location: str, day: date, timezone: Optional[str] = None
    ) -> EventTimes:
        """
        Resolve event times, trying fallback locations and finally a seasonal
        approximation. Never raises.

        When a fallback succeeds the result has fallback_used=True and its
        location is the fallback, so callers can persist the correction.
        Either outcome is remembered briefly so an outage costs one walk of
        the candidate list per location, not one per caller.

        Args:
            location: Requested location name
            day: Date in the location's calendar
            timezone: Caller's timezone, used for a seasonal approximation of
                a place with no known timezone
        """
        fallback_key = (normalize_location(location), day, timezone)
        remembered = self._get_cached(self._fallback_cache, fallback_key)
        if remembered is not None:
            return remembered

        for index, candidate in enumerate(self._candidates(location)):
            try:
                times = await self.resolve(candidate, day)
            except ZmanimError as e:
                logger.warning(f"Could not resolve event times for '{candidate}': {e}")
                continue
            except Exception as e:
                logger.error(
                    f"Unexpected error resolving event times for '{candidate}': {e}",
                    exc_info=True,
                )
                continue

            if index == 0:
                return times
            logger.info(f"Using fallback location '{candidate}' instead of '{location}'")
            result = replace(times, fallback_used=True)
            break
        else:
            result = self.seasonal(location, day, timezone)
            logger.warning(
                f"All locations failed for '{location}', using approximate sunset "
                f"{result.sunset} ({result.timezone})"
            )

        self._set_cached(
            self._fallback_cache, fallback_key, result, self.fallback_cache_ttl_seconds
        )
        return result

    def seasonal(
        self, location: str, day: date, timezone: Optional[str] = None
    ) -> EventTimes:
        """
        Static month-based approximation used when every lookup fails.

        The sunset is a wall-clock time in the location's own timezone when
        the place is known, else in the caller's, else the default.
        """
        known = KNOWN_LOCATIONS.get(normalize_location(location))
        if known is not None:
            tz = known.timezone
        else:
            tz = timezone or self.default_timezone
        return EventTimes(
            date=day,
            location=location,
            timezone=tz,
            sunset=seasonal_sunset(day.month),
            source="seasonal",
        )
