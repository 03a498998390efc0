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
Zmanim Package

Resolves halachic event times (sunset, nightfall, morning Shema, candle
lighting) for a location and date via the Hebcal API.
"""

from .client import (
    HebcalClient,
    ZmanimError,
    LocationNotFound,
    ZmanimServiceUnavailable,
    extract_wall_clock,
)
from .models import EventTimes, GeoLocation
from .resolver import (
    DEFAULT_FALLBACK_LOCATIONS,
    EventTimeResolver,
    KNOWN_LOCATIONS,
    normalize_location,
    seasonal_sunset,
)

__all__ = [
    "HebcalClient",
    "ZmanimError",
    "LocationNotFound",
    "ZmanimServiceUnavailable",
    "extract_wall_clock",
    "EventTimes",
    "GeoLocation",
    "DEFAULT_FALLBACK_LOCATIONS",
    "EventTimeResolver",
    "KNOWN_LOCATIONS",
    "normalize_location",
    "seasonal_sunset",
]
