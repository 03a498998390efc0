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

"""Data types shared by the Hebcal client and the event time resolver."""

from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class GeoLocation:
    """A resolved place: display name, coordinates and IANA timezone."""

    name: str
    latitude: float
    longitude: float
    timezone: str


@dataclass(frozen=True)
class EventTimes:
    """Wall-clock ("HH:MM") event times for one location and date."""

    date: date
    location: str
    timezone: str
    sunset: Optional[str]
    tzeit: Optional[str] = None  # nightfall, after sunset
    shema: Optional[str] = None  # latest morning Shema
    candle_lighting: Optional[str] = None  # Fridays only
    source: str = "api"  # "api" or "seasonal"
    fallback_used: bool = False

    @property
    def is_approximate(self) -> bool:
        return self.source == "seasonal"
