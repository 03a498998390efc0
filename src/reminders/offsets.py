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
Offset Calculator

Wall-clock "HH:MM" arithmetic for reminder target times. All values are
minutes within a single day: applying an offset wraps around midnight but
never moves the date.
"""

import re
from datetime import date, datetime, time
from typing import Optional

import pytz

MINUTES_PER_DAY = 24 * 60

_HHMM_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_hhmm(value: str) -> tuple[int, int]:
    """
    Parse "HH:MM" into (hours, minutes).

    Raises:
        ValueError: If the value is not a valid 24-hour time
    """
    match = _HHMM_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid time (expected HH:MM): {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time (expected HH:MM): {value!r}")
    return hours, minutes


def minutes_of_day(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight."""
    hours, minutes = parse_hhmm(value)
    return hours * 60 + minutes


def minutes_to_hhmm(total_minutes: int) -> str:
    """Minutes (any integer) -> "HH:MM", wrapped into a single day."""
    total_minutes %= MINUTES_PER_DAY
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def format_hhmm(moment: datetime) -> str:
    return f"{moment.hour:02d}:{moment.minute:02d}"


def apply_offset(event_time: str, offset_minutes: int) -> str:
    """
    Apply a signed minute offset to an event time.

    apply_offset("18:00", -30) -> "17:30"
    apply_offset("00:10", -20) -> "23:50"
    apply_offset("23:50", 20)  -> "00:10"
    """
    return minutes_to_hhmm(minutes_of_day(event_time) + offset_minutes)


def convert_timezone(
    value: str,
    from_tz: str,
    to_tz: str,
    on_date: Optional[date] = None,
) -> str:
    """
    Re-express a wall-clock time in one timezone as the wall-clock time in another.

    Uses each zone's UTC offset on the reference date, so DST is handled.

    Raises:
        ValueError: Invalid time
        pytz.UnknownTimeZoneError: Invalid timezone name
    """
    if from_tz == to_tz:
        return value
    hours, minutes = parse_hhmm(value)
    source = pytz.timezone(from_tz)
    target = pytz.timezone(to_tz)
    reference = on_date or datetime.now(source).date()
    local = source.localize(datetime.combine(reference, time(hours, minutes)))
    return format_hhmm(local.astimezone(target))


def now_in_timezone(now: datetime, timezone: str) -> datetime:
    """Express an aware datetime in a named timezone."""
    return now.astimezone(pytz.timezone(timezone))


def describe_offset_minutes(offset_minutes: int) -> tuple[str, int]:
    """Split a signed offset into ("before"/"after"/"at", absolute minutes)."""
    if offset_minutes == 0:
        return "at", 0
    if offset_minutes < 0:
        return "before", -offset_minutes
    return "after", offset_minutes
