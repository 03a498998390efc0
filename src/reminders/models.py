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
Reminder Domain Model

Users, their reminder settings, and the closed set of reminder types.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional


class ReminderType(str, Enum):
    """Kinds of reminders. Values are the identifiers stored in the database."""

    TEFILLIN = "tefillin"  # relative to sunset
    SHEMA = "shema"  # relative to the latest morning Shema
    CANDLE_LIGHTING = "candle_lighting"  # weekly, Friday morning
    TAARA = "taara"  # fixed daily time chosen by the user
    CLEAN_7 = "clean_7"  # daily for seven days from a start date


class UserStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass
class User:
    """A WhatsApp user, keyed by phone number."""

    id: str
    phone_number: str
    status: UserStatus = UserStatus.ACTIVE
    timezone: Optional[str] = None
    location: Optional[str] = None
    gender: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "User":
        return cls(
            id=str(row["id"]),
            phone_number=row["phone_number"],
            status=UserStatus(row["status"]),
            timezone=row.get("timezone"),
            location=row.get("location"),
            gender=row.get("gender"),
        )


@dataclass
class ReminderSetting:
    """
    One reminder a user has configured.

    offset_minutes is signed: negative = before the event, positive = after.
    For TAARA it holds minutes since midnight instead.
    """

    id: Optional[str]
    user_id: str
    reminder_type: ReminderType
    enabled: bool = True
    offset_minutes: int = 0
    last_sent_at: Optional[datetime] = None
    test_time: Optional[str] = None  # "HH:MM", test mode only
    clean_start_date: Optional[date] = None  # CLEAN_7 only

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ReminderSetting":
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            user_id=str(row["user_id"]),
            reminder_type=ReminderType(row["reminder_type"]),
            enabled=row.get("enabled", True),
            offset_minutes=row.get("offset_minutes", 0) or 0,
            last_sent_at=row.get("last_sent_at"),
            test_time=row.get("test_time"),
            clean_start_date=row.get("clean_start_date"),
        )
