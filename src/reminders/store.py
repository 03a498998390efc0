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
Reminder Store

Persistence for users and reminder settings. The scheduler and the
management service both depend on the abstract ReminderStore; production
uses PostgresReminderStore (asyncpg, raw SQL).
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import asyncpg

from .models import ReminderSetting, ReminderType, User, UserStatus

logger = logging.getLogger("zmanimbot.reminders.store")

# Columns callers may change through the update_* methods
USER_UPDATE_FIELDS = frozenset({"status", "timezone", "location", "gender"})
SETTING_UPDATE_FIELDS = frozenset(
    {"enabled", "offset_minutes", "last_sent_at", "test_time", "clean_start_date"}
)

_SETTING_COLUMNS = """
    id, user_id, reminder_type, enabled, offset_minutes,
    last_sent_at, test_time, clean_start_date
"""


def _set_clause(fields: dict[str, Any], allowed: frozenset, start: int = 2) -> tuple[str, list]:
    """
    Build "col = $n, ..." for an UPDATE from whitelisted fields.

    Raises:
        ValueError: If a field is not updatable or no fields were given
    """
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Fields not updatable: {sorted(unknown)}")
    if not fields:
        raise ValueError("No fields to update")

    parts = []
    values = []
    for index, (column, value) in enumerate(fields.items(), start=start):
        if isinstance(value, (UserStatus, ReminderType)):
            value = value.value
        parts.append(f"{column} = ${index}")
        values.append(value)
    return ", ".join(parts), values


class ReminderStore(ABC):
    """Storage interface for users and reminder settings."""

    @abstractmethod
    async def get_active_users(self) -> list[User]:
        ...

    @abstractmethod
    async def get_user_by_phone(self, phone_number: str) -> Optional[User]:
        ...

    @abstractmethod
    async def create_user(
        self,
        phone_number: str,
        status: UserStatus = UserStatus.PENDING,
        timezone: Optional[str] = None,
        location: Optional[str] = None,
        gender: Optional[str] = None,
    ) -> User:
        ...

    @abstractmethod
    async def update_user(self, phone_number: str, fields: dict[str, Any]) -> bool:
        ...

    @abstractmethod
    async def get_reminder_settings(self, user_id: str) -> list[ReminderSetting]:
        ...

    @abstractmethod
    async def get_reminder_setting(self, setting_id: str) -> Optional[ReminderSetting]:
        ...

    @abstractmethod
    async def upsert_reminder_setting(self, setting: ReminderSetting) -> ReminderSetting:
        """Insert or update the setting keyed by (user_id, reminder_type)."""
        ...

    @abstractmethod
    async def update_reminder_setting_by_id(
        self, setting_id: str, fields: dict[str, Any]
    ) -> bool:
        ...

    @abstractmethod
    async def delete_reminder_setting(self, setting_id: str) -> bool:
        ...

    @abstractmethod
    async def get_enabled_settings_with_active_owner(
        self,
    ) -> list[tuple[User, ReminderSetting]]:
        """Every enabled setting paired with its owner, for active owners only."""
        ...


class PostgresReminderStore(ReminderStore):
    """
    PostgreSQL-backed store.

    Schema lives in migrations/001_initial.sql.
    """

    def __init__(self, db_pool: asyncpg.Pool):
        """
        Initialize the store.

        Args:
            db_pool: asyncpg connection pool
        """
        self.db = db_pool

    # =========================================================================
    # Users
    # =========================================================================

    async def get_active_users(self) -> list[User]:
        rows = await self.db.fetch(
            """
            SELECT id, phone_number, status, timezone, location, gender
            FROM users
            WHERE status = 'active'
            ORDER BY created_at ASC
            """
        )
        return [User.from_row(row) for row in rows]

    async def get_user_by_phone(self, phone_number: str) -> Optional[User]:
        row = await self.db.fetchrow(
            """
            SELECT id, phone_number, status, timezone, location, gender
            FROM users
            WHERE phone_number = $1
            """,
            phone_number,
        )
        return User.from_row(row) if row else None

    async def create_user(
        self,
        phone_number: str,
        status: UserStatus = UserStatus.PENDING,
        timezone: Optional[str] = None,
        location: Optional[str] = None,
        gender: Optional[str] = None,
    ) -> User:
        """
        Create a user, or return the existing one for this phone number.

        Returns:
            The stored user
        """
        row = await self.db.fetchrow(
            """
            INSERT INTO users (phone_number, status, timezone, location, gender)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (phone_number)
            DO UPDATE SET updated_at = NOW()
            RETURNING id, phone_number, status, timezone, location, gender
            """,
            phone_number,
            status.value,
            timezone,
            location,
            gender,
        )
        user = User.from_row(row)
        logger.info(f"Created user {user.id} ({phone_number})")
        return user

    async def update_user(self, phone_number: str, fields: dict[str, Any]) -> bool:
        """
        Update whitelisted user fields.

        Returns:
            True if a row was updated

        Raises:
            ValueError: If a field is not updatable
        """
        clause, values = _set_clause(fields, USER_UPDATE_FIELDS)
        result = await self.db.execute(
            f"""
            UPDATE users
            SET {clause}, updated_at = NOW()
            WHERE phone_number = $1
            """,
            phone_number,
            *values,
        )
        updated = result == "UPDATE 1"
        if updated:
            logger.info(f"Updated user {phone_number}: {sorted(fields)}")
        return updated

    # =========================================================================
    # Reminder settings
    # =========================================================================

    async def get_reminder_settings(self, user_id: str) -> list[ReminderSetting]:
        rows = await self.db.fetch(
            f"""
            SELECT {_SETTING_COLUMNS}
            FROM reminder_settings
            WHERE user_id = $1
            ORDER BY reminder_type ASC, id ASC
            """,
            user_id,
        )
        return [ReminderSetting.from_row(row) for row in rows]

    async def get_reminder_setting(self, setting_id: str) -> Optional[ReminderSetting]:
        row = await self.db.fetchrow(
            f"""
            SELECT {_SETTING_COLUMNS}
            FROM reminder_settings
            WHERE id = $1
            """,
            setting_id,
        )
        return ReminderSetting.from_row(row) if row else None

    async def upsert_reminder_setting(self, setting: ReminderSetting) -> ReminderSetting:
        row = await self.db.fetchrow(
            f"""
            INSERT INTO reminder_settings (
                user_id, reminder_type, enabled, offset_minutes, clean_start_date
            ) VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (user_id, reminder_type)
            DO UPDATE SET enabled = $3,
                          offset_minutes = $4,
                          clean_start_date = $5,
                          updated_at = NOW()
            RETURNING {_SETTING_COLUMNS}
            """,
            setting.user_id,
            setting.reminder_type.value,
            setting.enabled,
            setting.offset_minutes,
            setting.clean_start_date,
        )
        stored = ReminderSetting.from_row(row)
        logger.info(
            f"Upserted reminder {stored.id} ({stored.reminder_type.value}) "
            f"for user {stored.user_id}: offset={stored.offset_minutes}"
        )
        return stored

    async def update_reminder_setting_by_id(
        self, setting_id: str, fields: dict[str, Any]
    ) -> bool:
        """
        Update whitelisted fields of one setting. Never touches reminder_type.

        Raises:
            ValueError: If a field is not updatable
        """
        clause, values = _set_clause(fields, SETTING_UPDATE_FIELDS)
        result = await self.db.execute(
            f"""
            UPDATE reminder_settings
            SET {clause}, updated_at = NOW()
            WHERE id = $1
            """,
            setting_id,
            *values,
        )
        return result == "UPDATE 1"

    async def delete_reminder_setting(self, setting_id: str) -> bool:
        result = await self.db.execute(
            """
            DELETE FROM reminder_settings
            WHERE id = $1
            """,
            setting_id,
        )
        deleted = result == "DELETE 1"
        if deleted:
            logger.info(f"Deleted reminder {setting_id}")
        return deleted

    # =========================================================================
    # Scheduler-facing methods
    # =========================================================================

    async def get_enabled_settings_with_active_owner(
        self,
    ) -> list[tuple[User, ReminderSetting]]:
        rows = await self.db.fetch(
            """
            SELECT rs.id, rs.user_id, rs.reminder_type, rs.enabled,
                   rs.offset_minutes, rs.last_sent_at, rs.test_time,
                   rs.clean_start_date,
                   u.phone_number, u.status, u.timezone, u.location, u.gender
            FROM reminder_settings rs
            JOIN users u ON u.id = rs.user_id
            WHERE rs.enabled = TRUE AND u.status = 'active'
            ORDER BY u.phone_number ASC, rs.reminder_type ASC
            """
        )

        pairs = []
        for row in rows:
            user = User(
                id=str(row["user_id"]),
                phone_number=row["phone_number"],
                status=UserStatus(row["status"]),
                timezone=row["timezone"],
                location=row["location"],
                gender=row["gender"],
            )
            pairs.append((user, ReminderSetting.from_row(row)))
        return pairs
