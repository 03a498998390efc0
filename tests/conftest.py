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

"""Shared fixtures: in-memory store, recording delivery, fixed clock."""

import itertools
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Optional
from unittest.mock import patch

import pytest
import pytz

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from reminders.delivery import ReminderDelivery
from reminders.models import ReminderSetting, ReminderType, User, UserStatus
from reminders.service import ReminderService
from reminders.conversation import ConversationRouter
from reminders.state import InMemoryConversationStateStore
from reminders.store import ReminderStore

JERUSALEM = pytz.timezone("Asia/Jerusalem")


def jerusalem(year, month, day, hour=0, minute=0):
    """Aware datetime at a Jerusalem wall-clock time."""
    return JERUSALEM.localize(datetime(year, month, day, hour, minute))


class FakeReminderStore(ReminderStore):
    """Dict-backed ReminderStore with the same semantics as the Postgres one."""

    def __init__(self):
        self.users: dict[str, User] = {}
        self.settings: dict[str, ReminderSetting] = {}
        self.fail_delete = False
        self._ids = itertools.count(1)

    def add_user(self, phone_number: str, **fields) -> User:
        user = User(id=f"user-{next(self._ids)}", phone_number=phone_number, **fields)
        self.users[phone_number] = user
        return user

    def add_setting(
        self, user: User, reminder_type: ReminderType, **fields
    ) -> ReminderSetting:
        setting = ReminderSetting(
            id=f"rem-{next(self._ids)}",
            user_id=user.id,
            reminder_type=reminder_type,
            **fields,
        )
        self.settings[setting.id] = setting
        return setting

    async def get_active_users(self) -> list[User]:
        return [u for u in self.users.values() if u.status is UserStatus.ACTIVE]

    async def get_user_by_phone(self, phone_number: str) -> Optional[User]:
        return self.users.get(phone_number)

    async def create_user(
        self,
        phone_number: str,
        status: UserStatus = UserStatus.PENDING,
        timezone: Optional[str] = None,
        location: Optional[str] = None,
        gender: Optional[str] = None,
    ) -> User:
        if phone_number in self.users:
            return self.users[phone_number]
        return self.add_user(
            phone_number, status=status, timezone=timezone, location=location, gender=gender
        )

    async def update_user(self, phone_number: str, fields: dict[str, Any]) -> bool:
        user = self.users.get(phone_number)
        if user is None:
            return False
        self.users[phone_number] = replace(user, **fields)
        return True

    async def get_reminder_settings(self, user_id: str) -> list[ReminderSetting]:
        return [replace(s) for s in self.settings.values() if s.user_id == user_id]

    async def get_reminder_setting(self, setting_id: str) -> Optional[ReminderSetting]:
        setting = self.settings.get(setting_id)
        return replace(setting) if setting else None

    async def upsert_reminder_setting(self, setting: ReminderSetting) -> ReminderSetting:
        for existing in self.settings.values():
            if (existing.user_id, existing.reminder_type) == (setting.user_id, setting.reminder_type):
                stored = replace(
                    existing,
                    enabled=setting.enabled,
                    offset_minutes=setting.offset_minutes,
                    clean_start_date=setting.clean_start_date,
                )
                self.settings[existing.id] = stored
                return replace(stored)
        stored = replace(setting, id=f"rem-{next(self._ids)}")
        self.settings[stored.id] = stored
        return replace(stored)

    async def update_reminder_setting_by_id(
        self, setting_id: str, fields: dict[str, Any]
    ) -> bool:
        setting = self.settings.get(setting_id)
        if setting is None:
            return False
        self.settings[setting_id] = replace(setting, **fields)
        return True

    async def delete_reminder_setting(self, setting_id: str) -> bool:
        if self.fail_delete:
            return False
        return self.settings.pop(setting_id, None) is not None

    async def get_enabled_settings_with_active_owner(
        self,
    ) -> list[tuple[User, ReminderSetting]]:
        by_id = {u.id: u for u in self.users.values()}
        pairs = []
        for setting in self.settings.values():
            owner = by_id.get(setting.user_id)
            if setting.enabled and owner is not None and owner.status is UserStatus.ACTIVE:
                pairs.append((owner, replace(setting)))
        return pairs


class RecordingDelivery(ReminderDelivery):
    """Delivery that records calls; templates listed in `templates` succeed."""

    def __init__(self, templates=(), succeed=True):
        self.templates = set(templates)
        self.succeed = succeed
        self.texts: list[tuple[str, str]] = []
        self.templated: list[tuple[str, str, dict]] = []

    async def send(self, phone_number: str, text: str) -> bool:
        self.texts.append((phone_number, text))
        return self.succeed

    async def send_templated(self, phone_number, template_key, variables) -> bool:
        if template_key not in self.templates:
            return False
        self.templated.append((phone_number, template_key, variables))
        return self.succeed

    @property
    def sent_count(self) -> int:
        return len(self.texts) + len(self.templated)


@pytest.fixture(autouse=True)
def no_analytics():
    """Keep analytics from reaching a real database."""
    with patch("analytics._enabled", False):
        yield


@pytest.fixture
def store():
    return FakeReminderStore()


@pytest.fixture
def states():
    return InMemoryConversationStateStore()


@pytest.fixture
def service(store, states):
    return ReminderService(
        store,
        states,
        clock=lambda: jerusalem(2025, 1, 15, 12, 0),
    )


@pytest.fixture
def router(service, states):
    return ConversationRouter(service, states)
