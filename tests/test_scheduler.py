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

"""Tests for the reminder scheduler tick."""

import socket
import sys
from datetime import date, datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytz

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from config import BotConfig
from reminders.models import ReminderType, UserStatus
from reminders.scheduler import ReminderScheduler, is_network_error, is_shabbat
from zmanim import EventTimeResolver, EventTimes, ZmanimServiceUnavailable

from conftest import RecordingDelivery, jerusalem

PHONE = "+972500000001"
OTHER_PHONE = "+972500000002"

NEW_YORK = pytz.timezone("America/New_York")


def event_times(day=date(2025, 1, 15), location="Jerusalem", **fields):
    values = dict(
        date=day,
        location=location,
        timezone="Asia/Jerusalem",
        sunset="18:00",
        shema="08:45",
    )
    values.update(fields)
    return EventTimes(**values)


@pytest.fixture
def resolver():
    resolver = MagicMock()
    resolver.resolve_with_fallback = AsyncMock(
        side_effect=lambda location, day, timezone=None: event_times(
            day=day, location=location
        )
    )
    return resolver


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def config():
    return BotConfig()


@pytest.fixture
def scheduler(store, resolver, delivery, config):
    return ReminderScheduler(store, resolver, delivery, config)


class TestEndToEnd:
    """Sunset 18:00, offset -30: delivered once at 17:30."""

    @pytest.mark.asyncio
    async def test_delivers_once_per_day(self, scheduler, store, delivery):
        user = store.add_user(PHONE, location="Jerusalem")
        setting = store.add_setting(user, ReminderType.TEFILLIN, offset_minutes=-30)

        assert await scheduler.run_once(jerusalem(2025, 1, 15, 17, 0)) == 0
        assert await scheduler.run_once(jerusalem(2025, 1, 15, 17, 30)) == 1
        assert await scheduler.run_once(jerusalem(2025, 1, 15, 17, 31)) == 0

        assert delivery.sent_count == 1
        phone, text = delivery.texts[0]
        assert phone == PHONE
        assert "18:00" in text and "17:30" in text
        assert store.settings[setting.id].last_sent_at == jerusalem(2025, 1, 15, 17, 30)

    @pytest.mark.asyncio
    async def test_fires_again_next_day(self, scheduler, store, delivery):
        user = store.add_user(PHONE, location="Jerusalem")
        store.add_setting(user, ReminderType.TEFILLIN, offset_minutes=-30)

        assert await scheduler.run_once(jerusalem(2025, 1, 15, 17, 30)) == 1
        assert await scheduler.run_once(jerusalem(2025, 1, 16, 17, 30)) == 1

    @pytest.mark.asyncio
    async def test_templated_delivery(self, store, resolver):
        delivery = RecordingDelivery(templates={"tefillin_final"})
        scheduler = ReminderScheduler(store, resolver, delivery, BotConfig())
        user = store.add_user(PHONE, location="Jerusalem")
        store.add_setting(user, ReminderType.TEFILLIN, offset_minutes=-30)

        await scheduler.run_once(jerusalem(2025, 1, 15, 17, 30))

        assert delivery.templated == [(PHONE, "tefillin_final", {"1": "18:00", "2": "17:30"})]
        assert delivery.texts == []

    @pytest.mark.asyncio
    async def test_default_location_for_empty(self, scheduler, store, resolver):
        user = store.add_user(PHONE)
        store.add_setting(user, ReminderType.TEFILLIN)

        await scheduler.run_once(jerusalem(2025, 1, 15, 12, 0))
        resolver.resolve_with_fallback.assert_awaited_once_with(
            "Jerusalem", date(2025, 1, 15), timezone="Asia/Jerusalem"
        )

    @pytest.mark.asyncio
    async def test_inactive_users_skipped(self, scheduler, store, delivery):
        user = store.add_user(PHONE, status=UserStatus.INACTIVE)
        store.add_setting(user, ReminderType.TEFILLIN, offset_minutes=-30)

        assert await scheduler.run_once(jerusalem(2025, 1, 15, 17, 30)) == 0
        assert delivery.sent_count == 0

    @pytest.mark.asyncio
    async def test_failed_delivery_still_recorded(self, store, resolver):
        delivery = RecordingDelivery(succeed=False)
        scheduler = ReminderScheduler(store, resolver, delivery, BotConfig())
        user = store.add_user(PHONE, location="Jerusalem")
        setting = store.add_setting(user, ReminderType.TEFILLIN, offset_minutes=-30)

        assert await scheduler.run_once(jerusalem(2025, 1, 15, 17, 30)) == 0
        assert store.settings[setting.id].last_sent_at is not None

    @pytest.mark.asyncio
    async def test_candle_lighting_women_template(self, store, resolver):
        resolver.resolve_with_fallback = AsyncMock(
            return_value=event_times(day=date(2025, 1, 17), candle_lighting="16:40")
        )
        delivery = RecordingDelivery(templates={"candle_lighting_final", "candle_lighting_final_women"})
        config = BotConfig(templates={"candle_lighting_final_women": "HXwomen"})
        scheduler = ReminderScheduler(store, resolver, delivery, config)
        user = store.add_user(PHONE, location="Jerusalem", gender="female")
        store.add_setting(user, ReminderType.CANDLE_LIGHTING)

        assert await scheduler.run_once(jerusalem(2025, 1, 17, 8, 0)) == 1
        assert delivery.templated == [
            (PHONE, "candle_lighting_final_women", {"1": "Jerusalem", "2": "16:40", "3": "08:00"})
        ]


    @pytest.mark.asyncio
    async def test_candle_lighting_before_candle_time(self, store, resolver):
        resolver.resolve_with_fallback = AsyncMock(
            return_value=event_times(day=date(2025, 1, 17), candle_lighting="16:30")
        )
        delivery = RecordingDelivery(templates={"candle_lighting_final"})
        scheduler = ReminderScheduler(store, resolver, delivery, BotConfig())
        user = store.add_user(PHONE, location="Jerusalem")
        store.add_setting(user, ReminderType.CANDLE_LIGHTING, offset_minutes=-60)

        assert await scheduler.run_once(jerusalem(2025, 1, 17, 8, 0)) == 0
        assert await scheduler.run_once(jerusalem(2025, 1, 17, 15, 30)) == 1
        assert delivery.templated == [
            (PHONE, "candle_lighting_final", {"1": "Jerusalem", "2": "16:30", "3": "15:30"})
        ]


class TestShabbat:
    def test_is_shabbat(self):
        assert is_shabbat(jerusalem(2025, 1, 18, 12, 0))
        assert not is_shabbat(jerusalem(2025, 1, 17, 23, 59))

    @pytest.mark.asyncio
    async def test_tick_skipped_on_shabbat(self, scheduler, store):
        with patch.object(store, "get_enabled_settings_with_active_owner", AsyncMock()) as fetch:
            assert await scheduler.run_once(jerusalem(2025, 1, 18, 17, 30)) == 0
            fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_quiet_can_be_disabled(self, store, resolver, delivery):
        scheduler = ReminderScheduler(store, resolver, delivery, BotConfig(shabbat_quiet=False))
        user = store.add_user(PHONE, location="Jerusalem")
        store.add_setting(user, ReminderType.TEFILLIN, offset_minutes=-30)

        assert await scheduler.run_once(jerusalem(2025, 1, 18, 17, 30)) == 1


class TestFailureIsolation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        socket.gaierror("Name or service not known"),
        OSError("getaddrinfo ENOTFOUND db.example.com"),
        RuntimeError("relation does not exist"),
    ])
    async def test_store_failure_skips_tick(self, scheduler, store, error):
        with patch.object(store, "get_enabled_settings_with_active_owner", AsyncMock(side_effect=error)):
            assert await scheduler.run_once(jerusalem(2025, 1, 15, 17, 30)) == 0

    @pytest.mark.asyncio
    async def test_one_user_failure_does_not_block_others(self, scheduler, store, resolver, delivery):
        broken = store.add_user(PHONE, location="Broken")
        store.add_setting(broken, ReminderType.TEFILLIN, offset_minutes=-30)
        healthy = store.add_user(OTHER_PHONE, location="Haifa")
        store.add_setting(healthy, ReminderType.TEFILLIN, offset_minutes=-30)

        async def resolve(location, day, timezone=None):
            if location == "Broken":
                raise RuntimeError("boom")
            return event_times(day=day, location=location)

        resolver.resolve_with_fallback = AsyncMock(side_effect=resolve)

        assert await scheduler.run_once(jerusalem(2025, 1, 15, 17, 30)) == 1
        assert delivery.texts[0][0] == OTHER_PHONE

    @pytest.mark.asyncio
    async def test_one_reminder_failure_does_not_block_siblings(self, scheduler, store, delivery):
        user = store.add_user(PHONE, location="Jerusalem")
        store.add_setting(user, ReminderType.TEFILLIN, offset_minutes=-30)
        store.add_setting(user, ReminderType.TAARA, offset_minutes=17 * 60 + 30)

        calls = []

        def flaky_is_due(setting, *args):
            calls.append(setting.reminder_type)
            if setting.reminder_type is ReminderType.TEFILLIN:
                raise RuntimeError("boom")
            return True

        with patch.object(scheduler.trigger, "is_due", side_effect=flaky_is_due):
            assert await scheduler.run_once(jerusalem(2025, 1, 15, 17, 30)) == 1

        assert set(calls) == {ReminderType.TEFILLIN, ReminderType.TAARA}

    @pytest.mark.asyncio
    async def test_fallback_location_persisted(self, scheduler, store, resolver):
        user = store.add_user(PHONE, location="Atlantis")
        store.add_setting(user, ReminderType.TEFILLIN)
        resolver.resolve_with_fallback = AsyncMock(
            return_value=event_times(location="Jerusalem", fallback_used=True)
        )

        await scheduler.run_once(jerusalem(2025, 1, 15, 12, 0))
        assert store.users[PHONE].location == "Jerusalem"

    def test_is_network_error(self):
        assert is_network_error(socket.gaierror(-2, "Name or service not known"))
        assert is_network_error(ConnectionRefusedError())
        assert is_network_error(OSError("getaddrinfo ENOTFOUND host"))
        assert not is_network_error(ValueError("bad value"))


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, scheduler):
        scheduler.run_once = AsyncMock(return_value=0)

        scheduler.start()
        scheduler.start()
        assert scheduler.is_running

        scheduler.stop()
        assert not scheduler.is_running

    def test_test_mode_trigger_from_config(self, store, resolver, delivery):
        config = BotConfig(test_mode_enabled=True, test_trigger_window_minutes=10)
        scheduler = ReminderScheduler(store, resolver, delivery, config)
        assert scheduler.trigger.test_mode is True
        assert scheduler.trigger.test_window_minutes == 10


class TestHebcalOutage:
    """Every lookup fails; users get the seasonal sunset in their own zone."""

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.get_zmanim = AsyncMock(side_effect=ZmanimServiceUnavailable("down"))
        client.lookup_city = AsyncMock(side_effect=ZmanimServiceUnavailable("down"))
        client.get_candle_lighting = AsyncMock(side_effect=ZmanimServiceUnavailable("down"))
        return client

    @pytest.fixture
    def scheduler(self, store, client, delivery):
        resolver = EventTimeResolver(client, clock=lambda: 1000.0)
        return ReminderScheduler(store, resolver, delivery, BotConfig())

    @pytest.mark.asyncio
    async def test_new_york_user_fires_at_local_seasonal_sunset(
        self, scheduler, store, delivery
    ):
        user = store.add_user(PHONE, location="New York", timezone="America/New_York")
        store.add_setting(user, ReminderType.TEFILLIN)

        # 16:45 in Jerusalem
        morning = NEW_YORK.localize(datetime(2025, 1, 15, 9, 45))
        assert await scheduler.run_once(morning) == 0

        evening = NEW_YORK.localize(datetime(2025, 1, 15, 16, 45))
        assert await scheduler.run_once(evening) == 1
        assert "16:45" in delivery.texts[0][1]

    @pytest.mark.asyncio
    async def test_second_tick_makes_no_calls(self, scheduler, store, client):
        user = store.add_user(PHONE, location="Jerusalem")
        store.add_setting(user, ReminderType.TEFILLIN, offset_minutes=-30)

        await scheduler.run_once(jerusalem(2025, 1, 15, 12, 0))
        calls = client.get_zmanim.await_count + client.lookup_city.await_count
        assert calls > 0

        await scheduler.run_once(jerusalem(2025, 1, 15, 12, 1))
        assert client.get_zmanim.await_count + client.lookup_city.await_count == calls
