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
Reminder Scheduler Module

Background task loop for evaluating and delivering zmanim reminders.
Uses discord.ext.tasks for the periodic loop: iterations never overlap, and
a slow tick only delays the next one. The first tick runs as soon as the
loop starts.

Each tick loads every enabled reminder of every active user, resolves the
day's event times once per user and fans the users out concurrently under
a semaphore. One user's failure never affects another's.
"""

import asyncio
import logging
import socket
from datetime import date, datetime
from typing import Optional

import asyncpg
import pytz
from discord.ext import tasks

from analytics import track
from config import BotConfig
from zmanim import EventTimeResolver, EventTimes

from .delivery import ReminderDelivery, build_reminder_message, deliver
from .models import ReminderSetting, User
from .offsets import now_in_timezone
from .store import ReminderStore
from .trigger import TriggerEvaluator

logger = logging.getLogger("zmanimbot.reminders.scheduler")

SHABBAT_TIMEZONE = "Asia/Jerusalem"

# Substrings of name-resolution failures (DNS outages, no network)
NETWORK_ERROR_MARKERS = ("ENOTFOUND", "getaddrinfo", "Name or service not known")


def is_network_error(exc: BaseException) -> bool:
    """True for transient connectivity failures that only merit a debug log."""
    if isinstance(
        exc,
        (
            socket.gaierror,
            ConnectionError,
            asyncpg.exceptions.PostgresConnectionError,
            asyncpg.exceptions.ConnectionDoesNotExistError,
        ),
    ):
        return True
    message = str(exc)
    return any(marker in message for marker in NETWORK_ERROR_MARKERS)


def is_shabbat(now: datetime) -> bool:
    """Saturday in Israel."""
    return now_in_timezone(now, SHABBAT_TIMEZONE).weekday() == 5


class ReminderScheduler:
    """
    Background scheduler for delivering reminders.

    Runs a loop every 60 seconds (configurable) to find due reminders and
    deliver them over WhatsApp.
    """

    def __init__(
        self,
        store: ReminderStore,
        resolver: EventTimeResolver,
        delivery: ReminderDelivery,
        config: BotConfig,
        trigger: Optional[TriggerEvaluator] = None,
    ):
        """
        Initialize the reminder scheduler.

        Args:
            store: Users and reminder settings
            resolver: Event time resolver (shared cache)
            delivery: Outbound WhatsApp channel
            config: Service configuration
            trigger: Due-predicate; built from config when omitted
        """
        self.store = store
        self.resolver = resolver
        self.delivery = delivery
        self.config = config
        self.trigger = trigger or TriggerEvaluator(
            test_mode=config.test_mode_enabled,
            test_window_minutes=config.test_trigger_window_minutes,
            tolerance_minutes=config.tolerance_minutes,
            default_timezone=config.default_timezone,
        )
        self._started = False

    def start(self) -> None:
        """Start the scheduler loop."""
        if self._started:
            logger.warning("Reminder scheduler already started")
            return

        if self.config.test_mode_enabled:
            logger.warning(
                "TEST MODE ENABLED: reminders use test_time and a "
                f"{self.config.test_trigger_window_minutes}-minute window. "
                "NEVER enable ENABLE_TEST_REMINDERS in production!"
            )

        self._check_reminders.change_interval(
            seconds=self.config.scheduler_interval_seconds
        )
        self._check_reminders.start()
        self._started = True
        logger.info(
            f"Reminder scheduler started (every {self.config.scheduler_interval_seconds}s)"
        )

    def stop(self) -> None:
        """Stop the scheduler loop."""
        if self._started:
            self._check_reminders.cancel()
            self._started = False
            logger.info("Reminder scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._started

    @tasks.loop(seconds=60)
    async def _check_reminders(self) -> None:
        """Run one tick; errors are contained so the loop keeps going."""
        try:
            await self.run_once()
        except Exception as e:
            logger.error(f"Error in reminder scheduler loop: {e}", exc_info=True)

    async def run_once(self, now: Optional[datetime] = None) -> int:
        """
        Evaluate every enabled reminder once.

        Args:
            now: Aware "current" time (defaults to the wall clock)

        Returns:
            Number of reminders delivered
        """
        now = now or datetime.now(pytz.UTC)

        if self.config.shabbat_quiet and is_shabbat(now):
            logger.debug("Shabbat - skipping reminder check")
            return 0

        try:
            pairs = await self.store.get_enabled_settings_with_active_owner()
        except Exception as e:
            if is_network_error(e):
                logger.debug(f"Network unavailable, skipping reminder check: {e}")
                return 0
            logger.error(f"Failed to load reminder settings: {e}", exc_info=True)
            # Analytics: Track scheduler error
            track(
                "scheduler_error",
                "error",
                properties={
                    "error_type": type(e).__name__,
                    "error_message": str(e)[:200],
                },
            )
            return 0

        by_user: dict[str, tuple[User, list[ReminderSetting]]] = {}
        for user, setting in pairs:
            entry = by_user.setdefault(user.phone_number, (user, []))
            entry[1].append(setting)

        if not by_user:
            return 0

        logger.debug(f"Checking {len(pairs)} reminder(s) for {len(by_user)} user(s)")

        semaphore = asyncio.Semaphore(self.config.scheduler_max_concurrency)

        async def bounded(user: User, settings: list[ReminderSetting]) -> int:
            async with semaphore:
                return await self._process_user(user, settings, now)

        results = await asyncio.gather(
            *(bounded(user, settings) for user, settings in by_user.values()),
            return_exceptions=True,
        )

        sent = 0
        for phone_number, result in zip(by_user, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Error processing reminders for {phone_number}: {result}",
                    exc_info=result,
                )
                continue
            sent += result

        if sent:
            logger.info(f"Delivered {sent} reminder(s)")
        return sent

    async def _process_user(
        self, user: User, settings: list[ReminderSetting], now: datetime
    ) -> int:
        user_tz = self.trigger.user_timezone(user)
        today = now_in_timezone(now, user_tz).date()
        location = user.location or self.config.default_location

        event_times = await self.resolver.resolve_with_fallback(
            location, today, timezone=user_tz
        )

        if event_times.fallback_used and event_times.location != user.location:
            try:
                await self.store.update_user(
                    user.phone_number, {"location": event_times.location}
                )
                logger.info(
                    f"Updated location for {user.phone_number}: "
                    f"'{user.location}' -> '{event_times.location}'"
                )
            except Exception as e:
                logger.warning(f"Failed to persist fallback location for {user.phone_number}: {e}")

        sent = 0
        for setting in settings:
            try:
                if await self._process_reminder(user, setting, event_times, now, today):
                    sent += 1
            except Exception as e:
                logger.error(
                    f"Error processing reminder {setting.id} for {user.phone_number}: {e}",
                    exc_info=True,
                )
        return sent

    async def _process_reminder(
        self,
        user: User,
        setting: ReminderSetting,
        event_times: EventTimes,
        now: datetime,
        today: date,
    ) -> bool:
        if not self.trigger.is_due(setting, user, event_times, now):
            return False

        message = build_reminder_message(
            setting,
            user,
            event_times,
            today,
            candle_templates_women=bool(
                self.config.templates.get("candle_lighting_final_women")
            ),
        )
        if message is None:
            logger.warning(
                f"No event time for reminder {setting.id} ({setting.reminder_type.value}) "
                f"in {event_times.location} on {today}"
            )
            return False

        delivered = await deliver(self.delivery, user.phone_number, message)

        # Recorded even when delivery failed: no retries
        await self.store.update_reminder_setting_by_id(setting.id, {"last_sent_at": now})

        track(
            "reminder_sent" if delivered else "reminder_failed",
            "reminder",
            phone_number=user.phone_number,
            properties={
                "reminder_type": setting.reminder_type.value,
                "template": message.template_key,
                "approximate": event_times.is_approximate,
            },
        )

        if delivered:
            logger.info(
                f"Reminder sent to {user.phone_number} for {setting.reminder_type.value}"
            )
        else:
            logger.error(
                f"Failed to deliver reminder {setting.id} to {user.phone_number}"
            )
        return delivered
