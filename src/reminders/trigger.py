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
Trigger Evaluator

Decides whether a reminder should fire on the current scheduler tick.

Production mode compares "now" in the user's timezone with the reminder's
target time, within a one-minute tolerance that matches the tick cadence.
Test mode (ENABLE_TEST_REMINDERS) is for manual QA only: a reminder with a
manual test_time fires once now >= test_time, anything else uses a wider
configurable window.
"""

import logging
from datetime import date, datetime
from typing import Optional

import pytz
from croniter import croniter

from zmanim import EventTimes

from .models import ReminderSetting, ReminderType, User
from .offsets import (
    apply_offset,
    convert_timezone,
    minutes_of_day,
    minutes_to_hhmm,
    now_in_timezone,
)

logger = logging.getLogger("zmanimbot.reminders.trigger")

# Weekly reminder with offset 0: Friday 08:00 wall-clock
CANDLE_LIGHTING_SCHEDULE = "0 8 * * 5"
CANDLE_LIGHTING_TIME = "08:00"

# Customary candle lighting when the calendar has no entry for the day
CANDLE_LIGHTING_BEFORE_SUNSET = -18

CLEAN_7_TIME = "09:00"
CLEAN_7_DAYS = 7


def clean_day_number(reminder: ReminderSetting, today: date) -> Optional[int]:
    """Day 1-7 of the seven clean days, or None outside that range."""
    if reminder.clean_start_date is None:
        return None
    day_number = (today - reminder.clean_start_date).days + 1
    if 1 <= day_number <= CLEAN_7_DAYS:
        return day_number
    return None


def candle_lighting_time(event_times: EventTimes) -> Optional[str]:
    """Calendar candle lighting, else sunset minus 18 minutes."""
    if event_times.candle_lighting is not None:
        return event_times.candle_lighting
    if event_times.sunset is not None:
        return apply_offset(event_times.sunset, CANDLE_LIGHTING_BEFORE_SUNSET)
    return None


def _is_weekly_candle(reminder: ReminderSetting) -> bool:
    return (
        reminder.reminder_type is ReminderType.CANDLE_LIGHTING
        and reminder.offset_minutes == 0
    )


def _minutes_now(local_now: datetime) -> int:
    return local_now.hour * 60 + local_now.minute


class TriggerEvaluator:
    """Evaluates the "due" predicate for reminders."""

    def __init__(
        self,
        test_mode: bool = False,
        test_window_minutes: int = 5,
        tolerance_minutes: int = 1,
        default_timezone: str = "Asia/Jerusalem",
    ):
        self.test_mode = test_mode
        self.test_window_minutes = test_window_minutes
        self.tolerance_minutes = tolerance_minutes
        self.default_timezone = default_timezone

    def user_timezone(self, user: User) -> str:
        return user.timezone or self.default_timezone

    def already_sent(self, reminder: ReminderSetting, user: User, now: datetime) -> bool:
        """True if the reminder was already sent on the user's current local date."""
        if reminder.last_sent_at is None:
            return False
        tz = pytz.timezone(self.user_timezone(user))
        last_sent = reminder.last_sent_at
        if last_sent.tzinfo is None:
            last_sent = pytz.UTC.localize(last_sent)
        return last_sent.astimezone(tz).date() == now.astimezone(tz).date()

    def target_time(
        self,
        reminder: ReminderSetting,
        user: User,
        event_times: EventTimes,
        today: date,
    ) -> Optional[str]:
        """
        Target wall-clock time in the user's timezone, or None if the reminder
        has nothing to fire for today.
        """
        user_tz = self.user_timezone(user)
        reminder_type = reminder.reminder_type

        if reminder_type is ReminderType.CANDLE_LIGHTING:
            if today.weekday() != 4:
                return None
            if reminder.offset_minutes == 0:
                return CANDLE_LIGHTING_TIME

        if reminder_type in (
            ReminderType.TEFILLIN,
            ReminderType.SHEMA,
            ReminderType.CANDLE_LIGHTING,
        ):
            if reminder_type is ReminderType.TEFILLIN:
                event_time = event_times.sunset
            elif reminder_type is ReminderType.SHEMA:
                event_time = event_times.shema
            else:
                event_time = candle_lighting_time(event_times)
            if event_time is None:
                return None
            target = apply_offset(event_time, reminder.offset_minutes)
            if event_times.timezone != user_tz:
                target = convert_timezone(
                    target, event_times.timezone, user_tz, event_times.date
                )
            return target

        if reminder_type is ReminderType.TAARA:
            return minutes_to_hhmm(reminder.offset_minutes)

        if reminder_type is ReminderType.CLEAN_7:
            if clean_day_number(reminder, today) is None:
                return None
            return CLEAN_7_TIME

        raise ValueError(f"Unhandled reminder type: {reminder_type}")

    def is_due(
        self,
        reminder: ReminderSetting,
        user: User,
        event_times: EventTimes,
        now: datetime,
    ) -> bool:
        """
        Should this reminder fire on the tick at `now` (an aware datetime)?
        """
        if not reminder.enabled:
            return False

        if self.already_sent(reminder, user, now):
            logger.debug(f"Reminder {reminder.id} already sent today, skipping")
            return False

        local_now = now_in_timezone(now, self.user_timezone(user))

        if self.test_mode:
            return self._is_due_test_mode(reminder, user, event_times, local_now)

        if _is_weekly_candle(reminder):
            return croniter.match(CANDLE_LIGHTING_SCHEDULE, local_now)

        target = self.target_time(reminder, user, event_times, local_now.date())
        if target is None:
            return False

        diff = abs(_minutes_now(local_now) - minutes_of_day(target))
        return diff <= self.tolerance_minutes

    def _is_due_test_mode(
        self,
        reminder: ReminderSetting,
        user: User,
        event_times: EventTimes,
        local_now: datetime,
    ) -> bool:
        current = _minutes_now(local_now)

        if reminder.test_time:
            try:
                test_minutes = minutes_of_day(reminder.test_time)
            except ValueError:
                logger.error(
                    f"TEST MODE: Invalid test_time {reminder.test_time!r} for reminder {reminder.id}"
                )
                return False
            due = current >= test_minutes
            logger.info(
                f"TEST MODE: Reminder {reminder.id} test_time={reminder.test_time}, "
                f"now={local_now:%H:%M}, due={due}"
            )
            return due

        if _is_weekly_candle(reminder):
            start = minutes_of_day(CANDLE_LIGHTING_TIME)
            return (
                local_now.weekday() == 4
                and start <= current < start + self.test_window_minutes
            )

        target = self.target_time(reminder, user, event_times, local_now.date())
        if target is None:
            return False

        diff = abs(current - minutes_of_day(target))
        due = diff <= self.test_window_minutes
        logger.info(
            f"TEST MODE: Reminder {reminder.id} target={target}, now={local_now:%H:%M}, "
            f"window={self.test_window_minutes}, due={due}"
        )
        return due
