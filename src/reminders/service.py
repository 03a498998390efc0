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
Reminder Management Service

Lets a user list, select, edit and delete their reminders over a short text
conversation. Each operation reads the conversation state, performs at most
one store mutation and returns a Reply: the text to send back plus an
optional follow-up signal for the menu layer (show the main menu, or show
the time picker).

Unexpected errors never escape: the conversation is reset and the user gets
the apology text.
"""

import functools
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Callable, Optional, Union

import pytz

from analytics import track

from . import messages
from .models import ReminderSetting, ReminderType, User
from .offsets import minutes_of_day, now_in_timezone
from .state import ConversationMode, ConversationState, ConversationStateStore
from .store import ReminderStore

logger = logging.getLogger("zmanimbot.reminders.service")

# Time picker choice -> signed offset (minutes before the event)
TIME_CHOICES = {
    "0": 0,
    "10": -10,
    "20": -20,
    "30": -30,
    "45": -45,
    "60": -60,
    "90": -90,
    "120": -120,
}

_LEADING_INT_RE = re.compile(r"^\s*(\d+)")


class Followup(str, Enum):
    SHOW_MENU = "show_menu"
    SHOW_TIME_PICKER = "show_time_picker"


class ReminderAction(Enum):
    EDIT = "edit"
    DELETE = "delete"
    CANCEL = "cancel"


@dataclass(frozen=True)
class Reply:
    text: str
    followup: Optional[Followup] = None


def _normalize(text: str) -> str:
    return (text or "").strip().lower()


def parse_leading_int(text: str) -> Optional[int]:
    match = _LEADING_INT_RE.match(text or "")
    return int(match.group(1)) if match else None


def parse_time_choice(reminder_type: ReminderType, text: str) -> Optional[int]:
    """
    Turn a picker reply into an offset.

    TAARA takes a wall-clock "HH:MM" (stored as minutes since midnight);
    everything else takes one of TIME_CHOICES.
    """
    if reminder_type is ReminderType.TAARA:
        try:
            return minutes_of_day(text)
        except ValueError:
            return None
    return TIME_CHOICES.get(_normalize(text))


def _recover(method):
    """Reset the conversation and apologize when an operation fails unexpectedly."""

    @functools.wraps(method)
    async def wrapper(self, phone_number: str, *args, **kwargs):
        try:
            return await method(self, phone_number, *args, **kwargs)
        except Exception as e:
            logger.error(
                f"{method.__name__} failed for {phone_number}: {e}", exc_info=True
            )
            self.states.clear(phone_number)
            return Reply(messages.APOLOGY)

    return wrapper


class ReminderService:
    """
    Reminder management operations, keyed by the caller's phone number.
    """

    def __init__(
        self,
        store: ReminderStore,
        states: ConversationStateStore,
        default_timezone: str = "Asia/Jerusalem",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the service.

        Args:
            store: Users and reminder settings
            states: Conversation state, shared with the router
            default_timezone: Used for users without a timezone
            clock: Returns an aware "now" (injectable for tests)
        """
        self.store = store
        self.states = states
        self.default_timezone = default_timezone
        self._clock = clock or (lambda: datetime.now(pytz.UTC))

    def _today(self, user: User) -> date:
        return now_in_timezone(self._clock(), user.timezone or self.default_timezone).date()

    async def _owned_reminder(
        self, phone_number: str, reminder_id: str, not_owner_text: str
    ) -> Union[tuple[User, ReminderSetting], Reply]:
        """
        Load a reminder and check the caller owns it.

        Returns (user, reminder), or the error Reply after resetting state.
        """
        user = await self.store.get_user_by_phone(phone_number)
        if user is None:
            self.states.clear(phone_number)
            return Reply(messages.USER_NOT_FOUND)

        reminder = await self.store.get_reminder_setting(reminder_id)
        if reminder is None:
            self.states.clear(phone_number)
            return Reply(messages.REMINDER_NOT_FOUND)

        if reminder.user_id != user.id:
            logger.warning(
                f"User {user.id} attempted to modify reminder {reminder_id} owned by {reminder.user_id}"
            )
            self.states.clear(phone_number)
            return Reply(not_owner_text)

        return user, reminder

    async def get_reminder(
        self, phone_number: str, reminder_id: str
    ) -> Optional[ReminderSetting]:
        """The caller's reminder by id, or None if missing or owned by someone else."""
        user = await self.store.get_user_by_phone(phone_number)
        if user is None:
            return None
        reminder = await self.store.get_reminder_setting(reminder_id)
        if reminder is None or reminder.user_id != user.id:
            return None
        return reminder

    @_recover
    async def list_reminders(self, phone_number: str) -> Reply:
        user = await self.store.get_user_by_phone(phone_number)
        if user is None:
            return Reply(messages.REGISTER_FIRST)

        settings = [
            s for s in await self.store.get_reminder_settings(user.id) if s.enabled
        ]
        settings.sort(key=lambda s: (s.reminder_type.value, s.id or ""))

        if not settings:
            self.states.clear(phone_number)
            return Reply(messages.NO_REMINDERS)

        selection = {}
        text = messages.LIST_HEADER
        for index, setting in enumerate(settings, start=1):
            selection[index] = setting.id
            text += messages.list_item(index, setting.reminder_type, setting.offset_minutes)
        text += messages.list_footer(len(settings))

        self.states.set(
            phone_number,
            ConversationState(mode=ConversationMode.CHOOSING, selection=selection),
        )
        logger.info(f"Listed {len(settings)} reminders for {phone_number}")
        return Reply(text)

    @_recover
    async def select_reminder(self, phone_number: str, text: str) -> Reply:
        if not self.states.is_in_mode(phone_number, ConversationMode.CHOOSING):
            return Reply(messages.LIST_FIRST)

        if _normalize(text) in messages.CANCEL_WORDS:
            self.states.clear(phone_number)
            return Reply("", Followup.SHOW_MENU)

        index = parse_leading_int(text)
        if index is None:
            return Reply(messages.SEND_NUMBER)

        reminder_id = self.states.reminder_id_for_index(phone_number, index)
        if reminder_id is None:
            return Reply(messages.INVALID_NUMBER)

        user = await self.store.get_user_by_phone(phone_number)
        if user is None:
            self.states.clear(phone_number)
            return Reply(messages.USER_NOT_FOUND)

        reminder = await self.store.get_reminder_setting(reminder_id)
        if reminder is None or not reminder.enabled or reminder.user_id != user.id:
            self.states.clear(phone_number)
            return Reply(messages.REMINDER_NOT_FOUND)

        self.states.set(
            phone_number,
            ConversationState(mode=ConversationMode.ACTING, reminder_id=reminder_id),
        )
        return Reply(
            messages.reminder_selected(reminder.reminder_type, reminder.offset_minutes)
        )

    @_recover
    async def handle_action(self, phone_number: str, action: ReminderAction) -> Reply:
        state = self.states.get(phone_number)
        if state is None or state.mode is not ConversationMode.ACTING:
            return Reply(messages.SELECT_FIRST)

        if action is ReminderAction.CANCEL:
            self.states.clear(phone_number)
            return Reply("", Followup.SHOW_MENU)

        reminder = await self.get_reminder(phone_number, state.reminder_id)
        if reminder is None:
            self.states.clear(phone_number)
            return Reply(messages.REMINDER_NOT_FOUND)

        if action is ReminderAction.DELETE:
            self.states.set(
                phone_number,
                ConversationState(
                    mode=ConversationMode.CONFIRMING_DELETE, reminder_id=reminder.id
                ),
            )
            return Reply(messages.confirm_delete(reminder.reminder_type))

        if action is ReminderAction.EDIT:
            self.states.set(
                phone_number,
                ConversationState(mode=ConversationMode.EDITING, reminder_id=reminder.id),
            )
            if reminder.reminder_type is ReminderType.TAARA:
                return Reply(messages.TAARA_TIME_PROMPT)
            return Reply("", Followup.SHOW_TIME_PICKER)

        raise ValueError(f"Unhandled action: {action}")

    @_recover
    async def delete_reminder(self, phone_number: str, reminder_id: str) -> Reply:
        owned = await self._owned_reminder(
            phone_number, reminder_id, messages.NOT_OWNER_DELETE
        )
        if isinstance(owned, Reply):
            return owned
        user, reminder = owned

        await self.store.delete_reminder_setting(reminder_id)

        # Verify against a fresh read rather than the row count
        remaining = await self.store.get_reminder_settings(user.id)
        self.states.clear(phone_number)
        if any(s.id == reminder_id for s in remaining):
            logger.error(f"Reminder {reminder_id} still present after delete")
            return Reply(messages.DELETE_FAILED)

        track(
            "reminder_deleted",
            "reminder",
            phone_number=phone_number,
            properties={"reminder_type": reminder.reminder_type.value},
        )
        return Reply(messages.deleted(reminder.reminder_type))

    @_recover
    async def update_offset(
        self, phone_number: str, reminder_id: str, offset_minutes: int
    ) -> Reply:
        owned = await self._owned_reminder(
            phone_number, reminder_id, messages.NOT_OWNER_EDIT
        )
        if isinstance(owned, Reply):
            return owned
        _, reminder = owned

        updated = await self.store.update_reminder_setting_by_id(
            reminder_id, {"offset_minutes": offset_minutes}
        )
        self.states.clear(phone_number)
        if not updated:
            return Reply(messages.REMINDER_NOT_FOUND)

        logger.info(
            f"Updated reminder {reminder_id} for {phone_number}: offset={offset_minutes}"
        )
        track(
            "reminder_updated",
            "reminder",
            phone_number=phone_number,
            properties={
                "reminder_type": reminder.reminder_type.value,
                "offset_minutes": offset_minutes,
            },
        )
        return Reply(messages.updated(reminder.reminder_type, offset_minutes))

    @_recover
    async def confirm_delete(self, phone_number: str, text: str) -> Reply:
        state = self.states.get(phone_number)
        if state is None or state.mode is not ConversationMode.CONFIRMING_DELETE:
            return Reply(messages.SELECT_FIRST)

        answer = _normalize(text)
        if answer in messages.YES_WORDS:
            return await self.delete_reminder(phone_number, state.reminder_id)
        if answer in messages.NO_WORDS:
            self.states.clear(phone_number)
            return Reply(messages.DELETE_CANCELLED, Followup.SHOW_MENU)
        return Reply(messages.CONFIRM_PROMPT)

    @_recover
    async def apply_time_choice(self, phone_number: str, text: str) -> Reply:
        state = self.states.get(phone_number)
        if state is None or state.mode not in (
            ConversationMode.EDITING,
            ConversationMode.CREATING,
        ):
            return Reply(messages.SELECT_FIRST)

        if state.mode is ConversationMode.CREATING:
            reminder_type = state.reminder_type
        else:
            reminder = await self.get_reminder(phone_number, state.reminder_id)
            if reminder is None:
                self.states.clear(phone_number)
                return Reply(messages.REMINDER_NOT_FOUND)
            reminder_type = reminder.reminder_type

        offset_minutes = parse_time_choice(reminder_type, text)
        if offset_minutes is None:
            if reminder_type is ReminderType.TAARA:
                return Reply(messages.TAARA_TIME_PROMPT)
            return Reply(messages.INVALID_TIME_CHOICE, Followup.SHOW_TIME_PICKER)

        if state.mode is ConversationMode.EDITING:
            return await self.update_offset(phone_number, state.reminder_id, offset_minutes)
        return await self.save_reminder(phone_number, reminder_type, offset_minutes)

    @_recover
    async def begin_create(self, phone_number: str, reminder_type: ReminderType) -> Reply:
        user = await self.store.get_user_by_phone(phone_number)
        if user is None:
            return Reply(messages.REGISTER_FIRST)

        if reminder_type is ReminderType.CLEAN_7:
            return await self.save_reminder(
                phone_number, reminder_type, 0, clean_start_date=self._today(user)
            )

        self.states.set(
            phone_number,
            ConversationState(mode=ConversationMode.CREATING, reminder_type=reminder_type),
        )
        if reminder_type is ReminderType.TAARA:
            return Reply(messages.TAARA_TIME_PROMPT)
        return Reply("", Followup.SHOW_TIME_PICKER)

    @_recover
    async def save_reminder(
        self,
        phone_number: str,
        reminder_type: ReminderType,
        offset_minutes: int,
        clean_start_date: Optional[date] = None,
    ) -> Reply:
        user = await self.store.get_user_by_phone(phone_number)
        if user is None:
            self.states.clear(phone_number)
            return Reply(messages.REGISTER_FIRST)

        await self.store.upsert_reminder_setting(
            ReminderSetting(
                id=None,
                user_id=user.id,
                reminder_type=reminder_type,
                enabled=True,
                offset_minutes=offset_minutes,
                clean_start_date=clean_start_date,
            )
        )
        self.states.clear(phone_number)

        track(
            "reminder_saved",
            "reminder",
            phone_number=phone_number,
            properties={
                "reminder_type": reminder_type.value,
                "offset_minutes": offset_minutes,
            },
        )
        return Reply(messages.saved(reminder_type, offset_minutes))
