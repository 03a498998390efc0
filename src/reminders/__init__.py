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
Zmanim Reminders Package

Scheduling engine (offsets, trigger evaluation, periodic delivery) and the
WhatsApp conversation for managing reminders.
"""

from .models import ReminderSetting, ReminderType, User, UserStatus
from .offsets import apply_offset, convert_timezone, minutes_of_day, minutes_to_hhmm
from .trigger import TriggerEvaluator
from .state import (
    ConversationMode,
    ConversationState,
    ConversationStateStore,
    InMemoryConversationStateStore,
)
from .store import ReminderStore, PostgresReminderStore
from .delivery import ReminderDelivery, WhatsAppDelivery, build_reminder_message
from .service import Followup, ReminderAction, ReminderService, Reply
from .conversation import ConversationRouter
from .scheduler import ReminderScheduler

__all__ = [
    "ReminderSetting",
    "ReminderType",
    "User",
    "UserStatus",
    "apply_offset",
    "convert_timezone",
    "minutes_of_day",
    "minutes_to_hhmm",
    "TriggerEvaluator",
    "ConversationMode",
    "ConversationState",
    "ConversationStateStore",
    "InMemoryConversationStateStore",
    "ReminderStore",
    "PostgresReminderStore",
    "ReminderDelivery",
    "WhatsAppDelivery",
    "build_reminder_message",
    "Followup",
    "ReminderAction",
    "ReminderService",
    "Reply",
    "ConversationRouter",
    "ReminderScheduler",
]
