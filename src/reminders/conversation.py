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
Conversation Router

Routes an inbound text to the management service according to the sender's
conversation mode. Returns None for text that is not part of a reminder
conversation, so the menu layer can handle it.
"""

import logging
from typing import Optional

from . import messages
from .service import ReminderAction, ReminderService, Reply
from .state import ConversationMode, ConversationStateStore

logger = logging.getLogger("zmanimbot.reminders.conversation")


def parse_action(text: str) -> Optional[ReminderAction]:
    """Map an edit / delete / cancel keyword to an action."""
    word = (text or "").strip().lower()
    if word in messages.EDIT_WORDS:
        return ReminderAction.EDIT
    if word in messages.DELETE_WORDS:
        return ReminderAction.DELETE
    if word in messages.CANCEL_WORDS:
        return ReminderAction.CANCEL
    return None


class ConversationRouter:
    def __init__(self, service: ReminderService, states: ConversationStateStore):
        self.service = service
        self.states = states

    async def handle(self, phone_number: str, text: str) -> Optional[Reply]:
        # The list keyword restarts the flow from any mode
        if (text or "").strip().lower() in messages.LIST_WORDS:
            return await self.service.list_reminders(phone_number)

        state = self.states.get(phone_number)
        if state is None:
            return None

        logger.debug(f"Routing message from {phone_number} in mode {state.mode.value}")
        mode = state.mode

        if mode is ConversationMode.CHOOSING:
            return await self.service.select_reminder(phone_number, text)

        if mode is ConversationMode.ACTING:
            action = parse_action(text)
            if action is None:
                return Reply(messages.ACTION_PROMPT)
            return await self.service.handle_action(phone_number, action)

        if mode is ConversationMode.CONFIRMING_DELETE:
            return await self.service.confirm_delete(phone_number, text)

        if mode in (ConversationMode.EDITING, ConversationMode.CREATING):
            return await self.service.apply_time_choice(phone_number, text)

        raise ValueError(f"Unhandled conversation mode: {mode}")
