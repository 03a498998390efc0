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
Conversation State Store

Per-phone-number position in the reminder management conversation. Holds no
business logic: the service decides transitions, this module only remembers
them. Every set() replaces the previous state wholesale.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .models import ReminderType


class ConversationMode(str, Enum):
    CHOOSING = "choosing"  # picking a reminder from the numbered list
    ACTING = "acting"  # choosing edit / delete / cancel
    EDITING = "editing"  # picking a new time
    CONFIRMING_DELETE = "confirming_delete"
    CREATING = "creating"  # picking a time for a new reminder


@dataclass(frozen=True)
class ConversationState:
    """
    One user's conversation position.

    selection is only populated while CHOOSING (1-based index -> reminder id);
    reminder_type is only populated while CREATING.
    """

    mode: ConversationMode
    reminder_id: Optional[str] = None
    selection: dict[int, str] = field(default_factory=dict)
    reminder_type: Optional[ReminderType] = None


class ConversationStateStore(ABC):
    """Storage for conversation state, keyed by phone number."""

    @abstractmethod
    def set(self, phone_number: str, state: ConversationState) -> None:
        ...

    @abstractmethod
    def get(self, phone_number: str) -> Optional[ConversationState]:
        ...

    @abstractmethod
    def clear(self, phone_number: str) -> None:
        ...

    def is_in_mode(self, phone_number: str, mode: ConversationMode) -> bool:
        state = self.get(phone_number)
        return state is not None and state.mode is mode

    def reminder_id_for_index(self, phone_number: str, index: int) -> Optional[str]:
        """Resolve a list index to a reminder id. Only valid while CHOOSING."""
        state = self.get(phone_number)
        if state is None or state.mode is not ConversationMode.CHOOSING:
            return None
        return state.selection.get(index)


class InMemoryConversationStateStore(ConversationStateStore):
    """Process-local store. State is lost on restart."""

    def __init__(self):
        self._states: dict[str, ConversationState] = {}
        self._lock = threading.Lock()

    def set(self, phone_number: str, state: ConversationState) -> None:
        with self._lock:
            self._states[phone_number] = state

    def get(self, phone_number: str) -> Optional[ConversationState]:
        with self._lock:
            return self._states.get(phone_number)

    def clear(self, phone_number: str) -> None:
        with self._lock:
            self._states.pop(phone_number, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
