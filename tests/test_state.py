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

"""Tests for the conversation state store."""

import sys
import threading
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from reminders.models import ReminderType
from reminders.state import (
    ConversationMode,
    ConversationState,
    InMemoryConversationStateStore,
)

PHONE = "+972500000001"


class TestInMemoryStore:
    def test_empty(self):
        store = InMemoryConversationStateStore()
        assert store.get(PHONE) is None
        assert not store.is_in_mode(PHONE, ConversationMode.CHOOSING)

    def test_set_replaces_wholesale(self):
        store = InMemoryConversationStateStore()
        store.set(PHONE, ConversationState(ConversationMode.CHOOSING, selection={1: "a"}))
        store.set(PHONE, ConversationState(ConversationMode.ACTING, reminder_id="a"))

        state = store.get(PHONE)
        assert state.mode is ConversationMode.ACTING
        assert state.reminder_id == "a"
        assert state.selection == {}

    def test_clear(self):
        store = InMemoryConversationStateStore()
        store.set(PHONE, ConversationState(ConversationMode.EDITING, reminder_id="a"))
        store.clear(PHONE)
        store.clear(PHONE)
        assert store.get(PHONE) is None
        assert len(store) == 0

    def test_is_in_mode(self):
        store = InMemoryConversationStateStore()
        store.set(
            PHONE,
            ConversationState(ConversationMode.CREATING, reminder_type=ReminderType.SHEMA),
        )
        assert store.is_in_mode(PHONE, ConversationMode.CREATING)
        assert not store.is_in_mode(PHONE, ConversationMode.EDITING)
        assert store.get(PHONE).reminder_type is ReminderType.SHEMA

    def test_index_lookup_only_while_choosing(self):
        store = InMemoryConversationStateStore()
        store.set(PHONE, ConversationState(ConversationMode.CHOOSING, selection={1: "a", 2: "b"}))
        assert store.reminder_id_for_index(PHONE, 2) == "b"
        assert store.reminder_id_for_index(PHONE, 3) is None

        store.set(PHONE, ConversationState(ConversationMode.ACTING, reminder_id="b", selection={1: "a"}))
        assert store.reminder_id_for_index(PHONE, 1) is None

    def test_users_are_independent(self):
        store = InMemoryConversationStateStore()
        store.set(PHONE, ConversationState(ConversationMode.ACTING, reminder_id="a"))
        assert store.get("+972500000002") is None

    def test_concurrent_writers(self):
        store = InMemoryConversationStateStore()

        def writer(n):
            for i in range(200):
                store.set(f"+9725{n:02d}", ConversationState(ConversationMode.ACTING, reminder_id=str(i)))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store) == 8
        assert all(store.get(f"+9725{n:02d}").reminder_id == "199" for n in range(8))
