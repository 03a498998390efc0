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

"""Tests for fire-and-forget analytics."""

import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import analytics


class TestTrackAsync:
    @pytest.mark.asyncio
    async def test_disabled_records_nothing(self):
        assert await analytics.track_async("reminder_sent", "reminder") is False

    @pytest.mark.asyncio
    async def test_inserts_event(self):
        pool = MagicMock()
        pool.execute = AsyncMock(return_value="INSERT 0 1")

        with patch("analytics._enabled", True), patch("analytics._pool", pool):
            recorded = await analytics.track_async(
                "reminder_sent",
                "reminder",
                phone_number="+972500000001",
                properties={"reminder_type": "tefillin"},
            )

        assert recorded is True
        _, name, category, phone, properties = pool.execute.call_args.args
        assert (name, category, phone) == ("reminder_sent", "reminder", "+972500000001")
        assert json.loads(properties) == {"reminder_type": "tefillin"}

    @pytest.mark.asyncio
    async def test_database_failure_is_contained(self):
        pool = MagicMock()
        pool.execute = AsyncMock(side_effect=RuntimeError("relation does not exist"))

        with patch("analytics._enabled", True), patch("analytics._pool", pool):
            assert await analytics.track_async("scheduler_error", "error") is False


class TestTrack:
    def test_without_running_loop(self):
        with patch("analytics._enabled", True):
            analytics.track("reminder_sent", "reminder")


class TestShutdown:
    @pytest.mark.asyncio
    async def test_configured_pool_is_not_closed(self):
        pool = MagicMock()
        pool.execute = AsyncMock(return_value="INSERT 0 1")
        pool.close = AsyncMock()

        with patch("analytics._enabled", True):
            analytics.configure(pool)
            analytics.track("reminder_saved", "reminder", phone_number="+972500000001")
            await analytics.shutdown()

        pool.execute.assert_awaited_once()
        pool.close.assert_not_awaited()
        assert analytics._pool is None
