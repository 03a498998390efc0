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
Reminder analytics for zmanimbot.

Events land in the analytics_events table. Recording never blocks a
scheduler tick or a conversation turn, and a failed insert is only logged.

Usage:
    from analytics import track

    track("reminder_sent", "reminder", phone_number="+972501234567",
          properties={"reminder_type": "tefillin"})

The service hands over its own pool at startup with configure(); scripts
that never call it get a small pool created from DATABASE_URL on first use.
"""

import asyncio
import json
import logging
import os
from typing import Any, Optional

import asyncpg

logger = logging.getLogger("zmanimbot.analytics")

CATEGORIES = frozenset({"reminder", "conversation", "scheduler", "error", "system"})

SHUTDOWN_FLUSH_SECONDS = 5.0

_pool: Optional[asyncpg.Pool] = None
_owns_pool: bool = False
_enabled: bool = os.getenv("ANALYTICS_ENABLED", "true").lower() == "true"

# Strong references to in-flight inserts until they finish
_pending: set[asyncio.Task] = set()


def configure(pool: asyncpg.Pool) -> None:
    """Record events through an existing pool instead of opening one."""
    global _pool, _owns_pool
    _pool = pool
    _owns_pool = False


async def _get_pool() -> Optional[asyncpg.Pool]:
    global _pool, _owns_pool
    if _pool is not None:
        return _pool

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        return None
    try:
        _pool = await asyncpg.create_pool(database_url, min_size=1, max_size=2)
        _owns_pool = True
    except Exception as e:
        logger.warning(f"Analytics pool creation failed: {e}")
        return None
    return _pool


async def track_async(
    event_name: str,
    event_category: str,
    phone_number: Optional[str] = None,
    properties: Optional[dict[str, Any]] = None,
) -> bool:
    """
    Record one event and wait for the insert.

    Args:
        event_name: e.g. "reminder_sent", "reminder_deleted"
        event_category: One of CATEGORIES
        phone_number: The user the event concerns, if any
        properties: Extra JSON-serializable details

    Returns:
        True if the row was written
    """
    if not _enabled:
        return False

    if event_category not in CATEGORIES:
        logger.debug(f"Unknown analytics category '{event_category}' for {event_name}")

    pool = await _get_pool()
    if pool is None:
        return False

    try:
        await pool.execute(
            """
            INSERT INTO analytics_events
                (event_name, event_category, phone_number, properties)
            VALUES ($1, $2, $3, $4)
            """,
            event_name,
            event_category,
            phone_number,
            json.dumps(properties or {}, ensure_ascii=False, default=str),
        )
        return True
    except Exception as e:
        logger.debug(f"Analytics insert failed for {event_name}: {e}")
        return False


def track(
    event_name: str,
    event_category: str,
    phone_number: Optional[str] = None,
    properties: Optional[dict[str, Any]] = None,
) -> None:
    """Schedule an event on the running loop. Outside a loop this is a no-op."""
    if not _enabled:
        return

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return

    task = loop.create_task(
        track_async(event_name, event_category, phone_number, properties)
    )
    _pending.add(task)
    task.add_done_callback(_pending.discard)


async def shutdown() -> None:
    """Flush in-flight events, then close the pool if analytics opened it."""
    global _pool, _owns_pool
    if _pending:
        done, pending = await asyncio.wait(set(_pending), timeout=SHUTDOWN_FLUSH_SECONDS)
        if pending:
            logger.warning(f"Dropped {len(pending)} analytics event(s) on shutdown")
            for task in pending:
                task.cancel()

    if _pool is not None and _owns_pool:
        await _pool.close()
    _pool = None
    _owns_pool = False
