"""
Set Test Time CLI

QA helper for test mode (ENABLE_TEST_REMINDERS=true). Sets or clears the
manual test_time of a user's reminder so it fires on the next scheduler tick
at or after that time, and clears last_sent_at so it can fire again today.

Usage:
    # Fire the tefillin reminder of a user at 14:30 (user's timezone)
    python scripts/set_test_time.py set --phone +972501234567 --type tefillin --time 14:30

    # Clear the test time again
    python scripts/set_test_time.py clear --phone +972501234567 --type tefillin

    # Show a user's reminders
    python scripts/set_test_time.py show --phone +972501234567
"""

import argparse
import asyncio
import logging
import os
import re
import sys

import asyncpg
from dotenv import load_dotenv

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
)
logger = logging.getLogger(__name__)

REMINDER_TYPES = ["tefillin", "shema", "candle_lighting", "taara", "clean_7"]


def valid_hhmm(value: str) -> str:
    match = re.match(r"^(\d{1,2}):(\d{2})$", value)
    if not match or int(match.group(1)) > 23 or int(match.group(2)) > 59:
        raise argparse.ArgumentTypeError(f"expected HH:MM, got {value!r}")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


async def find_user_id(conn: asyncpg.Connection, phone: str):
    row = await conn.fetchrow("SELECT id FROM users WHERE phone_number = $1", phone)
    if not row:
        logger.error(f"No user with phone number {phone}")
        sys.exit(1)
    return row["id"]


async def set_test_time(conn: asyncpg.Connection, phone: str, reminder_type: str, value):
    user_id = await find_user_id(conn, phone)
    result = await conn.execute(
        """
        UPDATE reminder_settings
        SET test_time = $3, last_sent_at = NULL, updated_at = NOW()
        WHERE user_id = $1 AND reminder_type = $2
        """,
        user_id,
        reminder_type,
        value,
    )
    if result != "UPDATE 1":
        logger.error(f"{phone} has no {reminder_type} reminder")
        sys.exit(1)

    if value:
        logger.info(f"Set test_time={value} on {reminder_type} reminder of {phone}")
    else:
        logger.info(f"Cleared test_time on {reminder_type} reminder of {phone}")


async def show_reminders(conn: asyncpg.Connection, phone: str):
    user_id = await find_user_id(conn, phone)
    rows = await conn.fetch(
        """
        SELECT id, reminder_type, enabled, offset_minutes, test_time, last_sent_at
        FROM reminder_settings
        WHERE user_id = $1
        ORDER BY reminder_type
        """,
        user_id,
    )
    if not rows:
        logger.info(f"{phone} has no reminders")
        return

    for row in rows:
        last_sent = row["last_sent_at"].strftime("%Y-%m-%d %H:%M:%S") if row["last_sent_at"] else "Never"
        logger.info(
            f"{row['reminder_type']:<16} enabled={row['enabled']!s:<5} "
            f"offset={row['offset_minutes']:>5} test_time={row['test_time'] or '-':<5} "
            f"last_sent={last_sent}"
        )


async def main_async(args):
    """Async main function."""
    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        logger.error("DATABASE_URL environment variable required")
        sys.exit(1)

    if os.environ.get("ENABLE_TEST_REMINDERS", "false").lower() != "true":
        logger.warning("ENABLE_TEST_REMINDERS is not true - the scheduler will ignore test_time")

    conn = await asyncpg.connect(db_url)

    try:
        if args.command == "set":
            await set_test_time(conn, args.phone, args.type, args.time)
        elif args.command == "clear":
            await set_test_time(conn, args.phone, args.type, None)
        elif args.command == "show":
            await show_reminders(conn, args.phone)
    finally:
        await conn.close()


def main():
    parser = argparse.ArgumentParser(
        description="Set or clear reminder test times for test mode QA"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    set_parser = subparsers.add_parser("set", help="Set a reminder's test time")
    set_parser.add_argument("--phone", required=True, help="User phone number")
    set_parser.add_argument("--type", required=True, choices=REMINDER_TYPES, help="Reminder type")
    set_parser.add_argument("--time", required=True, type=valid_hhmm, help="HH:MM in the user's timezone")

    clear_parser = subparsers.add_parser("clear", help="Clear a reminder's test time")
    clear_parser.add_argument("--phone", required=True, help="User phone number")
    clear_parser.add_argument("--type", required=True, choices=REMINDER_TYPES, help="Reminder type")

    show_parser = subparsers.add_parser("show", help="Show a user's reminders")
    show_parser.add_argument("--phone", required=True, help="User phone number")

    args = parser.parse_args()
    asyncio.run(main_async(args))


if __name__ == "__main__":
    main()
