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
Service Configuration

Tunable parameters for event-time resolution, the reminder scheduler,
test mode and WhatsApp delivery. Values can be overridden via environment
variables.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from zmanim import DEFAULT_FALLBACK_LOCATIONS

# Template key -> environment variable holding the Twilio Content SID
TEMPLATE_ENV_VARS = {
    "tefillin_final": "WHATSAPP_TEMPLATE_TEFILIN_final_message",
    "shema_final": "WHATSAPP_TEMPLATE_SHEMA_final_message",
    "candle_lighting_final": "WHATSAPP_TEMPLATE_CANDLE_LIGHTING_final_message",
    "candle_lighting_final_women": "WHATSAPP_TEMPLATE_CANDLE_LIGHTING_final_message_WOMEN",
    "taara_final": "TAARA_TIME_FINAL_MESSAGE",
    "clean_7_final": "CLEAN_7_FINAL_MESSAGE",
    "manage_reminders": "WHATSAPP_TEMPLATE_MANAGE_REMINDERS",
    "time_picker": "WHATSAPP_TEMPLATE_TEFILIN_TIME_PICKER",
}


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass
class BotConfig:
    """Configuration for the reminder engine and its collaborators."""

    database_url: Optional[str] = None

    # Hebcal (time-calculation service)
    hebcal_calendar_url: str = "https://www.hebcal.com/hebcal"
    hebcal_zmanim_url: str = "https://www.hebcal.com/zmanim"
    http_timeout_seconds: float = 5.0
    cache_ttl_seconds: int = 3600
    fallback_cache_ttl_seconds: int = 300

    # Locations
    default_location: str = "Jerusalem"
    default_timezone: str = "Asia/Jerusalem"
    fallback_locations: tuple[str, ...] = DEFAULT_FALLBACK_LOCATIONS

    # Scheduler
    scheduler_interval_seconds: int = 60
    scheduler_max_concurrency: int = 8
    tolerance_minutes: int = 1
    shabbat_quiet: bool = True

    # Test mode - NEVER enable in production
    test_mode_enabled: bool = False
    test_trigger_window_minutes: int = 5

    # Twilio WhatsApp delivery
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_whatsapp_from: Optional[str] = None
    templates: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "BotConfig":
        """Create config from environment variables with defaults."""
        templates = {
            key: os.getenv(env_var, "").strip()
            for key, env_var in TEMPLATE_ENV_VARS.items()
        }
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            hebcal_calendar_url=os.getenv(
                "HEBCAL_API_BASE_URL", "https://www.hebcal.com/hebcal"
            ),
            hebcal_zmanim_url=os.getenv(
                "HEBCAL_ZMANIM_URL", "https://www.hebcal.com/zmanim"
            ),
            http_timeout_seconds=float(os.getenv("HEBCAL_TIMEOUT_SECONDS", "5")),
            cache_ttl_seconds=int(os.getenv("ZMANIM_CACHE_TTL_SECONDS", "3600")),
            fallback_cache_ttl_seconds=int(
                os.getenv("ZMANIM_FALLBACK_CACHE_TTL_SECONDS", "300")
            ),
            default_location=os.getenv("DEFAULT_LOCATION", "Jerusalem"),
            default_timezone=os.getenv("DEFAULT_TIMEZONE", "Asia/Jerusalem"),
            fallback_locations=_env_list(
                "FALLBACK_LOCATIONS", DEFAULT_FALLBACK_LOCATIONS
            ),
            scheduler_interval_seconds=int(
                os.getenv("SCHEDULER_INTERVAL_SECONDS", "60")
            ),
            scheduler_max_concurrency=int(
                os.getenv("SCHEDULER_MAX_CONCURRENCY", "8")
            ),
            tolerance_minutes=int(os.getenv("REMINDER_TOLERANCE_MINUTES", "1")),
            shabbat_quiet=_env_bool("SHABBAT_QUIET", "true"),
            test_mode_enabled=_env_bool("ENABLE_TEST_REMINDERS", "false"),
            test_trigger_window_minutes=int(
                os.getenv("TEST_REMINDER_WINDOW_MINUTES", "5")
            ),
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN"),
            twilio_whatsapp_from=os.getenv("TWILIO_WHATSAPP_FROM"),
            templates={key: sid for key, sid in templates.items() if sid},
        )
