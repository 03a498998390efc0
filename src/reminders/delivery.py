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
Reminder Delivery

WhatsApp delivery through the Twilio Messages REST resource, plus the
mapping from a due reminder to a template key, its numbered variables and a
plain-text fallback body.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Optional

import httpx

from zmanim import EventTimes

from . import messages
from .models import ReminderSetting, ReminderType, User
from .offsets import apply_offset
from .trigger import CANDLE_LIGHTING_TIME, candle_lighting_time, clean_day_number

logger = logging.getLogger("zmanimbot.reminders.delivery")

TWILIO_API_URL = "https://api.twilio.com/2010-04-01"

# Used for taara when no sunset could be resolved at all
DEFAULT_SUNSET = "18:00"


class ReminderDelivery(ABC):
    """Outbound channel for reminders."""

    @abstractmethod
    async def send(self, phone_number: str, text: str) -> bool:
        ...

    @abstractmethod
    async def send_templated(
        self, phone_number: str, template_key: str, variables: dict[str, str]
    ) -> bool:
        ...

    async def close(self) -> None:
        pass


def _whatsapp_address(phone_number: str) -> str:
    if phone_number.startswith("whatsapp:"):
        return phone_number
    number = phone_number if phone_number.startswith("+") else f"+{phone_number}"
    return f"whatsapp:{number}"


class WhatsAppDelivery(ReminderDelivery):
    """
    Twilio WhatsApp sender.

    Without credentials it runs in dev mode: messages are logged, not sent.
    """

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        templates: Optional[dict[str, str]] = None,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the sender.

        Args:
            account_sid: Twilio account SID
            auth_token: Twilio auth token
            from_number: WhatsApp sender number
            templates: Template key -> Twilio Content SID
            timeout_seconds: Per-request timeout
            transport: Optional httpx transport (tests)
        """
        self.account_sid = account_sid
        self.from_number = from_number
        self.templates = dict(templates or {})
        self.dev_mode = not (account_sid and auth_token and from_number)

        if self.dev_mode:
            logger.warning(
                "Twilio credentials not set - running in dev mode, messages will only be logged"
            )

        self._client = httpx.AsyncClient(
            base_url=TWILIO_API_URL,
            auth=(account_sid or "", auth_token or ""),
            timeout=timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client"""
        await self._client.aclose()

    async def _post_message(self, phone_number: str, payload: dict[str, str]) -> bool:
        payload = {
            "From": _whatsapp_address(self.from_number),
            "To": _whatsapp_address(phone_number),
            **payload,
        }
        try:
            response = await self._client.post(
                f"/Accounts/{self.account_sid}/Messages.json", data=payload
            )
            response.raise_for_status()
            sid = response.json().get("sid", "")
            logger.info(f"Message sent to {phone_number}: {sid}")
            return True
        except httpx.HTTPStatusError as e:
            error_body = ""
            try:
                error_body = e.response.json().get("message", "")
            except ValueError:
                error_body = e.response.text[:200]
            logger.error(
                f"Failed to send message to {phone_number} (HTTP {e.response.status_code}): {error_body}"
            )
            return False
        except httpx.HTTPError as e:
            logger.error(f"Failed to send message to {phone_number}: {e}")
            return False

    async def send(self, phone_number: str, text: str) -> bool:
        if self.dev_mode:
            logger.info(f"[DEV] Would send to {phone_number}: {text}")
            return True
        return await self._post_message(phone_number, {"Body": text})

    async def send_templated(
        self, phone_number: str, template_key: str, variables: dict[str, str]
    ) -> bool:
        """
        Send a WhatsApp template by key.

        Returns:
            False if the template is not configured or the send failed
        """
        content_sid = self.templates.get(template_key)
        if not content_sid:
            logger.debug(f"Template '{template_key}' not configured")
            return False

        if self.dev_mode:
            logger.info(
                f"[DEV] Would send template {template_key} ({content_sid}) to {phone_number}: {variables}"
            )
            return True

        payload = {"ContentSid": content_sid}
        if variables:
            payload["ContentVariables"] = json.dumps(variables, ensure_ascii=False)
        return await self._post_message(phone_number, payload)


@dataclass(frozen=True)
class ReminderMessage:
    """What to send for one due reminder."""

    template_key: str
    variables: dict[str, str]
    text: str


def build_reminder_message(
    setting: ReminderSetting,
    user: User,
    event_times: EventTimes,
    today: date,
    candle_templates_women: bool = False,
) -> Optional[ReminderMessage]:
    """
    Map a due reminder to template key, numbered variables and fallback text.

    Returns None when the event time the message needs is unavailable.
    """
    reminder_type = setting.reminder_type

    if reminder_type is ReminderType.TEFILLIN:
        if event_times.sunset is None:
            return None
        reminder_time = apply_offset(event_times.sunset, setting.offset_minutes)
        return ReminderMessage(
            "tefillin_final",
            {"1": event_times.sunset, "2": reminder_time},
            messages.tefillin_text(event_times.sunset, reminder_time, event_times.tzeit),
        )

    if reminder_type is ReminderType.SHEMA:
        if event_times.shema is None:
            return None
        reminder_time = apply_offset(event_times.shema, setting.offset_minutes)
        return ReminderMessage(
            "shema_final",
            {"1": event_times.shema, "2": reminder_time},
            messages.shema_text(event_times.shema, reminder_time),
        )

    if reminder_type is ReminderType.CANDLE_LIGHTING:
        candle_time = candle_lighting_time(event_times)
        if candle_time is None:
            return None
        if setting.offset_minutes == 0:
            reminder_time = CANDLE_LIGHTING_TIME
        else:
            reminder_time = apply_offset(candle_time, setting.offset_minutes)
        key = "candle_lighting_final"
        if user.gender == "female" and candle_templates_women:
            key = "candle_lighting_final_women"
        city = event_times.location
        return ReminderMessage(
            key,
            {"1": city, "2": candle_time, "3": reminder_time},
            messages.candle_lighting_text(city, candle_time),
        )

    if reminder_type is ReminderType.TAARA:
        sunset = event_times.sunset or DEFAULT_SUNSET
        return ReminderMessage(
            "taara_final",
            {"1": sunset},
            messages.taara_text(sunset),
        )

    if reminder_type is ReminderType.CLEAN_7:
        day_number = clean_day_number(setting, today)
        if day_number is None:
            return None
        return ReminderMessage(
            "clean_7_final",
            {"1": str(day_number)},
            messages.clean_7_text(day_number),
        )

    raise ValueError(f"Unhandled reminder type: {reminder_type}")


async def deliver(
    delivery: ReminderDelivery, phone_number: str, message: ReminderMessage
) -> bool:
    """Send the template, falling back to plain text when it is missing or fails."""
    if await delivery.send_templated(phone_number, message.template_key, message.variables):
        return True
    logger.info(
        f"Template '{message.template_key}' unavailable for {phone_number}, sending plain text"
    )
    return await delivery.send(phone_number, message.text)
