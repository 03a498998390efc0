"""
zmanimbot Service

Runs the reminder scheduler and exposes the reminder management
conversation to the inbound WhatsApp webhook layer.
"""

import asyncio
import logging
from typing import Optional

import asyncpg
from dotenv import load_dotenv

import analytics
from config import BotConfig
from reminders import (
    ConversationRouter,
    InMemoryConversationStateStore,
    PostgresReminderStore,
    ReminderScheduler,
    ReminderService,
    Reply,
    WhatsAppDelivery,
)
from zmanim import EventTimeResolver, HebcalClient

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("zmanimbot")


class ZmanimBot:
    """Wires the store, resolver, delivery, scheduler and conversation together."""

    def __init__(self, config: BotConfig):
        self.config = config
        self.db_pool: Optional[asyncpg.Pool] = None
        self.scheduler: Optional[ReminderScheduler] = None
        self.router: Optional[ConversationRouter] = None
        self.delivery: Optional[WhatsAppDelivery] = None

    async def setup(self) -> None:
        config = self.config

        logger.info(f"Setup: DATABASE_URL={'set' if config.database_url else 'missing'}")
        logger.info(f"Setup: TWILIO_ACCOUNT_SID={'set' if config.twilio_account_sid else 'missing'}")
        logger.info(f"Setup: ENABLE_TEST_REMINDERS={config.test_mode_enabled}")
        logger.info(f"Setup: templates configured={sorted(config.templates)}")

        self.db_pool = await asyncpg.create_pool(config.database_url)
        analytics.configure(self.db_pool)
        store = PostgresReminderStore(self.db_pool)

        resolver = EventTimeResolver(
            HebcalClient(
                calendar_url=config.hebcal_calendar_url,
                zmanim_url=config.hebcal_zmanim_url,
                timeout_seconds=config.http_timeout_seconds,
            ),
            cache_ttl_seconds=config.cache_ttl_seconds,
            fallback_cache_ttl_seconds=config.fallback_cache_ttl_seconds,
            fallback_locations=config.fallback_locations,
            default_timezone=config.default_timezone,
        )

        self.delivery = WhatsAppDelivery(
            account_sid=config.twilio_account_sid,
            auth_token=config.twilio_auth_token,
            from_number=config.twilio_whatsapp_from,
            templates=config.templates,
        )

        states = InMemoryConversationStateStore()
        service = ReminderService(store, states, default_timezone=config.default_timezone)
        self.router = ConversationRouter(service, states)

        self.scheduler = ReminderScheduler(store, resolver, self.delivery, config)

    async def handle_message(self, phone_number: str, text: str) -> Optional[Reply]:
        """Entry point for inbound WhatsApp text. None means "not a reminder conversation"."""
        return await self.router.handle(phone_number, text)

    async def run(self) -> None:
        await self.setup()
        self.scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.close()

    async def close(self) -> None:
        """Clean up resources on shutdown."""
        if self.scheduler:
            self.scheduler.stop()
        if self.delivery:
            await self.delivery.close()
        await analytics.shutdown()
        if self.db_pool:
            await self.db_pool.close()


async def main():
    """Run the reminder service."""
    config = BotConfig.from_env()
    if not config.database_url:
        print("Error: DATABASE_URL environment variable not set")
        print("Please set it in your .env file")
        return

    bot = ZmanimBot(config)
    await bot.run()


if __name__ == "__main__":
    asyncio.run(main())
