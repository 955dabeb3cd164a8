"""
Process entry point: one asyncio loop hosting the FastAPI app, the bot's
long-polling loop and the expiry sweeper.

Run:
  vip-access-bot
  uvicorn vip_access.main:create_app --factory
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from fastapi import FastAPI

from .api.router import router as api_router
from .bot.handlers import create_dispatcher, start_polling
from .channel.telegram import TelegramChannelGateway
from .config import Settings
from .container import build_services
from .logging.json_logging import configure_logging
from .notifications.telegram import TelegramNotifier

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        bot = Bot(
            token=settings.bot_token,
            default=DefaultBotProperties(parse_mode=ParseMode.HTML),
        )
        services = build_services(
            settings,
            notifier=TelegramNotifier(bot),
            gateway=TelegramChannelGateway(bot),
        )
        await services.db.ensure_indexes()
        app.state.services = services

        dp = create_dispatcher(services)
        tasks = [
            asyncio.create_task(start_polling(bot, dp), name="bot-polling"),
            asyncio.create_task(services.expiration.run_forever(), name="expiry-sweeper"),
        ]
        logger.info("vip_access_started", extra={"strategy": services.verification.strategy.name})
        try:
            yield
        finally:
            with contextlib.suppress(RuntimeError):
                await dp.stop_polling()
            for task in tasks:
                task.cancel()
            for task in tasks:
                with contextlib.suppress(asyncio.CancelledError, RuntimeError):
                    await task
            await services.aclose()
            await bot.session.close()
            logger.info("vip_access_stopped")

    app = FastAPI(title="VIP Access Bot", lifespan=lifespan)
    app.include_router(api_router)
    return app


def run() -> None:
    settings = Settings()
    uvicorn.run(
        create_app(settings),
        host=settings.http_host,
        port=settings.http_port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
