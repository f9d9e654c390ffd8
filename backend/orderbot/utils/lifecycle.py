# /orderbot/utils/lifecycle.py

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from orderbot.utils.logging import setup_logging
from orderbot.utils.scheduler import build_default_scheduler
from orderbot.services.cache_service import order_cache
from orderbot.services.discord_service import discord_service
from orderbot.services.ledger_service import ledger_service
from orderbot.config.settings import settings, validate_environment

# This file manages the application's lifespan: the cache snapshot is loaded
# before the scheduler starts or the first interaction is served, and flushed
# once more on shutdown.

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()
    validate_environment(settings)

    logger.info("Application starting up...")

    order_cache.load()

    scheduler = build_default_scheduler()
    scheduler.start()
    app.state.scheduler = scheduler

    logger.info("Application startup complete. Ready to accept interactions.")

    yield  # Application is now running

    logger.info("Application shutting down...")

    scheduler.shutdown(wait=False)
    await order_cache.close()
    await ledger_service.aclose()
    await discord_service.aclose()
