# backend/orderbot/utils/logging.py

import logging
import sys
import structlog
from orderbot.config.settings import settings

# This utility sets up structured logging (JSON format in production)
# for consistent and machine-readable logs across the application.
# Every event is tagged with the running environment, and Discord
# interaction tokens are masked before anything is rendered.

SERVICE_NAME = "orderbot"

# Keys whose values grant access to Discord or the ledger.
REDACTED_KEYS = frozenset({"token", "interaction_token", "bot_token", "api_key", "authorization"})


def add_service_context(logger, method_name, event_dict):
    """Tags every event with the service and the environment it runs in."""
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("environment", settings.environment)
    return event_dict


def redact_secrets(logger, method_name, event_dict):
    # Interaction tokens stay valid for 15 minutes and allow editing the message.
    for key in REDACTED_KEYS.intersection(event_dict):
        value = event_dict[key]
        if value:
            event_dict[key] = f"{str(value)[:4]}***"
    return event_dict


def setup_logging():
    """
    Configures structured logging using structlog, properly integrated
    with Python's standard logging to work with Gunicorn/Uvicorn.
    """
    # Define shared processors for structlog
    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_service_context,
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    # Determine the final renderer based on the environment
    if settings.environment == "development":
        final_processor = structlog.dev.ConsoleRenderer()
    else:
        # Use JSONRenderer for production/test environments
        final_processor = structlog.processors.JSONRenderer()

    # Configure structlog
    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure the standard logging formatter
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=final_processor,
        foreign_pre_chain=shared_processors,
    )

    # Configure the root logger; replacing the handlers keeps repeated
    # calls (worker reloads, tests) from printing every line twice
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(settings.log_level.upper())

    # The scheduler logs every tick at INFO; the jobs log their own summaries.
    logging.getLogger("apscheduler.executors.default").setLevel(logging.WARNING)
    # httpx logs each request URL, and webhook URLs embed the interaction token.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
