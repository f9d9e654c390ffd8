#!/usr/bin/env python3
"""
Registers the bot's slash commands with Discord.

Commands:
    /ping     - checks that the bot answers
    /sync     - posts pending orders from the order sheet now
    /cleanup  - removes confirmed orders from the channel and the sheet now

Registers on DISCORD_GUILD_ID when set (instant), globally otherwise (can
take up to an hour to show up). Safe to run multiple times: Discord replaces
the whole command list.

Usage:
    python scripts/register_commands.py
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path to import orderbot modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from orderbot.config.settings import settings
from orderbot.services.discord_service import discord_service
from orderbot.utils.exceptions import ChatPlatformError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

CHAT_INPUT = 1

COMMANDS = [
    {"name": "ping", "type": CHAT_INPUT, "description": "Checks that the bot is online."},
    {"name": "sync", "type": CHAT_INPUT, "description": "Posts pending orders from the order sheet now."},
    {"name": "cleanup", "type": CHAT_INPUT, "description": "Removes confirmed orders from the channel and the sheet."},
]


async def register_commands():
    if not settings.discord_bot_token or not settings.discord_application_id:
        logger.error("DISCORD_BOT_TOKEN and DISCORD_APPLICATION_ID are required")
        sys.exit(1)

    try:
        await discord_service.register_commands(COMMANDS, settings.discord_guild_id)
        logger.info(f"✓ Registered: {', '.join('/' + c['name'] for c in COMMANDS)}")
    except ChatPlatformError as e:
        logger.error(f"Error registering commands: {e}")
        sys.exit(1)
    finally:
        await discord_service.aclose()


if __name__ == "__main__":
    asyncio.run(register_commands())
