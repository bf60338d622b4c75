"""
ScanGuard Discord Bot
=====================

Screens images posted in Discord servers against a perceptual-hash blocklist
and an external classifier, and escalates repeat offenders from a local
sanction to a moderator-approved ban across every server the bot serves.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. SCANGUARD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("SCANGUARD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from scanguard.configuration.app_configuration import app_config
from scanguard.database.database import get_db
from scanguard.services.runtime import ScanGuardServices, build_services
from scanguard.util.logger import get_logger, handle_exception

logger = get_logger("main")


def load_environment() -> str:
    """Load ``.env`` and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents for guild, member and message content events."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.reactions = True
    intents.members = True
    return intents


def load_cogs(discord_bot_instance: discord.Bot, services: ScanGuardServices) -> None:
    """Register all operational cogs with the bot."""
    from scanguard.bot.cogs import events_listener, guild_settings_cmds, message_listener, moderation_cmds

    events_listener.setup(discord_bot_instance, services)
    message_listener.setup(discord_bot_instance, services)
    guild_settings_cmds.setup(discord_bot_instance, services)
    moderation_cmds.setup(discord_bot_instance, services)

    logger.info("All cogs loaded successfully.")


async def start_bot(bot: discord.Bot, token: str) -> None:
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot, services: ScanGuardServices | None) -> None:
    """Close the Discord connection, drain the scan scheduler and close the database."""
    if not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord client: %s", exc)

    if services is not None:
        try:
            await services.shutdown()
        except Exception as exc:
            logger.exception("Error during service shutdown: %s", exc)

    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the database, services and bot, returning an exit code."""
    token = load_environment()

    db = get_db()
    logger.info("Initializing database...")
    if not await db.initialize(app_config.database_path):
        logger.critical("Failed to initialize database at %s", app_config.database_path)
        return 1

    bot = discord.Bot(intents=build_intents())
    services = None
    try:
        services = build_services(bot, db, app_config)
        await services.settings_service.load_all()
        load_cogs(bot, services)
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        await shutdown_runtime(bot, services)
        if services is None:
            await db.shutdown()
        return 1

    exit_code = 0
    try:
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, services)
    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    sys.excepthook = handle_exception
    logger.info("Starting ScanGuard…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
