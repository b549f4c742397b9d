"""
Watchquota Discord Bot
======================

Counts the daily messages of watchlisted members and times them out once
they exceed their guild's quota. Startup opens the database (recovering it
if corrupted), reports how many guilds have a quota, runs the first
integrity check and then connects to Discord.
"""

import asyncio
import os
import sys
from pathlib import Path

import discord
from dotenv import load_dotenv

from watchquota.bot.cogs import quota_listener
from watchquota.configuration.app_configuration import AppConfig
from watchquota.database.database import Database
from watchquota.database.errors import FatalInitializationError
from watchquota.scheduler.maintenance_scheduler import MaintenanceScheduler
from watchquota.services.quota_enforcement_service import QuotaEnforcementService
from watchquota.util.logger import get_logger, handle_exception


logger = get_logger("main")


def resolve_base_dir() -> Path:
    """Determine the project base directory.

    Resolution order:
    1. WATCHQUOTA_HOME environment variable, if set.
    2. The executable's directory when running frozen.
    3. Otherwise the grandparent of this file's directory.
    """
    if env_home := os.getenv("WATCHQUOTA_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


def load_environment(base_dir: Path) -> str:
    """Load ``.env`` and return the Discord bot token.

    Raises
    ------
    SystemExit
        If ``DISCORD_BOT_TOKEN`` is missing.
    """
    load_dotenv(dotenv_path=base_dir / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents for guild messages and member roles."""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.messages = True
    intents.members = True
    return intents


def create_bot(enforcement_service: QuotaEnforcementService, config: AppConfig) -> discord.Bot:
    """Instantiate the Discord bot and register the quota listener."""
    bot = discord.Bot(intents=build_intents())
    quota_listener.setup(bot, enforcement_service, config.watchlist_role_name)
    return bot


async def initialize_database(database: Database) -> None:
    """Open the store and log the startup report.

    The report is informational: a failure to read the quotas is logged and
    startup continues.

    Raises
    ------
    FatalInitializationError
        When the store cannot be opened even after recovery.
    """
    await database.initialize_database()

    try:
        quotas = await database.load_all_quotas()
    except Exception as exc:
        logger.error("Error loading quota settings: %s", exc)
        return
    active = sum(1 for limit in quotas.values() if limit > 0)
    logger.info("Quota system active in %d guild(s)", active)


async def shutdown_runtime(
    bot: discord.Bot | None,
    scheduler: MaintenanceScheduler | None,
    database: Database,
) -> None:
    """Stop the scheduler, close the bot and then the database, once each."""
    if scheduler is not None:
        try:
            await scheduler.shutdown()
        except Exception as exc:
            logger.exception("Error during scheduler shutdown: %s", exc)

    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing Discord bot: %s", exc)

    try:
        await database.close()
    except Exception as exc:
        logger.exception("Error while closing database: %s", exc)

    logger.info("Shutdown complete.")


async def async_main(base_dir: Path) -> int:
    """Bootstrap the database, scheduler and bot, returning an exit code."""
    token = load_environment(base_dir)
    config = AppConfig(base_dir / "config" / "app_config.yml")
    database = Database.from_config(config)

    try:
        await initialize_database(database)
    except FatalInitializationError as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    scheduler = MaintenanceScheduler(
        database,
        interval_seconds=config.integrity_check_interval_seconds,
        message_retention_days=config.message_retention_days,
        log_retention_days=config.log_retention_days,
    )
    bot: discord.Bot | None = None
    exit_code = 0

    try:
        bot = create_bot(QuotaEnforcementService(database), config)
        scheduler.start()
        logger.info("Attempting to connect to Discord…")
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Bot start cancelled; proceeding to shutdown")
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, scheduler, database)

    return exit_code


def main() -> int:
    """Console entry point; returns the process exit code."""
    sys.excepthook = handle_exception
    base_dir = resolve_base_dir()
    os.chdir(base_dir)

    logger.info("Starting Watchquota…")
    try:
        return asyncio.run(async_main(base_dir))
    except KeyboardInterrupt:
        logger.info("Interrupted; exiting.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
