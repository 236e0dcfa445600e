#!/usr/bin/env python3
# pagebot/infra/migrate.py
"""
Standalone migration runner.

    python -m pagebot.infra.migrate

Run before starting the application with STORE_BACKEND=postgres. The
application itself never applies migrations.
"""
import asyncio
import sys

from pagebot.infra.migrations_async import apply_migrations
from pagebot.infra.db_async import init_pool, close_pool
from pagebot.infra.logging_config import setup_logging, get_logger
from pagebot.config import settings

logger = get_logger(__name__)


async def main() -> int:
    """Run migrations"""
    logger.info("=" * 60)
    logger.info("Database Migration Runner")
    logger.info("=" * 60)
    logger.info(f"Environment: {settings.app_env}")

    try:
        logger.info("Initializing database connection...")
        await init_pool()

        result = await apply_migrations()

        logger.info(f"Status: {'SUCCESS' if result['ok'] else 'FAILED'}")
        logger.info(f"Migrations applied: {result['count']}")
        for migration in result['applied']:
            logger.info(f"  applied {migration}")
        if not result['applied']:
            logger.info("No new migrations to apply")

        return 0 if result['ok'] else 1

    except Exception as exc:
        logger.critical(f"MIGRATION FAILED: {exc}", exc_info=True)
        return 1

    finally:
        await close_pool()


if __name__ == "__main__":
    setup_logging(level="INFO", use_json=False)
    sys.exit(asyncio.run(main()))
