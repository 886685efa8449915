#!/usr/bin/env python3
# fieldservice/infra/migrate.py
"""
Standalone migration runner.

    python -m fieldservice.infra.migrate

Run it in CI/CD before deployment or as an init container. The application
itself never applies migrations at startup.
"""
import asyncio
import sys

from fieldservice.infra.migrations_async import apply_migrations
from fieldservice.infra.db_async import init_pool, close_pool
from fieldservice.infra.logging_config import setup_logging, get_logger
from fieldservice.config import settings

logger = get_logger(__name__)


async def main() -> int:
    logger.info("=" * 60)
    logger.info("Database Migration Runner")
    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"Database: {settings.pghost}:{settings.pgport}/{settings.pgdatabase}")
    logger.info("=" * 60)

    try:
        await init_pool()
        result = await apply_migrations()
    except Exception as exc:
        logger.critical(f"MIGRATION FAILED: {exc}", exc_info=True)
        return 1
    finally:
        await close_pool()

    logger.info(f"Status: {'SUCCESS' if result['ok'] else 'FAILED'}")
    if result['applied']:
        for migration in result['applied']:
            logger.info(f"  ✓ {migration}")
    else:
        logger.info("No new migrations to apply")

    return 0 if result['ok'] else 1


if __name__ == "__main__":
    setup_logging(level=settings.log_level, use_json=settings.is_production)
    sys.exit(asyncio.run(main()))
