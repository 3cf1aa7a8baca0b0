#!/usr/bin/env python3
"""Database initialization script."""

import sys

from agentflow.config import load_config
from agentflow.storage.database import create_tables, get_database_engine
from agentflow.storage.migrations import run_execution_migrations
from agentflow.core.logging import setup_logging, get_logger


def main():
    """Create the execution tables and indexes."""
    config = load_config()

    setup_logging(level=config.log_level.value)
    logger = get_logger("agentflow.scripts.init_db")

    try:
        logger.info(f"Initializing database at {config.database_url}")

        engine = get_database_engine(
            database_url=config.database_url,
            echo=config.database_echo
        )

        create_tables(engine)
        logger.info("Database tables created successfully")

        run_execution_migrations(engine)
        logger.info("Database migrations completed successfully")

        logger.info("Database initialization completed")

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
