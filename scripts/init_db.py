#!/usr/bin/env python3
"""Database initialization script."""

import sys

from automation_engine.config import load_config
from automation_engine.core.logging import setup_logging
from automation_engine.startup import run_database_command


def main():
    """Create tables and indexes for the configured database."""
    config = load_config()
    logger = setup_logging(level=config.log_level.value)

    try:
        logger.info(f"Initializing database at {config.database_url}")
        run_database_command("init", config)
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
