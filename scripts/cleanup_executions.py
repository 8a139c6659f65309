#!/usr/bin/env python3
"""Delete execution history older than the retention window.

Meant to be run from cron or another external scheduler, e.g.::

    python scripts/cleanup_executions.py --days 30
"""

import argparse
import sys

from automation_engine.config import load_config
from automation_engine.core.logging import setup_logging
from automation_engine.startup import cleanup_executions


def main():
    parser = argparse.ArgumentParser(description="Delete old workflow execution records")
    parser.add_argument("--days", type=int, help="Days of history to keep (default: from configuration)")
    parser.add_argument("--config", help="Path to a .env configuration file")
    args = parser.parse_args()

    config = load_config(args.config)
    logger = setup_logging(level=config.log_level.value)

    try:
        deleted = cleanup_executions(config, args.days)
    except Exception as e:
        logger.error(f"Execution cleanup failed: {e}")
        sys.exit(1)

    logger.info(f"Execution cleanup completed: {deleted} records deleted")


if __name__ == "__main__":
    main()
