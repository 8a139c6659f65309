"""Application startup script and CLI interface."""

import argparse
import asyncio
import sys
from datetime import timedelta
from enum import Enum
from typing import Optional

from .config import (
    AppConfig,
    get_development_config,
    get_production_config,
    get_testing_config,
    load_config,
    validate_config,
)
from .core.logging import get_logger, setup_logging
from .models.core import utc_now

SHOWN_SETTINGS = (
    "app_name", "app_version", "debug", "host", "port", "database_url", "log_level",
    "action_timeout", "max_action_attempts", "stop_on_error", "single_flight",
    "auto_disable_after", "reporting_timezone", "execution_retention_days",
)


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        description="Workflow Automation Engine - triggers, conditions and actions over your records"
    )

    parser.add_argument("--host", help="Host to bind the server to")
    parser.add_argument("--port", type=int, help="Port to bind the server to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument(
        "--env",
        choices=["development", "production", "testing"],
        help="Environment configuration preset"
    )
    parser.add_argument("--config", help="Path to a .env configuration file")
    parser.add_argument("--database-url", help="Database connection URL")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level"
    )
    parser.add_argument("--log-file", help="Path to log file")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the API server")
    run_parser.add_argument("--workers", type=int, default=1, help="Number of worker processes (default: 1)")

    db_parser = subparsers.add_parser("db", help="Database management commands")
    db_subparsers = db_parser.add_subparsers(dest="db_command", help="Database commands")
    db_subparsers.add_parser("init", help="Create tables and indexes")
    db_subparsers.add_parser("migrate", help="Run database migrations")
    db_subparsers.add_parser("reset", help="Drop and recreate all tables")
    cleanup_parser = db_subparsers.add_parser("cleanup", help="Delete old execution history")
    cleanup_parser.add_argument(
        "--days",
        type=int,
        help="Keep this many days of history (default: execution_retention_days)"
    )

    health_parser = subparsers.add_parser("health", help="Run health checks")
    health_parser.add_argument("--detailed", action="store_true", help="Run component health checks")

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="config_command", help="Config commands")
    config_subparsers.add_parser("show", help="Show current configuration")
    config_subparsers.add_parser("validate", help="Validate configuration")

    return parser


def load_configuration(args: argparse.Namespace) -> AppConfig:
    """Load configuration based on command line arguments."""
    if args.env == "development":
        config = get_development_config()
    elif args.env == "production":
        config = get_production_config()
    elif args.env == "testing":
        config = get_testing_config()
    else:
        config = load_config(args.config)

    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    if args.reload:
        overrides["reload"] = True
    if args.database_url:
        overrides["database_url"] = args.database_url
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_file:
        overrides["log_file"] = args.log_file
    if args.debug:
        overrides["debug"] = True

    if not overrides:
        return config
    # Re-validate so overrides go through the field validators
    return AppConfig(**{**config.model_dump(), **overrides})


def run_server(config: AppConfig, workers: int = 1):
    """Run the API server."""
    import uvicorn

    from .factory import create_app

    logger = get_logger(__name__)
    logger.info(f"Starting server with {workers} worker(s)")

    uvicorn_config = config.get_uvicorn_config()

    if workers > 1:
        uvicorn.run(
            "automation_engine.factory:create_app",
            factory=True,
            workers=workers,
            **uvicorn_config
        )
    else:
        uvicorn.run(create_app(config), **uvicorn_config)


def cleanup_executions(config: AppConfig, days: Optional[int] = None) -> int:
    """
    Delete execution records older than the retention window.

    Runs still in progress are kept regardless of age. Workflow counters are
    not touched.

    Args:
        config: Configuration naming the database and default retention
        days: Retention window in days; ``config.execution_retention_days`` if omitted

    Returns:
        Number of execution records deleted
    """
    from .storage.database import create_database_engine, get_session_factory
    from .storage.repository import SqlAlchemyWorkflowRepository

    logger = get_logger(__name__)
    days = config.execution_retention_days if days is None else days
    if days < 1:
        raise ValueError("Retention must be at least 1 day")

    engine = create_database_engine(
        config.database_url,
        echo=config.database_echo,
        connect_args=config.get_database_connect_args(),
    )
    try:
        repository = SqlAlchemyWorkflowRepository(get_session_factory(engine))
        cutoff = utc_now() - timedelta(days=days)
        deleted = repository.delete_executions_before(cutoff)
    finally:
        engine.dispose()

    logger.info(f"Deleted {deleted} execution records created before {cutoff.isoformat()}")
    return deleted


def run_database_command(command: str, config: AppConfig, days: Optional[int] = None):
    """Run database management commands."""
    from .storage.database import create_database_engine, create_tables, drop_tables
    from .storage.migrations import run_migrations

    logger = get_logger(__name__)

    if command == "cleanup":
        deleted = cleanup_executions(config, days)
        print(f"Deleted {deleted} execution records")
        return

    engine = create_database_engine(
        config.database_url,
        echo=config.database_echo,
        connect_args=config.get_database_connect_args(),
    )
    try:
        if command == "init":
            logger.info("Initializing database tables...")
            create_tables(engine)
            run_migrations(engine)
            logger.info("Database initialization completed")

        elif command == "migrate":
            logger.info("Running database migrations...")
            run_migrations(engine)

        elif command == "reset":
            logger.info("Resetting database...")
            drop_tables(engine)
            create_tables(engine)
            run_migrations(engine)
            logger.info("Database reset completed successfully")
    finally:
        engine.dispose()


async def run_health_check(config: AppConfig, detailed: bool = False):
    """Run health checks."""
    logger = get_logger(__name__)

    if not detailed:
        logger.info("Running basic health check...")
        print(f"Service: {config.app_name}")
        print("Status: Running")
        print(f"Version: {config.app_version}")
        return

    from .factory import build_components

    logger.info("Running detailed health checks...")
    components = build_components(config)
    try:
        results = await components.health_checker.run_all_checks()
    finally:
        components.shutdown()

    print(f"Overall Status: {results['overall_status']}")
    print(f"Timestamp: {results['timestamp']}")
    for check_name, result in results.get("checks", {}).items():
        print(f"  {check_name}: {result.get('status', 'unknown')} - {result.get('message', 'No message')}")

    if results["overall_status"] != "healthy":
        sys.exit(1)


def show_configuration(config: AppConfig):
    """Print the settings that shape engine behaviour."""
    print("Current Configuration:")
    for name in SHOWN_SETTINGS:
        value = getattr(config, name)
        print(f"  {name}: {value.value if isinstance(value, Enum) else value}")


def validate_configuration_command(config: AppConfig):
    """Validate configuration and show results."""
    try:
        validate_config(config)
        print("Configuration validation: PASSED")
        print("All configuration settings are valid.")
    except ValueError as e:
        print("Configuration validation: FAILED")
        print(f"Error: {e}")
        sys.exit(1)


def main(argv: Optional[list] = None):
    """Main entry point for the application."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        config = load_configuration(args)
        validate_config(config)
        setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.structured_logging,
            max_size=config.log_max_size,
            backup_count=config.log_backup_count,
        )

        if args.command == "run" or args.command is None:
            run_server(config, getattr(args, "workers", 1))

        elif args.command == "db":
            if not args.db_command:
                print("Database command required. Use --help for options.")
                sys.exit(1)
            run_database_command(args.db_command, config, getattr(args, "days", None))

        elif args.command == "health":
            asyncio.run(run_health_check(config, args.detailed))

        elif args.command == "config":
            if args.config_command == "show":
                show_configuration(config)
            elif args.config_command == "validate":
                validate_configuration_command(config)
            else:
                print("Configuration command required. Use --help for options.")
                sys.exit(1)
        else:
            parser.print_help()

    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
