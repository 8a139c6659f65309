"""Database migrations for execution history queries."""

from typing import Optional

from sqlalchemy import Engine, text

from ..core.logging import get_logger
from .database import get_database_engine

logger = get_logger(__name__)

HISTORY_INDEXES = {
    # Stats windows and the retention job scan by start time
    "idx_workflow_executions_workflow_started":
        "ON workflow_executions(workflow_id, started_at)",
    # Status-filtered history pages
    "idx_workflow_executions_workflow_status":
        "ON workflow_executions(workflow_id, status, created_at DESC)",
    "idx_workflow_executions_started_at":
        "ON workflow_executions(started_at)",
    # Listing by enabled flag in priority order
    "idx_workflows_enabled_priority":
        "ON workflows(enabled, priority DESC, created_at)",
}


def create_history_indexes(engine: Engine) -> None:
    """Create indexes used by statistics, history pages and cleanup."""
    try:
        with engine.connect() as connection:
            for name, definition in HISTORY_INDEXES.items():
                connection.execute(text(f"CREATE INDEX IF NOT EXISTS {name} {definition}"))
            connection.commit()
            logger.info(f"Ensured {len(HISTORY_INDEXES)} execution history indexes")

    except Exception as e:
        logger.error(f"Failed to create database indexes: {e}")
        raise


def optimize_sqlite(engine: Engine) -> None:
    """Apply SQLite pragmas for concurrent readers. No-op on other backends."""
    if engine.url.get_backend_name() != "sqlite":
        return

    try:
        with engine.connect() as connection:
            if engine.url.database not in (None, "", ":memory:"):
                # WAL lets stats queries read while executions are being recorded
                connection.execute(text("PRAGMA journal_mode=WAL"))
            connection.execute(text("PRAGMA cache_size=10000"))
            connection.execute(text("PRAGMA optimize"))
            connection.commit()
            logger.info("Applied SQLite optimizations")

    except Exception as e:
        logger.error(f"Failed to optimize database: {e}")
        raise


def run_migrations(engine: Optional[Engine] = None) -> None:
    """Run all migrations against ``engine`` or the process-wide engine."""
    engine = engine or get_database_engine()
    logger.info("Starting database migrations")
    create_history_indexes(engine)
    optimize_sqlite(engine)
    logger.info("Database migrations completed successfully")


if __name__ == "__main__":
    run_migrations()
