"""Database migrations for execution history queries."""

from typing import Optional

from sqlalchemy import Engine, text
from .database import get_database_engine
from ..core.logging import get_logger

logger = get_logger(__name__)

EXECUTION_INDEXES = [
    # Listing an agent's runs, newest first
    """
    CREATE INDEX IF NOT EXISTS idx_executions_agent_started
    ON executions(agent_id, start_time DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_executions_user_started
    ON executions(user_id, start_time DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_executions_status_end
    ON executions(status, end_time)
    """,
    # Ordered retrieval of a run's logs and results
    """
    CREATE INDEX IF NOT EXISTS idx_execution_logs_execution_seq
    ON execution_logs(execution_id, seq)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_node_results_execution_seq
    ON node_results(execution_id, seq)
    """,
]


def create_execution_indexes(engine: Optional[Engine] = None):
    """Create indexes used by execution listing and log retrieval."""
    engine = engine or get_database_engine()
    try:
        with engine.connect() as connection:
            for statement in EXECUTION_INDEXES:
                connection.execute(text(statement))
            connection.commit()
            logger.info("Successfully created execution indexes")
    except Exception as e:
        logger.error(f"Failed to create execution indexes: {str(e)}")
        raise


def optimize_sqlite(engine: Optional[Engine] = None):
    """Apply SQLite settings suited to frequent small appends."""
    engine = engine or get_database_engine()
    if engine.dialect.name != "sqlite":
        return

    try:
        with engine.connect() as connection:
            connection.execute(text("PRAGMA journal_mode=WAL"))
            connection.execute(text("PRAGMA synchronous=NORMAL"))
            connection.commit()
            logger.info("Applied SQLite optimizations for execution logging")
    except Exception as e:
        logger.error(f"Failed to optimize database: {str(e)}")
        raise


def run_execution_migrations(engine: Optional[Engine] = None):
    """Run all execution storage migrations."""
    try:
        logger.info("Starting execution storage migrations")
        create_execution_indexes(engine)
        optimize_sqlite(engine)
        logger.info("Execution storage migrations completed successfully")
    except Exception as e:
        logger.error(f"Execution storage migrations failed: {str(e)}")
        raise


if __name__ == "__main__":
    run_execution_migrations()
