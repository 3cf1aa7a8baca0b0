"""Database models and execution sinks."""

from .database import (
    Base, get_database_engine, get_session_factory, build_engine,
    reset_database_engine, create_tables, drop_tables
)
from .models import ExecutionModel, ExecutionLogModel, NodeResultModel
from .memory_sink import InMemoryExecutionSink
from .sql_sink import SqlExecutionSink

__all__ = [
    "Base",
    "get_database_engine",
    "get_session_factory",
    "build_engine",
    "reset_database_engine",
    "create_tables",
    "drop_tables",
    "ExecutionModel",
    "ExecutionLogModel",
    "NodeResultModel",
    "InMemoryExecutionSink",
    "SqlExecutionSink",
]
