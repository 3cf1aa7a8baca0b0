"""Data models for the agent workflow engine."""

from .core import (
    ExecutionStatusEnum,
    LogLevelEnum,
    NodeKind,
    Node,
    Edge,
    WorkflowGraph,
    ValidationResult,
    LogEntry,
    NodeResult,
    Execution,
    ExecutionSummary,
)

__all__ = [
    "ExecutionStatusEnum",
    "LogLevelEnum",
    "NodeKind",
    "Node",
    "Edge",
    "WorkflowGraph",
    "ValidationResult",
    "LogEntry",
    "NodeResult",
    "Execution",
    "ExecutionSummary",
]
