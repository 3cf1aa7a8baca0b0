"""Core workflow engine components."""

from .exceptions import (
    WorkflowEngineError,
    StructuralError,
    NoTriggerFound,
    MalformedGraph,
    CycleDetected,
    ExecutionLimitExceeded,
    NodeExecutionError,
    ExecutionStateError,
    IntegrationError,
    NetworkError,
    HttpError,
    GenerationError,
    GenerationNotConfigured,
    ConditionEvaluationError,
    StorageError,
    ConfigurationError,
)
from .logging import setup_logging, get_logger
from .context import ExecutionContext, UNSET
from .condition import ConditionEvaluator
from .capabilities import ExecutionSink, HttpClient, HttpResponse, TextGenerator, EmailSender, DataFetcher
from .execution_record import ExecutionRecorder
from .handler_registry import HandlerRegistry
from .execution_engine import ExecutionEngine
from .smart_executor import SmartExecutor

__all__ = [
    "WorkflowEngineError",
    "StructuralError",
    "NoTriggerFound",
    "MalformedGraph",
    "CycleDetected",
    "ExecutionLimitExceeded",
    "NodeExecutionError",
    "ExecutionStateError",
    "IntegrationError",
    "NetworkError",
    "HttpError",
    "GenerationError",
    "GenerationNotConfigured",
    "ConditionEvaluationError",
    "StorageError",
    "ConfigurationError",
    "setup_logging",
    "get_logger",
    "ExecutionContext",
    "UNSET",
    "ConditionEvaluator",
    "ExecutionSink",
    "HttpClient",
    "HttpResponse",
    "TextGenerator",
    "EmailSender",
    "DataFetcher",
    "ExecutionRecorder",
    "HandlerRegistry",
    "ExecutionEngine",
    "SmartExecutor",
]
