"""Custom exceptions for the agent workflow engine with detailed error information."""

from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    STRUCTURAL = "structural"
    EXECUTION = "execution"
    INTEGRATION = "integration"
    EVALUATION = "evaluation"
    STORAGE = "storage"
    CONFIGURATION = "configuration"


class WorkflowEngineError(Exception):
    """Base exception for all workflow engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.retry_after = retry_after
        self.context = context or {}
        self.timestamp = datetime.utcnow()
        # Final execution record, attached by the engine before re-raising
        self.execution = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "retry_after": self.retry_after,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class StructuralError(WorkflowEngineError):
    """Raised when a workflow graph cannot be executed as defined. Always aborts the run."""

    def __init__(self, message: str, validation_errors: Optional[List[str]] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        super().__init__(message, category=ErrorCategory.STRUCTURAL, **kwargs)
        self.validation_errors = validation_errors or []
        if validation_errors:
            self.add_details(validation_errors=validation_errors)


class NoTriggerFound(StructuralError):
    """Raised when a graph has no trigger node."""

    def __init__(self, message: str = "No trigger node found", **kwargs):
        super().__init__(message, **kwargs)


class MalformedGraph(StructuralError):
    """Raised when a graph has duplicate ids, dangling edges or several triggers."""


class CycleDetected(StructuralError):
    """Raised when traversal reaches a node already on the current path."""

    def __init__(self, message: str, path: Optional[List[str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.path = path or []
        if path:
            self.add_details(path=path)


class ExecutionLimitExceeded(StructuralError):
    """Raised when a run exceeds the configured number of node visits."""

    def __init__(self, message: str, limit: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        if limit is not None:
            self.add_details(limit=limit)


class NodeExecutionError(WorkflowEngineError):
    """Raised when node execution fails."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        node_type: Optional[str] = None,
        execution_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        if node_id:
            self.add_context(node_id=node_id)
        if node_type:
            self.add_context(node_type=node_type)
        if execution_id:
            self.add_context(execution_id=execution_id)


class ExecutionStateError(WorkflowEngineError):
    """Raised on an illegal execution status transition."""

    def __init__(self, message: str, execution_id: Optional[str] = None, **kwargs):
        super().__init__(message, severity=ErrorSeverity.HIGH, category=ErrorCategory.EXECUTION, **kwargs)
        if execution_id:
            self.add_context(execution_id=execution_id)


class IntegrationError(WorkflowEngineError):
    """Raised by a capability when an external call fails."""

    def __init__(self, message: str, service: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.MEDIUM)
        kwargs.setdefault("recoverable", True)
        super().__init__(message, category=ErrorCategory.INTEGRATION, **kwargs)
        if service:
            self.add_context(service=service)


class NetworkError(IntegrationError):
    """Raised when a request never produced a response (connection failure, timeout)."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        super().__init__(message, service="http", **kwargs)
        if url:
            self.add_context(url=url)


class HttpError(IntegrationError):
    """Raised when a request produced an error status code."""

    def __init__(
        self,
        message: str,
        status_code: int,
        url: Optional[str] = None,
        response_data: Any = None,
        **kwargs
    ):
        super().__init__(message, service="http", **kwargs)
        self.status_code = status_code
        self.response_data = response_data
        if url:
            self.add_context(url=url)
        self.add_details(status_code=status_code)


class GenerationError(IntegrationError):
    """Raised when text generation fails."""

    def __init__(self, message: str, model: Optional[str] = None, **kwargs):
        kwargs.setdefault("service", "text_generation")
        super().__init__(message, **kwargs)
        if model:
            self.add_context(model=model)


class GenerationNotConfigured(GenerationError):
    """Raised when the text generator has no credentials configured."""

    def __init__(self, message: str = "Text generation is not configured", **kwargs):
        super().__init__(message, recoverable=False, **kwargs)


class ConditionEvaluationError(WorkflowEngineError):
    """Raised when a condition expression cannot be parsed or compared."""

    def __init__(self, message: str, expression: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.EVALUATION,
            **kwargs
        )
        self.expression = expression
        if expression is not None:
            self.add_context(expression=expression)


class StorageError(WorkflowEngineError):
    """Raised when storage operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            recoverable=True,
            retry_after=3,
            **kwargs
        )
        if operation:
            self.add_context(operation=operation)
        if table:
            self.add_context(table=table)


class TransientError(WorkflowEngineError):
    """Raised for transient errors that should be retried."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            recoverable=True,
            retry_after=5,
            **kwargs
        )


class ConfigurationError(WorkflowEngineError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if config_key:
            self.add_context(config_key=config_key)


def create_error_response(error: WorkflowEngineError) -> Dict[str, Any]:
    """Create a standardized error response from a WorkflowEngineError."""
    response = {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "recoverable": error.recoverable,
            "retry_after": error.retry_after,
            "timestamp": error.timestamp.isoformat()
        },
        "context": error.context
    }
    if error.execution is not None:
        response["execution"] = error.execution.model_dump(mode="json")
    return response
