"""Retry with exponential backoff for transient storage failures."""

import time
import random
from functools import wraps
from typing import Callable, Any, Optional, Tuple, Type

from .exceptions import WorkflowEngineError, TransientError, StorageError
from .logging import ErrorRecoveryLogger


class RetryConfig:
    """How often, and how patiently, a failed operation is retried.

    Only exceptions listed in ``retryable_exceptions`` are retried, and an
    engine error additionally has to be marked ``recoverable``.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.1,
        max_delay: float = 5.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None
    ):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = tuple(retryable_exceptions or (TransientError, StorageError))

    def is_retryable(self, error: Exception) -> bool:
        if not isinstance(error, self.retryable_exceptions):
            return False
        return not isinstance(error, WorkflowEngineError) or error.recoverable

    def get_delay(self, attempt: int) -> float:
        """Backoff before the attempt following ``attempt`` (1-based)."""
        delay = min(self.base_delay * self.exponential_base ** (attempt - 1), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5
        return delay


def with_retry(config: Optional[RetryConfig] = None):
    """Retry the decorated callable according to a RetryConfig.

    When decorating methods, a ``retry_config`` attribute on the instance
    overrides ``config``, so one sink can be tuned from settings.
    """
    default = config or RetryConfig()

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            effective = getattr(args[0], "retry_config", None) if args else None
            return _execute_with_retry(func, effective or default, *args, **kwargs)
        return wrapper

    return decorator


def _execute_with_retry(func: Callable, config: RetryConfig, *args, **kwargs) -> Any:
    recovery_logger = ErrorRecoveryLogger(func.__name__)
    attempt = 1
    while True:
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if attempt >= config.max_attempts or not config.is_retryable(e):
                if attempt > 1:
                    recovery_logger.log_recovery_failure(e, attempt)
                raise
            delay = config.get_delay(attempt)
            recovery_logger.log_recovery_attempt(e, attempt, config.max_attempts, delay)
            time.sleep(delay)
            attempt += 1
