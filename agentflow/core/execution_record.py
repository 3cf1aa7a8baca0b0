"""Owned, lock-guarded state of a single workflow execution."""

import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Optional

from ..models.core import (
    Execution, ExecutionStatusEnum, LogEntry, LogLevelEnum, Node, NodeResult
)
from .capabilities import ExecutionSink
from .exceptions import ExecutionStateError
from .logging import get_logger, log_with_context

logger = get_logger(__name__)

_DIAGNOSTIC_LEVELS = {
    LogLevelEnum.INFO: logging.INFO,
    LogLevelEnum.WARNING: logging.WARNING,
    LogLevelEnum.ERROR: logging.ERROR,
}


class ExecutionRecorder:
    """Records logs, node results and the terminal status of one run.

    Every mutation takes the recorder's lock, receives the next sequence
    number and is forwarded to the sink before the lock is released, so the
    sink observes appends in record order even when branches run on
    several threads. Sink failures are logged and swallowed: losing a
    persisted log line must not fail the workflow.
    """

    def __init__(
        self,
        sink: ExecutionSink,
        agent_id: str,
        user_id: str,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self._sink = sink
        self._clock = clock or datetime.utcnow
        self._lock = threading.RLock()
        self._seq = 0

        start_time = self._clock()
        execution_id = self._forward("create_execution", sink.create_execution, agent_id, user_id, start_time)
        if not execution_id:
            execution_id = str(uuid.uuid4())
            logger.warning(f"Execution sink did not create a record; using local ID {execution_id}")

        self._execution = Execution(
            id=execution_id,
            agent_id=agent_id,
            user_id=user_id,
            status=ExecutionStatusEnum.RUNNING,
            start_time=start_time,
        )

    @property
    def execution_id(self) -> str:
        return self._execution.id

    @property
    def status(self) -> ExecutionStatusEnum:
        with self._lock:
            return self._execution.status

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def _forward(self, operation: str, func: Callable, *args) -> Any:
        try:
            return func(*args)
        except Exception as e:
            logger.error(f"Execution sink {operation} failed: {str(e)}", exc_info=True)
            return None

    def log(self, level: LogLevelEnum, message: str, data: Any = None) -> LogEntry:
        """Append a log entry to the execution and mirror it to the diagnostic logger."""
        with self._lock:
            self._ensure_running("append log")
            entry = LogEntry(timestamp=self._clock(), level=level, message=message, data=data)
            self._execution.logs.append(entry)
            self._forward("append_log", self._sink.append_log, self._execution.id, self._next_seq(), entry)

        log_with_context(
            logger, _DIAGNOSTIC_LEVELS[level], message,
            execution_id=self._execution.id, agent_id=self._execution.agent_id
        )
        return entry

    def info(self, message: str, data: Any = None) -> LogEntry:
        return self.log(LogLevelEnum.INFO, message, data)

    def warning(self, message: str, data: Any = None) -> LogEntry:
        return self.log(LogLevelEnum.WARNING, message, data)

    def error(self, message: str, data: Any = None) -> LogEntry:
        return self.log(LogLevelEnum.ERROR, message, data)

    def add_result(self, node: Node, result: Any) -> NodeResult:
        """Append the output of one node visit."""
        with self._lock:
            self._ensure_running("append result")
            node_result = NodeResult(
                node_id=node.id,
                node_type=node.type,
                node_label=node.label,
                result=result,
                timestamp=self._clock(),
            )
            self._execution.results.append(node_result)
            self._forward("append_result", self._sink.append_result, self._execution.id, self._next_seq(), node_result)
            return node_result

    def complete(self) -> Execution:
        return self._finish(ExecutionStatusEnum.COMPLETED)

    def fail(self, error: str) -> Execution:
        return self._finish(ExecutionStatusEnum.FAILED, error)

    def _finish(self, status: ExecutionStatusEnum, error: Optional[str] = None) -> Execution:
        with self._lock:
            self._ensure_running(f"mark {status.value}")
            end_time = self._clock()
            duration = int((end_time - self._execution.start_time).total_seconds() * 1000)

            self._execution.status = status
            self._execution.end_time = end_time
            self._execution.duration = duration
            self._execution.error = error

            self._forward(
                "set_terminal", self._sink.set_terminal,
                self._execution.id, status, end_time, duration, error
            )
            return self.snapshot()

    def _ensure_running(self, action: str) -> None:
        if self._execution.status.is_terminal:
            raise ExecutionStateError(
                f"Cannot {action}: execution is already {self._execution.status.value}",
                execution_id=self._execution.id
            )

    def snapshot(self) -> Execution:
        """Deep copy of the current record."""
        with self._lock:
            return self._execution.model_copy(deep=True)
