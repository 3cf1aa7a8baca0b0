"""In-process execution sink."""

import threading
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from ..core.capabilities import ExecutionSink
from ..core.exceptions import ExecutionStateError
from ..models.core import Execution, ExecutionStatusEnum, LogEntry, NodeResult


class InMemoryExecutionSink(ExecutionSink):
    """Keeps execution records in a dictionary. Used by default and in tests."""

    def __init__(self):
        self._executions: Dict[str, Execution] = {}
        self._lock = threading.RLock()

    def create_execution(self, agent_id: str, user_id: str, start_time: datetime) -> str:
        execution_id = str(uuid.uuid4())
        with self._lock:
            self._executions[execution_id] = Execution(
                id=execution_id,
                agent_id=agent_id,
                user_id=user_id,
                status=ExecutionStatusEnum.RUNNING,
                start_time=start_time,
            )
        return execution_id

    def _require(self, execution_id: str) -> Execution:
        execution = self._executions.get(execution_id)
        if execution is None:
            raise ExecutionStateError(f"Execution {execution_id} not found", execution_id=execution_id)
        return execution

    def append_log(self, execution_id: str, seq: int, entry: LogEntry) -> None:
        with self._lock:
            self._require(execution_id).logs.append(entry.model_copy(deep=True))

    def append_result(self, execution_id: str, seq: int, result: NodeResult) -> None:
        with self._lock:
            self._require(execution_id).results.append(result.model_copy(deep=True))

    def set_terminal(self, execution_id, status, end_time, duration=None, error=None) -> None:
        with self._lock:
            execution = self._require(execution_id)
            execution.status = ExecutionStatusEnum(status)
            execution.end_time = end_time
            execution.duration = duration
            execution.error = error

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        with self._lock:
            execution = self._executions.get(execution_id)
            return execution.model_copy(deep=True) if execution else None

    def list_executions(self, agent_id=None, user_id=None, limit: int = 50) -> List[Execution]:
        with self._lock:
            matches = [
                execution for execution in self._executions.values()
                if (agent_id is None or execution.agent_id == agent_id)
                and (user_id is None or execution.user_id == user_id)
            ]
            matches.sort(key=lambda execution: execution.start_time, reverse=True)
            return [
                execution.model_copy(update={"logs": [], "results": []}, deep=True)
                for execution in matches[:limit]
            ]

    def clear(self) -> None:
        with self._lock:
            self._executions.clear()
