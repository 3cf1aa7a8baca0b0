"""Durable execution sink backed by SQLAlchemy."""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.capabilities import ExecutionSink
from ..core.error_recovery import RetryConfig, with_retry
from ..core.exceptions import ExecutionStateError, StorageError
from ..core.logging import get_logger
from ..models.core import Execution, ExecutionStatusEnum, LogEntry, NodeResult
from .database import get_session_factory
from .models import ExecutionModel, ExecutionLogModel, NodeResultModel

logger = get_logger(__name__)


class SqlExecutionSink(ExecutionSink):
    """Writes executions, log entries and node results to the database.

    Each write runs in its own session and commits immediately, so a run
    that later fails keeps everything recorded before the failure.
    Database errors surface as ``StorageError`` and are retried.
    """

    def __init__(self, engine: Optional[Engine] = None, retry_attempts: int = 3):
        self._session_factory = get_session_factory(engine)
        self.retry_config = RetryConfig(
            max_attempts=retry_attempts,
            retryable_exceptions=[StorageError]
        )

    def _session(self) -> Session:
        return self._session_factory()

    @with_retry()
    def create_execution(self, agent_id: str, user_id: str, start_time: datetime) -> str:
        execution_id = str(uuid.uuid4())
        db = self._session()
        try:
            db.add(ExecutionModel(
                id=execution_id,
                agent_id=agent_id,
                user_id=user_id,
                status=ExecutionStatusEnum.RUNNING.value,
                start_time=start_time,
            ))
            db.commit()
            logger.debug(f"Created execution {execution_id} for agent {agent_id}")
            return execution_id
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(
                f"Failed to create execution: {str(e)}",
                operation="create_execution",
                table="executions"
            ) from e
        finally:
            db.close()

    @with_retry()
    def append_log(self, execution_id: str, seq: int, entry: LogEntry) -> None:
        payload = entry.model_dump(mode="json")
        db = self._session()
        try:
            db.add(ExecutionLogModel(
                execution_id=execution_id,
                seq=seq,
                timestamp=entry.timestamp,
                level=entry.level.value,
                message=entry.message,
                data=payload["data"],
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(
                f"Failed to append log entry: {str(e)}",
                operation="append_log",
                table="execution_logs"
            ) from e
        finally:
            db.close()

    @with_retry()
    def append_result(self, execution_id: str, seq: int, result: NodeResult) -> None:
        payload = result.model_dump(mode="json")
        db = self._session()
        try:
            db.add(NodeResultModel(
                execution_id=execution_id,
                seq=seq,
                node_id=result.node_id,
                node_type=result.node_type,
                node_label=result.node_label,
                result=payload["result"],
                timestamp=result.timestamp,
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(
                f"Failed to append node result: {str(e)}",
                operation="append_result",
                table="node_results"
            ) from e
        finally:
            db.close()

    @with_retry()
    def set_terminal(self, execution_id, status, end_time, duration=None, error=None) -> None:
        db = self._session()
        try:
            model = db.get(ExecutionModel, execution_id)
            if model is None:
                raise ExecutionStateError(f"Execution {execution_id} not found", execution_id=execution_id)

            model.status = ExecutionStatusEnum(status).value
            model.end_time = end_time
            model.duration = duration
            model.error = error
            db.commit()
            logger.debug(f"Execution {execution_id} marked {model.status}")
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(
                f"Failed to finalize execution: {str(e)}",
                operation="set_terminal",
                table="executions"
            ) from e
        finally:
            db.close()

    @with_retry()
    def get_execution(self, execution_id: str) -> Optional[Execution]:
        db = self._session()
        try:
            model = (
                db.query(ExecutionModel)
                .options(selectinload(ExecutionModel.logs), selectinload(ExecutionModel.results))
                .filter(ExecutionModel.id == execution_id)
                .first()
            )
            if model is None:
                return None
            return self._to_execution(model, include_children=True)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to load execution: {str(e)}",
                operation="get_execution",
                table="executions"
            ) from e
        finally:
            db.close()

    @with_retry()
    def list_executions(self, agent_id=None, user_id=None, limit: int = 50) -> List[Execution]:
        db = self._session()
        try:
            query = db.query(ExecutionModel)
            if agent_id is not None:
                query = query.filter(ExecutionModel.agent_id == agent_id)
            if user_id is not None:
                query = query.filter(ExecutionModel.user_id == user_id)
            models = query.order_by(ExecutionModel.start_time.desc()).limit(limit).all()
            return [self._to_execution(model, include_children=False) for model in models]
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to list executions: {str(e)}",
                operation="list_executions",
                table="executions"
            ) from e
        finally:
            db.close()

    def _to_execution(self, model: ExecutionModel, include_children: bool) -> Execution:
        logs = []
        results = []
        if include_children:
            logs = [
                LogEntry(timestamp=log.timestamp, level=log.level, message=log.message, data=log.data)
                for log in model.logs
            ]
            results = [
                NodeResult(
                    node_id=result.node_id,
                    node_type=result.node_type,
                    node_label=result.node_label,
                    result=result.result,
                    timestamp=result.timestamp,
                )
                for result in model.results
            ]

        return Execution(
            id=model.id,
            agent_id=model.agent_id,
            user_id=model.user_id,
            status=model.status,
            start_time=model.start_time,
            end_time=model.end_time,
            duration=model.duration,
            logs=logs,
            results=results,
            error=model.error,
        )
