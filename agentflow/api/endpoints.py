"""FastAPI REST endpoints for the agent workflow engine."""

from datetime import datetime
from typing import Dict, List, Any, Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status
from pydantic import BaseModel, Field

from ..core.execution_engine import ExecutionEngine
from ..core.smart_executor import SmartExecutor
from ..core.exceptions import WorkflowEngineError, StructuralError, create_error_response
from ..core.middleware import status_code_for_error
from ..models.core import (
    Edge,
    Execution,
    ExecutionSummary,
    LogEntry,
    Node,
    ValidationResult,
    WorkflowGraph,
)
from ..core.logging import get_logger

logger = get_logger(__name__)

# Create router
router = APIRouter(prefix="/api/v1", tags=["agents"])

# Global instances (initialized by the application factory)
_execution_engine: Optional[ExecutionEngine] = None
_smart_executor: Optional[SmartExecutor] = None


def init_dependencies(execution_engine: ExecutionEngine, smart_executor: Optional[SmartExecutor] = None):
    """Initialize the global dependencies."""
    global _execution_engine, _smart_executor
    _execution_engine = execution_engine
    _smart_executor = smart_executor


def get_execution_engine() -> ExecutionEngine:
    """Dependency to get execution engine."""
    if _execution_engine is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Execution engine not initialized"
        )
    return _execution_engine


def get_smart_executor() -> SmartExecutor:
    """Dependency to get the smart executor."""
    if _smart_executor is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Smart executor not initialized"
        )
    return _smart_executor


# Request/Response models
class ExecuteAgentRequest(BaseModel):
    """Request model for running an agent's workflow."""
    user_id: str = Field(..., description="ID of the user starting the run")
    nodes: List[Node] = Field(default_factory=list, description="Workflow nodes")
    edges: List[Edge] = Field(default_factory=list, description="Workflow edges")
    initial_context: Dict[str, Any] = Field(default_factory=dict, description="Context handed to the trigger")

    def to_graph(self) -> WorkflowGraph:
        return WorkflowGraph(nodes=self.nodes, edges=self.edges)


class SmartExecuteRequest(BaseModel):
    """Request model for running an agent from its description."""
    user_id: str = Field(..., description="ID of the user starting the run")
    description: str = Field(..., min_length=1, description="The agent's task in plain language")


class ValidateGraphRequest(BaseModel):
    """Request model for graph validation."""
    nodes: List[Node] = Field(default_factory=list, description="Workflow nodes")
    edges: List[Edge] = Field(default_factory=list, description="Workflow edges")


class ExecutionLogsResponse(BaseModel):
    """Response model for an execution's log."""
    execution_id: str = Field(..., description="Execution ID")
    status: str = Field(..., description="Execution status")
    logs: List[LogEntry] = Field(default_factory=list, description="Ordered log entries")
    total_count: int = Field(..., description="Number of log entries")


def _engine_error(e: WorkflowEngineError) -> HTTPException:
    return HTTPException(status_code=status_code_for_error(e), detail=create_error_response(e))


def _internal_error(message: str, e: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "InternalError",
            "message": message,
            "details": {"original_error": str(e)},
            "timestamp": datetime.utcnow().isoformat()
        }
    )


def _execution_not_found(execution_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": "ExecutionNotFound",
            "message": f"Execution with ID '{execution_id}' not found",
            "details": {"execution_id": execution_id}
        }
    )


# Endpoints

@router.post(
    "/agents/{agent_id}/execute",
    response_model=Execution,
    summary="Execute an agent workflow",
    description="Run the agent's workflow graph to completion and return the execution record"
)
@router.post("/agents/{agent_id}/run", response_model=Execution, include_in_schema=False)
def execute_agent(
    agent_id: str,
    request: ExecuteAgentRequest,
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> Execution:
    """
    Execute an agent's workflow graph.

    Args:
        agent_id: ID of the agent being run
        request: Graph, user and initial context for the run
        execution_engine: Execution engine dependency

    Returns:
        The completed execution record

    Raises:
        HTTPException: 422 for structural graph errors (the failed execution is in
            the error payload), 500 for other failures
    """
    try:
        logger.info(f"Executing agent {agent_id} for user {request.user_id}")

        execution = execution_engine.execute_workflow(
            request.to_graph(), agent_id, request.user_id, request.initial_context
        )

        logger.info(f"Agent {agent_id} execution {execution.id} finished: {execution.status.value}")
        return execution

    except WorkflowEngineError as e:
        if isinstance(e, StructuralError):
            logger.warning(f"Agent {agent_id} has an invalid workflow: {e.message}")
        else:
            logger.error(f"Agent {agent_id} execution failed: {e.message}")
        raise _engine_error(e)
    except Exception as e:
        logger.error(f"Unexpected error executing agent {agent_id}: {str(e)}", exc_info=True)
        raise _internal_error("An unexpected error occurred while executing the agent", e)


@router.post(
    "/agents/{agent_id}/smart-execute",
    response_model=Execution,
    summary="Execute an agent from its description",
    description="Let the text generator plan the agent's task, carry out the planned steps and return the execution record"
)
def smart_execute_agent(
    agent_id: str,
    request: SmartExecuteRequest,
    smart_executor: SmartExecutor = Depends(get_smart_executor)
) -> Execution:
    try:
        logger.info(f"Smart executing agent {agent_id} for user {request.user_id}")

        execution = smart_executor.execute(agent_id, request.user_id, request.description)

        logger.info(f"Agent {agent_id} smart execution {execution.id} finished: {execution.status.value}")
        return execution

    except WorkflowEngineError as e:
        logger.error(f"Agent {agent_id} smart execution failed: {e.message}")
        raise _engine_error(e)
    except Exception as e:
        logger.error(f"Unexpected error smart executing agent {agent_id}: {str(e)}", exc_info=True)
        raise _internal_error("An unexpected error occurred while executing the agent", e)


@router.post(
    "/graphs/validate",
    response_model=ValidationResult,
    summary="Validate a workflow graph",
    description="Check a workflow graph's structure without running it"
)
def validate_graph(
    request: ValidateGraphRequest,
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> ValidationResult:
    graph = WorkflowGraph(nodes=request.nodes, edges=request.edges)
    result = execution_engine.validate_graph(graph)
    logger.info(
        f"Validated graph with {len(graph.nodes)} nodes: "
        f"valid={result.is_valid}, errors={len(result.errors)}, warnings={len(result.warnings)}"
    )
    return result


@router.get(
    "/executions/{execution_id}",
    response_model=Execution,
    summary="Get an execution",
    description="Retrieve an execution record with its logs and node results"
)
def get_execution(
    execution_id: str,
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> Execution:
    try:
        execution = execution_engine.get_execution(execution_id)
    except WorkflowEngineError as e:
        logger.error(f"Failed to load execution {execution_id}: {e.message}")
        raise _engine_error(e)

    if execution is None:
        logger.warning(f"Execution not found: {execution_id}")
        raise _execution_not_found(execution_id)
    return execution


@router.get(
    "/executions/{execution_id}/logs",
    response_model=ExecutionLogsResponse,
    summary="Get execution logs",
    description="Retrieve the ordered log of an execution, optionally filtered by level"
)
def get_execution_logs(
    execution_id: str,
    level: Optional[str] = Query(None, description="Only entries of this level (info, warning, error)"),
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> ExecutionLogsResponse:
    try:
        execution = execution_engine.get_execution(execution_id)
    except WorkflowEngineError as e:
        logger.error(f"Failed to load logs for execution {execution_id}: {e.message}")
        raise _engine_error(e)

    if execution is None:
        raise _execution_not_found(execution_id)

    logs = execution.logs
    if level:
        logs = [entry for entry in logs if entry.level.value == level.lower()]

    return ExecutionLogsResponse(
        execution_id=execution.id,
        status=execution.status.value,
        logs=logs,
        total_count=len(logs)
    )


@router.get(
    "/agents/{agent_id}/executions",
    response_model=List[ExecutionSummary],
    summary="List an agent's executions",
    description="Most recent executions of an agent, newest first"
)
def list_agent_executions(
    agent_id: str,
    user_id: Optional[str] = Query(None, description="Only executions started by this user"),
    limit: int = Query(50, ge=1, le=500, description="Maximum number of executions"),
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> List[ExecutionSummary]:
    try:
        executions = execution_engine.list_executions(agent_id=agent_id, user_id=user_id, limit=limit)
    except WorkflowEngineError as e:
        logger.error(f"Failed to list executions for agent {agent_id}: {e.message}")
        raise _engine_error(e)

    return [ExecutionSummary(**execution.model_dump(exclude={"logs", "results"})) for execution in executions]
