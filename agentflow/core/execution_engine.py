"""Execution Engine: walks an agent's workflow graph and records the run."""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..models.core import Execution, Node, WorkflowGraph
from .capabilities import EmailSender, ExecutionSink, HttpClient, TextGenerator
from .condition import build_fallback
from .context import ExecutionContext
from .exceptions import (
    CycleDetected, ExecutionLimitExceeded, MalformedGraph, NodeExecutionError,
    NoTriggerFound, WorkflowEngineError
)
from .execution_record import ExecutionRecorder
from .handler_registry import HandlerRegistry
from .logging import (
    get_logger, set_logging_context, get_logging_context, clear_logging_context
)

logger = get_logger(__name__)


class _Run:
    """Traversal state shared by every branch of one execution."""

    def __init__(self, graph: WorkflowGraph, recorder: ExecutionRecorder, max_node_visits: int):
        self.graph = graph
        self.recorder = recorder
        self.max_node_visits = max_node_visits
        self._visits = 0
        self._lock = threading.Lock()

    def count_visit(self, node_id: str) -> None:
        with self._lock:
            self._visits += 1
            if self._visits > self.max_node_visits:
                raise ExecutionLimitExceeded(
                    f"Execution exceeded {self.max_node_visits} node visits at node {node_id}",
                    limit=self.max_node_visits
                )

    @property
    def visits(self) -> int:
        with self._lock:
            return self._visits


class ExecutionEngine:
    """Engine for executing agent workflow graphs.

    Traversal is depth-first from the single trigger node. Each node
    receives the context produced by its predecessor; every followed edge
    gets its own copy, so sibling branches never share updates. A node
    reached again along the same path is a cycle and aborts the run; the
    same node reached along different paths runs once per path.
    """

    def __init__(
        self,
        sink: ExecutionSink,
        registry: Optional[HandlerRegistry] = None,
        max_node_visits: int = 1000,
        parallel_branches: bool = False,
        max_branch_workers: int = 4
    ):
        """Initialize the execution engine.

        Args:
            sink: Persistence for execution records
            registry: Node handlers; the built-in handlers without capabilities if omitted
            max_node_visits: Upper bound on node visits per run
            parallel_branches: Run sibling branches of a fan-out concurrently
            max_branch_workers: Worker threads per fan-out point
        """
        self.sink = sink
        self.registry = registry or HandlerRegistry.with_defaults()
        self.max_node_visits = max_node_visits
        self.parallel_branches = parallel_branches
        self.max_branch_workers = max_branch_workers

        logger.info(
            f"ExecutionEngine initialized with max_node_visits={max_node_visits}, "
            f"parallel_branches={parallel_branches}"
        )

    @classmethod
    def from_config(
        cls,
        config,
        sink: ExecutionSink,
        http_client: Optional[HttpClient] = None,
        text_generator: Optional[TextGenerator] = None,
        email_sender: Optional[EmailSender] = None
    ) -> "ExecutionEngine":
        """Build an engine and its handler registry from an ``AppConfig``."""
        registry = HandlerRegistry.with_defaults(
            http_client=http_client,
            text_generator=text_generator,
            email_sender=email_sender,
            fallback=build_fallback(config.condition_fallback),
            http_timeout=config.http_timeout,
            default_ai_model=config.default_ai_model,
        )
        return cls(
            sink,
            registry=registry,
            max_node_visits=config.max_node_visits,
            parallel_branches=config.parallel_branches,
            max_branch_workers=config.max_branch_workers,
        )

    def execute_workflow(
        self,
        graph: WorkflowGraph,
        agent_id: str,
        user_id: str,
        initial_context: Optional[Mapping[str, Any]] = None
    ) -> Execution:
        """
        Execute a workflow graph to completion.

        Args:
            graph: Nodes and edges of the agent's workflow
            agent_id: ID of the agent being run
            user_id: ID of the user starting the run
            initial_context: Context handed to the trigger node

        Returns:
            The completed execution record

        Raises:
            StructuralError: If the graph cannot be executed; ``error.execution`` holds the failed record
            NodeExecutionError: If a handler failed unexpectedly; ``error.execution`` holds the failed record
        """
        recorder = ExecutionRecorder(self.sink, agent_id, user_id)
        set_logging_context(execution_id=recorder.execution_id, agent_id=agent_id)

        try:
            recorder.info("Starting agent execution", {"nodes": len(graph.nodes), "edges": len(graph.edges)})

            trigger = self._validate(graph, recorder)
            recorder.info(f"Trigger found: {trigger.display_name}")

            run = _Run(graph, recorder, self.max_node_visits)
            self._walk(run, trigger.id, ExecutionContext(initial_context), ())

            recorder.info("Agent execution completed successfully", {"nodeVisits": run.visits})
            return recorder.complete()

        except Exception as e:
            if isinstance(e, WorkflowEngineError):
                error = e
            else:
                logger.error(f"Unexpected error in execution {recorder.execution_id}: {str(e)}", exc_info=True)
                error = NodeExecutionError(
                    f"Unexpected error during execution: {str(e)}",
                    execution_id=recorder.execution_id
                )

            recorder.error("Agent execution failed", {"error": error.message})
            error.execution = recorder.fail(error.message)
            logger.error(f"Execution {recorder.execution_id} failed: {error.message}")

            if error is e:
                raise
            raise error from e

        finally:
            clear_logging_context()

    def validate_graph(self, graph: WorkflowGraph):
        """Structural validation without running anything."""
        return graph.validate_structure()

    def _validate(self, graph: WorkflowGraph, recorder: ExecutionRecorder) -> Node:
        result = graph.validate_structure()

        if not result.is_valid:
            if not graph.trigger_nodes():
                raise NoTriggerFound(validation_errors=result.errors)
            raise MalformedGraph(
                f"Invalid workflow graph: {'; '.join(result.errors)}",
                validation_errors=result.errors
            )

        for warning in result.warnings:
            recorder.warning(warning)

        return graph.trigger_nodes()[0]

    def _walk(self, run: _Run, start_id: str, context: ExecutionContext, path: Tuple[str, ...]) -> None:
        """Depth-first traversal from ``start_id``.

        Sequential traversal keeps an explicit stack so deep chains do not
        exhaust the interpreter's recursion limit. Edges are pushed in
        reverse so they are visited in graph order.
        """
        stack: List[Tuple[str, ExecutionContext, Tuple[str, ...]]] = [(start_id, context, path)]

        while stack:
            node_id, node_context, node_path = stack.pop()
            produced, edges = self._execute_node(run, node_id, node_context, node_path)
            child_path = node_path + (node_id,)

            if self.parallel_branches and len(edges) > 1:
                self._fan_out(run, edges, produced, child_path)
                continue

            for edge in reversed(edges):
                stack.append((edge.target, produced.branch(), child_path))

    def _fan_out(self, run: _Run, edges, produced: ExecutionContext, path: Tuple[str, ...]) -> None:
        """Run sibling branches concurrently on a pool owned by this fan-out point."""
        logging_context = get_logging_context()

        def run_branch(target: str, branch_context: ExecutionContext) -> None:
            set_logging_context(**logging_context)
            try:
                self._walk(run, target, branch_context, path)
            finally:
                clear_logging_context()

        workers = min(len(edges), self.max_branch_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="agentflow-branch") as pool:
            futures = [pool.submit(run_branch, edge.target, produced.branch()) for edge in edges]

        # The pool has drained; surface the first failing branch in edge order
        for future in futures:
            error = future.exception()
            if error is not None:
                raise error

    def _execute_node(
        self,
        run: _Run,
        node_id: str,
        context: ExecutionContext,
        path: Tuple[str, ...]
    ):
        if node_id in path:
            cycle = list(path[path.index(node_id):]) + [node_id]
            raise CycleDetected(f"Cycle detected: {' -> '.join(cycle)}", path=cycle)

        run.count_visit(node_id)

        node = run.graph.get_node(node_id)
        recorder = run.recorder
        recorder.info(f"Executing node: {node.display_name}", {"nodeId": node.id, "nodeType": node.type})

        handler = self.registry.get(node.type)
        try:
            produced = handler.handle(node, context, recorder)
        except WorkflowEngineError:
            raise
        except Exception as e:
            raise NodeExecutionError(
                f"Node {node.id} ({node.type}) failed: {str(e)}",
                node_id=node.id,
                node_type=node.type,
                execution_id=recorder.execution_id
            ) from e

        recorder.add_result(node, produced.to_dict())
        edges = handler.select_edges(node, produced, run.graph.outgoing_edges(node.id))
        logger.debug(f"Node {node.id} selected {len(edges)} outgoing edge(s)")
        return produced, edges

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        return self.sink.get_execution(execution_id)

    def list_executions(self, agent_id: Optional[str] = None, user_id: Optional[str] = None, limit: int = 50):
        return self.sink.list_executions(agent_id=agent_id, user_id=user_id, limit=limit)

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "max_node_visits": self.max_node_visits,
            "parallel_branches": self.parallel_branches,
            "max_branch_workers": self.max_branch_workers,
            "registered_handlers": self.registry.list(),
        }
