"""Core Pydantic models for the agent workflow engine."""

from collections import Counter
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set
from pydantic import BaseModel, Field, field_validator


class ExecutionStatusEnum(str, Enum):
    """Enumeration of execution statuses."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatusEnum.RUNNING


class LogLevelEnum(str, Enum):
    """Levels of execution log entries."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class NodeKind(str, Enum):
    """Closed set of node behaviours; node type strings resolve to one of these."""
    TRIGGER = "trigger"
    API_CALL = "api_call"
    CONDITION = "condition"
    AI_ACTION = "ai_action"
    SEND_EMAIL = "send_email"
    UNKNOWN = "unknown"

    @classmethod
    def from_type(cls, node_type: Optional[str]) -> "NodeKind":
        """Resolve a node type string, including editor aliases."""
        return NODE_TYPE_ALIASES.get((node_type or "").strip(), cls.UNKNOWN)


NODE_TYPE_ALIASES: Dict[str, NodeKind] = {
    "trigger": NodeKind.TRIGGER,
    "scheduleTrigger": NodeKind.TRIGGER,
    "webhookTrigger": NodeKind.TRIGGER,
    "schedule_trigger": NodeKind.TRIGGER,
    "webhook_trigger": NodeKind.TRIGGER,
    "api_call": NodeKind.API_CALL,
    "apiCall": NodeKind.API_CALL,
    "action": NodeKind.API_CALL,
    "condition": NodeKind.CONDITION,
    "ifElse": NodeKind.CONDITION,
    "if_else": NodeKind.CONDITION,
    "ai_action": NodeKind.AI_ACTION,
    "aiAction": NodeKind.AI_ACTION,
    "aiProcess": NodeKind.AI_ACTION,
    "ai_process": NodeKind.AI_ACTION,
    "send_email": NodeKind.SEND_EMAIL,
    "sendEmail": NodeKind.SEND_EMAIL,
    "email": NodeKind.SEND_EMAIL,
}


class ValidationResult(BaseModel):
    """Result of graph validation."""
    is_valid: bool = Field(..., description="Whether the graph is valid")
    errors: List[str] = Field(default_factory=list, description="List of validation errors")
    warnings: List[str] = Field(default_factory=list, description="List of validation warnings")


class Node(BaseModel):
    """A typed unit of work in a workflow graph."""
    model_config = {"frozen": True}

    id: str = Field(..., description="Identifier, unique within the graph")
    type: str = Field(..., description="Node type, e.g. trigger, api_call, condition, ai_action")
    data: Dict[str, Any] = Field(default_factory=dict, description="Type-specific parameters")

    @field_validator('id')
    @classmethod
    def validate_id(cls, id_value):
        if not id_value or not id_value.strip():
            raise ValueError("Node ID cannot be empty")
        return id_value.strip()

    @property
    def kind(self) -> NodeKind:
        return NodeKind.from_type(self.type)

    @property
    def label(self) -> Optional[str]:
        """Display label from the node data; non-string labels are stringified."""
        label = self.data.get("label")
        if label is None:
            return None
        return label if isinstance(label, str) else str(label)

    @property
    def display_name(self) -> str:
        return self.label or self.type


class Edge(BaseModel):
    """A directed connection between two nodes."""
    model_config = {"frozen": True}

    id: str = Field(..., description="Edge identifier")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")


class WorkflowGraph(BaseModel):
    """Nodes and edges of an agent workflow.

    Structural problems are reported by ``validate_structure`` rather than
    raised at construction time, so that a run against a broken graph still
    produces a failed execution record.
    """
    nodes: List[Node] = Field(default_factory=list, description="Nodes in the graph")
    edges: List[Edge] = Field(default_factory=list, description="Edges connecting nodes, in branch order")

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def trigger_nodes(self) -> List[Node]:
        return [node for node in self.nodes if node.kind is NodeKind.TRIGGER]

    def validate_structure(self) -> ValidationResult:
        """Check the invariants a graph must satisfy before it can run."""
        errors = []
        warnings = []

        node_ids = [node.id for node in self.nodes]
        duplicates = sorted(node_id for node_id, count in Counter(node_ids).items() if count > 1)
        if duplicates:
            errors.append(f"Duplicate node IDs: {', '.join(duplicates)}")

        known = set(node_ids)
        for edge in self.edges:
            if edge.source not in known:
                errors.append(f"Edge {edge.id} references non-existent source node: {edge.source}")
            if edge.target not in known:
                errors.append(f"Edge {edge.id} references non-existent target node: {edge.target}")

        triggers = self.trigger_nodes()
        if not triggers:
            errors.append("No trigger node found")
        elif len(triggers) > 1:
            errors.append(f"Multiple trigger nodes found: {', '.join(node.id for node in triggers)}")

        if not errors:
            if self._has_cycles():
                warnings.append("Graph contains cycles; runs reaching a cycle will fail")
            unreachable = known - self._find_reachable_nodes(triggers[0].id)
            if unreachable:
                warnings.append(f"Unreachable nodes detected: {', '.join(sorted(unreachable))}")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def _adjacency(self) -> Dict[str, List[str]]:
        adjacency: Dict[str, List[str]] = {}
        for edge in self.edges:
            adjacency.setdefault(edge.source, []).append(edge.target)
        return adjacency

    def _find_reachable_nodes(self, entry_point: str) -> Set[str]:
        """Find all nodes reachable from the entry point."""
        adjacency = self._adjacency()
        reachable = {entry_point}
        queue = [entry_point]
        while queue:
            current = queue.pop(0)
            for neighbor in adjacency.get(current, []):
                if neighbor not in reachable:
                    reachable.add(neighbor)
                    queue.append(neighbor)
        return reachable

    def _has_cycles(self) -> bool:
        """Check if the graph contains cycles using an iterative DFS."""
        adjacency = self._adjacency()
        visited = set()
        rec_stack = set()

        for root in self.nodes:
            if root.id in visited:
                continue
            visited.add(root.id)
            rec_stack.add(root.id)
            stack = [(root.id, iter(adjacency.get(root.id, [])))]

            while stack:
                node_id, neighbors = stack[-1]
                advanced = False
                for neighbor in neighbors:
                    if neighbor in rec_stack:
                        return True
                    if neighbor not in visited:
                        visited.add(neighbor)
                        rec_stack.add(neighbor)
                        stack.append((neighbor, iter(adjacency.get(neighbor, []))))
                        advanced = True
                        break
                if not advanced:
                    rec_stack.discard(node_id)
                    stack.pop()
        return False


class LogEntry(BaseModel):
    """One entry of an execution's log."""
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="When the entry was recorded")
    level: LogLevelEnum = Field(default=LogLevelEnum.INFO, description="Severity of the entry")
    message: str = Field(..., description="Log message")
    data: Optional[Any] = Field(None, description="Structured payload")


class NodeResult(BaseModel):
    """Output of one node visit."""
    node_id: str = Field(..., description="ID of the executed node")
    node_type: str = Field(..., description="Type string of the executed node")
    node_label: Optional[str] = Field(None, description="Display label of the node")
    result: Any = Field(None, description="Context produced by the node")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="When the node completed")


class Execution(BaseModel):
    """Durable record of one workflow run."""
    id: str = Field(..., description="Execution ID")
    agent_id: str = Field(..., description="ID of the agent whose workflow ran")
    user_id: str = Field(..., description="ID of the user who started the run")
    status: ExecutionStatusEnum = Field(default=ExecutionStatusEnum.RUNNING, description="Run status")
    start_time: datetime = Field(default_factory=datetime.utcnow, description="Run start")
    end_time: Optional[datetime] = Field(None, description="Run end")
    duration: Optional[int] = Field(None, description="Run duration in milliseconds")
    logs: List[LogEntry] = Field(default_factory=list, description="Ordered log entries")
    results: List[NodeResult] = Field(default_factory=list, description="Ordered node results")
    error: Optional[str] = Field(None, description="Terminal error message")


class ExecutionSummary(BaseModel):
    """Listing view of an execution."""
    id: str
    agent_id: str
    user_id: str
    status: ExecutionStatusEnum
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    error: Optional[str] = None
