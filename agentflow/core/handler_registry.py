"""Registry mapping node kinds to their handlers."""

from typing import Dict, List, Optional

from ..models.core import NodeKind
from .capabilities import EmailSender, HttpClient, TextGenerator
from .condition import ConditionEvaluator, FallbackStrategy
from .exceptions import ConfigurationError
from .handlers import (
    AiActionHandler, ApiCallHandler, ConditionHandler, NodeHandler,
    PassThroughHandler, SendEmailHandler, TriggerHandler
)
from .logging import get_logger

logger = get_logger(__name__)


class HandlerRegistry:
    """Lookup table from node type strings to handler instances.

    Type strings resolve through ``NodeKind.from_type``, so editor aliases
    such as ``ifElse`` or ``aiProcess`` reach the canonical handler. Types
    that resolve to nothing get the pass-through handler.
    """

    def __init__(self, fallback: Optional[NodeHandler] = None):
        self._handlers: Dict[NodeKind, NodeHandler] = {}
        self._fallback = fallback or PassThroughHandler()

    def register(self, handler: NodeHandler, kind: Optional[NodeKind] = None, replace: bool = False) -> None:
        """Register a handler for a node kind.

        Args:
            handler: Handler instance
            kind: Node kind to serve; defaults to ``handler.kind``
            replace: Allow overriding an existing registration

        Raises:
            ConfigurationError: If the kind is already registered and ``replace`` is False
        """
        kind = kind or handler.kind
        if kind is NodeKind.UNKNOWN:
            raise ConfigurationError("Cannot register a handler for the unknown node kind")
        if kind in self._handlers and not replace:
            raise ConfigurationError(f"Handler for '{kind.value}' is already registered")

        self._handlers[kind] = handler
        logger.debug(f"Registered {type(handler).__name__} for node kind '{kind.value}'")

    def unregister(self, kind: NodeKind) -> bool:
        if kind in self._handlers:
            del self._handlers[kind]
            logger.debug(f"Unregistered handler for node kind '{kind.value}'")
            return True
        return False

    def get(self, node_type: str) -> NodeHandler:
        """Handler for a node type string; the pass-through handler when unknown."""
        return self._handlers.get(NodeKind.from_type(node_type), self._fallback)

    def exists(self, node_type: str) -> bool:
        return NodeKind.from_type(node_type) in self._handlers

    def list(self) -> List[str]:
        return sorted(kind.value for kind in self._handlers)

    @classmethod
    def with_defaults(
        cls,
        http_client: Optional[HttpClient] = None,
        text_generator: Optional[TextGenerator] = None,
        email_sender: Optional[EmailSender] = None,
        fallback: Optional[FallbackStrategy] = None,
        http_timeout: float = 30.0,
        default_ai_model: str = "gemini-2.0-flash-lite",
        evaluator: Optional[ConditionEvaluator] = None
    ) -> "HandlerRegistry":
        """Registry with the built-in handler for every node kind."""
        registry = cls()
        registry.register(TriggerHandler())
        registry.register(ApiCallHandler(http_client, default_timeout=http_timeout))
        registry.register(ConditionHandler(evaluator, fallback))
        registry.register(AiActionHandler(text_generator, default_model=default_ai_model))
        registry.register(SendEmailHandler(email_sender))
        return registry
