"""Node handlers: one behaviour per node kind.

A handler takes the node, the incoming context and the run's recorder and
returns the context handed to the node's successors. Side effects go only
through the capability injected at construction.
"""

import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models.core import Edge, Node, NodeKind
from .capabilities import EmailSender, HttpClient, TextGenerator
from .condition import AlwaysFalse, ConditionEvaluator, FallbackStrategy
from .context import ExecutionContext
from .exceptions import (
    ConditionEvaluationError, GenerationNotConfigured, HttpError,
    IntegrationError, NodeExecutionError
)
from .execution_record import ExecutionRecorder
from .logging import get_logger

logger = get_logger(__name__)

SIMULATED_AI_OUTPUT = "AI processing simulated. Add GEMINI_API_KEY to enable real text generation."
SIMULATED_API_MESSAGE = "API call simulated (no URL provided)"


def utc_timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


class NodeHandler:
    """Base class for node handlers."""

    kind: NodeKind = NodeKind.UNKNOWN

    def handle(self, node: Node, context: ExecutionContext, recorder: ExecutionRecorder) -> ExecutionContext:
        raise NotImplementedError

    def select_edges(self, node: Node, context: ExecutionContext, edges: List[Edge]) -> List[Edge]:
        """Outgoing edges to follow after this node ran. All of them by default."""
        return list(edges)


class TriggerHandler(NodeHandler):
    """Entry point of a workflow; stamps trigger metadata onto the context."""

    kind = NodeKind.TRIGGER

    def handle(self, node, context, recorder):
        recorder.info(f"Trigger activated: {node.label or 'Unnamed trigger'}")
        return context.merge({
            "triggeredAt": utc_timestamp(),
            "triggerType": node.type,
            "triggerData": dict(node.data),
        })


class ApiCallHandler(NodeHandler):
    """Performs an outbound HTTP request and stores the response in the context.

    Node data:
        url: Target URL
        method: HTTP method, GET by default
        headers: Request headers
        body: Request body, sent as JSON when it is not a string
        responseKey: Context key for the response, ``apiResponse`` by default
        timeout: Seconds before the call is abandoned
        strict: Fail the run instead of continuing when the call fails
    """

    kind = NodeKind.API_CALL

    def __init__(self, http_client: Optional[HttpClient] = None, default_timeout: float = 30.0):
        self.http_client = http_client
        self.default_timeout = default_timeout

    def handle(self, node, context, recorder):
        data = node.data
        url = data.get("url")
        method = (data.get("method") or "GET").upper()
        response_key = data.get("responseKey") or "apiResponse"
        timeout = self._timeout(data.get("timeout"), recorder)

        recorder.info(f"Making API call to: {url or 'No URL specified'}", {"method": method})

        if not url:
            recorder.warning("API call simulated: no URL specified", {"node_id": node.id})
            return context.merge({
                response_key: {
                    "status": 200,
                    "data": {"message": SIMULATED_API_MESSAGE, "timestamp": utc_timestamp()},
                    "headers": {},
                }
            })

        if self.http_client is None:
            recorder.warning(f"API call skipped: no HTTP client configured for {url}")
            return context

        try:
            response = self.http_client.request(
                method, url,
                headers=data.get("headers") or {},
                body=data.get("body"),
                timeout=timeout,
            )
        except IntegrationError as e:
            details: Dict[str, Any] = {"url": url, "method": method}
            if isinstance(e, HttpError):
                details["status"] = e.status_code
            recorder.error(f"API call failed: {e.message}", details)
            if data.get("strict"):
                raise NodeExecutionError(
                    f"API call to {url} failed: {e.message}",
                    node_id=node.id,
                    node_type=node.type,
                    execution_id=recorder.execution_id
                ) from e
            return context

        recorder.info(f"API call successful: {response.status}")
        return context.merge({response_key: response.model_dump()})

    def _timeout(self, value: Any, recorder: ExecutionRecorder) -> float:
        """Node timeout in seconds; numeric strings are accepted."""
        if value is None or value == "":
            return self.default_timeout
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            timeout = 0.0
        if not math.isfinite(timeout) or timeout <= 0:
            recorder.warning(
                f"Invalid API call timeout {value!r}; using {self.default_timeout}s",
                {"timeout": value}
            )
            return self.default_timeout
        return timeout


class ConditionHandler(NodeHandler):
    """Evaluates a condition and routes to the true or false branch.

    Outgoing edges are positional: the first is taken when the condition
    holds, the second when it does not. With a single edge it is taken
    either way.
    """

    kind = NodeKind.CONDITION

    def __init__(
        self,
        evaluator: Optional[ConditionEvaluator] = None,
        fallback: Optional[FallbackStrategy] = None
    ):
        self.evaluator = evaluator or ConditionEvaluator()
        self.fallback = fallback or AlwaysFalse()

    def handle(self, node, context, recorder):
        condition = node.data.get("condition")
        condition_type = node.data.get("conditionType") or "simple"

        recorder.info(f"Evaluating condition: {condition or 'No condition specified'}")

        if condition and condition_type == "simple":
            try:
                result = self.evaluator.check(condition, context)
            except ConditionEvaluationError as e:
                recorder.error(f"Condition evaluation failed: {e.message}", {"condition": condition})
                result = False
        else:
            result = self.fallback.decide(node.id)
            recorder.info(
                f"Condition resolved by {self.fallback.name} strategy",
                {"conditionType": condition_type}
            )

        recorder.info(f"Condition result: {'TRUE' if result else 'FALSE'}")
        return context.merge({"conditionResult": result})

    def select_edges(self, node, context, edges):
        if not edges:
            return []
        index = 0 if context.get("conditionResult") else 1
        if index < len(edges):
            return [edges[index]]
        return [edges[0]]


class AiActionHandler(NodeHandler):
    """Runs a prompt through the text generation capability.

    Falls back to a simulated response when generation is not configured
    or fails; never fails the node.
    """

    kind = NodeKind.AI_ACTION

    def __init__(self, generator: Optional[TextGenerator] = None, default_model: str = "gemini-2.0-flash-lite"):
        self.generator = generator
        self.default_model = default_model

    def handle(self, node, context, recorder):
        prompt = node.data.get("prompt")
        model = node.data.get("model") or self.default_model
        system_prompt = node.data.get("systemPrompt")

        recorder.info(f"Processing AI node ({model})")

        if not prompt:
            recorder.warning("AI node has no prompt; using simulation mode")
            return self._simulated(context, model, prompt, system_prompt, SIMULATED_AI_OUTPUT)

        if self.generator is None:
            recorder.warning("Text generation not configured; using simulation mode")
            return self._simulated(context, model, prompt, system_prompt, SIMULATED_AI_OUTPUT)

        try:
            output = self.generator.generate(model, prompt, system_prompt)
        except GenerationNotConfigured as e:
            recorder.warning(f"{e.message}; using simulation mode")
            return self._simulated(context, model, prompt, system_prompt, SIMULATED_AI_OUTPUT)
        except IntegrationError as e:
            recorder.error(f"AI processing failed: {e.message}", {"model": model})
            return self._simulated(
                context, model, prompt, system_prompt,
                f"AI processing failed and was simulated: {e.message}"
            )

        recorder.info(f"AI processing completed using {self.generator.engine_name}")
        return context.merge({
            "aiResponse": {
                "engine": self.generator.engine_name,
                "model": model,
                "inputPrompt": prompt,
                "systemPrompt": system_prompt,
                "output": output,
                "timestamp": utc_timestamp(),
            }
        })

    def _simulated(self, context, model, prompt, system_prompt, output):
        return context.merge({
            "aiResponse": {
                "engine": "simulation",
                "model": model,
                "inputPrompt": prompt,
                "systemPrompt": system_prompt,
                "output": output,
                "timestamp": utc_timestamp(),
            }
        })


class SendEmailHandler(NodeHandler):
    """Sends an email through the injected sender, or records a simulated send."""

    kind = NodeKind.SEND_EMAIL

    def __init__(self, sender: Optional[EmailSender] = None):
        self.sender = sender

    def handle(self, node, context, recorder):
        to = node.data.get("to")
        subject = node.data.get("subject")
        body = node.data.get("body")

        recorder.info(f"Sending email to: {to or 'No recipient'}")

        if self.sender is None or not to:
            status = "simulated"
        else:
            try:
                self.sender.send(to, subject or "", body or "")
                status = "sent"
                recorder.info("Email sent successfully")
            except IntegrationError as e:
                status = "failed"
                recorder.error(f"Email failed: {e.message}", {"to": to})

        return context.merge({
            "emailSent": {
                "to": to,
                "subject": subject,
                "body": body,
                "sentAt": utc_timestamp(),
                "status": status,
            }
        })


class PassThroughHandler(NodeHandler):
    """Handler for unrecognised node types: warns and forwards the context."""

    kind = NodeKind.UNKNOWN

    def handle(self, node, context, recorder):
        recorder.warning(f"Unknown node type: {node.type}")
        return context
