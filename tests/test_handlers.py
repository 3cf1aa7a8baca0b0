"""Tests for node handlers and the handler registry."""

import pytest

from agentflow.core.condition import AlwaysTrue
from agentflow.core.context import ExecutionContext
from agentflow.core.exceptions import (
    ConfigurationError, GenerationError, GenerationNotConfigured, IntegrationError, NodeExecutionError
)
from agentflow.core.execution_record import ExecutionRecorder
from agentflow.core.handler_registry import HandlerRegistry
from agentflow.core.handlers import (
    AiActionHandler, ApiCallHandler, ConditionHandler, PassThroughHandler,
    SendEmailHandler, TriggerHandler
)
from agentflow.models.core import Edge, LogLevelEnum, Node, NodeKind

from .conftest import FakeEmailSender, FakeTextGenerator


@pytest.fixture
def recorder(sink):
    return ExecutionRecorder(sink, "agent-1", "user-1")


def messages(recorder, level=None):
    return [
        entry.message for entry in recorder.snapshot().logs
        if level is None or entry.level == level
    ]


class TestTriggerHandler:
    def test_stamps_trigger_metadata(self, recorder):
        node = Node(id="t", type="webhookTrigger", data={"label": "On signup", "path": "/hook"})
        result = TriggerHandler().handle(node, ExecutionContext({"seed": 1}), recorder)

        assert result["seed"] == 1
        assert result["triggerType"] == "webhookTrigger"
        assert result["triggerData"] == {"label": "On signup", "path": "/hook"}
        assert result["triggeredAt"].endswith("Z")
        assert "Trigger activated: On signup" in messages(recorder)


class TestApiCallHandler:
    def test_successful_call_merges_response(self, recorder, http_client):
        node = Node(id="a", type="api_call", data={"url": "https://api.example.com/users"})
        result = ApiCallHandler(http_client).handle(node, ExecutionContext(), recorder)

        assert result["apiResponse"]["status"] == 200
        assert result["apiResponse"]["data"] == {"users": [{"id": 1}]}
        assert http_client.requests[0]["method"] == "GET"
        assert http_client.requests[0]["timeout"] == 30.0
        assert "API call successful: 200" in messages(recorder)

    def test_custom_response_key_method_and_timeout(self, recorder, http_client):
        node = Node(id="a", type="apiCall", data={
            "url": "https://api.example.com/users", "method": "post",
            "body": {"name": "x"}, "responseKey": "users", "timeout": 5
        })
        result = ApiCallHandler(http_client).handle(node, ExecutionContext(), recorder)

        assert "users" in result and "apiResponse" not in result
        assert http_client.requests[0]["method"] == "POST"
        assert http_client.requests[0]["body"] == {"name": "x"}
        assert http_client.requests[0]["timeout"] == 5

    def test_unreachable_url_logs_error_and_continues(self, recorder, http_client):
        node = Node(id="a", type="api_call", data={"url": "https://unreachable.invalid"})
        context = ExecutionContext({"keep": True})
        result = ApiCallHandler(http_client).handle(node, context, recorder)

        assert result == context
        errors = messages(recorder, LogLevelEnum.ERROR)
        assert len(errors) == 1 and errors[0].startswith("API call failed:")

    def test_http_error_status_is_recorded(self, recorder, http_client):
        node = Node(id="a", type="api_call", data={"url": "https://api.example.com/missing"})
        ApiCallHandler(http_client).handle(node, ExecutionContext(), recorder)

        error_entry = [e for e in recorder.snapshot().logs if e.level == LogLevelEnum.ERROR][0]
        assert error_entry.data["status"] == 404

    def test_strict_mode_raises(self, recorder, http_client):
        node = Node(id="a", type="api_call", data={"url": "https://unreachable.invalid", "strict": True})
        with pytest.raises(NodeExecutionError):
            ApiCallHandler(http_client).handle(node, ExecutionContext(), recorder)

    def test_missing_url_simulates_response(self, recorder, http_client):
        node = Node(id="a", type="api_call", data={})
        result = ApiCallHandler(http_client).handle(node, ExecutionContext({"x": 1}), recorder)

        assert result["x"] == 1
        assert result["apiResponse"]["status"] == 200
        assert result["apiResponse"]["data"]["message"] == "API call simulated (no URL provided)"
        assert http_client.requests == []
        assert "Making API call to: No URL specified" in messages(recorder)
        assert messages(recorder, LogLevelEnum.WARNING)

    def test_string_timeout_is_coerced(self, recorder, http_client):
        node = Node(id="a", type="api_call", data={"url": "https://api.example.com/users", "timeout": "5"})
        result = ApiCallHandler(http_client).handle(node, ExecutionContext(), recorder)

        assert result["apiResponse"]["status"] == 200
        assert http_client.requests[0]["timeout"] == 5.0
        assert isinstance(http_client.requests[0]["timeout"], float)
        assert messages(recorder, LogLevelEnum.WARNING) == []

    @pytest.mark.parametrize("bad_timeout", ["soon", -1, 0, {"s": 5}, "nan"])
    def test_invalid_timeout_falls_back_to_default(self, recorder, http_client, bad_timeout):
        node = Node(id="a", type="api_call", data={"url": "https://api.example.com/users", "timeout": bad_timeout})
        result = ApiCallHandler(http_client, default_timeout=12.0).handle(node, ExecutionContext(), recorder)

        assert result["apiResponse"]["status"] == 200
        assert http_client.requests[0]["timeout"] == 12.0
        assert messages(recorder, LogLevelEnum.WARNING)[0].startswith("Invalid API call timeout")

    def test_no_client_warns(self, recorder):
        node = Node(id="a", type="api_call", data={"url": "https://api.example.com/users"})
        result = ApiCallHandler(None).handle(node, ExecutionContext(), recorder)
        assert "apiResponse" not in result
        assert messages(recorder, LogLevelEnum.WARNING)


class TestConditionHandler:
    def test_simple_condition(self, recorder):
        node = Node(id="c", type="condition", data={"condition": "value > 100"})
        result = ConditionHandler().handle(node, ExecutionContext({"value": 150}), recorder)

        assert result["conditionResult"] is True
        assert "Evaluating condition: value > 100" in messages(recorder)
        assert "Condition result: TRUE" in messages(recorder)

    def test_malformed_condition_is_false(self, recorder):
        node = Node(id="c", type="ifElse", data={"condition": "value is big"})
        result = ConditionHandler().handle(node, ExecutionContext({"value": 1}), recorder)

        assert result["conditionResult"] is False
        assert messages(recorder, LogLevelEnum.ERROR)
        assert "Condition result: FALSE" in messages(recorder)

    def test_non_simple_condition_uses_fallback(self, recorder):
        node = Node(id="c", type="condition", data={"condition": "is it sunny?", "conditionType": "ai"})
        assert ConditionHandler().handle(node, ExecutionContext(), recorder)["conditionResult"] is False
        assert ConditionHandler(fallback=AlwaysTrue()).handle(
            node, ExecutionContext(), recorder
        )["conditionResult"] is True

    def test_empty_condition_uses_fallback(self, recorder):
        node = Node(id="c", type="condition", data={})
        result = ConditionHandler().handle(node, ExecutionContext(), recorder)
        assert result["conditionResult"] is False

    def test_edge_selection(self):
        handler = ConditionHandler()
        node = Node(id="c", type="condition")
        edges = [Edge(id="t", source="c", target="yes"), Edge(id="f", source="c", target="no")]

        assert handler.select_edges(node, ExecutionContext({"conditionResult": True}), edges) == [edges[0]]
        assert handler.select_edges(node, ExecutionContext({"conditionResult": False}), edges) == [edges[1]]
        assert handler.select_edges(node, ExecutionContext({"conditionResult": False}), edges[:1]) == [edges[0]]
        assert handler.select_edges(node, ExecutionContext({"conditionResult": True}), []) == []


class TestAiActionHandler:
    def test_generation_success(self, recorder):
        generator = FakeTextGenerator(output="summary")
        node = Node(id="ai", type="aiProcess", data={
            "prompt": "Summarise", "model": "gemini-pro", "systemPrompt": "Be brief"
        })
        result = AiActionHandler(generator).handle(node, ExecutionContext(), recorder)

        response = result["aiResponse"]
        assert response["engine"] == "Fake"
        assert response["output"] == "summary"
        assert response["model"] == "gemini-pro"
        assert response["inputPrompt"] == "Summarise"
        assert response["systemPrompt"] == "Be brief"
        assert generator.calls == [{"model": "gemini-pro", "prompt": "Summarise", "system_prompt": "Be brief"}]

    def test_default_model(self, recorder):
        generator = FakeTextGenerator()
        node = Node(id="ai", type="ai_action", data={"prompt": "Hi"})
        AiActionHandler(generator, default_model="gemini-2.0-flash-lite").handle(node, ExecutionContext(), recorder)
        assert generator.calls[0]["model"] == "gemini-2.0-flash-lite"

    def test_no_generator_simulates(self, recorder):
        node = Node(id="ai", type="ai_action", data={"prompt": "Hi"})
        result = AiActionHandler(None).handle(node, ExecutionContext(), recorder)

        assert result["aiResponse"]["engine"] == "simulation"
        assert messages(recorder, LogLevelEnum.WARNING)

    def test_not_configured_simulates_with_warning(self, recorder):
        generator = FakeTextGenerator(error=GenerationNotConfigured("GEMINI_API_KEY is not set"))
        node = Node(id="ai", type="ai_action", data={"prompt": "Hi"})
        result = AiActionHandler(generator).handle(node, ExecutionContext(), recorder)

        assert result["aiResponse"]["engine"] == "simulation"
        assert not messages(recorder, LogLevelEnum.ERROR)

    def test_generation_failure_simulates_with_error(self, recorder):
        generator = FakeTextGenerator(error=GenerationError("quota exceeded"))
        node = Node(id="ai", type="ai_action", data={"prompt": "Hi"})
        result = AiActionHandler(generator).handle(node, ExecutionContext(), recorder)

        assert result["aiResponse"]["engine"] == "simulation"
        assert "quota exceeded" in result["aiResponse"]["output"]
        assert messages(recorder, LogLevelEnum.ERROR) == ["AI processing failed: quota exceeded"]


class TestSendEmailHandler:
    def test_without_sender_simulates(self, recorder):
        node = Node(id="m", type="email", data={"to": "a@example.com", "subject": "Hi", "body": "Hello"})
        result = SendEmailHandler().handle(node, ExecutionContext(), recorder)

        assert result["emailSent"]["status"] == "simulated"
        assert result["emailSent"]["to"] == "a@example.com"
        assert "Sending email to: a@example.com" in messages(recorder)

    def test_with_sender(self, recorder):
        sender = FakeEmailSender()
        node = Node(id="m", type="send_email", data={"to": "a@example.com", "subject": "Hi", "body": "Hello"})
        result = SendEmailHandler(sender).handle(node, ExecutionContext(), recorder)

        assert result["emailSent"]["status"] == "sent"
        assert sender.sent == [{"to": "a@example.com", "subject": "Hi", "body": "Hello"}]

    def test_sender_failure_is_not_fatal(self, recorder):
        sender = FakeEmailSender(error=IntegrationError("smtp down"))
        node = Node(id="m", type="sendEmail", data={"to": "a@example.com"})
        result = SendEmailHandler(sender).handle(node, ExecutionContext(), recorder)

        assert result["emailSent"]["status"] == "failed"
        assert messages(recorder, LogLevelEnum.ERROR) == ["Email failed: smtp down"]


class TestHandlerRegistry:
    def test_aliases_resolve_to_canonical_handlers(self, registry):
        assert isinstance(registry.get("scheduleTrigger"), TriggerHandler)
        assert isinstance(registry.get("action"), ApiCallHandler)
        assert isinstance(registry.get("ifElse"), ConditionHandler)
        assert isinstance(registry.get("aiAction"), AiActionHandler)
        assert isinstance(registry.get("email"), SendEmailHandler)

    def test_unknown_type_passes_through(self, registry, recorder):
        handler = registry.get("slackMessage")
        assert isinstance(handler, PassThroughHandler)
        assert not registry.exists("slackMessage")

        context = ExecutionContext({"a": 1})
        assert handler.handle(Node(id="s", type="slackMessage"), context, recorder) == context
        assert "Unknown node type: slackMessage" in messages(recorder, LogLevelEnum.WARNING)

    def test_duplicate_registration_rejected(self):
        registry = HandlerRegistry()
        registry.register(TriggerHandler())
        with pytest.raises(ConfigurationError):
            registry.register(TriggerHandler())
        registry.register(TriggerHandler(), replace=True)
        assert registry.list() == ["trigger"]

    def test_unregister(self, registry):
        assert registry.unregister(NodeKind.SEND_EMAIL) is True
        assert isinstance(registry.get("send_email"), PassThroughHandler)
        assert registry.unregister(NodeKind.SEND_EMAIL) is False
