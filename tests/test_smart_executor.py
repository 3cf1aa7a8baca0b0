"""Tests for description-driven smart execution."""

import json

import pytest

from agentflow.config import AppConfig
from agentflow.core.exceptions import GenerationError, GenerationNotConfigured, HttpError, NetworkError
from agentflow.core.smart_executor import (
    PLAN_PARSE_FAILURE, REPORT_SUBJECT, SmartExecutor, build_planner_prompt, parse_plan
)
from agentflow.models.core import ExecutionStatusEnum, LogLevelEnum

from .conftest import FakeDataFetcher, FakeEmailSender, FakeTextGenerator


def log_messages(execution, level=None):
    return [entry.message for entry in execution.logs if level is None or entry.level == level]


def plan_json(*steps, summary="Weekly report"):
    return json.dumps({
        "steps": [
            {"action": action, "type": step_type, "details": details, "status": "planned"}
            for action, step_type, details in steps
        ],
        "summary": summary,
    })


class TestParsePlan:
    def test_plain_json(self):
        plan = parse_plan(plan_json(("Send report", "email", "Mail the team")))

        assert plan.summary == "Weekly report"
        assert [(step.action, step.type, step.details) for step in plan.steps] == [
            ("Send report", "email", "Mail the team")
        ]
        assert plan.parsed

    @pytest.mark.parametrize("fence", ["```json", "```JSON", "```"])
    def test_code_fences_are_removed(self, fence):
        text = f"  {fence}\n{plan_json(('Fetch rows', 'data_fetch', 'Read the sheet'))}\n```  "

        plan = parse_plan(text)

        assert [step.type for step in plan.steps] == ["data_fetch"]

    @pytest.mark.parametrize("text", ["not json at all", "", "[1, 2]", '{"steps": "none"}', "```json\n{broken\n```"])
    def test_unusable_answers_give_empty_plan(self, text):
        plan = parse_plan(text)

        assert plan.steps == []
        assert plan.summary == PLAN_PARSE_FAILURE
        assert not plan.parsed

    def test_missing_step_fields_default(self):
        plan = parse_plan('{"steps": [{"type": "email"}]}')

        step = plan.steps[0]
        assert step.action == ""
        assert step.status == "planned"
        assert plan.summary == ""

    def test_extra_fields_are_kept(self):
        plan = parse_plan('{"steps": [{"type": "email", "priority": 1}], "summary": "s", "confidence": 0.9}')

        dumped = plan.model_dump()
        assert dumped["confidence"] == 0.9
        assert dumped["steps"][0]["priority"] == 1

    def test_prompt_contains_description(self):
        prompt = build_planner_prompt("Email the sales numbers")

        assert 'Task: "Email the sales numbers"' in prompt
        assert "Return STRICT JSON ONLY" in prompt


class TestPlannedExecution:
    def test_email_and_data_fetch_steps_run(self, sink):
        generator = FakeTextGenerator(plan_json(
            ("Fetch sales", "data_fetch", "Read this week's rows"),
            ("Email team", "email", "Send the summary"),
        ))
        sender = FakeEmailSender()
        fetcher = FakeDataFetcher(data=[{"region": "EU", "sales": 10}])
        executor = SmartExecutor(
            sink, text_generator=generator, email_sender=sender, data_fetcher=fetcher,
            model="test-model", report_recipient="ops@example.com",
        )

        execution = executor.execute("agent-1", "user-1", "Email the weekly sales")

        assert execution.status == ExecutionStatusEnum.COMPLETED
        assert generator.calls[0]["model"] == "test-model"
        assert 'Task: "Email the weekly sales"' in generator.calls[0]["prompt"]
        assert fetcher.calls == 1
        assert sender.sent == [{
            "to": "ops@example.com",
            "subject": REPORT_SUBJECT,
            "body": "This email is sent automatically by AI Agent",
        }]

        messages = log_messages(execution)
        assert messages[:4] == [
            "Starting smart agent execution",
            "Task: Email the weekly sales",
            "AI analyzing task...",
            "AI generated execution plan",
        ]
        assert "Fetch sales: Read this week's rows" in messages
        assert "Email team: Send the summary" in messages
        assert "Email sent successfully" in messages

        assert [(r.node_id, r.node_type, r.node_label) for r in execution.results] == [
            ("data-source", "data", "Data Source"),
            ("ai-planner", "smart-execution", "AI Task Planner"),
        ]
        assert execution.results[0].result == [{"region": "EU", "sales": 10}]
        planner_result = execution.results[1].result
        assert planner_result["summary"] == "Weekly report"
        assert [step["type"] for step in planner_result["steps"]] == ["data_fetch", "email"]

        stored = sink.get_execution(execution.id)
        assert stored.status == ExecutionStatusEnum.COMPLETED
        assert [r.node_id for r in stored.results] == ["data-source", "ai-planner"]

    def test_google_sheets_steps_fetch_data(self, sink):
        generator = FakeTextGenerator(plan_json(("Read sheet", "google_sheets", "Sheet1")))
        fetcher = FakeDataFetcher(data={"rows": []})
        executor = SmartExecutor(sink, text_generator=generator, data_fetcher=fetcher)

        executor.execute("agent-1", "user-1", "Read the sheet")

        assert fetcher.calls == 1

    def test_other_step_types_are_skipped(self, sink):
        generator = FakeTextGenerator(plan_json(
            ("Think", "analysis", "Look for trends"),
            ("Call CRM", "api_call", "POST the lead"),
        ))
        executor = SmartExecutor(sink, text_generator=generator)

        execution = executor.execute("agent-1", "user-1", "Analyze leads")

        messages = log_messages(execution)
        assert "Skipping action: analysis" in messages
        assert "Skipping action: api_call" in messages
        assert [r.node_id for r in execution.results] == ["ai-planner"]

    def test_empty_plan_warns_and_completes(self, sink):
        executor = SmartExecutor(sink, text_generator=FakeTextGenerator(plan_json()))

        execution = executor.execute("agent-1", "user-1", "Do nothing")

        assert execution.status == ExecutionStatusEnum.COMPLETED
        assert "No steps to execute" in log_messages(execution, LogLevelEnum.WARNING)
        assert execution.results[-1].result == {"steps": [], "summary": "Weekly report"}

    def test_unparseable_answer_completes_with_failure_summary(self, sink):
        executor = SmartExecutor(sink, text_generator=FakeTextGenerator("Sure! Here is your plan..."))

        execution = executor.execute("agent-1", "user-1", "Do something")

        assert execution.status == ExecutionStatusEnum.COMPLETED
        warnings = log_messages(execution, LogLevelEnum.WARNING)
        assert PLAN_PARSE_FAILURE in warnings
        assert "No steps to execute" in warnings
        assert execution.results[-1].result == {"steps": [], "summary": PLAN_PARSE_FAILURE}

    def test_email_without_recipient_is_simulated(self, sink):
        sender = FakeEmailSender()
        generator = FakeTextGenerator(plan_json(("Email team", "email", "Send it")))
        executor = SmartExecutor(sink, text_generator=generator, email_sender=sender)

        execution = executor.execute("agent-1", "user-1", "Email the team")

        assert sender.sent == []
        assert execution.status == ExecutionStatusEnum.COMPLETED
        assert any("Email simulated" in message for message in log_messages(execution, LogLevelEnum.WARNING))

    def test_step_failures_are_logged_and_run_completes(self, sink):
        generator = FakeTextGenerator(plan_json(
            ("Fetch", "data_fetch", "rows"),
            ("Email", "email", "report"),
        ))
        executor = SmartExecutor(
            sink,
            text_generator=generator,
            email_sender=FakeEmailSender(error=NetworkError("SMTP unreachable")),
            data_fetcher=FakeDataFetcher(error=HttpError("Request failed with status code 403", status_code=403)),
            report_recipient="ops@example.com",
        )

        execution = executor.execute("agent-1", "user-1", "Fetch and email")

        assert execution.status == ExecutionStatusEnum.COMPLETED
        errors = log_messages(execution, LogLevelEnum.ERROR)
        assert "Data fetch failed: Request failed with status code 403" in errors
        assert "Email failed: SMTP unreachable" in errors
        assert [r.node_id for r in execution.results] == ["ai-planner"]

    def test_data_fetch_without_source_warns(self, sink):
        generator = FakeTextGenerator(plan_json(("Fetch", "data_fetch", "rows")))
        executor = SmartExecutor(sink, text_generator=generator)

        execution = executor.execute("agent-1", "user-1", "Fetch rows")

        assert "Data fetch skipped: no data source configured" in log_messages(execution, LogLevelEnum.WARNING)


class TestSimulation:
    def test_no_generator_runs_simulation(self, sink):
        executor = SmartExecutor(sink)

        execution = executor.execute("agent-1", "user-1", "Send a summary")

        assert execution.status == ExecutionStatusEnum.COMPLETED
        assert any("simulation mode enabled" in message for message in log_messages(execution, LogLevelEnum.WARNING))
        messages = log_messages(execution)
        assert "Simulation mode: Add API keys to enable real execution." in messages
        assert "Simulating AI analysis..." not in messages
        assert execution.results == []

    def test_analysis_tasks_mention_simulated_analysis(self, sink):
        executor = SmartExecutor(sink)

        execution = executor.execute("agent-1", "user-1", "Analyze the churn numbers")

        assert "Simulating AI analysis..." in log_messages(execution)

    def test_unconfigured_generator_falls_back_to_simulation(self, sink):
        generator = FakeTextGenerator(error=GenerationNotConfigured("GEMINI_API_KEY not set"))
        executor = SmartExecutor(sink, text_generator=generator)

        execution = executor.execute("agent-1", "user-1", "Send a summary")

        assert execution.status == ExecutionStatusEnum.COMPLETED
        assert "GEMINI_API_KEY not set - simulation mode enabled" in log_messages(execution, LogLevelEnum.WARNING)
        assert len(generator.calls) == 1


class TestSmartExecutionFailures:
    def test_generation_error_fails_the_run(self, sink):
        generator = FakeTextGenerator(error=GenerationError("quota exceeded", model="test-model"))
        executor = SmartExecutor(sink, text_generator=generator)

        with pytest.raises(GenerationError) as exc_info:
            executor.execute("agent-1", "user-1", "Send a summary")

        execution = exc_info.value.execution
        assert execution.status == ExecutionStatusEnum.FAILED
        assert execution.error == "quota exceeded"
        assert execution.end_time is not None and execution.duration is not None
        errors = log_messages(execution, LogLevelEnum.ERROR)
        assert "AI execution failed: quota exceeded" in errors
        assert "Smart agent execution failed" in errors

        stored = sink.get_execution(execution.id)
        assert stored.status == ExecutionStatusEnum.FAILED

    def test_unexpected_error_is_wrapped(self, sink):
        generator = FakeTextGenerator(error=RuntimeError("boom"))
        executor = SmartExecutor(sink, text_generator=generator)

        with pytest.raises(Exception) as exc_info:
            executor.execute("agent-1", "user-1", "Send a summary")

        error = exc_info.value
        assert error.error_code == "NodeExecutionError"
        assert error.execution.status == ExecutionStatusEnum.FAILED
        assert "boom" in error.execution.error


class TestFromConfig:
    def test_uses_configured_model_and_recipient(self, sink):
        config = AppConfig(default_ai_model="gemini-test", report_email="reports@example.com")

        executor = SmartExecutor.from_config(config, sink, text_generator=FakeTextGenerator())

        assert executor.model == "gemini-test"
        assert executor.report_recipient == "reports@example.com"
