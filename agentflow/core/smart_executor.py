"""Smart execution: run an agent from its free-text description.

Instead of walking a workflow graph, the agent description is sent to the
text generation capability, which answers with a JSON execution plan.
Each planned step is logged, ``email`` and ``data_fetch`` steps are
carried out through their capabilities, and the plan itself is stored as
the ``ai-planner`` node result. Without a configured generator the run
completes in simulation mode.
"""

import json
import re
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..models.core import Execution, Node
from .capabilities import DataFetcher, EmailSender, ExecutionSink, TextGenerator
from .exceptions import GenerationNotConfigured, IntegrationError, NodeExecutionError, WorkflowEngineError
from .execution_record import ExecutionRecorder
from .logging import get_logger, set_logging_context, clear_logging_context

logger = get_logger(__name__)

PLAN_PARSE_FAILURE = "Failed to parse AI response"
REPORT_SUBJECT = "Automation Report"
REPORT_BODY = "This email is sent automatically by AI Agent"
DATA_FETCH_STEP_TYPES = ("data_fetch", "google_sheets")

PLANNER_NODE = Node(id="ai-planner", type="smart-execution", data={"label": "AI Task Planner"})
DATA_SOURCE_NODE = Node(id="data-source", type="data", data={"label": "Data Source"})

PLANNER_PROMPT = """
You are an AI automation agent. Understand this user automation task and generate a structured execution plan.
Task: "{description}"
Return STRICT JSON ONLY. Format exactly like:
{{
  "steps": [
    {{
      "action": "What to do",
      "type": "api_call | data_fetch | email | analysis | automation",
      "details": "Explain specifically",
      "status": "planned"
    }}
  ],
  "summary": "Short description"
}}
"""


class PlanStep(BaseModel):
    """One step of an AI-generated execution plan."""
    model_config = ConfigDict(extra="allow")

    action: str = Field("", description="What to do")
    type: str = Field("", description="Step kind, e.g. email or data_fetch")
    details: str = Field("", description="Step specifics")
    status: str = Field("planned", description="Planning status reported by the model")


class ExecutionPlan(BaseModel):
    """Execution plan returned by the planner model."""
    model_config = ConfigDict(extra="allow")

    steps: List[PlanStep] = Field(default_factory=list)
    summary: str = ""

    @property
    def parsed(self) -> bool:
        return self.summary != PLAN_PARSE_FAILURE or bool(self.steps)


def build_planner_prompt(description: str) -> str:
    return PLANNER_PROMPT.format(description=description)


def parse_plan(text: str) -> ExecutionPlan:
    """Parse the planner's answer, tolerating Markdown code fences.

    Anything that is not a JSON object with a list of steps yields an
    empty plan whose summary is ``PLAN_PARSE_FAILURE``.
    """
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"```json", "", cleaned, flags=re.IGNORECASE).replace("```", "").strip()

    try:
        return ExecutionPlan.model_validate(json.loads(cleaned))
    except (ValueError, ValidationError):
        return ExecutionPlan(summary=PLAN_PARSE_FAILURE)


class SmartExecutor:
    """Runs agents from their description with an AI-generated plan."""

    def __init__(
        self,
        sink: ExecutionSink,
        text_generator: Optional[TextGenerator] = None,
        email_sender: Optional[EmailSender] = None,
        data_fetcher: Optional[DataFetcher] = None,
        model: str = "gemini-2.0-flash-lite",
        report_recipient: Optional[str] = None
    ):
        self.sink = sink
        self.text_generator = text_generator
        self.email_sender = email_sender
        self.data_fetcher = data_fetcher
        self.model = model
        self.report_recipient = report_recipient

    @classmethod
    def from_config(
        cls,
        config,
        sink: ExecutionSink,
        text_generator: Optional[TextGenerator] = None,
        email_sender: Optional[EmailSender] = None,
        data_fetcher: Optional[DataFetcher] = None
    ) -> "SmartExecutor":
        return cls(
            sink,
            text_generator=text_generator,
            email_sender=email_sender,
            data_fetcher=data_fetcher,
            model=config.default_ai_model,
            report_recipient=config.report_email,
        )

    def execute(self, agent_id: str, user_id: str, description: str) -> Execution:
        """
        Plan and run an agent from its description.

        Args:
            agent_id: ID of the agent being run
            user_id: ID of the user starting the run
            description: The agent's task in plain language

        Returns:
            The completed execution record

        Raises:
            GenerationError: If the planner call failed; ``error.execution`` holds the failed record
        """
        recorder = ExecutionRecorder(self.sink, agent_id, user_id)
        set_logging_context(execution_id=recorder.execution_id, agent_id=agent_id)

        try:
            recorder.info("Starting smart agent execution")
            recorder.info(f"Task: {description}")

            self._plan_and_run(description, recorder)

            return recorder.complete()

        except Exception as e:
            if isinstance(e, WorkflowEngineError):
                error = e
            else:
                logger.error(f"Unexpected error in smart execution {recorder.execution_id}: {str(e)}", exc_info=True)
                error = NodeExecutionError(
                    f"Unexpected error during smart execution: {str(e)}",
                    node_id=PLANNER_NODE.id,
                    node_type=PLANNER_NODE.type,
                    execution_id=recorder.execution_id
                )

            recorder.error("Smart agent execution failed", {"error": error.message})
            error.execution = recorder.fail(error.message)
            logger.error(f"Smart execution {recorder.execution_id} failed: {error.message}")

            if error is e:
                raise
            raise error from e

        finally:
            clear_logging_context()

    def _plan_and_run(self, description: str, recorder: ExecutionRecorder) -> Any:
        if self.text_generator is None:
            recorder.warning("Text generation not configured - simulation mode enabled")
            return self._simulate(description, recorder)

        recorder.info("AI analyzing task...")
        try:
            answer = self.text_generator.generate(self.model, build_planner_prompt(description))
        except GenerationNotConfigured as e:
            recorder.warning(f"{e.message} - simulation mode enabled")
            return self._simulate(description, recorder)
        except IntegrationError as e:
            recorder.error(f"AI execution failed: {e.message}")
            raise

        recorder.info("AI generated execution plan")
        plan = parse_plan(answer)
        if not plan.parsed:
            recorder.warning(PLAN_PARSE_FAILURE, {"response": answer[:500]})

        for step in plan.steps:
            recorder.info(f"{step.action}: {step.details}")

        self._run_steps(plan, recorder)

        recorder.add_result(PLANNER_NODE, plan.model_dump())
        return plan

    def _run_steps(self, plan: ExecutionPlan, recorder: ExecutionRecorder) -> None:
        if not plan.steps:
            recorder.warning("No steps to execute")
            return

        for step in plan.steps:
            if step.type in DATA_FETCH_STEP_TYPES:
                self._fetch_data(recorder)
            elif step.type == "email":
                self._send_report(recorder)
            else:
                recorder.info(f"Skipping action: {step.type}")

    def _fetch_data(self, recorder: ExecutionRecorder) -> None:
        recorder.info("Fetching data...")
        if self.data_fetcher is None:
            recorder.warning("Data fetch skipped: no data source configured")
            return
        try:
            data = self.data_fetcher.fetch()
        except IntegrationError as e:
            recorder.error(f"Data fetch failed: {e.message}")
            return
        recorder.info("Data fetched")
        recorder.add_result(DATA_SOURCE_NODE, data)

    def _send_report(self, recorder: ExecutionRecorder) -> None:
        recorder.info("Sending email...")
        if self.email_sender is None or not self.report_recipient:
            recorder.warning("Email simulated: no email sender or report recipient configured")
            return
        try:
            self.email_sender.send(self.report_recipient, REPORT_SUBJECT, REPORT_BODY)
        except IntegrationError as e:
            recorder.error(f"Email failed: {e.message}")
            return
        recorder.info("Email sent successfully")

    def _simulate(self, description: str, recorder: ExecutionRecorder) -> Any:
        if "analyze" in description.lower():
            recorder.info("Simulating AI analysis...")
        recorder.info("Simulation mode: Add API keys to enable real execution.")
        return {"simulated": True, "description": description}
