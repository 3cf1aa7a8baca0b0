"""Capability interfaces the engine and node handlers depend on.

Concrete implementations live in ``agentflow.integrations`` and
``agentflow.storage``; tests substitute fakes.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.core import Execution, ExecutionStatusEnum, LogEntry, NodeResult


class HttpResponse(BaseModel):
    """Normalised response of an outbound HTTP call."""
    status: int = Field(..., description="HTTP status code")
    data: Any = Field(None, description="Parsed JSON body, or text when the body is not JSON")
    headers: Dict[str, str] = Field(default_factory=dict, description="Response headers")


class ExecutionSink(ABC):
    """Persistence for execution records.

    Calls arrive in record order for a given execution; ``seq`` is the
    per-execution sequence number assigned by the recorder.
    """

    @abstractmethod
    def create_execution(self, agent_id: str, user_id: str, start_time: datetime) -> str:
        """Create a running execution and return its ID."""

    @abstractmethod
    def append_log(self, execution_id: str, seq: int, entry: LogEntry) -> None:
        pass

    @abstractmethod
    def append_result(self, execution_id: str, seq: int, result: NodeResult) -> None:
        pass

    @abstractmethod
    def set_terminal(
        self,
        execution_id: str,
        status: ExecutionStatusEnum,
        end_time: datetime,
        duration: Optional[int] = None,
        error: Optional[str] = None
    ) -> None:
        pass

    @abstractmethod
    def get_execution(self, execution_id: str) -> Optional[Execution]:
        pass

    @abstractmethod
    def list_executions(
        self,
        agent_id: Optional[str] = None,
        user_id: Optional[str] = None,
        limit: int = 50
    ) -> List[Execution]:
        """Most recent executions first, without logs and results."""


class HttpClient(ABC):
    """Outbound HTTP capability used by ``api_call`` nodes."""

    @abstractmethod
    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        timeout: Optional[float] = None
    ) -> HttpResponse:
        """Perform a request.

        Raises:
            NetworkError: If no response was received
            HttpError: If the response status is 400 or above
        """


class TextGenerator(ABC):
    """Text generation capability used by ``ai_action`` nodes."""

    engine_name = "text-generator"

    @abstractmethod
    def generate(self, model: str, prompt: str, system_prompt: Optional[str] = None) -> str:
        """Generate text for a prompt.

        Raises:
            GenerationNotConfigured: If no credentials are available
            GenerationError: If the provider call fails
        """


class EmailSender(ABC):
    """Outbound email capability used by ``send_email`` nodes."""

    @abstractmethod
    def send(self, to: str, subject: str, body: str) -> None:
        """Send a message; raises ``IntegrationError`` on failure."""


class DataFetcher(ABC):
    """Source of tabular or JSON data for ``data_fetch`` plan steps."""

    @abstractmethod
    def fetch(self) -> Any:
        """Return the configured data; raises ``IntegrationError`` on failure."""
