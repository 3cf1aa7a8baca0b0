"""Pytest configuration and fixtures."""

import os
import tempfile
from typing import Any, Dict, List, Optional

import pytest

from agentflow.core.capabilities import DataFetcher, EmailSender, HttpClient, HttpResponse, TextGenerator
from agentflow.core.exceptions import (
    GenerationError, GenerationNotConfigured, HttpError, IntegrationError, NetworkError
)
from agentflow.core.execution_engine import ExecutionEngine
from agentflow.core.handler_registry import HandlerRegistry
from agentflow.models.core import Edge, Node, WorkflowGraph
from agentflow.storage import InMemoryExecutionSink, SqlExecutionSink, build_engine, create_tables


class FakeHttpClient(HttpClient):
    """Returns canned responses keyed by URL and records every request."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses = responses or {}
        self.requests: List[Dict[str, Any]] = []

    def request(self, method, url, headers=None, body=None, timeout=None):
        self.requests.append({
            "method": method, "url": url, "headers": headers, "body": body, "timeout": timeout
        })
        response = self.responses.get(url)
        if isinstance(response, Exception):
            raise response
        if response is None:
            raise NetworkError(f"Connection failed: {url}", url=url)
        return response


class FakeTextGenerator(TextGenerator):
    engine_name = "Fake"

    def __init__(self, output: str = "generated text", error: Optional[Exception] = None):
        self.output = output
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def generate(self, model, prompt, system_prompt=None):
        self.calls.append({"model": model, "prompt": prompt, "system_prompt": system_prompt})
        if self.error is not None:
            raise self.error
        return self.output


class FakeEmailSender(EmailSender):
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.sent: List[Dict[str, str]] = []

    def send(self, to, subject, body):
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to, "subject": subject, "body": body})


class FakeDataFetcher(DataFetcher):
    def __init__(self, data: Any = None, error: Optional[Exception] = None):
        self.data = data
        self.error = error
        self.calls = 0

    def fetch(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.data


class FailingSink(InMemoryExecutionSink):
    """Sink whose log appends always fail."""

    def append_log(self, execution_id, seq, entry):
        raise RuntimeError("disk full")


def make_graph(nodes: List[tuple], edges: List[tuple]) -> WorkflowGraph:
    """Build a graph from ``(id, type, data)`` and ``(source, target)`` tuples."""
    return WorkflowGraph(
        nodes=[Node(id=node_id, type=node_type, data=data or {}) for node_id, node_type, data in nodes],
        edges=[Edge(id=f"e{index}", source=source, target=target) for index, (source, target) in enumerate(edges)],
    )


@pytest.fixture
def sink():
    """In-memory execution sink."""
    return InMemoryExecutionSink()


@pytest.fixture
def http_client():
    return FakeHttpClient({
        "https://api.example.com/users": HttpResponse(
            status=200, data={"users": [{"id": 1}]}, headers={"content-type": "application/json"}
        ),
        "https://api.example.com/missing": HttpError(
            "Request failed with status code 404", status_code=404,
            url="https://api.example.com/missing", response_data={"error": "not found"}
        ),
    })


@pytest.fixture
def text_generator():
    return FakeTextGenerator()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def registry(http_client, text_generator, email_sender):
    return HandlerRegistry.with_defaults(
        http_client=http_client,
        text_generator=text_generator,
        email_sender=email_sender,
    )


@pytest.fixture
def engine(sink, registry):
    """ExecutionEngine wired to fakes and the in-memory sink."""
    return ExecutionEngine(sink, registry=registry, max_node_visits=100)


@pytest.fixture
def temp_db():
    """Temporary SQLite database file with the execution tables."""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(db_fd)

    database_engine = build_engine(f"sqlite:///{db_path}")
    create_tables(database_engine)

    yield database_engine

    database_engine.dispose()
    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture
def sql_sink(temp_db):
    return SqlExecutionSink(temp_db, retry_attempts=2)
