"""AgentFlow: execution engine for agent automation workflows."""

__version__ = "1.0.0"
