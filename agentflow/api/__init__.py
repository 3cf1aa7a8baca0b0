"""HTTP API for running agents and reading execution records."""

from .endpoints import router, init_dependencies

__all__ = ["router", "init_dependencies"]
