"""Concrete capability implementations backed by third-party libraries."""

from .http_client import RequestsHttpClient
from .gemini import GeminiTextGenerator
from .data_fetcher import HttpDataFetcher

__all__ = ["RequestsHttpClient", "GeminiTextGenerator", "HttpDataFetcher"]
