"""DataFetcher capability that reads a JSON or text document over HTTP."""

from typing import Any, Dict, Optional

from ..core.capabilities import DataFetcher, HttpClient
from ..core.logging import get_logger

logger = get_logger(__name__)


class HttpDataFetcher(DataFetcher):
    """Fetches the configured data source URL with the shared HTTP client.

    Errors from the client (``NetworkError``, ``HttpError``) propagate
    unchanged so the caller can record them.
    """

    def __init__(self, http_client: HttpClient, url: str, headers: Optional[Dict[str, str]] = None,
                 timeout: Optional[float] = None):
        self.http_client = http_client
        self.url = url
        self.headers = headers or {}
        self.timeout = timeout

    def fetch(self) -> Any:
        response = self.http_client.request("GET", self.url, headers=self.headers, timeout=self.timeout)
        logger.debug(f"Fetched data source {self.url} (status {response.status})")
        return response.data
