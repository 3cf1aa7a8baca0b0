"""HttpClient capability backed by ``requests``."""

from typing import Any, Dict, Optional

import requests

from ..core.capabilities import HttpClient, HttpResponse
from ..core.exceptions import HttpError, NetworkError
from ..core.logging import get_logger

logger = get_logger(__name__)


class RequestsHttpClient(HttpClient):
    """Performs api_call requests with a shared ``requests.Session``."""

    def __init__(self, default_timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.default_timeout = default_timeout
        self.session = session or requests.Session()

    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        timeout: Optional[float] = None
    ) -> HttpResponse:
        timeout = timeout or self.default_timeout
        kwargs: Dict[str, Any] = {"headers": headers or {}, "timeout": timeout}
        if body is not None:
            if isinstance(body, (str, bytes)):
                kwargs["data"] = body
            else:
                kwargs["json"] = body

        logger.debug(f"{method.upper()} {url} (timeout={timeout}s)")

        try:
            response = self.session.request(method.upper(), url, **kwargs)
        except requests.Timeout:
            raise NetworkError(f"Request timed out after {timeout}s: {url}", url=url)
        except requests.ConnectionError as e:
            raise NetworkError(f"Connection failed: {url} - {str(e)}", url=url)
        except requests.RequestException as e:
            raise NetworkError(f"Request failed: {str(e)}", url=url)
        except Exception as e:
            # urllib3 rejects some arguments (e.g. timeouts) with plain ValueErrors
            logger.warning(f"{method.upper()} {url} could not be sent: {type(e).__name__}: {e}")
            raise NetworkError(f"Request could not be sent: {str(e)}", url=url) from e

        try:
            data = response.json()
        except ValueError:
            data = response.text

        if response.status_code >= 400:
            raise HttpError(
                f"Request failed with status code {response.status_code}",
                status_code=response.status_code,
                url=url,
                response_data=data
            )

        return HttpResponse(
            status=response.status_code,
            data=data,
            headers=dict(response.headers),
        )
