"""HTTP fetch primitive shared by the extractors."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from processor.errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:145.0) "
    "Gecko/20100101 Firefox/145.0"
)


@dataclass
class FetchResponse:
    """Raw HTTP response."""
    status_code: int
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace')


class HttpFetcher:
    """Thin wrapper over a requests session with a fixed timeout."""

    def __init__(
        self,
        timeout: float = 30,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the fetcher.

        Args:
            timeout: Per-request timeout in seconds (default: 30)
            user_agent: Value of the outbound User-Agent header
            session: Optional pre-configured requests session
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers['User-Agent'] = user_agent

    def get(self, url: str) -> FetchResponse:
        """
        Issue a GET request.

        Raises:
            FetchError: On connection errors and timeouts
        """
        logger.debug(f"GET {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"HTTP request failed: {e}") from e
        return FetchResponse(status_code=response.status_code, body=response.content)

    def post_json(
        self,
        url: str,
        headers: Optional[Dict[str, str]],
        payload: Any
    ) -> FetchResponse:
        """
        Issue a POST request with a JSON body.

        Raises:
            FetchError: On connection errors and timeouts
        """
        logger.debug(f"POST {url}")
        request_headers = {'Accept': '*/*'}
        request_headers.update(headers or {})
        try:
            response = self.session.post(
                url,
                json=payload,
                headers=request_headers,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise FetchError(f"HTTP request failed: {e}") from e
        return FetchResponse(status_code=response.status_code, body=response.content)
