"""
HTTP transport backed by a pooled requests.Session.

One session is shared by every attempt in a run. The connection pool is sized
to the concurrency limit so no attempt waits on a free connection.
"""

import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter

from rate_limit_probe.core.errors import TransportError
from rate_limit_probe.io.schema import HttpMethod, ResponseObservation

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class RequestsTransport:
    """Sends single requests and reports status and headers only."""

    def __init__(
        self,
        pool_size: int,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.session = session or requests.Session()
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def send(self, method: HttpMethod, url: str) -> ResponseObservation:
        """
        Issue one request without reading the response body.

        Raises:
            TransportError: On connection errors, timeouts or malformed responses
        """
        method_name = method.value if isinstance(method, HttpMethod) else str(method)
        try:
            response = self.session.request(method_name, url, timeout=self.timeout, stream=True)
        except requests.RequestException as e:
            raise TransportError(f"{method_name} {url} failed: {e}") from e

        try:
            return ResponseObservation(
                status_code=response.status_code, headers=dict(response.headers)
            )
        except ValueError as e:
            raise TransportError(f"{method_name} {url} returned a malformed response: {e}") from e
        finally:
            response.close()

    def close(self) -> None:
        self.session.close()


def create_transport(pool_size: int, timeout: Optional[float] = DEFAULT_TIMEOUT) -> RequestsTransport:
    """Factory function to create a RequestsTransport."""
    logger.debug(f"Creating HTTP transport: pool_size={pool_size} timeout={timeout}")
    return RequestsTransport(pool_size=pool_size, timeout=timeout)
