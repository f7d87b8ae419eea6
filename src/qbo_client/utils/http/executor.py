"""Transport-level execution of API requests.

:class:`HttpExecutor` sends a :class:`~qbo_client.models.request.Request`
over ``httpx`` and retries transport failures (timeouts, refused or
unreachable connections and other socket errors such as a reset) with
capped exponential backoff.
It never inspects the HTTP status: a 500 is a successful transport round
trip at this layer.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from ...config.settings import Settings
from ...exceptions import ConnectionError, NetworkError
from ...models.request import Request
from .client_manager import HTTPClientManager

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "DELETE"})

RETRYABLE_TRANSPORT_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    OSError,
)


def calculate_backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    """Return the delay before retry number ``attempt`` (1-based).

    :param attempt: Attempt that just failed
    :type attempt: int
    :param base_delay: Delay after the first failure
    :type base_delay: float
    :param max_delay: Upper bound on any single delay
    :type max_delay: float
    :return: ``base_delay * 2**(attempt - 1)`` capped at ``max_delay``
    :rtype: float
    """
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


class HttpExecutor:
    """Sends requests and retries transport failures."""

    def __init__(self, settings: Settings, http: Optional[HTTPClientManager] = None):
        """Initialize the executor.

        :param settings: Timeouts, TLS verification and retry policy
        :type settings: Settings
        :param http: Client manager; one is created from settings if omitted
        :type http: Optional[HTTPClientManager]
        """
        self.settings = settings
        self.http = http or HTTPClientManager(settings)

    async def execute(self, request: Request) -> httpx.Response:
        """Send a request, retrying transport failures.

        :param request: Request to send
        :type request: Request
        :return: Raw HTTP response, whatever its status
        :rtype: httpx.Response
        :raises ValueError: If the method is not GET, POST, PUT or DELETE
        :raises NetworkError: When transport failures outlast the retry budget
        :raises ConnectionError: On any other transport failure
        """
        if request.method not in SUPPORTED_METHODS:
            raise ValueError(f"Unsupported HTTP method: {request.method}")

        max_attempts = max(1, self.settings.retry_count)
        start_time = time.monotonic()
        attempt = 0

        while True:
            attempt += 1
            logger.debug(
                f"Executing request (attempt {attempt}): {request.to_safe_dict()}"
            )
            try:
                response = await self._send(request)
            except RETRYABLE_TRANSPORT_ERRORS as e:
                if attempt < max_attempts:
                    delay = calculate_backoff(
                        attempt, self.settings.retry_delay, self.settings.max_retry_delay
                    )
                    logger.warning(
                        f"Request failed with {type(e).__name__}, retrying in "
                        f"{delay:.2f}s (attempt {attempt}/{max_attempts})"
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(f"Request failed after {attempt} attempts: {e}")
                raise NetworkError(
                    f"Network error after {attempt} attempts: {e}",
                    original_error=e,
                    attempts=attempt,
                ) from e
            except httpx.HTTPError as e:
                logger.error(
                    f"Unexpected error during request ({type(e).__name__}): {e}"
                )
                raise ConnectionError(f"Connection error: {e}", original_error=e) from e

            duration = time.monotonic() - start_time
            logger.info(
                f"Request completed: status={response.status_code} "
                f"duration={duration:.3f}s attempts={attempt}"
            )
            return response

    async def _send(self, request: Request) -> httpx.Response:
        client = await self.http.get_client()
        return await client.request(
            request.method,
            request.url,
            headers=request.headers,
            content=request.body.encode("utf-8") if request.body is not None else None,
        )

    async def aclose(self) -> None:
        await self.http.close()

    async def __aenter__(self) -> "HttpExecutor":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
