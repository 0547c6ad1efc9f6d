"""HTTP client delivering telemetry batches to the storage backend."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from aiohttp import ClientConnectorError, ServerConnectionError
from aiohttp.client import ClientTimeout

from .exceptions import ApiException, AuthException

_LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = ClientTimeout(total=30)
DEFAULT_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Content-Type": "application/json",
}

# Retry configuration for network errors
API_MAX_RETRIES = 3
API_RETRY_BASE_DELAY = 1.0
API_RETRY_MAX_DELAY = 10.0


class TelemetryApiClient:
    """Posts component telemetry to the storage backend.

    The bearer credential is handed in by whoever builds the client; there
    is no process-wide token.
    """

    __slots__ = ("_session", "_url", "_token", "_max_retries")

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: str,
        token: Optional[str] = None,
        max_retries: int = API_MAX_RETRIES,
    ) -> None:
        """Initialize the API client.

        Args:
            session: aiohttp client session for HTTP requests
            url: Telemetry ingestion endpoint
            token: Optional bearer token for the endpoint
            max_retries: Attempts per batch on network or 5xx errors
        """
        self._session = session
        self._url = url
        self._token = token
        self._max_retries = max(1, max_retries)

    @property
    def url(self) -> str:
        return self._url

    def _headers(self) -> Dict[str, str]:
        headers = DEFAULT_HEADERS.copy()
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _post(self, body: Any) -> int:
        """POST a JSON body, retrying network errors with exponential backoff.

        Returns:
            HTTP status of the accepted response

        Raises:
            AuthException: If the backend rejects the credential
            ApiException: If the request fails
        """
        last_exc: Optional[BaseException] = None
        delay = API_RETRY_BASE_DELAY

        for attempt in range(self._max_retries):
            try:
                async with self._session.post(
                    self._url, json=body, headers=self._headers(), timeout=DEFAULT_TIMEOUT
                ) as response:
                    if _LOGGER.isEnabledFor(logging.DEBUG):
                        _LOGGER.debug("HTTP POST %s response: %s", self._url, response.status)
                    if response.status in (401, 403):
                        raise AuthException(f"Auth failed (status={response.status})")
                    if 500 <= response.status < 600 and attempt < self._max_retries - 1:
                        _LOGGER.warning(
                            f"Server error {self._url}: {response.status} "
                            f"(attempt {attempt + 1}/{self._max_retries}). Retrying in {delay:.1f}s..."
                        )
                        await asyncio.sleep(delay)
                        delay = min(delay * 2, API_RETRY_MAX_DELAY)
                        continue
                    if not 200 <= response.status < 300:
                        text = (await response.text())[:300]
                        raise ApiException(f"HTTP error: {response.status} {text}")
                    return response.status

            except ApiException:
                raise
            except (asyncio.TimeoutError, ClientConnectorError, ServerConnectionError) as exc:
                last_exc = exc
                if attempt < self._max_retries - 1:
                    _LOGGER.warning(
                        f"Network error {self._url} (attempt {attempt + 1}/{self._max_retries}): "
                        f"{type(exc).__name__}: {exc}. Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, API_RETRY_MAX_DELAY)
            except aiohttp.ClientError as exc:
                raise ApiException(f"Client error: {exc}") from exc

        raise ApiException(
            f"Request failed after {self._max_retries} attempts: {last_exc}"
        ) from last_exc

    async def send_telemetry(self, batch: List[Dict[str, Any]]) -> bool:
        """Send one telemetry batch. Failures are logged, never raised.

        Args:
            batch: Telemetry samples of one device tick

        Returns:
            True if the backend accepted the batch
        """
        if not batch:
            return True
        try:
            status = await self._post(batch)
        except AuthException as err:
            _LOGGER.error(f"Telemetry rejected by {self._url}: {err}")
            return False
        except ApiException as err:
            _LOGGER.error(f"Telemetry delivery to {self._url} failed: {err}")
            return False
        except Exception:
            _LOGGER.exception(f"Unexpected error sending telemetry to {self._url}")
            return False
        _LOGGER.info(f"Sent {len(batch)} telemetry samples (HTTP {status})")
        return True
