"""HTTP transport to the aggregator with retries and error mapping."""

import asyncio
from typing import Any, Optional

import httpx

from bank_sync.errors import AuthFailureError, NetworkError, ProviderError
from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)

# Responses worth retrying: rate limiting and transient server errors
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def _error_detail(response: httpx.Response) -> str:
    """Extract the provider's error text from a response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for key in ("detail", "summary", "message"):
            if body.get(key):
                return str(body[key])

    text = response.text.strip()
    return text[:300] if text else response.reason_phrase


class AggregatorTransport:
    """Sends JSON requests to the aggregator.

    This transport provides:
    - Lazy creation of a shared httpx.AsyncClient
    - Retry with exponential backoff for transport errors, 429 and 5xx
    - Mapping of failures into the bank sync error taxonomy
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize transport.

        Args:
            base_url: Aggregator API base URL.
            timeout: Per-request timeout in seconds.
            retry_attempts: Total attempts per request (at least 1).
            retry_delay: Initial delay between retries, doubled each retry.
            http_client: Pre-built client (tests inject one with a mock transport).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self._http = http_client
        # Injected clients belong to the caller and are left open
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the reusable httpx client."""
        if self._http is None or self._http.is_closed:
            self._owns_client = True
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
        return self._http

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client and self._http is not None and not self._http.is_closed:
            await self._http.aclose()

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, str]] = None,
        token: Optional[str] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path relative to the base URL (e.g. "/institutions/").
            json: JSON body.
            params: Query parameters.
            token: Bearer token, if the endpoint requires one.

        Returns:
            Decoded JSON body.

        Raises:
            AuthFailureError: On 401/403.
            NetworkError: If the transport fails on every attempt.
            ProviderError: On any other error response or a non-JSON body.
        """
        client = self._get_client()
        headers = {"Authorization": f"Bearer {token}"} if token else None
        delay = self.retry_delay
        last_error: Optional[Exception] = None

        for attempt in range(self.retry_attempts):
            is_last = attempt == self.retry_attempts - 1
            try:
                response = await client.request(
                    method, path, json=json, params=params, headers=headers
                )
            except httpx.TransportError as e:
                last_error = e
                if is_last:
                    break
                logger.warning(
                    f"{method} {path} failed: {type(e).__name__}: {e}, retrying in {delay}s"
                )
                await asyncio.sleep(delay)
                delay *= 2
                continue

            if response.status_code in RETRYABLE_STATUS_CODES and not is_last:
                logger.warning(
                    f"{method} {path} returned {response.status_code}, retrying in {delay}s"
                )
                await asyncio.sleep(delay)
                delay *= 2
                continue

            if response.status_code in (401, 403):
                raise AuthFailureError(
                    f"Authentication failed: {response.status_code} - {_error_detail(response)}"
                )

            if response.is_error:
                raise ProviderError(
                    f"{method} {path} failed: {response.status_code} - {_error_detail(response)}",
                    status_code=response.status_code,
                )

            try:
                return response.json()
            except ValueError as e:
                raise ProviderError(
                    f"{method} {path} returned invalid JSON", status_code=response.status_code
                ) from e

        raise NetworkError(
            f"{method} {path} failed after {self.retry_attempts} attempts: {last_error}"
        ) from last_error
