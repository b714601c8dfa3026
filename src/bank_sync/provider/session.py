"""Bearer token acquisition and caching."""

import asyncio
import time
from typing import Callable, Optional

from bank_sync.errors import AuthFailureError
from bank_sync.provider.credentials import ProviderCredentialStore
from bank_sync.provider.transport import AggregatorTransport
from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)

TOKEN_PATH = "/token/new/"

# Lifetime assumed when the provider omits access_expires (24h)
DEFAULT_ACCESS_EXPIRES = 86400


class SessionTokenManager:
    """Obtains and caches the aggregator bearer token.

    A cached token is reused until it is within ``margin_seconds`` of its
    reported expiry. Concurrent callers share a single ``/token/new/``
    request. Credential changes invalidate the cache synchronously.
    """

    def __init__(
        self,
        credentials: ProviderCredentialStore,
        transport: AggregatorTransport,
        margin_seconds: int = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize token manager.

        Args:
            credentials: Credential store (the manager subscribes to its changes).
            transport: Transport used for the token request.
            margin_seconds: Refresh this long before the reported expiry.
            clock: Monotonic clock in seconds (injectable for tests).
        """
        self.credentials = credentials
        self.transport = transport
        self.margin_seconds = margin_seconds
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        # Bumped on every invalidation so in-flight fetches can tell they are stale
        self._generation = 0
        self._lock = asyncio.Lock()
        credentials.on_change(self.invalidate)

    @property
    def has_valid_token(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    def invalidate(self) -> None:
        """Drop the cached token."""
        if self._token is not None:
            logger.debug("Session token invalidated")
        self._token = None
        self._expires_at = 0.0
        self._generation += 1

    async def get_token(self) -> str:
        """Return a valid bearer token, fetching a new one if needed.

        Raises:
            CredentialsMissingError: If no key pair is configured.
            AuthFailureError: If the provider rejects the key pair.
            NetworkError: If the token endpoint is unreachable.
        """
        async with self._lock:
            if self.has_valid_token:
                return self._token  # type: ignore[return-value]

            credentials = self.credentials.require()
            generation = self._generation
            data = await self.transport.send(
                "POST",
                TOKEN_PATH,
                json={"secret_id": credentials.secret_id, "secret_key": credentials.secret_key},
            )

            token = data.get("access") if isinstance(data, dict) else None
            if not token:
                raise AuthFailureError("Token response did not include an access token")

            try:
                lifetime = int(data.get("access_expires") or DEFAULT_ACCESS_EXPIRES)
            except (TypeError, ValueError):
                lifetime = DEFAULT_ACCESS_EXPIRES

            if generation != self._generation:
                # Credentials changed mid-fetch: serve this caller, cache nothing
                logger.debug("Credentials changed during token fetch, not caching")
                return str(token)

            self._token = str(token)
            self._expires_at = self._clock() + lifetime - self.margin_seconds
            logger.info(f"Obtained session token valid for {lifetime}s")
            return self._token
