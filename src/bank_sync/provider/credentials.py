"""Aggregator API key pair storage."""

from dataclasses import dataclass
from typing import Callable, Optional

from bank_sync.errors import CredentialsMissingError
from bank_sync.state import BankingStateStore
from bank_sync.utils.logging_config import get_logger
from bank_sync.utils.sanitize import mask_secret

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProviderCredentials:
    """Aggregator API key pair.

    Attributes:
        secret_id: Public half of the key pair.
        secret_key: Private half of the key pair.
    """

    secret_id: str
    secret_key: str

    def __repr__(self) -> str:
        return (
            f"ProviderCredentials(secret_id={mask_secret(self.secret_id)!r}, "
            f"secret_key={mask_secret(self.secret_key)!r})"
        )


class ProviderCredentialStore:
    """Holds the API key pair and notifies listeners when it changes.

    Removing the credentials cascades: linked accounts and requisitions
    were granted under the old key pair and are cleared with it.
    """

    def __init__(self, state: BankingStateStore):
        self.state = state
        self._listeners: list[Callable[[], None]] = []

    def on_change(self, callback: Callable[[], None]) -> None:
        """Register a callback invoked synchronously on every set/remove."""
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in self._listeners:
            callback()

    def has_credentials(self) -> bool:
        return bool(self.state.secret_id and self.state.secret_key)

    def get(self) -> Optional[ProviderCredentials]:
        if not self.has_credentials():
            return None
        return ProviderCredentials(self.state.secret_id, self.state.secret_key)

    def require(self) -> ProviderCredentials:
        """Get the key pair or fail.

        Raises:
            CredentialsMissingError: If no key pair is configured.
        """
        credentials = self.get()
        if credentials is None:
            raise CredentialsMissingError()
        return credentials

    def set(self, secret_id: str, secret_key: str) -> ProviderCredentials:
        """Store a new key pair.

        Args:
            secret_id: Aggregator secret id.
            secret_key: Aggregator secret key.

        Returns:
            The stored credentials.

        Raises:
            ValueError: If either value is empty.
        """
        secret_id = (secret_id or "").strip()
        secret_key = (secret_key or "").strip()
        if not secret_id or not secret_key:
            raise ValueError("Both secret id and secret key are required")

        self.state.set_credentials(secret_id, secret_key)
        logger.info(f"Stored aggregator credentials (secret id {mask_secret(secret_id)})")
        self._notify()
        return ProviderCredentials(secret_id, secret_key)

    def remove(self) -> None:
        """Remove the key pair, linked accounts and requisitions."""
        linked = len(self.state.linked_accounts)
        self.state.clear()
        logger.info(f"Removed aggregator credentials and {linked} linked accounts")
        self._notify()
