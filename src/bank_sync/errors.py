"""Exception taxonomy for bank connection and reconciliation."""

from typing import Optional


class BankSyncError(Exception):
    """Base exception for all expected bank sync failures."""

    pass


class CredentialsMissingError(BankSyncError):
    """Raised when no aggregator API key pair is configured."""

    def __init__(self, message: str = "Aggregator API keys are not configured."):
        super().__init__(message)


class AuthFailureError(BankSyncError):
    """Raised when the aggregator rejects the key pair or the bearer token."""

    pass


class NetworkError(BankSyncError):
    """Raised on transport-level failures after retries are exhausted."""

    pass


class ProviderError(BankSyncError):
    """Raised when the aggregator answers with an unexpected error or payload.

    Attributes:
        status_code: HTTP status code, if the failure came from a response.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthorizationIncompleteError(BankSyncError):
    """Raised when a requisition is not linked yet.

    This is an expected, retryable state: the user may not have finished
    the consent flow on the institution's site.

    Attributes:
        status: Provider status code of the requisition.
    """

    def __init__(self, status: str, message: str = "Authorization not completed yet, try again."):
        super().__init__(message)
        self.status = status


class AccountDetailUnavailableError(BankSyncError):
    """Raised when one account's details cannot be fetched during finalize."""

    def __init__(self, provider_account_id: str, reason: str):
        super().__init__(f"Details unavailable for account {provider_account_id}: {reason}")
        self.provider_account_id = provider_account_id
        self.reason = reason


class NoAccountsFoundError(BankSyncError):
    """Raised when a linked requisition exposes no accounts."""

    def __init__(self, message: str = "No accounts found for this requisition."):
        super().__init__(message)


class LedgerError(BankSyncError):
    """Raised when the ledger rejects or fails to persist a change."""

    pass


class UnknownAccountError(LedgerError):
    """Raised when a transaction references a ledger account that does not exist."""

    def __init__(self, account_id: str):
        super().__init__(f"Ledger account not found: {account_id}")
        self.account_id = account_id
