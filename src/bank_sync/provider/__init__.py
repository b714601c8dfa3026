"""Aggregator access: credentials, session, HTTP client, and connections."""

from bank_sync.provider.client import AggregatorClient
from bank_sync.provider.connections import ConnectionOrchestrator
from bank_sync.provider.credentials import ProviderCredentials, ProviderCredentialStore
from bank_sync.provider.institutions import InstitutionCatalog
from bank_sync.provider.session import SessionTokenManager
from bank_sync.provider.transport import AggregatorTransport

__all__ = [
    "AggregatorTransport",
    "AggregatorClient",
    "ProviderCredentials",
    "ProviderCredentialStore",
    "SessionTokenManager",
    "InstitutionCatalog",
    "ConnectionOrchestrator",
]
