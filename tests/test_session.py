"""Tests for credentials, token caching, and authenticated requests."""

import asyncio
from pathlib import Path

import httpx
import pytest

from bank_sync.errors import AuthFailureError, CredentialsMissingError
from bank_sync.provider.client import AggregatorClient
from bank_sync.provider.credentials import ProviderCredentialStore
from bank_sync.provider.session import SessionTokenManager
from bank_sync.provider.transport import AggregatorTransport
from bank_sync.state import BankingStateStore

from conftest import BASE_URL, SECRET_ID, SECRET_KEY, FakeAggregator, FakeClock


@pytest.fixture
def credentials(tmp_path: Path) -> ProviderCredentialStore:
    return ProviderCredentialStore(BankingStateStore(tmp_path / "banking-state.yaml"))


@pytest.fixture
def session(
    credentials: ProviderCredentialStore, http_client: httpx.AsyncClient, clock: FakeClock
) -> SessionTokenManager:
    transport = AggregatorTransport(BASE_URL, retry_delay=0.0, http_client=http_client)
    return SessionTokenManager(credentials, transport, margin_seconds=3600, clock=clock)


class TestProviderCredentialStore:
    """Tests for ProviderCredentialStore."""

    def test_set_strips_and_persists(self, credentials: ProviderCredentialStore, tmp_path: Path) -> None:
        """Test values are trimmed and written to the state file."""
        credentials.set(f"  {SECRET_ID} ", SECRET_KEY)

        reloaded = BankingStateStore(tmp_path / "banking-state.yaml")
        assert reloaded.secret_id == SECRET_ID
        assert reloaded.secret_key == SECRET_KEY

    def test_set_requires_both_values(self, credentials: ProviderCredentialStore) -> None:
        """Test empty values are rejected."""
        with pytest.raises(ValueError):
            credentials.set(SECRET_ID, "   ")
        assert credentials.has_credentials() is False

    def test_require_without_credentials(self, credentials: ProviderCredentialStore) -> None:
        """Test require() raises when nothing is configured."""
        with pytest.raises(CredentialsMissingError):
            credentials.require()

    def test_listeners_notified(self, credentials: ProviderCredentialStore) -> None:
        """Test set and remove both notify listeners."""
        events: list[str] = []
        credentials.on_change(lambda: events.append("changed"))

        credentials.set(SECRET_ID, SECRET_KEY)
        credentials.remove()

        assert events == ["changed", "changed"]
        assert credentials.get() is None

    def test_repr_masks_secrets(self, credentials: ProviderCredentialStore) -> None:
        """Test secrets never appear in full in repr."""
        stored = credentials.set(SECRET_ID, SECRET_KEY)
        assert SECRET_KEY not in repr(stored)
        assert SECRET_KEY[-4:] in repr(stored)


class TestSessionTokenManager:
    """Tests for SessionTokenManager."""

    @pytest.mark.asyncio
    async def test_token_reused_within_window(
        self,
        session: SessionTokenManager,
        credentials: ProviderCredentialStore,
        fake_aggregator: FakeAggregator,
        clock: FakeClock,
    ) -> None:
        """Test two calls inside the validity window make one token request."""
        credentials.set(SECRET_ID, SECRET_KEY)

        first = await session.get_token()
        clock.advance(3600)
        second = await session.get_token()

        assert first == second == "token-1"
        assert fake_aggregator.count("POST", "/token/new/") == 1

    @pytest.mark.asyncio
    async def test_refresh_inside_margin(
        self,
        session: SessionTokenManager,
        credentials: ProviderCredentialStore,
        fake_aggregator: FakeAggregator,
        clock: FakeClock,
    ) -> None:
        """Test a token is replaced once within the margin of its expiry."""
        credentials.set(SECRET_ID, SECRET_KEY)

        await session.get_token()
        # 24h lifetime minus 1h margin
        clock.advance(86400 - 3600 - 1)
        assert await session.get_token() == "token-1"
        clock.advance(1)
        assert await session.get_token() == "token-2"
        assert fake_aggregator.token_calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_request(
        self,
        session: SessionTokenManager,
        credentials: ProviderCredentialStore,
        fake_aggregator: FakeAggregator,
    ) -> None:
        """Test simultaneous callers wait for a single token fetch."""
        credentials.set(SECRET_ID, SECRET_KEY)

        tokens = await asyncio.gather(*(session.get_token() for _ in range(5)))

        assert set(tokens) == {"token-1"}
        assert fake_aggregator.token_calls == 1

    @pytest.mark.asyncio
    async def test_credential_change_invalidates(
        self,
        session: SessionTokenManager,
        credentials: ProviderCredentialStore,
        fake_aggregator: FakeAggregator,
    ) -> None:
        """Test setting new credentials drops the cached token."""
        credentials.set(SECRET_ID, SECRET_KEY)
        await session.get_token()

        credentials.set(SECRET_ID, SECRET_KEY)

        assert session.has_valid_token is False
        assert await session.get_token() == "token-2"

    @pytest.mark.asyncio
    async def test_missing_credentials(self, session: SessionTokenManager) -> None:
        """Test get_token() fails fast without a key pair."""
        with pytest.raises(CredentialsMissingError):
            await session.get_token()

    @pytest.mark.asyncio
    async def test_rejected_credentials(
        self,
        session: SessionTokenManager,
        credentials: ProviderCredentialStore,
        fake_aggregator: FakeAggregator,
    ) -> None:
        """Test a 401 on the token endpoint raises AuthFailureError."""
        credentials.set(SECRET_ID, "wrong-secret-key")

        with pytest.raises(AuthFailureError, match="Authentication failed"):
            await session.get_token()
        assert session.has_valid_token is False

    @pytest.mark.asyncio
    async def test_missing_access_token(
        self,
        session: SessionTokenManager,
        credentials: ProviderCredentialStore,
        fake_aggregator: FakeAggregator,
    ) -> None:
        """Test a token response without an access token is an auth failure."""
        credentials.set(SECRET_ID, SECRET_KEY)
        fake_aggregator.token_override = {"refresh": "r"}

        with pytest.raises(AuthFailureError):
            await session.get_token()


class TestAggregatorClient:
    """Tests for bearer-authenticated requests."""

    @pytest.mark.asyncio
    async def test_rejected_token_refreshed_once(
        self,
        session: SessionTokenManager,
        credentials: ProviderCredentialStore,
        fake_aggregator: FakeAggregator,
    ) -> None:
        """Test a revoked token is replaced and the request retried."""
        credentials.set(SECRET_ID, SECRET_KEY)
        client = AggregatorClient(session.transport, session)
        await session.get_token()
        fake_aggregator.revoke_tokens()

        institutions = await client.list_institutions("IT")

        assert len(institutions) == 2
        assert fake_aggregator.token_calls == 2

    @pytest.mark.asyncio
    async def test_second_rejection_raises(
        self,
        session: SessionTokenManager,
        credentials: ProviderCredentialStore,
        fake_aggregator: FakeAggregator,
    ) -> None:
        """Test a request still rejected after refresh raises AuthFailureError."""
        credentials.set(SECRET_ID, SECRET_KEY)
        client = AggregatorClient(session.transport, session)
        fake_aggregator.queued["/institutions/"] = [401, 401]

        with pytest.raises(AuthFailureError):
            await client.list_institutions("IT")
        assert fake_aggregator.count("GET", "/institutions/") == 2


class TestTokenGeneration:
    """Tests for credential changes racing a token fetch."""

    @pytest.mark.asyncio
    async def test_token_fetched_across_credential_change_not_cached(
        self, credentials: ProviderCredentialStore, clock: FakeClock
    ) -> None:
        """Test a token issued for replaced credentials is not reused."""
        started = asyncio.Event()
        release = asyncio.Event()
        issued: list[str] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            issued.append(f"token-{len(issued) + 1}")
            token = issued[-1]
            started.set()
            await release.wait()
            return httpx.Response(200, json={"access": token, "access_expires": 86400})

        client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        transport = AggregatorTransport(BASE_URL, retry_delay=0.0, http_client=client)
        session = SessionTokenManager(credentials, transport, clock=clock)
        credentials.set(SECRET_ID, SECRET_KEY)

        pending = asyncio.create_task(session.get_token())
        await started.wait()
        credentials.set("other-secret-id", "other-secret-key")
        release.set()

        assert await pending == "token-1"
        assert session.has_valid_token is False
        assert await session.get_token() == "token-2"
        await client.aclose()
