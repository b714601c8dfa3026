"""Tests for the requisition and account-linking lifecycle."""

import pytest

from bank_sync.models.requisition import RequisitionStatus
from bank_sync.provider.connections import ConnectionOrchestrator
from bank_sync.service import BankSyncService

from conftest import SECRET_ID, SECRET_KEY, FakeAggregator

INTESA = "INTESA_SANPAOLO_BCITITMM"


def account_details(iban: str, owner: str = "Mario Rossi") -> dict:
    return {"account": {"iban": iban, "ownerName": owner, "currency": "EUR", "product": "Conto"}}


@pytest.fixture
def connections(service: BankSyncService) -> ConnectionOrchestrator:
    service.set_credentials(SECRET_ID, SECRET_KEY)
    return service.connections


def link_requisition(fake_aggregator: FakeAggregator, requisition_id: str, accounts: list[str]) -> None:
    fake_aggregator.requisitions[requisition_id]["status"] = "LN"
    fake_aggregator.requisitions[requisition_id]["accounts"] = accounts


class TestCreateConnection:
    """Tests for create_connection()."""

    @pytest.mark.asyncio
    async def test_stores_requisition(
        self, connections: ConnectionOrchestrator, fake_aggregator: FakeAggregator
    ) -> None:
        """Test a new requisition is stored with its link and redirect."""
        requisition = await connections.create_connection(INTESA)

        assert requisition.id == "req-1"
        assert requisition.link == "https://ob.test/auth/req-1"
        assert requisition.state is RequisitionStatus.CREATED
        assert [r.id for r in connections.requisitions()] == ["req-1"]
        assert fake_aggregator.requisitions["req-1"]["redirect"] == connections.provider_config.redirect_url

    @pytest.mark.asyncio
    async def test_empty_institution_rejected(self, connections: ConnectionOrchestrator) -> None:
        """Test a blank institution id is refused before any request."""
        with pytest.raises(ValueError):
            await connections.create_connection("  ")
        assert connections.requisitions() == []


class TestFinalize:
    """Tests for finalize()."""

    @pytest.mark.asyncio
    async def test_not_yet_authorized_is_pending(self, connections: ConnectionOrchestrator) -> None:
        """Test a requisition still in CR reports pending without linking."""
        await connections.create_connection(INTESA)

        result = await connections.finalize("req-1")

        assert result.success is False
        assert result.pending is True
        assert result.status == "CR"
        assert result.message == "Authorization not completed yet, try again."
        assert connections.linked_accounts() == []

    @pytest.mark.asyncio
    async def test_rejected_stays_pending_and_records_status(
        self, connections: ConnectionOrchestrator, fake_aggregator: FakeAggregator
    ) -> None:
        """Test a rejected requisition links nothing and its status is stored."""
        await connections.create_connection(INTESA)
        fake_aggregator.requisitions["req-1"]["status"] = "RJ"

        result = await connections.finalize("req-1")

        assert result.pending is True
        assert connections.linked_accounts() == []
        assert connections.state.get_requisition("req-1").status == "RJ"

    @pytest.mark.asyncio
    async def test_linked_without_accounts(
        self, connections: ConnectionOrchestrator, fake_aggregator: FakeAggregator
    ) -> None:
        """Test a linked requisition with no accounts fails without pending."""
        await connections.create_connection(INTESA)
        link_requisition(fake_aggregator, "req-1", [])

        result = await connections.finalize("req-1")

        assert result.success is False
        assert result.pending is False
        assert result.message == "No accounts found for this requisition."

    @pytest.mark.asyncio
    async def test_links_all_accounts(
        self, connections: ConnectionOrchestrator, fake_aggregator: FakeAggregator
    ) -> None:
        """Test every disclosed account is linked with its details."""
        await connections.create_connection(INTESA)
        link_requisition(fake_aggregator, "req-1", ["acc-1", "acc-2"])
        fake_aggregator.details["acc-1"] = account_details("IT60X0542811101000000123456")
        fake_aggregator.details["acc-2"] = account_details("IT60X0542811101000000654321")

        result = await connections.finalize("req-1", "Intesa Sanpaolo", "https://cdn.test/intesa.png")

        assert result.success is True
        assert result.message == "Linked 2 of 2 accounts."
        linked = connections.linked_accounts()
        assert [a.provider_account_id for a in linked] == ["acc-1", "acc-2"]
        assert linked[0].iban == "IT60X0542811101000000123456"
        assert linked[0].owner_name == "Mario Rossi"
        assert linked[0].requisition_id == "req-1"
        assert linked[0].institution_logo == "https://cdn.test/intesa.png"

    @pytest.mark.asyncio
    async def test_partial_detail_failure(
        self, connections: ConnectionOrchestrator, fake_aggregator: FakeAggregator
    ) -> None:
        """Test one unreadable account does not block the others."""
        await connections.create_connection(INTESA)
        link_requisition(fake_aggregator, "req-1", ["acc-1", "acc-2"])
        fake_aggregator.details["acc-2"] = account_details("IT60X0542811101000000654321")

        result = await connections.finalize("req-1", "Intesa Sanpaolo")

        assert result.success is True
        assert result.message == "Linked 1 of 2 accounts."
        assert [a.provider_account_id for a in result.accounts] == ["acc-2"]
        [failure] = result.failures
        assert failure.provider_account_id == "acc-1"
        assert "Account not found" in failure.error
        assert [a.provider_account_id for a in connections.linked_accounts()] == ["acc-2"]

    @pytest.mark.asyncio
    async def test_rejected_detail_call_skips_only_that_account(
        self, connections: ConnectionOrchestrator, fake_aggregator: FakeAggregator
    ) -> None:
        """Test an account whose details stay forbidden after re-auth is skipped."""
        await connections.create_connection(INTESA)
        link_requisition(fake_aggregator, "req-1", ["acc-bad", "acc-good"])
        fake_aggregator.details["acc-good"] = account_details("IT60X0542811101000000654321")
        fake_aggregator.queued["/accounts/acc-bad/details/"] = [403, 403]

        result = await connections.finalize("req-1", "Intesa Sanpaolo")

        assert result.success is True
        assert result.message == "Linked 1 of 2 accounts."
        [failure] = result.failures
        assert failure.provider_account_id == "acc-bad"
        assert "Authentication failed" in failure.error
        assert [a.provider_account_id for a in connections.linked_accounts()] == ["acc-good"]

    @pytest.mark.asyncio
    async def test_all_details_fail(
        self, connections: ConnectionOrchestrator, fake_aggregator: FakeAggregator
    ) -> None:
        """Test finalize fails when no account details can be read."""
        await connections.create_connection(INTESA)
        link_requisition(fake_aggregator, "req-1", ["acc-1"])

        result = await connections.finalize("req-1")

        assert result.success is False
        assert result.message == "Could not load details for any account."
        assert connections.linked_accounts() == []

    @pytest.mark.asyncio
    async def test_repeat_finalize_merges(
        self, connections: ConnectionOrchestrator, fake_aggregator: FakeAggregator
    ) -> None:
        """Test finalizing twice replaces accounts instead of duplicating them."""
        await connections.create_connection(INTESA)
        link_requisition(fake_aggregator, "req-1", ["acc-1"])
        fake_aggregator.details["acc-1"] = account_details("IT00OLD")

        await connections.finalize("req-1", "Intesa Sanpaolo")
        fake_aggregator.details["acc-1"] = account_details("IT00NEW")
        await connections.finalize("req-1", "Intesa Sanpaolo")

        [linked] = connections.linked_accounts()
        assert linked.iban == "IT00NEW"

    @pytest.mark.asyncio
    async def test_institution_name_defaults_to_institution_id(
        self, connections: ConnectionOrchestrator, fake_aggregator: FakeAggregator
    ) -> None:
        """Test the stored institution id names accounts when no name is given."""
        await connections.create_connection(INTESA)
        link_requisition(fake_aggregator, "req-1", ["acc-1"])
        fake_aggregator.details["acc-1"] = {"account": {"iban": "IT00"}}

        result = await connections.finalize("req-1")

        assert result.accounts[0].institution_name == INTESA
        assert result.accounts[0].product == INTESA

    @pytest.mark.asyncio
    async def test_duplicate_account_ids_linked_once(
        self, connections: ConnectionOrchestrator, fake_aggregator: FakeAggregator
    ) -> None:
        """Test repeated ids in the requisition produce one linked account."""
        await connections.create_connection(INTESA)
        link_requisition(fake_aggregator, "req-1", ["acc-1", "acc-1"])
        fake_aggregator.details["acc-1"] = account_details("IT00")

        result = await connections.finalize("req-1")

        assert result.message == "Linked 1 of 1 accounts."
        assert fake_aggregator.count("GET", "/accounts/acc-1/details/") == 1


class TestUnlink:
    """Tests for unlink()."""

    @pytest.mark.asyncio
    async def test_unlink_removes_only_that_account(
        self, connections: ConnectionOrchestrator, fake_aggregator: FakeAggregator
    ) -> None:
        """Test unlinking one account keeps the rest."""
        await connections.create_connection(INTESA)
        link_requisition(fake_aggregator, "req-1", ["acc-1", "acc-2"])
        fake_aggregator.details["acc-1"] = account_details("IT01")
        fake_aggregator.details["acc-2"] = account_details("IT02")
        await connections.finalize("req-1")

        assert connections.unlink("acc-1") is True
        assert connections.unlink("acc-1") is False
        assert [a.provider_account_id for a in connections.linked_accounts()] == ["acc-2"]
        assert connections.get_linked_account("acc-1") is None
