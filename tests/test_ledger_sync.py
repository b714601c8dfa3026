"""Tests for single-writer ledger application."""

import asyncio
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest

from bank_sync.errors import LedgerError
from bank_sync.ledger import FileLedger
from bank_sync.models.transaction import CanonicalTransaction, TransactionType
from bank_sync.processing.balance_calculator import BalanceCalculator
from bank_sync.processing.ledger_sync import LedgerSync


def make_txn(
    bank_ref: Optional[str], amount: str, account_id: Optional[str], title: str = "Shop"
) -> CanonicalTransaction:
    value = Decimal(amount)
    return CanonicalTransaction(
        title=f"{title} {bank_ref}",
        date="2026-03-01",
        amount=value,
        transaction_type=TransactionType.for_amount(value),
        category="Other",
        account_id=account_id,
        bank_ref=bank_ref,
    )


class FailingLedger(FileLedger):
    """FileLedger that fails on the Nth create_transaction call."""

    def __init__(self, path: Path, fail_on: int):
        super().__init__(path)
        self.fail_on = fail_on
        self.calls = 0

    def create_transaction(self, txn: CanonicalTransaction) -> CanonicalTransaction:
        self.calls += 1
        if self.calls == self.fail_on:
            raise LedgerError("write failed")
        return super().create_transaction(txn)


class TestLedgerSync:
    """Tests for LedgerSync."""

    @pytest.mark.asyncio
    async def test_apply_imports_and_counts(self, tmp_path: Path) -> None:
        """Test a fresh batch is fully imported."""
        ledger = FileLedger.in_directory(tmp_path)
        account = ledger.create_account("Main")
        batch = [make_txn("A", "-10.00", account.id), make_txn("B", "25.50", account.id)]

        result = await LedgerSync(ledger).apply(batch)

        assert result.success is True
        assert (result.imported, result.total, result.skipped) == (2, 2, 0)
        assert ledger.get_account(account.id).balance == Decimal("15.50")

    @pytest.mark.asyncio
    async def test_replay_imports_nothing(self, tmp_path: Path) -> None:
        """Test applying the same batch twice commits it once."""
        ledger = FileLedger.in_directory(tmp_path)
        account = ledger.create_account("Main")
        sync = LedgerSync(ledger)
        batch = [make_txn("A", "-10.00", account.id), make_txn("B", "-5.00", account.id)]

        await sync.apply(batch)
        replay = await sync.apply(batch)

        assert (replay.imported, replay.total, replay.skipped) == (0, 2, 2)
        assert len(ledger.list_transactions()) == 2
        assert ledger.get_account(account.id).balance == Decimal("-15.00")

    @pytest.mark.asyncio
    async def test_total_reflects_normalized_batch(self, tmp_path: Path) -> None:
        """Test an explicit total is reported and skipped derives from it."""
        ledger = FileLedger.in_directory(tmp_path)

        result = await LedgerSync(ledger).apply([make_txn("A", "1.00", None)], total=3)

        assert (result.imported, result.total, result.skipped) == (1, 3, 2)

    @pytest.mark.asyncio
    async def test_concurrent_applies_do_not_double_count(self, tmp_path: Path) -> None:
        """Test overlapping batches applied concurrently commit each ref once."""
        ledger = FileLedger.in_directory(tmp_path)
        account = ledger.create_account("Main", opening_balance=Decimal("100"))
        sync = LedgerSync(ledger)
        first = [make_txn(f"T{i}", "-1.00", account.id) for i in range(0, 6)]
        second = [make_txn(f"T{i}", "-1.00", account.id) for i in range(3, 9)]

        results = await asyncio.gather(sync.apply(first), sync.apply(second), sync.apply(first))

        assert sum(r.imported for r in results) == 9
        refs = [t.bank_ref for t in ledger.list_transactions()]
        assert sorted(refs) == sorted(f"T{i}" for i in range(9))
        assert ledger.get_account(account.id).balance == Decimal("91.00")

    @pytest.mark.asyncio
    async def test_mid_batch_failure_reports_partial_import(self, tmp_path: Path) -> None:
        """Test a ledger failure stops the batch and a replay resumes it."""
        ledger = FailingLedger(tmp_path / "ledger.json", fail_on=3)
        account = ledger.create_account("Main")
        sync = LedgerSync(ledger)
        batch = [make_txn(f"T{i}", "-2.00", account.id) for i in range(5)]

        failed = await sync.apply(batch)

        assert failed.success is False
        assert failed.imported == 2
        assert failed.error == "write failed"
        assert ledger.get_account(account.id).balance == Decimal("-4.00")

        resumed = await sync.apply(batch)

        assert resumed.success is True
        assert resumed.imported == 3
        assert ledger.get_account(account.id).balance == Decimal("-10.00")

    @pytest.mark.asyncio
    async def test_manual_entries_share_the_lock(self, tmp_path: Path) -> None:
        """Test manual entries interleaved with syncs keep balances consistent."""
        ledger = FileLedger.in_directory(tmp_path)
        account = ledger.create_account("Main", opening_balance=Decimal("20"))
        sync = LedgerSync(ledger)
        manual = make_txn(None, "-3.00", account.id, title="Cash")

        await asyncio.gather(
            sync.apply([make_txn("A", "-1.00", account.id)]),
            sync.add_transaction(manual),
            sync.apply([make_txn("B", "4.00", account.id)]),
        )

        assert ledger.get_account(account.id).balance == Decimal("20.00")
        assert BalanceCalculator().find_discrepancies(
            ledger.list_accounts(), ledger.list_transactions()
        ) == []


class TestBalanceInvariant:
    """Tests for the balance == opening + sum invariant."""

    @pytest.mark.asyncio
    async def test_invariant_holds_after_imports(self, tmp_path: Path) -> None:
        """Test every account's balance equals opening balance plus its amounts."""
        ledger = FileLedger.in_directory(tmp_path)
        main = ledger.create_account("Main", opening_balance=Decimal("1000.00"))
        card = ledger.create_account("Card", opening_balance=Decimal("-50.00"))
        sync = LedgerSync(ledger)

        await sync.apply([make_txn("M1", "-45.90", main.id), make_txn("C1", "-9.99", card.id)])
        await sync.apply([make_txn("M2", "1200.00", main.id), make_txn("X", "-1.00", None)])
        await sync.apply([make_txn("M1", "-45.90", main.id)])

        calculator = BalanceCalculator()
        assert calculator.find_discrepancies(ledger.list_accounts(), ledger.list_transactions()) == []
        totals = calculator.account_totals(ledger.list_transactions())
        assert totals[main.id]["net"] == Decimal("1154.10")
        assert ledger.get_account(main.id).balance == Decimal("2154.10")
        assert ledger.get_account(card.id).balance == Decimal("-59.99")

    def test_discrepancy_reported(self, tmp_path: Path) -> None:
        """Test a tampered balance is detected."""
        ledger = FileLedger.in_directory(tmp_path)
        account = ledger.create_account("Main")
        account.balance = Decimal("5.00")

        [discrepancy] = BalanceCalculator().find_discrepancies([account], [])

        assert discrepancy.account_id == account.id
        assert discrepancy.expected_balance == Decimal("0")
        assert discrepancy.difference == Decimal("5.00")
