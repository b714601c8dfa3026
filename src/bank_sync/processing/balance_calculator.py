"""Balance verification for ledger accounts."""

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from bank_sync.models.account import LedgerAccount
from bank_sync.models.transaction import CanonicalTransaction
from bank_sync.utils.decimal_utils import quantize_amount, sum_amounts
from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class BalanceDiscrepancy:
    """An account whose stored balance disagrees with its transactions."""

    account_id: str
    account_name: str
    stored_balance: Decimal
    expected_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.expected_balance


class BalanceCalculator:
    """Checks that each balance equals opening balance plus transaction sum."""

    def account_totals(
        self, transactions: Iterable[CanonicalTransaction]
    ) -> dict[str, dict[str, Decimal]]:
        """Get transaction totals by account.

        Args:
            transactions: Ledger transactions.

        Returns:
            Dict mapping account_id to summary dict with:
            - total_credits
            - total_debits
            - net
        Transactions without an account are not included.
        """
        by_account: dict[str, list[Decimal]] = defaultdict(list)
        for txn in transactions:
            if txn.account_id is not None:
                by_account[txn.account_id].append(txn.amount)

        totals: dict[str, dict[str, Decimal]] = {}
        for account_id, amounts in by_account.items():
            credits = sum_amounts([a for a in amounts if a > 0])
            debits = sum_amounts([a for a in amounts if a < 0])
            totals[account_id] = {
                "total_credits": credits,
                "total_debits": debits,
                "net": credits + debits,
            }
        return totals

    def find_discrepancies(
        self,
        accounts: Iterable[LedgerAccount],
        transactions: Iterable[CanonicalTransaction],
    ) -> list[BalanceDiscrepancy]:
        """Find accounts whose balance breaks the running-sum invariant.

        Balances are compared at cent precision.

        Args:
            accounts: Ledger accounts.
            transactions: Ledger transactions.

        Returns:
            Discrepancies, in account order (empty if all balances agree).
        """
        totals = self.account_totals(transactions)
        discrepancies = []

        for account in accounts:
            net = totals.get(account.id, {}).get("net", Decimal("0"))
            expected = account.opening_balance + net
            if quantize_amount(account.balance) != quantize_amount(expected):
                logger.warning(
                    f"Balance mismatch on {account.name}: "
                    f"stored {account.balance}, expected {expected}"
                )
                discrepancies.append(
                    BalanceDiscrepancy(account.id, account.name, account.balance, expected)
                )

        return discrepancies
