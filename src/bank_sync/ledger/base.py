"""Abstract base class for ledgers."""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from bank_sync.models.account import AccountType, LedgerAccount
from bank_sync.models.transaction import CanonicalTransaction


class Ledger(ABC):
    """Contract for the store that holds accounts and transactions.

    Subclasses must implement:
    - list_transactions(): All stored transactions
    - create_transaction(): Store one transaction and apply its balance delta
    - list_accounts() / get_account() / create_account(): Account access

    create_transaction() must store the transaction and adjust the account
    balance together, so a failure leaves neither change behind.
    """

    @abstractmethod
    def list_transactions(self) -> list[CanonicalTransaction]:
        pass

    @abstractmethod
    def create_transaction(self, txn: CanonicalTransaction) -> CanonicalTransaction:
        """Store a transaction and add its amount to its account's balance.

        A transaction without an account_id is stored with no balance effect.

        Args:
            txn: Transaction to store.

        Returns:
            The stored transaction.

        Raises:
            UnknownAccountError: If txn.account_id names no account.
            LedgerError: If the change cannot be persisted.
        """
        pass

    @abstractmethod
    def list_accounts(self) -> list[LedgerAccount]:
        pass

    @abstractmethod
    def get_account(self, account_id: str) -> Optional[LedgerAccount]:
        pass

    @abstractmethod
    def create_account(
        self,
        name: str,
        account_type: AccountType = AccountType.BANK,
        opening_balance: Decimal = Decimal("0"),
        institution: Optional[str] = None,
    ) -> LedgerAccount:
        pass
