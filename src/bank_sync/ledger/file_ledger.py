"""JSON file backed ledger."""

import json
import os
import tempfile
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from bank_sync.errors import LedgerError, UnknownAccountError
from bank_sync.ledger.base import Ledger
from bank_sync.models.account import AccountType, LedgerAccount
from bank_sync.models.transaction import CanonicalTransaction
from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)

# Ledger file name inside the data directory
LEDGER_FILE_NAME = "ledger.json"


class FileLedger(Ledger):
    """Ledger stored as a single JSON document.

    The document is ``{"accounts": [...], "transactions": [...]}``. Each
    change rewrites the whole document through a temporary file and
    ``os.replace``, so a transaction and its balance delta land together.

    Note: This class is NOT thread-safe. Writers are serialized by
    LedgerSync.
    """

    def __init__(self, path: Path):
        """Initialize and load the ledger file.

        Args:
            path: Path to the ledger document (created on first write).

        Raises:
            LedgerError: If an existing file cannot be read.
        """
        self.path = path
        self._accounts: list[LedgerAccount] = []
        self._transactions: list[CanonicalTransaction] = []
        self._load()

    @classmethod
    def in_directory(cls, data_dir: Path) -> "FileLedger":
        """Open the ledger file inside a data directory."""
        return cls(data_dir / LEDGER_FILE_NAME)

    def _load(self) -> None:
        if not self.path.exists():
            return

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            self._accounts = [LedgerAccount.from_dict(a) for a in data.get("accounts", [])]
            self._transactions = [
                CanonicalTransaction.from_dict(t) for t in data.get("transactions", [])
            ]
        except (OSError, ValueError, KeyError, AttributeError) as e:
            raise LedgerError(f"Cannot read ledger {self.path}: {e}") from e

        logger.debug(
            f"Loaded ledger: {len(self._accounts)} accounts, "
            f"{len(self._transactions)} transactions"
        )

    def _write(self, accounts: list[LedgerAccount], transactions: list[CanonicalTransaction]) -> None:
        data: dict[str, Any] = {
            "accounts": [a.to_dict() for a in accounts],
            "transactions": [t.to_dict() for t in transactions],
        }

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".ledger-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise LedgerError(f"Cannot write ledger {self.path}: {e}") from e

    def list_transactions(self) -> list[CanonicalTransaction]:
        return list(self._transactions)

    def create_transaction(self, txn: CanonicalTransaction) -> CanonicalTransaction:
        accounts = self._accounts
        if txn.account_id is not None:
            account = self.get_account(txn.account_id)
            if account is None:
                raise UnknownAccountError(txn.account_id)
            updated = LedgerAccount(
                id=account.id,
                name=account.name,
                account_type=account.account_type,
                balance=account.balance + txn.amount,
                opening_balance=account.opening_balance,
                institution=account.institution,
                created_at=account.created_at,
            )
            accounts = [updated if a.id == account.id else a for a in self._accounts]

        transactions = self._transactions + [txn]
        # Persist first; memory only changes once the document is on disk
        self._write(accounts, transactions)
        self._accounts = accounts
        self._transactions = transactions
        return txn

    def list_accounts(self) -> list[LedgerAccount]:
        return list(self._accounts)

    def get_account(self, account_id: str) -> Optional[LedgerAccount]:
        for account in self._accounts:
            if account.id == account_id:
                return account
        return None

    def create_account(
        self,
        name: str,
        account_type: AccountType = AccountType.BANK,
        opening_balance: Decimal = Decimal("0"),
        institution: Optional[str] = None,
    ) -> LedgerAccount:
        """Create an account whose balance starts at its opening balance.

        Raises:
            ValueError: If name is empty.
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Account name is required")

        account = LedgerAccount(
            name=name,
            account_type=account_type,
            balance=opening_balance,
            opening_balance=opening_balance,
            institution=institution,
        )
        accounts = self._accounts + [account]
        self._write(accounts, self._transactions)
        self._accounts = accounts
        logger.info(f"Created ledger account {account.name} ({account.id})")
        return account
