"""Persistence of aggregator credentials, linked accounts, and requisitions."""

import os
import tempfile
from pathlib import Path
from typing import Any, Optional

import yaml

from bank_sync.config import ConfigError
from bank_sync.models.account import LinkedAccount
from bank_sync.models.requisition import Requisition
from bank_sync.utils.date_utils import utc_now_iso
from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)

# State file name inside the data directory
STATE_FILE_NAME = "banking-state.yaml"


class BankingStateStore:
    """Local configuration/state file owned by the bank connection layer.

    The file holds ``secretId``, ``secretKey``, ``linkedAccounts`` and
    ``requisitions``. Every mutation is written immediately with an atomic
    replace, and the file is readable by the owner only.

    Note: This class is NOT thread-safe. It is meant to be owned by a single
    event loop.
    """

    def __init__(self, path: Path):
        """Initialize and load the state file.

        Args:
            path: Path to the state file (created on first save).

        Raises:
            ConfigError: If an existing state file is malformed.
        """
        self.path = path
        self.secret_id = ""
        self.secret_key = ""
        self.linked_accounts: list[LinkedAccount] = []
        self.requisitions: list[Requisition] = []
        self._load()

    @classmethod
    def in_directory(cls, data_dir: Path) -> "BankingStateStore":
        """Open the state file inside a data directory."""
        return cls(data_dir / STATE_FILE_NAME)

    def _load(self) -> None:
        if not self.path.exists():
            logger.debug(f"No state file at {self.path}, starting empty")
            return

        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid state file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"State file {self.path} must contain a mapping")

        try:
            self.secret_id = str(data.get("secretId") or "")
            self.secret_key = str(data.get("secretKey") or "")
            self.linked_accounts = [
                LinkedAccount.from_dict(item) for item in data.get("linkedAccounts") or []
            ]
            self.requisitions = [
                Requisition.from_dict(item) for item in data.get("requisitions") or []
            ]
        except (KeyError, TypeError, AttributeError) as e:
            raise ConfigError(f"Malformed record in state file {self.path}: {e}") from e

        logger.info(
            f"Loaded state: {len(self.linked_accounts)} linked accounts, "
            f"{len(self.requisitions)} requisitions"
        )

    def save(self) -> None:
        """Write the state file atomically."""
        data: dict[str, Any] = {
            "secretId": self.secret_id,
            "secretKey": self.secret_key,
            "linkedAccounts": [acc.to_dict() for acc in self.linked_accounts],
            "requisitions": [req.to_dict() for req in self.requisitions],
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".state-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    # Credentials

    def set_credentials(self, secret_id: str, secret_key: str) -> None:
        self.secret_id = secret_id
        self.secret_key = secret_key
        self.save()

    def clear(self) -> None:
        """Remove credentials and everything that depended on them."""
        self.secret_id = ""
        self.secret_key = ""
        self.linked_accounts = []
        self.requisitions = []
        self.save()

    # Requisitions

    def add_requisition(self, requisition: Requisition) -> None:
        self.requisitions.append(requisition)
        self.save()

    def get_requisition(self, requisition_id: str) -> Optional[Requisition]:
        for requisition in self.requisitions:
            if requisition.id == requisition_id:
                return requisition
        return None

    def update_requisition_status(self, requisition_id: str, status: str) -> None:
        """Record the latest provider status of a stored requisition.

        Unknown requisition ids are ignored (the requisition may have been
        created by another installation).
        """
        requisition = self.get_requisition(requisition_id)
        if requisition is None or requisition.status == status:
            return
        requisition.status = status
        requisition.updated_at = utc_now_iso()
        self.save()

    # Linked accounts

    def get_linked_account(self, provider_account_id: str) -> Optional[LinkedAccount]:
        for account in self.linked_accounts:
            if account.provider_account_id == provider_account_id:
                return account
        return None

    def upsert_linked_accounts(self, accounts: list[LinkedAccount]) -> None:
        """Merge accounts by provider id: replace if present, else append."""
        if not accounts:
            return

        index = {acc.provider_account_id: i for i, acc in enumerate(self.linked_accounts)}
        for account in accounts:
            position = index.get(account.provider_account_id)
            if position is None:
                index[account.provider_account_id] = len(self.linked_accounts)
                self.linked_accounts.append(account)
            else:
                self.linked_accounts[position] = account
        self.save()

    def remove_linked_account(self, provider_account_id: str) -> bool:
        """Remove a linked account.

        Returns:
            True if an account was removed.
        """
        remaining = [
            acc for acc in self.linked_accounts if acc.provider_account_id != provider_account_id
        ]
        if len(remaining) == len(self.linked_accounts):
            return False
        self.linked_accounts = remaining
        self.save()
        return True
