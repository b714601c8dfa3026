"""Account data models: ledger accounts and bank-linked accounts."""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from bank_sync.utils.date_utils import utc_now_iso
from bank_sync.utils.decimal_utils import parse_amount


class AccountType(Enum):
    """Type of ledger account."""

    BANK = "bank"
    WALLET = "wallet"
    SAVINGS = "savings"
    CREDIT_CARD = "credit_card"
    CASH = "cash"
    OTHER = "other"


@dataclass
class LedgerAccount:
    """A ledger account with a running balance.

    Attributes:
        id: Unique identifier for this account.
        name: Human-readable account name (e.g., "Intesa Sanpaolo").
        account_type: Type of account.
        balance: Current balance, mutated once per accepted transaction.
        opening_balance: Balance before any recorded transaction.
        institution: Name of the financial institution, if known.
        created_at: ISO timestamp of creation.
    """

    name: str
    account_type: AccountType = AccountType.BANK
    balance: Decimal = field(default_factory=lambda: Decimal("0"))
    opening_balance: Decimal = field(default_factory=lambda: Decimal("0"))
    institution: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=utc_now_iso)

    def matches_institution(self, institution_name: str) -> bool:
        """Check if this account's name contains an institution name.

        Args:
            institution_name: Institution name to look for (case-insensitive).

        Returns:
            True if the name contains the institution name.
        """
        if not institution_name:
            return False
        return institution_name.lower() in self.name.lower()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ledger's record shape."""
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.account_type.value,
            "balance": str(self.balance),
            "openingBalance": str(self.opening_balance),
            "createdAt": self.created_at,
        }
        if self.institution:
            data["institution"] = self.institution
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LedgerAccount":
        """Create a LedgerAccount from a ledger record.

        Args:
            data: Dictionary containing account data.

        Returns:
            A new LedgerAccount instance.
        """
        account_type_str = str(data.get("type", "bank"))
        try:
            account_type = AccountType(account_type_str)
        except ValueError:
            account_type = AccountType.OTHER

        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            account_type=account_type,
            balance=parse_amount(data.get("balance", "0")),
            opening_balance=parse_amount(data.get("openingBalance", "0")),
            institution=str(data["institution"]) if data.get("institution") else None,
            created_at=str(data.get("createdAt") or utc_now_iso()),
        )

    def __repr__(self) -> str:
        return f"LedgerAccount(id={self.id!r}, name={self.name!r}, balance={self.balance})"


@dataclass
class LinkedAccount:
    """One bank account successfully authorized through the aggregator.

    Attributes:
        provider_account_id: Aggregator account id (unique among linked accounts).
        requisition_id: Requisition that granted access.
        institution_name: Bank display name.
        institution_logo: Bank logo URL.
        iban: Account IBAN, if disclosed.
        owner_name: Account holder name, if disclosed.
        currency: ISO currency code.
        product: Product label (e.g., "Conto Corrente").
        linked_at: ISO timestamp of the finalize that produced it.
    """

    provider_account_id: str
    requisition_id: str
    institution_name: str = ""
    institution_logo: str = ""
    iban: str = ""
    owner_name: str = ""
    currency: str = "EUR"
    product: str = ""
    linked_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_details(
        cls,
        provider_account_id: str,
        requisition_id: str,
        details: dict[str, Any],
        institution_name: str,
        institution_logo: str,
    ) -> "LinkedAccount":
        """Build from an ``/accounts/{id}/details/`` account object.

        Args:
            provider_account_id: Aggregator account id.
            requisition_id: Requisition that granted access.
            details: The ``account`` object of the details response.
            institution_name: Bank display name.
            institution_logo: Bank logo URL.

        Returns:
            A new LinkedAccount.
        """
        return cls(
            provider_account_id=provider_account_id,
            requisition_id=requisition_id,
            institution_name=institution_name,
            institution_logo=institution_logo,
            iban=str(details.get("iban") or ""),
            owner_name=str(details.get("ownerName") or ""),
            currency=str(details.get("currency") or "EUR"),
            product=str(details.get("product") or institution_name),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the state file's record shape."""
        return {
            "providerAccountId": self.provider_account_id,
            "requisitionId": self.requisition_id,
            "institutionName": self.institution_name,
            "institutionLogo": self.institution_logo,
            "iban": self.iban,
            "ownerName": self.owner_name,
            "currency": self.currency,
            "product": self.product,
            "linkedAt": self.linked_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LinkedAccount":
        """Create from a state file record.

        Older state files used ``goCardlessId``/``bankName``/``bankLogo``.
        """
        provider_account_id = data.get("providerAccountId") or data.get("goCardlessId")
        if not provider_account_id:
            raise KeyError("providerAccountId")

        return cls(
            provider_account_id=str(provider_account_id),
            requisition_id=str(data.get("requisitionId") or ""),
            institution_name=str(data.get("institutionName") or data.get("bankName") or ""),
            institution_logo=str(data.get("institutionLogo") or data.get("bankLogo") or ""),
            iban=str(data.get("iban") or ""),
            owner_name=str(data.get("ownerName") or ""),
            currency=str(data.get("currency") or "EUR"),
            product=str(data.get("product") or ""),
            linked_at=str(data.get("linkedAt") or utc_now_iso()),
        )

    def __repr__(self) -> str:
        return (
            f"LinkedAccount(provider_account_id={self.provider_account_id!r}, "
            f"institution={self.institution_name!r})"
        )
