"""Requisition (authorization attempt) and institution models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from bank_sync.utils.date_utils import utc_now_iso

# Used when an institution does not report its history depth
DEFAULT_MAX_HISTORY_DAYS = 90


class RequisitionStatus(Enum):
    """Requisition status codes reported by the aggregator."""

    CREATED = "CR"
    INITIATED = "ID"
    GIVING_CONSENT = "GC"
    UNDERGOING_AUTHENTICATION = "UA"
    SELECTING_ACCOUNTS = "SA"
    GRANTING_ACCESS = "GA"
    LINKED = "LN"
    REJECTED = "RJ"
    EXPIRED = "EX"
    SUSPENDED = "SU"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, code: Optional[str]) -> "RequisitionStatus":
        """Map a provider code to a status, OTHER for unknown codes."""
        try:
            return cls(str(code).upper())
        except ValueError:
            return cls.OTHER

    @property
    def is_linked(self) -> bool:
        return self is RequisitionStatus.LINKED

    @property
    def is_terminal(self) -> bool:
        """Whether no further progress is possible without a new requisition."""
        return self in (
            RequisitionStatus.LINKED,
            RequisitionStatus.REJECTED,
            RequisitionStatus.EXPIRED,
            RequisitionStatus.SUSPENDED,
        )


@dataclass
class Requisition:
    """One authorization attempt for one institution.

    Attributes:
        id: Aggregator requisition id.
        institution_id: Institution the user picked.
        link: External authorization URL to open in a browser.
        status: Last known provider status code.
        created_at: ISO timestamp of creation.
        updated_at: ISO timestamp of the last status refresh.
    """

    id: str
    institution_id: str
    link: str
    status: str = RequisitionStatus.CREATED.value
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: Optional[str] = None

    @property
    def state(self) -> RequisitionStatus:
        return RequisitionStatus.parse(self.status)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "institutionId": self.institution_id,
            "link": self.link,
            "status": self.status,
            "createdAt": self.created_at,
        }
        if self.updated_at:
            data["updatedAt"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Requisition":
        """Create from a state file record (``bankId`` is the legacy key)."""
        return cls(
            id=str(data["id"]),
            institution_id=str(data.get("institutionId") or data.get("bankId") or ""),
            link=str(data.get("link") or ""),
            status=str(data.get("status") or RequisitionStatus.CREATED.value),
            created_at=str(data.get("createdAt") or utc_now_iso()),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class Institution:
    """A bank supported by the aggregator."""

    id: str
    name: str
    logo: str = ""
    countries: list[str] = field(default_factory=list)
    max_history_days: int = DEFAULT_MAX_HISTORY_DAYS

    @classmethod
    def from_provider(cls, data: dict[str, Any]) -> "Institution":
        """Create from an ``/institutions/`` entry."""
        try:
            max_days = int(data.get("transaction_total_days") or DEFAULT_MAX_HISTORY_DAYS)
        except (TypeError, ValueError):
            max_days = DEFAULT_MAX_HISTORY_DAYS

        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            logo=str(data.get("logo") or ""),
            countries=[str(c) for c in data.get("countries") or []],
            max_history_days=max_days if max_days > 0 else DEFAULT_MAX_HISTORY_DAYS,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "logo": self.logo,
            "countries": list(self.countries),
            "maxHistoryDays": self.max_history_days,
        }
