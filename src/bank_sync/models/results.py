"""Structured results returned across the service boundary."""

from dataclasses import dataclass, field
from typing import Any, Optional

from bank_sync.models.account import LinkedAccount


@dataclass
class OperationResult:
    """Generic success/failure result.

    Attributes:
        success: Whether the operation succeeded.
        data: Payload on success.
        error: Error text on failure.
        message: Optional human-readable note.
    """

    success: bool
    data: Any = None
    error: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "OperationResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str) -> "OperationResult":
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        result: dict[str, Any] = {"success": True, "data": _serialize(self.data)}
        if self.message:
            result["message"] = self.message
        return result


@dataclass
class SyncResult:
    """Result of syncing one linked account into the ledger.

    Attributes:
        success: Whether the batch completed.
        imported: Transactions committed to the ledger.
        total: Size of the normalized batch.
        skipped: Transactions rejected as already present (total - imported on success).
        error: Error text on failure.
        provider_account_id: Linked account that was synced, if known.
    """

    success: bool
    imported: int = 0
    total: int = 0
    skipped: int = 0
    error: Optional[str] = None
    provider_account_id: Optional[str] = None

    @classmethod
    def fail(cls, error: str, provider_account_id: Optional[str] = None) -> "SyncResult":
        return cls(success=False, error=error, provider_account_id=provider_account_id)

    def to_dict(self) -> dict[str, Any]:
        if not self.success and self.imported == 0:
            return {"success": False, "error": self.error}
        result: dict[str, Any] = {
            "success": self.success,
            "imported": self.imported,
            "total": self.total,
            "skipped": self.skipped,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class SyncAllResult:
    """Aggregate of sequential per-account syncs."""

    results: list[SyncResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True when every account synced (vacuously true with no accounts)."""
        return all(r.success for r in self.results)

    @property
    def imported(self) -> int:
        return sum(r.imported for r in self.results)

    @property
    def total(self) -> int:
        return sum(r.total for r in self.results)

    @property
    def skipped(self) -> int:
        return sum(r.skipped for r in self.results)

    @property
    def failed(self) -> list[SyncResult]:
        return [r for r in self.results if not r.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "imported": self.imported,
            "total": self.total,
            "skipped": self.skipped,
            "accounts": [
                {"providerAccountId": r.provider_account_id, **r.to_dict()}
                for r in self.results
            ],
        }


@dataclass
class LinkOutcome:
    """Per-account outcome of a finalize.

    Exactly one of ``account`` or ``error`` is set.
    """

    provider_account_id: str
    account: Optional[LinkedAccount] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.account is not None


@dataclass
class FinalizeResult:
    """Result of a finalize attempt on a requisition.

    Attributes:
        success: True when at least one account was linked.
        status: Provider requisition status code.
        message: Human-readable explanation.
        pending: True when authorization has not completed yet (caller retries).
        outcomes: Per-account link outcomes.
    """

    success: bool
    status: Optional[str] = None
    message: Optional[str] = None
    pending: bool = False
    outcomes: list[LinkOutcome] = field(default_factory=list)

    @property
    def accounts(self) -> list[LinkedAccount]:
        return [o.account for o in self.outcomes if o.account is not None]

    @property
    def failures(self) -> list[LinkOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @classmethod
    def fail(cls, error: str, status: Optional[str] = None) -> "FinalizeResult":
        return cls(success=False, status=status, message=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status,
            "message": self.message,
            "pending": self.pending,
            "accounts": [a.to_dict() for a in self.accounts],
            "failures": [
                {"providerAccountId": o.provider_account_id, "error": o.error}
                for o in self.failures
            ],
        }


def _serialize(value: Any) -> Any:
    """Convert model payloads to plain data for callers."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value
