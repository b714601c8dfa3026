"""Public orchestration boundary for bank connections and syncs."""

import time
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Optional

import httpx

from bank_sync.config import Config
from bank_sync.errors import BankSyncError, UnknownAccountError
from bank_sync.ledger import FileLedger, Ledger
from bank_sync.models.account import AccountType, LedgerAccount, LinkedAccount
from bank_sync.models.requisition import Requisition
from bank_sync.models.results import FinalizeResult, OperationResult, SyncAllResult, SyncResult
from bank_sync.models.transaction import CanonicalTransaction, TransactionType
from bank_sync.processing.balance_calculator import BalanceCalculator, BalanceDiscrepancy
from bank_sync.processing.categorizer import Categorizer
from bank_sync.processing.deduplicator import Deduplicator
from bank_sync.processing.ledger_sync import LedgerSync
from bank_sync.processing.normalizer import TransactionNormalizer
from bank_sync.provider.client import AggregatorClient
from bank_sync.provider.connections import ConnectionOrchestrator
from bank_sync.provider.credentials import ProviderCredentialStore
from bank_sync.provider.institutions import InstitutionCatalog
from bank_sync.provider.session import SessionTokenManager
from bank_sync.provider.transport import AggregatorTransport
from bank_sync.state import BankingStateStore
from bank_sync.utils.date_utils import date_to_iso, default_sync_window, validate_date_range
from bank_sync.utils.decimal_utils import parse_amount, safe_decimal
from bank_sync.utils.logging_config import LogContext, get_logger

logger = get_logger(__name__)

# Source marker for transactions entered by hand
MANUAL_SOURCE = "manual"

# Balance types in order of preference
BALANCE_TYPE_PREFERENCE = ("interimAvailable", "expected")


def pick_balance(balances: list[dict[str, Any]]) -> dict[str, Any]:
    """Choose the most useful balance from a ``/balances/`` response.

    Prefers interimAvailable, then expected, else the first entry.

    Returns:
        Dict with ``amount`` (Decimal), ``currency`` and ``balanceType``.
        Amount is 0 when the provider reports no balances.
    """
    if not balances:
        return {"amount": Decimal("0"), "currency": None, "balanceType": None}

    chosen = balances[0]
    for balance_type in BALANCE_TYPE_PREFERENCE:
        match = next((b for b in balances if b.get("balanceType") == balance_type), None)
        if match is not None:
            chosen = match
            break

    amount_info = chosen.get("balanceAmount") or {}
    return {
        "amount": safe_decimal(amount_info.get("amount")),
        "currency": amount_info.get("currency"),
        "balanceType": chosen.get("balanceType"),
    }


class BankSyncService:
    """Connects banks through the aggregator and syncs them into the ledger.

    Every public operation catches expected failures (BankSyncError and
    invalid arguments) and reports them in its result. ConfigError and
    unexpected exceptions propagate.

    Use create() to build a fully wired service, and close it with
    aclose() or ``async with``.
    """

    def __init__(
        self,
        config: Config,
        state: BankingStateStore,
        credentials: ProviderCredentialStore,
        transport: AggregatorTransport,
        session: SessionTokenManager,
        catalog: InstitutionCatalog,
        connections: ConnectionOrchestrator,
        normalizer: TransactionNormalizer,
        ledger: Ledger,
        ledger_sync: LedgerSync,
    ):
        self.config = config
        self.state = state
        self.credentials = credentials
        self.transport = transport
        self.session = session
        self.catalog = catalog
        self.connections = connections
        self.normalizer = normalizer
        self.ledger = ledger
        self.ledger_sync = ledger_sync
        self.balance_calculator = BalanceCalculator()

    @classmethod
    def create(
        cls,
        config: Config,
        data_dir: Path,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], float]] = None,
        ledger: Optional[Ledger] = None,
    ) -> "BankSyncService":
        """Build a service with its state file and ledger in data_dir.

        Args:
            config: Loaded configuration.
            data_dir: Directory holding banking-state.yaml and ledger.json.
            http_client: HTTP client to use (tests pass one with a mock transport).
            clock: Monotonic clock for token expiry.
            ledger: Ledger to write to (default: FileLedger in data_dir).

        Raises:
            ConfigError: If the state file is malformed.
            LedgerError: If the ledger file cannot be read.
        """
        provider = config.provider
        state = BankingStateStore.in_directory(data_dir)
        credentials = ProviderCredentialStore(state)
        transport = AggregatorTransport(
            provider.base_url,
            timeout=provider.timeout_seconds,
            retry_attempts=provider.retry_attempts,
            retry_delay=provider.retry_delay,
            http_client=http_client,
        )
        session = SessionTokenManager(
            credentials,
            transport,
            margin_seconds=provider.token_expiry_margin_seconds,
            clock=clock or time.monotonic,
        )
        client = AggregatorClient(transport, session)
        ledger = ledger if ledger is not None else FileLedger.in_directory(data_dir)

        return cls(
            config=config,
            state=state,
            credentials=credentials,
            transport=transport,
            session=session,
            catalog=InstitutionCatalog(client),
            connections=ConnectionOrchestrator(client, state, provider),
            normalizer=TransactionNormalizer(Categorizer.from_config(config)),
            ledger=ledger,
            ledger_sync=LedgerSync(ledger, Deduplicator()),
        )

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "BankSyncService":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # Credentials

    def has_credentials(self) -> bool:
        return self.credentials.has_credentials()

    def set_credentials(self, secret_id: str, secret_key: str) -> OperationResult:
        try:
            with LogContext(logger, "set_credentials"):
                self.credentials.set(secret_id, secret_key)
        except (BankSyncError, ValueError) as e:
            return OperationResult.fail(str(e))
        return OperationResult.ok(message="Credentials saved.")

    def remove_credentials(self) -> OperationResult:
        """Remove credentials along with every linked account and requisition."""
        with LogContext(logger, "remove_credentials"):
            self.credentials.remove()
        return OperationResult.ok(message="Credentials and linked accounts removed.")

    # Connections

    async def list_institutions(self, country: Optional[str] = None) -> OperationResult:
        country = country or self.config.provider.default_country
        try:
            with LogContext(logger, "list_institutions", country=country):
                institutions = await self.catalog.list_institutions(country)
        except (BankSyncError, ValueError) as e:
            return OperationResult.fail(str(e))
        return OperationResult.ok(institutions)

    async def create_connection(self, institution_id: str) -> OperationResult:
        try:
            with LogContext(logger, "create_connection", institution_id=institution_id):
                requisition = await self.connections.create_connection(institution_id)
        except (BankSyncError, ValueError) as e:
            return OperationResult.fail(str(e))
        return OperationResult.ok(requisition, message="Open the link to authorize access.")

    async def finalize(
        self,
        requisition_id: str,
        institution_name: str = "",
        institution_logo: str = "",
    ) -> FinalizeResult:
        try:
            with LogContext(logger, "finalize", requisition_id=requisition_id):
                return await self.connections.finalize(
                    requisition_id, institution_name, institution_logo
                )
        except BankSyncError as e:
            return FinalizeResult.fail(str(e))

    def linked_accounts(self) -> list[LinkedAccount]:
        return self.connections.linked_accounts()

    def requisitions(self) -> list[Requisition]:
        return self.connections.requisitions()

    def unlink(self, provider_account_id: str) -> OperationResult:
        if not self.connections.unlink(provider_account_id):
            return OperationResult.fail(f"Linked account not found: {provider_account_id}")
        return OperationResult.ok(message="Account unlinked.")

    # Sync

    async def sync(
        self,
        provider_account_id: str,
        ledger_account_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> SyncResult:
        """Fetch, normalize, dedupe and apply one linked account's transactions.

        Args:
            provider_account_id: Linked account to sync.
            ledger_account_id: Ledger account to book into (default: resolved
                by institution name when enabled, else none).
            date_from: First day to fetch (default: history_days ago).
            date_to: Last day to fetch (default: today).

        Returns:
            SyncResult for this account.
        """
        linked = self.state.get_linked_account(provider_account_id)
        if linked is None:
            return SyncResult.fail(
                f"Linked account not found: {provider_account_id}", provider_account_id
            )

        try:
            with LogContext(logger, "sync", provider_account_id=provider_account_id):
                window_from, window_to = self._sync_window(date_from, date_to)
                ledger_account = self._resolve_ledger_account(linked, ledger_account_id)
                raw = await self.connections.client.get_transactions(
                    provider_account_id, date_to_iso(window_from), date_to_iso(window_to)
                )
                candidates = self.normalizer.normalize(
                    raw,
                    account_label=ledger_account.name if ledger_account else linked.institution_name,
                    ledger_account_id=ledger_account.id if ledger_account else None,
                )
                result = await self.ledger_sync.apply(candidates)
        except (BankSyncError, ValueError) as e:
            return SyncResult.fail(str(e), provider_account_id)

        result.provider_account_id = provider_account_id
        return result

    async def sync_all(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> SyncAllResult:
        """Sync every linked account in turn; one failure does not stop the rest."""
        results = SyncAllResult()
        for linked in self.linked_accounts():
            result = await self.sync(
                linked.provider_account_id, date_from=date_from, date_to=date_to
            )
            if not result.success:
                logger.warning(f"Sync failed for {linked.provider_account_id}: {result.error}")
            results.results.append(result)

        logger.info(
            f"Synced {len(results.results)} accounts: {results.imported} imported, "
            f"{len(results.failed)} failed"
        )
        return results

    def _sync_window(
        self, date_from: Optional[date], date_to: Optional[date]
    ) -> tuple[date, date]:
        default_from, default_to = default_sync_window(self.config.sync.history_days)
        window = (date_from or default_from, date_to or default_to)
        validate_date_range(*window)
        return window

    def _resolve_ledger_account(
        self, linked: LinkedAccount, ledger_account_id: Optional[str]
    ) -> Optional[LedgerAccount]:
        if ledger_account_id:
            account = self.ledger.get_account(ledger_account_id)
            if account is None:
                raise UnknownAccountError(ledger_account_id)
            return account

        if not self.config.sync.match_ledger_account_by_name:
            return None

        for account in self.ledger.list_accounts():
            if account.matches_institution(linked.institution_name):
                logger.debug(f"Matched {linked.institution_name} to ledger account {account.name}")
                return account

        logger.info(
            f"No ledger account matches {linked.institution_name!r}; "
            "transactions will be recorded without an account"
        )
        return None

    async def get_balance(self, provider_account_id: str) -> OperationResult:
        """Fetch the provider-reported balance of a linked account."""
        if self.state.get_linked_account(provider_account_id) is None:
            return OperationResult.fail(f"Linked account not found: {provider_account_id}")

        try:
            with LogContext(logger, "get_balance", provider_account_id=provider_account_id):
                data = await self.connections.client.get_balances(provider_account_id)
        except BankSyncError as e:
            return OperationResult.fail(str(e))

        balances = [b for b in data.get("balances") or [] if isinstance(b, dict)]
        return OperationResult.ok(pick_balance(balances))

    # Ledger

    async def add_transaction(
        self,
        title: str,
        amount: object,
        txn_date: Optional[date] = None,
        account_id: Optional[str] = None,
        category: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
    ) -> OperationResult:
        """Record a manual transaction through the shared ledger lock."""
        try:
            with LogContext(logger, "add_transaction", account_id=account_id):
                value = parse_amount(amount)
                title = (title or "").strip()
                if not title:
                    raise ValueError("Transaction title is required")
                txn = CanonicalTransaction(
                    title=title,
                    date=date_to_iso(txn_date or date.today()),
                    amount=value,
                    transaction_type=transaction_type or TransactionType.for_amount(value),
                    category=category or self.normalizer.categorizer.categorize(title),
                    account_id=account_id,
                    source=MANUAL_SOURCE,
                )
                if account_id:
                    account = self.ledger.get_account(account_id)
                    txn.account_name = account.name if account else None
                stored = await self.ledger_sync.add_transaction(txn)
        except (BankSyncError, ValueError) as e:
            return OperationResult.fail(str(e))
        return OperationResult.ok(stored)

    def create_ledger_account(
        self,
        name: str,
        account_type: AccountType = AccountType.BANK,
        opening_balance: object = "0",
        institution: Optional[str] = None,
    ) -> OperationResult:
        try:
            account = self.ledger.create_account(
                name, account_type, parse_amount(opening_balance), institution
            )
        except (BankSyncError, ValueError) as e:
            return OperationResult.fail(str(e))
        return OperationResult.ok(account)

    def check_balances(self) -> list[BalanceDiscrepancy]:
        """List ledger accounts whose balance disagrees with their transactions."""
        return self.balance_calculator.find_discrepancies(
            self.ledger.list_accounts(), self.ledger.list_transactions()
        )
