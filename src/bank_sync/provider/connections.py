"""Bank authorization lifecycle: requisitions and linked accounts."""

from typing import Any, Optional

from bank_sync.config import ProviderConfig
from bank_sync.errors import (
    AccountDetailUnavailableError,
    AuthFailureError,
    AuthorizationIncompleteError,
    NetworkError,
    NoAccountsFoundError,
    ProviderError,
)
from bank_sync.models.account import LinkedAccount
from bank_sync.models.requisition import Requisition, RequisitionStatus
from bank_sync.models.results import FinalizeResult, LinkOutcome
from bank_sync.provider.client import AggregatorClient
from bank_sync.state import BankingStateStore
from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


class ConnectionOrchestrator:
    """Runs the authorization state machine for one institution at a time.

    The flow is:
    1. create_connection() registers a requisition and returns its link
    2. The user authorizes on the institution's site (outside this process)
    3. finalize() polls the requisition and links every disclosed account

    finalize() is idempotent: callers may repeat it until the requisition
    reaches a terminal status.
    """

    def __init__(
        self,
        client: AggregatorClient,
        state: BankingStateStore,
        provider_config: ProviderConfig,
    ):
        """Initialize orchestrator.

        Args:
            client: Authenticated aggregator client.
            state: State file holding requisitions and linked accounts.
            provider_config: Redirect URL and consent language.
        """
        self.client = client
        self.state = state
        self.provider_config = provider_config

    async def create_connection(self, institution_id: str) -> Requisition:
        """Start authorization for an institution.

        Args:
            institution_id: Aggregator institution id.

        Returns:
            The stored requisition, whose ``link`` the user must open.

        Raises:
            ValueError: If institution_id is empty.
        """
        institution_id = (institution_id or "").strip()
        if not institution_id:
            raise ValueError("Institution id is required")

        data = await self.client.create_requisition(
            institution_id,
            redirect=self.provider_config.redirect_url,
            user_language=self.provider_config.user_language,
        )
        requisition = Requisition(
            id=str(data["id"]),
            institution_id=institution_id,
            link=str(data["link"]),
            status=str(data.get("status") or RequisitionStatus.CREATED.value),
        )
        self.state.add_requisition(requisition)
        logger.info(f"Created requisition {requisition.id} for {institution_id}")
        return requisition

    async def finalize(
        self,
        requisition_id: str,
        institution_name: str = "",
        institution_logo: str = "",
    ) -> FinalizeResult:
        """Turn an authorized requisition into linked accounts.

        Args:
            requisition_id: Requisition returned by create_connection().
            institution_name: Bank display name stored on each linked account.
            institution_logo: Bank logo URL stored on each linked account.

        Returns:
            FinalizeResult. Pending authorization and per-account detail
            failures are reported in the result, not raised.

        Raises:
            NetworkError, AuthFailureError, ProviderError: If the requisition
                itself cannot be read.
        """
        data = await self.client.get_requisition(requisition_id)
        status = str(data.get("status") or RequisitionStatus.OTHER.value)
        self.state.update_requisition_status(requisition_id, status)

        try:
            account_ids = self._linked_account_ids(data, status)
        except AuthorizationIncompleteError as e:
            logger.info(f"Requisition {requisition_id} not linked yet (status {e.status})")
            return FinalizeResult(
                success=False, status=e.status, message=str(e), pending=True
            )
        except NoAccountsFoundError as e:
            logger.warning(f"Requisition {requisition_id} is linked but exposes no accounts")
            return FinalizeResult.fail(str(e), status=status)

        institution_name = institution_name or self._institution_id_for(requisition_id)
        outcomes: list[LinkOutcome] = []
        for account_id in account_ids:
            try:
                account = await self._link_account(
                    account_id, requisition_id, institution_name, institution_logo
                )
            except AccountDetailUnavailableError as e:
                logger.warning(str(e))
                outcomes.append(LinkOutcome(account_id, error=e.reason))
                continue
            outcomes.append(LinkOutcome(account_id, account=account))

        linked = [o.account for o in outcomes if o.account is not None]
        self.state.upsert_linked_accounts(linked)

        if not linked:
            result = FinalizeResult(
                success=False,
                status=status,
                message="Could not load details for any account.",
                outcomes=outcomes,
            )
        else:
            result = FinalizeResult(
                success=True,
                status=status,
                message=f"Linked {len(linked)} of {len(account_ids)} accounts.",
                outcomes=outcomes,
            )

        logger.info(
            f"Finalized requisition {requisition_id}: "
            f"{len(linked)} linked, {len(outcomes) - len(linked)} failed"
        )
        return result

    def _linked_account_ids(self, data: dict[str, Any], status: str) -> list[str]:
        if not RequisitionStatus.parse(status).is_linked:
            raise AuthorizationIncompleteError(status)

        accounts = data.get("accounts") or []
        # Keep provider order, drop repeats
        account_ids = list(dict.fromkeys(str(a) for a in accounts if a))
        if not account_ids:
            raise NoAccountsFoundError()
        return account_ids

    def _institution_id_for(self, requisition_id: str) -> str:
        requisition = self.state.get_requisition(requisition_id)
        return requisition.institution_id if requisition else ""

    async def _link_account(
        self,
        account_id: str,
        requisition_id: str,
        institution_name: str,
        institution_logo: str,
    ) -> LinkedAccount:
        try:
            data = await self.client.get_account_details(account_id)
        except (AuthFailureError, NetworkError, ProviderError) as e:
            raise AccountDetailUnavailableError(account_id, str(e)) from e

        details = data.get("account")
        if not isinstance(details, dict):
            raise AccountDetailUnavailableError(account_id, "response has no account object")

        return LinkedAccount.from_details(
            account_id, requisition_id, details, institution_name, institution_logo
        )

    def unlink(self, provider_account_id: str) -> bool:
        """Forget a linked account.

        Returns:
            False if the account was not linked.
        """
        removed = self.state.remove_linked_account(provider_account_id)
        if removed:
            logger.info(f"Unlinked account {provider_account_id}")
        else:
            logger.warning(f"Unlink requested for unknown account {provider_account_id}")
        return removed

    def linked_accounts(self) -> list[LinkedAccount]:
        return list(self.state.linked_accounts)

    def get_linked_account(self, provider_account_id: str) -> Optional[LinkedAccount]:
        return self.state.get_linked_account(provider_account_id)

    def requisitions(self) -> list[Requisition]:
        return list(self.state.requisitions)
