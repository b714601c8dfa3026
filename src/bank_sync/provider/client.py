"""Authenticated wrappers over the aggregator REST endpoints."""

from typing import Any, Optional

from bank_sync.errors import AuthFailureError, ProviderError
from bank_sync.provider.session import SessionTokenManager
from bank_sync.provider.transport import AggregatorTransport
from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


class AggregatorClient:
    """Calls aggregator endpoints with a bearer token from the session."""

    def __init__(self, transport: AggregatorTransport, session: SessionTokenManager):
        self.transport = transport
        self.session = session

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, str]] = None,
    ) -> Any:
        """Send an authenticated request.

        A rejected token is invalidated and the request retried once with a
        fresh one. A second rejection raises AuthFailureError.
        """
        token = await self.session.get_token()
        try:
            return await self.transport.send(method, path, json=json, params=params, token=token)
        except AuthFailureError:
            logger.info(f"{method} {path}: token rejected, refreshing and retrying once")
            self.session.invalidate()

        token = await self.session.get_token()
        return await self.transport.send(method, path, json=json, params=params, token=token)

    async def list_institutions(self, country: str) -> list[dict[str, Any]]:
        data = await self._request("GET", "/institutions/", params={"country": country})
        if not isinstance(data, list):
            raise ProviderError("Institution list response is not a list")
        return data

    async def create_requisition(
        self, institution_id: str, redirect: str, user_language: str
    ) -> dict[str, Any]:
        data = await self._request(
            "POST",
            "/requisitions/",
            json={
                "redirect": redirect,
                "institution_id": institution_id,
                "user_language": user_language,
            },
        )
        if not isinstance(data, dict) or not data.get("id") or not data.get("link"):
            raise ProviderError("Requisition response is missing id or link")
        return data

    async def get_requisition(self, requisition_id: str) -> dict[str, Any]:
        data = await self._request("GET", f"/requisitions/{requisition_id}/")
        if not isinstance(data, dict):
            raise ProviderError("Requisition response is not an object")
        return data

    async def get_account_details(self, account_id: str) -> dict[str, Any]:
        data = await self._request("GET", f"/accounts/{account_id}/details/")
        if not isinstance(data, dict):
            raise ProviderError("Account details response is not an object")
        return data

    async def get_transactions(
        self, account_id: str, date_from: str, date_to: str
    ) -> dict[str, Any]:
        """Fetch transactions for an account in an inclusive ISO date range.

        Returns:
            The raw ``{"transactions": {"booked": [...], "pending": [...]}}`` body.
        """
        data = await self._request(
            "GET",
            f"/accounts/{account_id}/transactions/",
            params={"date_from": date_from, "date_to": date_to},
        )
        if not isinstance(data, dict):
            raise ProviderError("Transactions response is not an object")
        return data

    async def get_balances(self, account_id: str) -> dict[str, Any]:
        data = await self._request("GET", f"/accounts/{account_id}/balances/")
        if not isinstance(data, dict):
            raise ProviderError("Balances response is not an object")
        return data
