"""Shared fixtures: an in-memory aggregator behind httpx.MockTransport."""

import json
import re
from pathlib import Path
from typing import Any, Optional, Union

import httpx
import pytest

from bank_sync.config import Config, ProviderConfig, load_default_categories
from bank_sync.models.account import LinkedAccount
from bank_sync.service import BankSyncService

BASE_URL = "https://aggregator.test/api/v2"
SECRET_ID = "test-secret-id-0001"
SECRET_KEY = "test-secret-key-0002"

ACCOUNT_PATH = re.compile(r"^/accounts/([^/]+)/(details|transactions|balances)/$")
REQUISITION_PATH = re.compile(r"^/requisitions/([^/]+)/$")


class FakeAggregator:
    """Minimal stand-in for the aggregator REST API.

    Tests tweak the public attributes to shape responses. ``queued`` maps a
    path to status codes (or "timeout") returned before normal handling.
    """

    def __init__(self) -> None:
        self.valid_keys = (SECRET_ID, SECRET_KEY)
        self.access_expires = 86400
        self.token_override: Optional[dict[str, Any]] = None
        self.token_calls = 0
        self.issued_tokens: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.queued: dict[str, list[Union[int, str]]] = {}
        self.institutions: list[dict[str, Any]] = [
            {
                "id": "INTESA_SANPAOLO_BCITITMM",
                "name": "Intesa Sanpaolo",
                "logo": "https://cdn.test/intesa.png",
                "countries": ["IT"],
                "transaction_total_days": "540",
            },
            {
                "id": "FINECO_FEBIITM2XXX",
                "name": "Fineco",
                "logo": "https://cdn.test/fineco.png",
                "countries": ["IT"],
            },
        ]
        self.requisitions: dict[str, dict[str, Any]] = {}
        self.details: dict[str, dict[str, Any]] = {}
        self.transactions: dict[str, list[dict[str, Any]]] = {}
        self.pending: dict[str, list[dict[str, Any]]] = {}
        self.balances: dict[str, list[dict[str, Any]]] = {}
        self.last_params: Optional[dict[str, str]] = None

    def revoke_tokens(self) -> None:
        self.issued_tokens.clear()

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call == (method, path))

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/v2")
        self.calls.append((request.method, path))

        queued = self.queued.get(path)
        if queued:
            status = queued.pop(0)
            if status == "timeout":
                raise httpx.ConnectTimeout("timed out", request=request)
            return httpx.Response(int(status), json={"detail": f"forced {status}"})

        if path == "/token/new/":
            return self._token(request)

        auth = request.headers.get("Authorization", "")
        if auth.removeprefix("Bearer ") not in self.issued_tokens:
            return httpx.Response(401, json={"summary": "Invalid token", "status_code": 401})

        if path == "/institutions/":
            country = request.url.params.get("country")
            return httpx.Response(
                200, json=[i for i in self.institutions if country in i.get("countries", [])]
            )

        if path == "/requisitions/" and request.method == "POST":
            body = json.loads(request.content)
            requisition_id = f"req-{len(self.requisitions) + 1}"
            self.requisitions[requisition_id] = {
                "id": requisition_id,
                "status": "CR",
                "institution_id": body["institution_id"],
                "redirect": body["redirect"],
                "accounts": [],
            }
            return httpx.Response(
                201,
                json={
                    "id": requisition_id,
                    "link": f"https://ob.test/auth/{requisition_id}",
                    "status": "CR",
                },
            )

        match = REQUISITION_PATH.match(path)
        if match:
            requisition = self.requisitions.get(match.group(1))
            if requisition is None:
                return httpx.Response(404, json={"summary": "Not found", "detail": "Requisition not found"})
            return httpx.Response(200, json=requisition)

        match = ACCOUNT_PATH.match(path)
        if match:
            account_id, resource = match.groups()
            if resource == "details":
                if account_id not in self.details:
                    return httpx.Response(404, json={"detail": "Account not found"})
                return httpx.Response(200, json=self.details[account_id])
            if resource == "transactions":
                self.last_params = dict(request.url.params)
                return httpx.Response(
                    200,
                    json={
                        "transactions": {
                            "booked": self.transactions.get(account_id, []),
                            "pending": self.pending.get(account_id, []),
                        }
                    },
                )
            return httpx.Response(200, json={"balances": self.balances.get(account_id, [])})

        return httpx.Response(404, json={"detail": f"No route for {path}"})

    def _token(self, request: httpx.Request) -> httpx.Response:
        if self.token_override is not None:
            return httpx.Response(200, json=self.token_override)
        body = json.loads(request.content)
        if (body.get("secret_id"), body.get("secret_key")) != self.valid_keys:
            return httpx.Response(401, json={"summary": "Authentication failed", "status_code": 401})
        self.token_calls += 1
        token = f"token-{self.token_calls}"
        self.issued_tokens.add(token)
        return httpx.Response(
            200,
            json={"access": token, "access_expires": self.access_expires, "refresh": "refresh"},
        )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def booked_transaction(
    transaction_id: Optional[str],
    amount: str,
    description: str,
    booking_date: str = "2026-03-01",
) -> dict[str, Any]:
    """Build a booked transaction as the aggregator returns it."""
    data: dict[str, Any] = {
        "transactionAmount": {"amount": amount, "currency": "EUR"},
        "bookingDate": booking_date,
        "remittanceInformationUnstructured": description,
    }
    if transaction_id is not None:
        data["transactionId"] = transaction_id
    return data


@pytest.fixture
def fake_aggregator() -> FakeAggregator:
    return FakeAggregator()


@pytest.fixture
def http_client(fake_aggregator: FakeAggregator) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(fake_aggregator.handler))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> Config:
    rules, default_category = load_default_categories()
    return Config(
        provider=ProviderConfig(base_url=BASE_URL, retry_delay=0.0),
        category_rules=rules,
        default_category=default_category,
    )


@pytest.fixture
def service(
    config: Config, tmp_path: Path, http_client: httpx.AsyncClient, clock: FakeClock
) -> BankSyncService:
    return BankSyncService.create(config, tmp_path, http_client=http_client, clock=clock)


@pytest.fixture
def linked_service(service: BankSyncService) -> BankSyncService:
    """Service with credentials and one linked Intesa account (acc-1)."""
    service.set_credentials(SECRET_ID, SECRET_KEY)
    service.state.upsert_linked_accounts(
        [LinkedAccount("acc-1", "req-1", institution_name="Intesa Sanpaolo")]
    )
    return service
