"""Test fixtures for Firefly MCP tests.

HTTP is served by `FakeFirefly`, an in-process stand-in for the Firefly III
API plugged into the client through `httpx.MockTransport`.
"""

import json
from typing import Any, Callable

import httpx
import pytest

from firefly_mcp.client import ApiConfig, FireflyClient
from firefly_mcp.ledger import Ledger
from firefly_mcp.period import PeriodWindow
from firefly_mcp.utils import normalize_account_type


API_URL = "https://firefly.test/api/v1"
API_PREFIX = "/api/v1"

Responder = Callable[[httpx.Request], httpx.Response]


def envelope(data: Any, current_page: int = 1, total_pages: int = 1, total: int | None = None) -> dict:
    """Build a Firefly response envelope."""
    if total is None:
        total = len(data) if isinstance(data, list) else 1
    return {
        "data": data,
        "meta": {
            "pagination": {
                "current_page": current_page,
                "total_pages": total_pages,
                "total": total,
            }
        },
    }


class FakeFirefly:
    """Routes requests to canned responses and records every request."""

    def __init__(self):
        self.routes: list[tuple[str, str, dict[str, str], Responder]] = []
        self.requests: list[httpx.Request] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def add(self, method: str, path: str, responder: Responder | httpx.Response, **match: str) -> None:
        """Register a responder for method + path, optionally matching query params."""
        if isinstance(responder, httpx.Response):
            response = responder

            def responder(request: httpx.Request) -> httpx.Response:
                return httpx.Response(response.status_code, content=response.content)

        # Later registrations win
        self.routes.insert(0, (method, path, match, responder))

    def add_json(self, method: str, path: str, body: Any, status_code: int = 200, **match: str) -> None:
        self.add(method, path, httpx.Response(status_code, json=body), **match)

    def add_pages(self, path: str, pages: list[list[Any]], total_pages: int | None = None, **match: str) -> None:
        """Serve a paginated listing; pages past the end are empty."""

        def responder(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            data = pages[page - 1] if page <= len(pages) else []
            body = envelope(
                data,
                current_page=page,
                total_pages=total_pages if total_pages is not None else len(pages),
                total=sum(len(p) for p in pages),
            )
            return httpx.Response(200, json=body)

        self.add("GET", path, responder, **match)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix(API_PREFIX)
        for method, route_path, match, responder in self.routes:
            if method != request.method or route_path != path:
                continue
            if all(request.url.params.get(k) == v for k, v in match.items()):
                return responder(request)
        return httpx.Response(404, json={"message": f"No route for {request.method} {path}"})

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.removeprefix(API_PREFIX) == path]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content)


# ---------------------------------------------------------------------------
# Raw API items
# ---------------------------------------------------------------------------

def account_item(account_id: str, name: str, account_type: str, balance: str = "0", currency: str = "EUR") -> dict:
    return {
        "type": "accounts",
        "id": account_id,
        "attributes": {
            "active": True,
            "name": name,
            "type": account_type,
            "currency_code": currency,
            "current_balance": balance,
        },
    }


def category_item(category_id: str, name: str, notes: str = "") -> dict:
    return {"type": "categories", "id": category_id, "attributes": {"name": name, "notes": notes}}


def currency_item(currency_id: str, code: str, name: str, symbol: str, primary: bool = False) -> dict:
    return {
        "type": "currencies",
        "id": currency_id,
        "attributes": {"code": code, "name": name, "symbol": symbol, "primary": primary, "enabled": True},
    }


def split_item(
    journal_id: str,
    tx_type: str,
    source_id: str,
    destination_id: str,
    amount: str,
    description: str = "",
    category_id: str | None = None,
    date: str = "2026-03-05T12:00:00+01:00",
    currency: str = "EUR",
    foreign_amount: str | None = None,
    foreign_currency: str | None = None,
) -> dict:
    return {
        "transaction_journal_id": journal_id,
        "type": tx_type,
        "date": date,
        "source_id": source_id,
        "destination_id": destination_id,
        "category_id": category_id,
        "currency_code": currency,
        "foreign_currency_code": foreign_currency,
        "amount": amount,
        "foreign_amount": foreign_amount,
        "description": description,
    }


def group_item(group_id: str, splits: list[dict], group_title: str | None = None) -> dict:
    return {
        "type": "transactions",
        "id": group_id,
        "attributes": {"group_title": group_title, "transactions": splits},
    }


ACCOUNT_ITEMS = [
    account_item("1", "Checking", "asset", "1500.50"),
    account_item("2", "Savings", "asset", "not-a-number"),
    account_item("3", "Supermarket", "expense"),
    account_item("4", "Landlord", "expense"),
    account_item("5", "Employer", "revenue"),
    account_item("6", "Car loan", "liabilities", "-8000.00"),
    account_item("7", "Cash wallet", "cash"),
]

CATEGORY_ITEMS = [
    category_item("10", "Groceries", "Food and household"),
    category_item("11", "Housing"),
]

CURRENCY_ITEMS = [
    currency_item("1", "EUR", "Euro", "€", primary=True),
    currency_item("2", "usd", "US Dollar", "$"),
]

SUMMARY_BODY = {
    "balance-in-EUR": {
        "key": "balance-in-EUR",
        "title": "Balance (€)",
        "monetary_value": "1234.56",
        "currency_code": "EUR",
        "currency_symbol": "€",
        "value_parsed": "€1,234.56",
        "sub_title": "",
    },
    "spent-in-EUR": {
        "key": "spent-in-EUR",
        "title": "Spent (€)",
        "monetary_value": "-350.00",
        "currency_code": "EUR",
        "value_parsed": "-€350.00",
    },
}


def accounts_of(account_type: str) -> list[dict]:
    """ACCOUNT_ITEMS the server would return for a `type` filter."""
    if account_type == "all":
        return ACCOUNT_ITEMS
    return [a for a in ACCOUNT_ITEMS if normalize_account_type(a["attributes"]["type"]) == account_type]


@pytest.fixture
def fake() -> FakeFirefly:
    """Fake Firefly server with no routes."""
    return FakeFirefly()


@pytest.fixture
def config() -> ApiConfig:
    return ApiConfig(api_key="test-key", api_url=API_URL + "/", timeout_seconds=5)


@pytest.fixture
def client(config: ApiConfig, fake: FakeFirefly) -> FireflyClient:
    return FireflyClient(config, transport=fake.transport)


@pytest.fixture
def populated_fake(fake: FakeFirefly) -> FakeFirefly:
    """Fake server with accounts, categories, currencies, insights and summary."""
    for account_type in ("all", "asset", "expense", "revenue", "liability", "special"):
        fake.add_pages("/accounts", [accounts_of(account_type)], type=account_type)
    fake.add_pages("/categories", [CATEGORY_ITEMS])
    fake.add_pages("/currencies", [CURRENCY_ITEMS])
    fake.add_json("GET", "/insight/expense/expense", [
        {"id": "3", "name": "Supermarket", "difference": "-120.40", "difference_float": -120.4, "currency_code": "EUR"},
        {"id": "4", "name": "Landlord", "difference": "-900", "difference_float": -900.0, "currency_code": "EUR"},
    ])
    fake.add_json("GET", "/insight/income/revenue", [
        {"id": "5", "name": "Employer", "difference": "3000", "difference_float": 3000.0, "currency_code": "EUR"},
    ])
    fake.add_json("GET", "/insight/expense/category", [
        {"id": "10", "name": "Groceries", "difference": "-120.40", "difference_float": -120.4, "currency_code": "EUR"},
    ])
    fake.add_json("GET", "/insight/income/category", [])
    fake.add_json("GET", "/summary/basic", SUMMARY_BODY)
    return fake


@pytest.fixture
def ledger(config: ApiConfig, populated_fake: FakeFirefly) -> Ledger:
    """Empty ledger (not bootstrapped) on the populated fake server, period March 2026."""
    return Ledger(config, transport=populated_fake.transport, period=PeriodWindow(2026, 3))
