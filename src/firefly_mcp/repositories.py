"""In-memory repositories for Firefly III resources.

Each repository is filled by a `refresh()` call that fetches every page of
its resource and then swaps the cached contents in one assignment, so a
failed refresh leaves the previous snapshot untouched. Lookups never raise:
a miss returns the record's zero value.

Repositories do no locking. Callers must not run two refreshes of the same
repository concurrently.
"""

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from .client import DecodeError, FireflyClient, decode_items
from .models import Account, Category, Currency, SummaryItem
from .period import PeriodWindow
from .utils import normalize_account_type


if TYPE_CHECKING:
    from .insights import InsightAggregator


logger = logging.getLogger(__name__)


class AccountRepository:
    """Accounts grouped by type, with a flat id index built in the same pass."""

    def __init__(self, client: FireflyClient, insights: "InsightAggregator | None" = None):
        self.client = client
        self.insights = insights
        self._by_type: dict[str, list[Account]] = {}
        self._by_id: dict[str, Account] = {}

    async def refresh(self, account_type: str = "all") -> None:
        """Re-fetch accounts of one type, or of every type with "all".

        A single-type refresh replaces that type's list (also when the
        server returns none); "all" replaces the whole cache. Refreshing
        expense, revenue or all accounts also recomputes the matching
        insights so spent/earned values never lag behind the accounts.

        Raises:
            FireflyError: On any fetch or decode failure; cache is unchanged.
        """
        raw = await self.client.fetch_paginated("/accounts", type=account_type)
        accounts = decode_items(raw, Account.from_api)

        grouped: dict[str, list[Account]] = {}
        for account in accounts:
            grouped.setdefault(account.type, []).append(account)

        if account_type == "all":
            by_type = grouped
        else:
            by_type = dict(self._by_type)
            by_type[normalize_account_type(account_type)] = []
            by_type.update(grouped)

        self._swap(by_type)
        logger.info("Refreshed %d %s accounts", len(accounts), account_type)

        if self.insights is None:
            return
        if account_type in ("expense", "all"):
            await self.insights.compute_expense_insights()
        if account_type in ("revenue", "all"):
            await self.insights.compute_revenue_insights()

    def _swap(self, by_type: dict[str, list[Account]]) -> None:
        by_id = {account.id: account for group in by_type.values() for account in group}
        self._by_type, self._by_id = by_type, by_id

    def attach_deltas(self, account_type: str, field_name: str, deltas: dict[str, float]) -> None:
        """Set `spent` or `earned` on every account of a type from a delta map.

        Accounts without an entry get 0.
        """
        by_type = dict(self._by_type)
        by_type[account_type] = [
            replace(account, **{field_name: deltas.get(account.id, 0.0)})
            for account in self._by_type.get(account_type, [])
        ]
        self._swap(by_type)

    def by_id(self, account_id: str) -> Account:
        return self._by_id.get(account_id, Account())

    def by_type(self, account_type: str) -> list[Account]:
        return list(self._by_type.get(account_type, []))

    def by_name(self, name: str, account_type: str | None = None) -> Account:
        groups = [self._by_type.get(account_type, [])] if account_type else self._by_type.values()
        for group in groups:
            for account in group:
                if account.name == name:
                    return account
        return Account()

    def balance(self, account_id: str) -> float:
        return self.by_id(account_id).balance

    def all(self) -> list[Account]:
        return [account for group in self._by_type.values() for account in group]

    def __len__(self) -> int:
        return len(self._by_id)


class CategoryRepository:
    """Flat list of categories."""

    def __init__(self, client: FireflyClient):
        self.client = client
        self._categories: list[Category] = []
        self._by_id: dict[str, Category] = {}

    async def refresh(self) -> None:
        raw = await self.client.fetch_paginated("/categories")
        categories = decode_items(raw, Category.from_api)
        self._categories, self._by_id = categories, {c.id: c for c in categories}
        logger.info("Refreshed %d categories", len(categories))

    def by_id(self, category_id: str) -> Category:
        return self._by_id.get(category_id, Category())

    def by_name(self, name: str) -> Category:
        for category in self._categories:
            if category.name == name:
                return category
        return Category()

    def all(self) -> list[Category]:
        return list(self._categories)

    def __len__(self) -> int:
        return len(self._categories)


class CurrencyRepository:
    """Currencies with a lazily resolved primary currency."""

    def __init__(self, client: FireflyClient):
        self.client = client
        self._currencies: list[Currency] = []
        self._primary: Currency | None = None

    async def refresh(self) -> None:
        raw = await self.client.fetch_paginated("/currencies")
        currencies = decode_items(raw, Currency.from_api)
        primaries = [c.code for c in currencies if c.primary]
        if len(primaries) > 1:
            logger.warning("Server marks %d currencies as primary: %s", len(primaries), primaries)
        self._currencies, self._primary = currencies, None
        logger.info("Refreshed %d currencies", len(currencies))

    def by_code(self, code: str) -> Currency:
        """Case-insensitive lookup by currency code."""
        wanted = code.upper()
        for currency in self._currencies:
            if currency.upper_code == wanted:
                return currency
        return Currency()

    def by_id(self, currency_id: str) -> Currency:
        for currency in self._currencies:
            if currency.id == currency_id:
                return currency
        return Currency()

    def primary(self) -> Currency:
        """Primary currency, cached until the next refresh."""
        if self._primary is None:
            self._primary = next((c for c in self._currencies if c.primary), Currency())
        return self._primary

    def all(self) -> list[Currency]:
        return list(self._currencies)

    def __len__(self) -> int:
        return len(self._currencies)


class SummaryRepository:
    """Basic summary (balances, spent, earned, net worth) for the active period."""

    def __init__(self, client: FireflyClient, period: PeriodWindow):
        self.client = client
        self.period = period
        self._items: dict[str, SummaryItem] = {}

    async def refresh(self) -> None:
        body: Any = await self.client.get_json("/summary/basic", **self.period.query_params())
        if not isinstance(body, dict):
            raise DecodeError(f"Expected summary object, got {type(body).__name__}")
        items: dict[str, SummaryItem] = {}
        for key, item in body.items():
            if not isinstance(item, dict):
                raise DecodeError(f"Summary entry {key!r} is {type(item).__name__}, expected object")
            items[key] = SummaryItem.from_api(key, item)
        self._items = items
        logger.info("Refreshed %d summary items for %r", len(items), self.period)

    def items(self) -> dict[str, SummaryItem]:
        """Shallow copy of the cached summary items."""
        return dict(self._items)

    def max_width(self) -> int:
        """Widest `title` + `value_parsed` pair in characters, plus one."""
        widest = max((len(s.title) + len(s.value_parsed) for s in self._items.values()), default=0)
        return widest + 1

    def __len__(self) -> int:
        return len(self._items)
