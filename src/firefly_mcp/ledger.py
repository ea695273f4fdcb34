"""Ledger cache: owns the client, period window, repositories and insights."""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable

import httpx

from .client import ApiConfig, FireflyClient, require_id
from .insights import InsightAggregator
from .models import Account, Category, Currency, NewLiability, SummaryItem
from .period import PeriodWindow
from .repositories import (
    AccountRepository,
    CategoryRepository,
    CurrencyRepository,
    SummaryRepository,
)
from .transactions import RequestTransaction, Transaction, TransactionService


logger = logging.getLogger(__name__)

BOOTSTRAP_ACCOUNT_TYPES = ("asset", "expense", "revenue", "liability", "special")


class Ledger:
    """In-process mirror of one Firefly III ledger.

    Built once and passed to whoever needs it; there is no module-level
    instance. Contents change only through the refresh methods, and each
    repository swaps its contents whole, so readers never see a half
    refreshed repository. Mutations act on the server only: call the
    matching refresh afterwards.
    """

    def __init__(
        self,
        config: ApiConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        period: PeriodWindow | None = None,
    ):
        """Initialize an empty ledger.

        Args:
            config: API connection settings.
            transport: Optional httpx transport, used by tests.
            period: Initial period window; defaults to the current month.
        """
        self.config = config
        self.client = FireflyClient(config, transport=transport)
        self.period = period or PeriodWindow()
        self.accounts = AccountRepository(self.client)
        self.categories = CategoryRepository(self.client)
        self.currencies = CurrencyRepository(self.client)
        self.summary = SummaryRepository(self.client, self.period)
        self.insights = InsightAggregator(self.client, self.period, self.accounts)
        self.accounts.insights = self.insights
        self.transactions = TransactionService(self.client, self.period, self.accounts, self.categories)
        self.last_refresh: float | None = None

    @property
    def timeout_seconds(self) -> int:
        return self.config.timeout_seconds

    async def _join(self, *refreshes: Awaitable[None]) -> None:
        """Run refreshes concurrently and wait for all of them.

        Raises:
            The first exception in argument order, once every refresh is done.
        """
        results = await asyncio.gather(*refreshes, return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        for error in errors[1:]:
            logger.warning("Concurrent refresh also failed: %s", error)
        if errors:
            raise errors[0]

    async def bootstrap(self) -> None:
        """Populate every repository from the server.

        Independent refreshes run concurrently; each one writes to its own
        account type or repository. All of them finish before the first
        failure propagates.
        """
        start_time = time.monotonic()
        await self._join(
            *(self.accounts.refresh(t) for t in BOOTSTRAP_ACCOUNT_TYPES),
            self.categories.refresh(),
            self.currencies.refresh(),
        )
        await self._join(
            self.summary.refresh(),
            self.insights.compute_category_insights(),
        )
        self.last_refresh = time.time()
        logger.info(
            "Ledger ready in %.0fms: %d accounts, %d categories, %d currencies",
            (time.monotonic() - start_time) * 1000,
            len(self.accounts),
            len(self.categories),
            len(self.currencies),
        )

    async def refresh(self, resource: str = "all") -> None:
        """Refresh one resource, or everything with "all".

        Args:
            resource: One of accounts, asset, expense, revenue, liability, special,
                categories, currencies, summary, insights, all.

        Raises:
            ValueError: On an unknown resource name.
            FireflyError: If the fetch fails; that repository keeps its old contents.
        """
        if resource == "all":
            await self.bootstrap()
            return
        if resource == "accounts":
            await self.accounts.refresh("all")
        elif resource in BOOTSTRAP_ACCOUNT_TYPES:
            await self.accounts.refresh(resource)
        elif resource == "categories":
            await self.categories.refresh()
        elif resource == "currencies":
            await self.currencies.refresh()
        elif resource == "summary":
            await self.summary.refresh()
        elif resource == "insights":
            await self.refresh_period_data()
            return
        else:
            raise ValueError(f"Unknown resource: {resource}")
        self.last_refresh = time.time()

    async def refresh_period_data(self) -> None:
        """Re-run everything scoped to the period window after it moved."""
        await self.insights.compute_expense_insights()
        await self.insights.compute_revenue_insights()
        await self.insights.compute_category_insights()
        await self.summary.refresh()
        self.last_refresh = time.time()

    # -------------------------------------------------------------------------
    # Period window
    # -------------------------------------------------------------------------

    def current_period_start(self) -> datetime:
        return self.period.start

    def current_period_end(self) -> datetime:
        return self.period.end

    def advance_period(self) -> None:
        self.period.next()

    def retreat_period(self) -> None:
        self.period.previous()

    def set_period(self, year: int, month: int) -> None:
        self.period.set_to(year, month)

    # -------------------------------------------------------------------------
    # Cache queries
    # -------------------------------------------------------------------------

    def account_by_id(self, account_id: str) -> Account:
        return self.accounts.by_id(account_id)

    def accounts_of_type(self, account_type: str) -> list[Account]:
        return self.accounts.by_type(account_type)

    def account_balance(self, account_id: str) -> float:
        return self.accounts.balance(account_id)

    def category_by_id(self, category_id: str) -> Category:
        return self.categories.by_id(category_id)

    def category_by_name(self, name: str) -> Category:
        return self.categories.by_name(name)

    def currency_by_code(self, code: str) -> Currency:
        return self.currencies.by_code(code)

    def primary_currency(self) -> Currency:
        return self.currencies.primary()

    def expense_delta(self, account_id: str) -> float:
        return self.insights.expense_delta(account_id)

    def revenue_delta(self, account_id: str) -> float:
        return self.insights.revenue_delta(account_id)

    def category_spent(self, category_id: str) -> float:
        return self.insights.category_spent(category_id)

    def category_earned(self, category_id: str) -> float:
        return self.insights.category_earned(category_id)

    def summary_items(self) -> dict[str, SummaryItem]:
        return self.summary.items()

    async def list_transactions(self, query: str = "") -> list[Transaction]:
        return await self.transactions.list(query)

    # -------------------------------------------------------------------------
    # Mutations (server only, cache untouched)
    # -------------------------------------------------------------------------

    async def create_transaction(self, transaction: RequestTransaction) -> str:
        return await self.transactions.create(transaction)

    async def update_transaction(self, transaction_id: str, transaction: RequestTransaction) -> str:
        return await self.transactions.update(transaction_id, transaction)

    async def delete_transaction(self, transaction_id: str) -> None:
        await self.transactions.delete(transaction_id)

    async def create_account(self, name: str, account_type: str, currency_code: str = "") -> str:
        """Create an account and return its id.

        Asset accounts are created active, counted in net worth, with the
        default asset role and the given currency.
        """
        payload: dict[str, Any] = {"name": name, "type": account_type}
        if account_type == "asset":
            payload.update({
                "currency_code": currency_code.upper(),
                "include_net_worth": True,
                "active": True,
                "account_role": "defaultAsset",
            })
        elif currency_code:
            payload["currency_code"] = currency_code.upper()
        envelope = await self.client.post("/accounts", payload)
        account_id = require_id(envelope)
        logger.info("Created %s account %r (%s)", account_type, name, account_id)
        return account_id

    async def create_asset_account(self, name: str, currency_code: str) -> str:
        return await self.create_account(name, "asset", currency_code)

    async def create_expense_account(self, name: str) -> str:
        return await self.create_account(name, "expense")

    async def create_revenue_account(self, name: str) -> str:
        return await self.create_account(name, "revenue")

    async def create_liability_account(self, liability: NewLiability) -> str:
        payload = {
            "name": liability.name,
            "type": "liability",
            "currency_code": liability.currency_code.upper(),
            "liability_type": liability.type,
            "liability_direction": liability.direction,
        }
        envelope = await self.client.post("/accounts", payload)
        return require_id(envelope)

    async def create_category(self, name: str, notes: str = "") -> str:
        envelope = await self.client.post("/categories", {"name": name, "notes": notes})
        return require_id(envelope)

    async def current_user_email(self) -> str:
        envelope = await self.client.get("/about/user")
        data = envelope.data if isinstance(envelope.data, dict) else {}
        attrs = data.get("attributes") or {}
        return attrs.get("email") or ""
