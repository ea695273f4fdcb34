"""Per-account and per-category spent/earned deltas for the active period."""

import logging

from .client import DecodeError, FireflyClient, FireflyError, decode_items
from .models import InsightItem
from .period import PeriodWindow
from .repositories import AccountRepository


logger = logging.getLogger(__name__)

EXPENSE = "expense"
REVENUE = "revenue"
CATEGORY_EXPENSE = "category_expense"
CATEGORY_REVENUE = "category_revenue"

# Insight kind -> (endpoint, negate). Expense endpoints report outflows as
# negative numbers; we store them as positive "spent" magnitudes.
INSIGHT_ENDPOINTS = {
    EXPENSE: ("/insight/expense/expense", True),
    REVENUE: ("/insight/income/revenue", False),
    CATEGORY_EXPENSE: ("/insight/expense/category", True),
    CATEGORY_REVENUE: ("/insight/income/category", False),
}


class InsightAggregator:
    """Fetches insight deltas and attaches account deltas to cached accounts.

    A failed fetch is logged and otherwise ignored: the previous map for
    that kind stays in place and `is_stale(kind)` reports True until the
    next successful fetch. Lookups return 0.0 for unknown ids.
    """

    def __init__(self, client: FireflyClient, period: PeriodWindow, accounts: AccountRepository):
        self.client = client
        self.period = period
        self.accounts = accounts
        self._deltas: dict[str, dict[str, float]] = {kind: {} for kind in INSIGHT_ENDPOINTS}
        self._stale: dict[str, bool] = {kind: False for kind in INSIGHT_ENDPOINTS}

    async def _fetch(self, kind: str) -> None:
        endpoint, negate = INSIGHT_ENDPOINTS[kind]
        try:
            body = await self.client.get_json(endpoint, **self.period.query_params())
            if not isinstance(body, list):
                raise DecodeError(f"Expected insight list, got {type(body).__name__}")
            items = decode_items(body, InsightItem.from_api)
        except FireflyError as e:
            self._stale[kind] = True
            logger.warning("Failed to fetch %s insights for %r, keeping previous values: %s", kind, self.period, e)
            return

        deltas: dict[str, float] = {}
        for item in items:
            value = -item.difference_float if negate else item.difference_float
            deltas[item.id] = deltas.get(item.id, 0.0) + value
        self._deltas[kind] = deltas
        self._stale[kind] = False
        logger.debug("Fetched %d %s insight rows", len(deltas), kind)

    async def compute_expense_insights(self) -> None:
        await self._fetch(EXPENSE)
        self.accounts.attach_deltas("expense", "spent", self._deltas[EXPENSE])

    async def compute_revenue_insights(self) -> None:
        await self._fetch(REVENUE)
        self.accounts.attach_deltas("revenue", "earned", self._deltas[REVENUE])

    async def compute_category_insights(self) -> None:
        await self._fetch(CATEGORY_EXPENSE)
        await self._fetch(CATEGORY_REVENUE)

    def is_stale(self, kind: str) -> bool:
        """Whether the latest fetch for `kind` failed."""
        return self._stale[kind]

    def expense_delta(self, account_id: str) -> float:
        return self._deltas[EXPENSE].get(account_id, 0.0)

    def revenue_delta(self, account_id: str) -> float:
        return self._deltas[REVENUE].get(account_id, 0.0)

    def category_spent(self, category_id: str) -> float:
        return self._deltas[CATEGORY_EXPENSE].get(category_id, 0.0)

    def category_earned(self, category_id: str) -> float:
        return self._deltas[CATEGORY_REVENUE].get(category_id, 0.0)

    def total_expense_delta(self) -> float:
        return sum(self._deltas[EXPENSE].values())

    def total_revenue_delta(self) -> float:
        return sum(self._deltas[REVENUE].values())

    def category_totals(self) -> tuple[float, float]:
        """(spent, earned) summed over all categories."""
        return (
            sum(self._deltas[CATEGORY_EXPENSE].values()),
            sum(self._deltas[CATEGORY_REVENUE].values()),
        )
