"""JSON-ready views over the ledger cache for MCP tools and resources."""

from datetime import datetime
from typing import Any

from .insights import CATEGORY_EXPENSE, CATEGORY_REVENUE, EXPENSE, REVENUE
from .ledger import Ledger
from .transactions import Transaction
from .utils import ACCOUNT_TYPES


def get_period(ledger: Ledger) -> dict[str, Any]:
    """Active period window."""
    return {
        "year": ledger.period.year,
        "month": ledger.period.month,
        "start": ledger.current_period_start().isoformat(),
        "end": ledger.current_period_end().isoformat(),
    }


def get_accounts(ledger: Ledger, account_type: str | None = None) -> dict[str, Any]:
    """Accounts grouped by type, with spent/earned for expense and revenue accounts.

    Raises:
        ValueError: If account_type is not a known type.
    """
    if account_type and account_type not in ACCOUNT_TYPES:
        raise ValueError(f"Unknown account type: {account_type}. Expected one of {', '.join(ACCOUNT_TYPES)}")

    types = [account_type] if account_type else list(ACCOUNT_TYPES)
    groups: dict[str, list[dict[str, Any]]] = {}
    for t in types:
        accounts = ledger.accounts_of_type(t)
        if accounts or account_type:
            groups[t] = [a.to_dict() for a in accounts]

    result: dict[str, Any] = {
        "period": get_period(ledger),
        "accounts": groups,
        "count": sum(len(g) for g in groups.values()),
    }
    if "expense" in groups:
        result["total_spent"] = round(ledger.insights.total_expense_delta(), 2)
        result["spent_stale"] = ledger.insights.is_stale(EXPENSE)
    if "revenue" in groups:
        result["total_earned"] = round(ledger.insights.total_revenue_delta(), 2)
        result["earned_stale"] = ledger.insights.is_stale(REVENUE)
    return result


def get_account(ledger: Ledger, account_id: str) -> dict[str, Any]:
    """Single account by id.

    Raises:
        ValueError: If the id is not in the cache.
    """
    account = ledger.account_by_id(account_id)
    if not account.id:
        raise ValueError(f"Account {account_id} not found")
    return account.to_dict()


def get_categories(ledger: Ledger) -> dict[str, Any]:
    """Categories with per-category spent/earned for the active period."""
    spent_total, earned_total = ledger.insights.category_totals()
    categories = []
    for category in ledger.categories.all():
        categories.append({
            **category.to_dict(),
            "spent": round(ledger.category_spent(category.id), 2),
            "earned": round(ledger.category_earned(category.id), 2),
        })
    return {
        "period": get_period(ledger),
        "categories": categories,
        "total_spent": round(spent_total, 2),
        "total_earned": round(earned_total, 2),
        "stale": ledger.insights.is_stale(CATEGORY_EXPENSE) or ledger.insights.is_stale(CATEGORY_REVENUE),
    }


def get_currencies(ledger: Ledger) -> dict[str, Any]:
    primary = ledger.primary_currency()
    return {
        "primary": primary.code or None,
        "currencies": [c.to_dict() for c in ledger.currencies.all()],
    }


def get_summary(ledger: Ledger) -> dict[str, Any]:
    items = ledger.summary_items()
    return {
        "period": get_period(ledger),
        "items": {key: item.to_dict() for key, item in sorted(items.items())},
    }


def get_transactions(transactions: list[Transaction], limit: int | None = None) -> dict[str, Any]:
    """Reconstructed transactions with totals per currency."""
    totals: dict[str, float] = {}
    for tx in transactions:
        if tx.currency:
            totals[tx.currency] = totals.get(tx.currency, 0.0) + tx.total_amount
    shown = transactions[:limit] if limit else transactions
    return {
        "count": len(transactions),
        "returned": len(shown),
        "totals": {code: round(total, 2) for code, total in sorted(totals.items())},
        "transactions": [tx.to_dict() for tx in shown],
    }


def get_status(ledger: Ledger) -> dict[str, Any]:
    """Cache statistics and time since the last refresh."""
    if ledger.last_refresh is None:
        last_refresh = None
    else:
        last_refresh = datetime.fromtimestamp(ledger.last_refresh).isoformat()
    return {
        "api_url": ledger.config.api_url,
        "last_refresh": last_refresh,
        "period": get_period(ledger),
        "cache": {
            "accounts": len(ledger.accounts),
            "categories": len(ledger.categories),
            "currencies": len(ledger.currencies),
            "summary_items": len(ledger.summary),
        },
    }
