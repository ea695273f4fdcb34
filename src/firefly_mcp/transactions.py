"""Reconstruction of transactions from Firefly III journal splits.

Firefly stores a financial event as a transaction group holding one or more
journal splits. `reconstruct()` turns each group into a `Transaction` whose
splits reference cached `Account`/`Category` records, and whose derived
accessors collapse the splits into single display values:

| accessor         | withdrawal       | deposit          | transfer        | other           |
|------------------|------------------|------------------|-----------------|-----------------|
| total_amount     | sum of amounts   | same             | same            | same            |
| foreign_amount   | 0                | 0                | sum foreign     | 0               |
| description      | 1 split: its description, >1 splits: group title          |
| source           | first            | 1 split, else M  | first           | 1 split, else M |
|                  |                  |                  |                 | (none: error)   |
| destination      | 1 split, else M  | first            | first           | 1 split, else M |
|                  |                  |                  |                 | (none: error)   |
| category         | 1 split, else M  | same             | same            | same            |
| currency         | first split's currency code                               |
| foreign_currency | first split's if 1 split | same     | first split's   | 1 split, else ""|

M is the "multiple" placeholder. "first" on an empty split list gives the
"error" placeholder. Callers must compare against MULTIPLE_ACCOUNT,
ERROR_ACCOUNT and MULTIPLE_CATEGORY before treating a value as a real record.
"""

import itertools
import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from .client import FireflyClient, decode_items, require_id
from .models import (
    ERROR_ACCOUNT,
    MULTIPLE_ACCOUNT,
    MULTIPLE_CATEGORY,
    Account,
    Category,
)
from .period import PeriodWindow
from .repositories import AccountRepository, CategoryRepository
from .utils import format_amount, parse_amount


logger = logging.getLogger(__name__)

PAGE_LIMIT = 50

WITHDRAWAL = "withdrawal"
DEPOSIT = "deposit"
TRANSFER = "transfer"


@dataclass(frozen=True)
class Split:
    """One journal split with its references resolved against the cache."""

    transaction_journal_id: str = ""
    source: Account = field(default_factory=Account)
    destination: Account = field(default_factory=Account)
    category: Category = field(default_factory=Category)
    currency: str = ""
    foreign_currency: str = ""
    amount: float = 0.0
    foreign_amount: float = 0.0
    description: str = ""
    # Amounts exactly as the server sent them
    amount_text: str = ""
    foreign_amount_text: str = ""


@dataclass(frozen=True)
class Transaction:
    """A transaction group rebuilt from its splits.

    `id` is a local sequence number valid only within one reconstruction
    result; `transaction_id` is the server's group id.
    """

    id: int
    transaction_id: str
    type: str = ""
    date: str = ""
    group_title: str = ""
    splits: tuple[Split, ...] = ()

    @property
    def total_amount(self) -> float:
        return sum(s.amount for s in self.splits)

    @property
    def foreign_amount(self) -> float:
        if self.type == TRANSFER:
            return sum(s.foreign_amount for s in self.splits)
        return 0.0

    @property
    def description(self) -> str:
        if len(self.splits) == 1:
            return self.splits[0].description
        if len(self.splits) > 1:
            return self.group_title
        return ""

    def _first(self, attr: str) -> Account:
        if not self.splits:
            return ERROR_ACCOUNT
        return getattr(self.splits[0], attr)

    def _single(self, attr: str) -> Account:
        if len(self.splits) == 1:
            return getattr(self.splits[0], attr)
        return MULTIPLE_ACCOUNT

    @property
    def source(self) -> Account:
        if self.type in (WITHDRAWAL, TRANSFER):
            return self._first("source")
        if self.type == DEPOSIT:
            return self._single("source")
        if not self.splits:
            return ERROR_ACCOUNT
        return self._single("source")

    @property
    def destination(self) -> Account:
        if self.type in (DEPOSIT, TRANSFER):
            return self._first("destination")
        if self.type == WITHDRAWAL:
            return self._single("destination")
        if not self.splits:
            return ERROR_ACCOUNT
        return self._single("destination")

    @property
    def category(self) -> Category:
        if len(self.splits) == 1:
            return self.splits[0].category
        return MULTIPLE_CATEGORY

    @property
    def currency(self) -> str:
        return self.splits[0].currency if self.splits else ""

    @property
    def foreign_currency(self) -> str:
        if self.splits and (len(self.splits) == 1 or self.type == TRANSFER):
            return self.splits[0].foreign_currency
        return ""

    def structure(self) -> dict[str, Any]:
        """Everything except the local id, for comparing two reconstructions."""
        data = asdict(self)
        del data["id"]
        return data

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "type": self.type,
            "date": self.date,
            "description": self.description,
            "source": self.source.name,
            "destination": self.destination.name,
            "category": self.category.name,
            "currency": self.currency,
            "amount": self.total_amount,
            "foreign_currency": self.foreign_currency,
            "foreign_amount": self.foreign_amount,
            "splits": [
                {
                    "transaction_journal_id": s.transaction_journal_id,
                    "source": s.source.name,
                    "destination": s.destination.name,
                    "category": s.category.name,
                    "amount": s.amount,
                    "currency": s.currency,
                    "foreign_amount": s.foreign_amount,
                    "foreign_currency": s.foreign_currency,
                    "description": s.description,
                }
                for s in self.splits
            ],
        }


def _resolve_split(
    raw: dict[str, Any],
    accounts: AccountRepository,
    categories: CategoryRepository,
) -> Split:
    return Split(
        transaction_journal_id=str(raw.get("transaction_journal_id") or ""),
        source=accounts.by_id(str(raw.get("source_id") or "")),
        destination=accounts.by_id(str(raw.get("destination_id") or "")),
        category=categories.by_id(str(raw.get("category_id") or "")),
        currency=raw.get("currency_code") or "",
        foreign_currency=raw.get("foreign_currency_code") or "",
        amount=parse_amount(raw.get("amount")),
        foreign_amount=parse_amount(raw.get("foreign_amount")),
        description=raw.get("description") or "",
        amount_text=str(raw.get("amount") or ""),
        foreign_amount_text=str(raw.get("foreign_amount") or ""),
    )


def _build_transaction(
    local_id: int,
    entry: dict[str, Any],
    accounts: AccountRepository,
    categories: CategoryRepository,
) -> Transaction:
    attrs = entry.get("attributes") or {}
    raw_splits = attrs.get("transactions") or []
    if not isinstance(raw_splits, list):
        raise TypeError(f"transactions is {type(raw_splits).__name__}, expected list")

    first = raw_splits[0] if raw_splits else {}
    splits = [_resolve_split(raw, accounts, categories) for raw in raw_splits]
    splits.reverse()

    return Transaction(
        id=local_id,
        transaction_id=str(entry["id"]),
        type=first.get("type") or "",
        date=first.get("date") or "",
        group_title=attrs.get("group_title") or "",
        splits=tuple(splits),
    )


def reconstruct(
    raw_entries: list[Any],
    accounts: AccountRepository,
    categories: CategoryRepository,
) -> list[Transaction]:
    """Rebuild transactions from raw transaction-group items.

    Local ids count from 0 for each call. Type and date come from the first
    split the server sent; split order is reversed for display. Unknown
    account or category ids resolve to zero-value records.

    Raises:
        DecodeError: If an entry or split has an unexpected shape.
    """
    ids = itertools.count()
    return decode_items(
        raw_entries,
        lambda entry: _build_transaction(next(ids), entry, accounts, categories),
    )


def _omit_empty(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value not in (None, "", False, 0, [])}


@dataclass
class RequestSplit:
    """One split of a create/update payload. Empty fields are not sent."""

    type: str = ""
    date: str = ""
    amount: str = ""
    description: str = ""
    transaction_journal_id: str = ""
    currency_code: str = ""
    foreign_amount: str = ""
    foreign_currency_code: str = ""
    category_id: str = ""
    category_name: str = ""
    source_id: str = ""
    source_name: str = ""
    destination_id: str = ""
    destination_name: str = ""
    budget_id: str = ""
    notes: str = ""
    tags: list[str] = field(default_factory=list)
    order: int = 0
    reconciled: bool = False

    @classmethod
    def from_split(cls, split: Split, tx_type: str, date: str) -> "RequestSplit":
        """Payload for updating an existing split in place."""
        return cls(
            type=tx_type,
            date=date,
            amount=split.amount_text or format_amount(split.amount),
            description=split.description,
            transaction_journal_id=split.transaction_journal_id,
            currency_code=split.currency,
            foreign_amount=split.foreign_amount_text
            or (format_amount(split.foreign_amount) if split.foreign_amount else ""),
            foreign_currency_code=split.foreign_currency,
            category_id=split.category.id,
            source_id=split.source.id,
            destination_id=split.destination.id,
        )

    def to_payload(self) -> dict[str, Any]:
        return _omit_empty(asdict(self))


@dataclass
class RequestTransaction:
    """Create/update payload for `/transactions`."""

    transactions: list[RequestSplit] = field(default_factory=list)
    group_title: str = ""
    apply_rules: bool = False
    fire_webhooks: bool = False
    error_if_duplicate_hash: bool = False

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> "RequestTransaction":
        return cls(
            transactions=[
                RequestSplit.from_split(split, transaction.type, transaction.date)
                for split in transaction.splits
            ],
            group_title=transaction.group_title if len(transaction.splits) > 1 else "",
        )

    def to_payload(self) -> dict[str, Any]:
        payload = _omit_empty({
            "group_title": self.group_title,
            "apply_rules": self.apply_rules,
            "fire_webhooks": self.fire_webhooks,
            "error_if_duplicate_hash": self.error_if_duplicate_hash,
        })
        payload["transactions"] = [split.to_payload() for split in self.transactions]
        return payload


class TransactionService:
    """Lists, searches and mutates transactions.

    Listing reads the account and category repositories to resolve split
    references; mutations go straight to the server and never touch the
    cache.
    """

    def __init__(
        self,
        client: FireflyClient,
        period: PeriodWindow,
        accounts: AccountRepository,
        categories: CategoryRepository,
    ):
        self.client = client
        self.period = period
        self.accounts = accounts
        self.categories = categories

    async def list(self, query: str = "") -> list[Transaction]:
        """Transactions of the active period, or search results when `query` is set."""
        query = query.strip()
        if query:
            raw = await self.client.fetch_paginated(
                "/search/transactions", query=query, limit=PAGE_LIMIT
            )
        else:
            raw = await self.client.fetch_paginated(
                "/transactions", limit=PAGE_LIMIT, **self.period.query_params()
            )
        transactions = reconstruct(raw, self.accounts, self.categories)
        logger.info("Reconstructed %d transactions (query=%r)", len(transactions), query)
        return transactions

    async def create(self, transaction: RequestTransaction) -> str:
        """Create a transaction group and return its server id."""
        if not transaction.transactions:
            raise ValueError("A transaction needs at least one split")
        envelope = await self.client.post("/transactions", transaction.to_payload())
        return require_id(envelope)

    async def update(self, transaction_id: str, transaction: RequestTransaction) -> str:
        envelope = await self.client.put(f"/transactions/{transaction_id}", transaction.to_payload())
        return require_id(envelope)

    async def delete(self, transaction_id: str) -> None:
        await self.client.delete(f"/transactions/{transaction_id}")
        logger.info("Deleted transaction %s", transaction_id)

