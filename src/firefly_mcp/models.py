"""Cached ledger records decoded from Firefly III API items.

Every record has an all-empty zero value (`Account()`, `Category()`, ...)
which lookups return instead of raising when an id, code or name is unknown.
"""

from dataclasses import asdict, dataclass
from typing import Any

from .utils import normalize_account_type, parse_amount


@dataclass(frozen=True)
class Account:
    id: str = ""
    name: str = ""
    currency_code: str = ""
    balance: float = 0.0
    type: str = ""
    spent: float = 0.0
    earned: float = 0.0

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "Account":
        """Build from a `/accounts` item; unparseable balances become 0."""
        attrs = item.get("attributes") or {}
        return cls(
            id=str(item["id"]),
            name=attrs.get("name") or "",
            currency_code=attrs.get("currency_code") or "",
            balance=parse_amount(attrs.get("current_balance")),
            type=normalize_account_type(attrs.get("type")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Category:
    id: str = ""
    name: str = ""
    notes: str = ""

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "Category":
        attrs = item.get("attributes") or {}
        return cls(
            id=str(item["id"]),
            name=attrs.get("name") or "",
            notes=attrs.get("notes") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Currency:
    """Currency record. `code` is stored upper-case."""

    id: str = ""
    code: str = ""
    name: str = ""
    symbol: str = ""
    primary: bool = False

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "Currency":
        attrs = item.get("attributes") or {}
        # Firefly < 6.3 calls the flag "default"
        primary = attrs.get("primary", attrs.get("default", False))
        return cls(
            id=str(item["id"]),
            code=(attrs.get("code") or "").upper(),
            name=attrs.get("name") or "",
            symbol=attrs.get("symbol") or "",
            primary=bool(primary),
        )

    @property
    def upper_code(self) -> str:
        return self.code.upper()

    @property
    def lower_code(self) -> str:
        return self.code.lower()

    def __str__(self) -> str:
        return self.code

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class InsightItem:
    """One row of an `/insight/...` response."""

    id: str
    name: str = ""
    difference: str = ""
    difference_float: float = 0.0
    currency_code: str = ""

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "InsightItem":
        difference = item.get("difference_float")
        if difference is None:
            difference = item.get("difference")
        return cls(
            id=str(item["id"]),
            name=item.get("name") or "",
            difference=str(item.get("difference") or ""),
            difference_float=parse_amount(difference),
            currency_code=item.get("currency_code") or "",
        )


@dataclass(frozen=True)
class SummaryItem:
    """One entry of the `/summary/basic` map."""

    key: str
    title: str = ""
    monetary_value: float = 0.0
    currency_code: str = ""
    currency_symbol: str = ""
    value_parsed: str = ""
    sub_title: str = ""

    @classmethod
    def from_api(cls, key: str, item: dict[str, Any]) -> "SummaryItem":
        return cls(
            key=item.get("key") or key,
            title=item.get("title") or "",
            monetary_value=parse_amount(item.get("monetary_value")),
            currency_code=item.get("currency_code") or "",
            currency_symbol=item.get("currency_symbol") or "",
            value_parsed=item.get("value_parsed") or "",
            sub_title=item.get("sub_title") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NewLiability:
    """Input for creating a liability account."""

    name: str
    currency_code: str
    type: str = "loan"  # loan, debt or mortgage
    direction: str = "credit"  # credit (we owe) or debit (we are owed)


# Sentinels returned by derived transaction accessors
MULTIPLE_ACCOUNT = Account(name="multiple")
ERROR_ACCOUNT = Account(name="error")
MULTIPLE_CATEGORY = Category(name="multiple")
