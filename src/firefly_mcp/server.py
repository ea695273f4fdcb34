"""MCP Server exposing a Firefly III ledger cache."""

import json
import logging
import os
import sys
from typing import Any

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool

from .client import ApiConfig, FireflyError
from .ledger import Ledger
from .models import NewLiability
from .transactions import RequestSplit, RequestTransaction
from .utils import format_amount
from .views import (
    get_account,
    get_accounts,
    get_categories,
    get_currencies,
    get_period,
    get_status,
    get_summary,
    get_transactions,
)


logger = logging.getLogger(__name__)

# Initialize MCP server
server = Server("firefly-mcp")

# Server-owned ledger, created on first use
_ledger: Ledger | None = None

REFRESH_RESOURCES = [
    "all", "accounts", "asset", "expense", "revenue", "liability", "special",
    "categories", "currencies", "summary", "insights",
]


def configure_logging(debug: bool = False, log_file: str | None = None) -> None:
    """Send log records to stderr or a file; stdout carries the MCP stream."""
    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file)
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def get_ledger() -> Ledger:
    """Get or create the ledger from environment configuration."""
    global _ledger
    if _ledger is None:
        _ledger = Ledger(ApiConfig.from_env())
    return _ledger


def init_for_testing(ledger: Ledger) -> None:
    """Initialize server with a prepared ledger.

    Args:
        ledger: Ledger instance to use (usually backed by a mock transport).
    """
    global _ledger
    _ledger = ledger


async def ensure_ready() -> Ledger:
    """Return the ledger, bootstrapping it on first use."""
    ledger = get_ledger()
    if ledger.last_refresh is None:
        await ledger.bootstrap()
    return ledger


def _text(result: Any) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(result, ensure_ascii=False, indent=2))]


# ============================================================================
# Tools
# ============================================================================

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="refresh",
            description="Re-fetch cached data from Firefly III. Use after creating or deleting anything.",
            inputSchema={
                "type": "object",
                "properties": {
                    "resource": {
                        "type": "string",
                        "enum": REFRESH_RESOURCES,
                        "description": "What to refresh",
                        "default": "all",
                    },
                },
            },
        ),
        Tool(
            name="list_accounts",
            description="List accounts with balances. Expense and revenue accounts include spent/earned for the active period.",
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "enum": ["asset", "expense", "revenue", "liability", "special"],
                        "description": "Only accounts of this type",
                    },
                },
            },
        ),
        Tool(
            name="get_account",
            description="Get one account by id.",
            inputSchema={
                "type": "object",
                "properties": {"account_id": {"type": "string"}},
                "required": ["account_id"],
            },
        ),
        Tool(
            name="list_categories",
            description="List categories with spent/earned for the active period.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="list_currencies",
            description="List currencies and the primary currency.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_summary",
            description="Basic summary for the active period: balance, spent, earned, net worth.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="list_transactions",
            description="List transactions of the active period, or search all transactions with a Firefly query.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Firefly search query, e.g. 'description_contains:coffee'. Empty lists the active period.",
                        "default": "",
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of transactions to return",
                        "default": 100,
                    },
                },
            },
        ),
        Tool(
            name="get_period",
            description="Get the active period window.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="next_period",
            description="Move the period window one month forward and refresh period data.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="previous_period",
            description="Move the period window one month back and refresh period data.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="set_period",
            description="Set the period window to a month and refresh period data.",
            inputSchema={
                "type": "object",
                "properties": {
                    "year": {"type": "integer"},
                    "month": {"type": "integer", "minimum": 1, "maximum": 12},
                },
                "required": ["year", "month"],
            },
        ),
        Tool(
            name="create_transaction",
            description="Create a single-split withdrawal, deposit or transfer.",
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": ["withdrawal", "deposit", "transfer"]},
                    "date": {"type": "string", "description": "YYYY-MM-DD"},
                    "amount": {"type": "number"},
                    "description": {"type": "string"},
                    "source_id": {"type": "string"},
                    "destination_id": {"type": "string"},
                    "category_id": {"type": "string"},
                    "currency_code": {"type": "string"},
                },
                "required": ["type", "date", "amount", "description", "source_id", "destination_id"],
            },
        ),
        Tool(
            name="delete_transaction",
            description="Delete a transaction group by its server id.",
            inputSchema={
                "type": "object",
                "properties": {"transaction_id": {"type": "string"}},
                "required": ["transaction_id"],
            },
        ),
        Tool(
            name="create_account",
            description="Create an asset, expense, revenue or liability account.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "type": {"type": "string", "enum": ["asset", "expense", "revenue", "liability"]},
                    "currency_code": {"type": "string"},
                    "liability_type": {"type": "string", "enum": ["loan", "debt", "mortgage"], "default": "loan"},
                    "liability_direction": {"type": "string", "enum": ["credit", "debit"], "default": "credit"},
                },
                "required": ["name", "type"],
            },
        ),
        Tool(
            name="create_category",
            description="Create a category.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "notes": {"type": "string", "default": ""},
                },
                "required": ["name"],
            },
        ),
    ]


async def _create_account(ledger: Ledger, arguments: dict[str, Any]) -> str:
    name = arguments["name"]
    account_type = arguments["type"]
    currency_code = arguments.get("currency_code", "")
    if account_type == "asset":
        return await ledger.create_asset_account(name, currency_code)
    if account_type == "expense":
        return await ledger.create_expense_account(name)
    if account_type == "revenue":
        return await ledger.create_revenue_account(name)
    if account_type == "liability":
        return await ledger.create_liability_account(NewLiability(
            name=name,
            currency_code=currency_code,
            type=arguments.get("liability_type", "loan"),
            direction=arguments.get("liability_direction", "credit"),
        ))
    raise ValueError(f"Unknown account type: {account_type}")


async def _dispatch(name: str, arguments: dict[str, Any]) -> Any:
    ledger = await ensure_ready()

    if name == "refresh":
        await ledger.refresh(arguments.get("resource", "all"))
        return get_status(ledger)

    elif name == "list_accounts":
        return get_accounts(ledger, arguments.get("type"))

    elif name == "get_account":
        return get_account(ledger, arguments["account_id"])

    elif name == "list_categories":
        return get_categories(ledger)

    elif name == "list_currencies":
        return get_currencies(ledger)

    elif name == "get_summary":
        return get_summary(ledger)

    elif name == "list_transactions":
        transactions = await ledger.list_transactions(arguments.get("query", ""))
        return get_transactions(transactions, limit=arguments.get("limit", 100))

    elif name == "get_period":
        return get_period(ledger)

    elif name in ("next_period", "previous_period", "set_period"):
        if name == "next_period":
            ledger.advance_period()
        elif name == "previous_period":
            ledger.retreat_period()
        else:
            ledger.set_period(int(arguments["year"]), int(arguments["month"]))
        await ledger.refresh_period_data()
        return get_period(ledger)

    elif name == "create_transaction":
        transaction = RequestTransaction(transactions=[
            RequestSplit(
                type=arguments["type"],
                date=arguments["date"],
                amount=format_amount(arguments["amount"]),
                description=arguments["description"],
                source_id=arguments["source_id"],
                destination_id=arguments["destination_id"],
                category_id=arguments.get("category_id", ""),
                currency_code=arguments.get("currency_code", "").upper(),
            ),
        ])
        transaction_id = await ledger.create_transaction(transaction)
        return {"status": "created", "transaction_id": transaction_id}

    elif name == "delete_transaction":
        await ledger.delete_transaction(arguments["transaction_id"])
        return {"status": "deleted", "transaction_id": arguments["transaction_id"]}

    elif name == "create_account":
        account_id = await _create_account(ledger, arguments)
        await ledger.refresh("accounts")
        return {"status": "created", "account_id": account_id}

    elif name == "create_category":
        category_id = await ledger.create_category(arguments["name"], arguments.get("notes", ""))
        await ledger.refresh("categories")
        return {"status": "created", "category_id": category_id}

    else:
        raise ValueError(f"Unknown tool: {name}")


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls. Ledger errors are returned as an `error` payload."""
    try:
        result = await _dispatch(name, arguments or {})
    except FireflyError as e:
        logger.error("Tool %s failed: %s", name, e)
        result = {"error": str(e)}
    return _text(result)


# ============================================================================
# Resources
# ============================================================================

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri="firefly://accounts",
            name="Accounts",
            description="Accounts by type with balances and period deltas",
            mimeType="application/json",
        ),
        Resource(
            uri="firefly://categories",
            name="Categories",
            description="Categories with period spent/earned",
            mimeType="application/json",
        ),
        Resource(
            uri="firefly://currencies",
            name="Currencies",
            description="Currencies and the primary currency",
            mimeType="application/json",
        ),
        Resource(
            uri="firefly://summary",
            name="Summary",
            description="Basic summary for the active period",
            mimeType="application/json",
        ),
        Resource(
            uri="firefly://period",
            name="Period",
            description="Active period window",
            mimeType="application/json",
        ),
        Resource(
            uri="firefly://status",
            name="Cache Status",
            description="Cache statistics and last refresh time",
            mimeType="application/json",
        ),
    ]


@server.read_resource()
async def read_resource(uri: str) -> str:
    """Read resource content."""
    ledger = await ensure_ready()
    uri = str(uri)

    if uri == "firefly://accounts":
        result = get_accounts(ledger)
    elif uri == "firefly://categories":
        result = get_categories(ledger)
    elif uri == "firefly://currencies":
        result = get_currencies(ledger)
    elif uri == "firefly://summary":
        result = get_summary(ledger)
    elif uri == "firefly://period":
        result = get_period(ledger)
    elif uri == "firefly://status":
        result = get_status(ledger)
    else:
        raise ValueError(f"Unknown resource: {uri}")

    return json.dumps(result, ensure_ascii=False, indent=2)


# ============================================================================
# Main
# ============================================================================

def main() -> None:
    """Run the MCP server."""
    import asyncio

    from mcp.server.stdio import stdio_server

    configure_logging(
        debug=os.environ.get("FIREFLY_DEBUG", "").lower() in ("1", "true", "yes"),
        log_file=os.environ.get("FIREFLY_LOG_FILE"),
    )

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    asyncio.run(run())


if __name__ == "__main__":
    main()
