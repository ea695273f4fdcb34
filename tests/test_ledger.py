"""Tests for the ledger facade."""

import asyncio
from datetime import datetime

import httpx
import pytest

from firefly_mcp.client import ApiError, HttpStatusError
from firefly_mcp.ledger import Ledger
from firefly_mcp.models import Account, NewLiability
from firefly_mcp.transactions import RequestSplit, RequestTransaction

from conftest import FakeFirefly, accounts_of, envelope, group_item, split_item


class TestBootstrap:
    """Test populating the ledger."""

    def test_empty_before_bootstrap(self, ledger: Ledger):
        assert ledger.last_refresh is None
        assert ledger.account_by_id("1") == Account()
        assert ledger.primary_currency().code == ""
        assert ledger.summary_items() == {}

    @pytest.mark.asyncio
    async def test_bootstrap_fills_everything(self, ledger: Ledger):
        await ledger.bootstrap()

        assert ledger.last_refresh is not None
        assert ledger.account_by_id("1").name == "Checking"
        assert ledger.account_balance("1") == 1500.5
        assert [a.name for a in ledger.accounts_of_type("liability")] == ["Car loan"]
        assert ledger.category_by_name("Groceries").id == "10"
        assert ledger.category_by_id("11").name == "Housing"
        assert ledger.currency_by_code("usd").code == "USD"
        assert ledger.primary_currency().code == "EUR"
        assert len(ledger.summary_items()) == 2

    @pytest.mark.asyncio
    async def test_bootstrap_fetches_each_account_type(self, ledger: Ledger, populated_fake: FakeFirefly):
        await ledger.bootstrap()

        types = sorted(r.url.params["type"] for r in populated_fake.requests_to("/accounts"))
        assert types == ["asset", "expense", "liability", "revenue", "special"]
        assert [a.name for a in ledger.accounts_of_type("special")] == ["Cash wallet"]

    @pytest.mark.asyncio
    async def test_bootstrap_attaches_insights(self, ledger: Ledger):
        await ledger.bootstrap()

        assert ledger.account_by_id("3").spent == pytest.approx(120.4)
        assert ledger.expense_delta("4") == 900.0
        assert ledger.account_by_id("5").earned == 3000.0
        assert ledger.revenue_delta("5") == 3000.0
        assert ledger.category_spent("10") == pytest.approx(120.4)
        assert ledger.category_earned("10") == 0.0

    @pytest.mark.asyncio
    async def test_failed_bootstrap_waits_for_slower_refreshes(self, ledger: Ledger, populated_fake: FakeFirefly):
        """Every concurrent refresh has finished by the time the failure is raised."""

        async def slow_assets(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.05)
            return httpx.Response(200, json=envelope(accounts_of("asset")))

        populated_fake.add("GET", "/accounts", slow_assets, type="asset")
        populated_fake.add("GET", "/categories", httpx.Response(500))

        with pytest.raises(HttpStatusError):
            await ledger.bootstrap()

        assert [a.name for a in ledger.accounts_of_type("asset")] == ["Checking", "Savings"]
        assert ledger.last_refresh is None
        assert populated_fake.requests_to("/summary/basic") == []

    @pytest.mark.asyncio
    async def test_first_failure_in_order_is_raised(self, ledger: Ledger, populated_fake: FakeFirefly):
        populated_fake.add("GET", "/categories", httpx.Response(500))
        populated_fake.add_json("GET", "/currencies", {"message": "Unauthenticated."}, status_code=401)

        with pytest.raises(HttpStatusError):
            await ledger.bootstrap()

        assert len(ledger.currencies) == 0

    @pytest.mark.asyncio
    async def test_failure_after_reference_data(self, ledger: Ledger, populated_fake: FakeFirefly):
        populated_fake.add_json("GET", "/summary/basic", {"message": "Bad range"}, status_code=422)

        with pytest.raises(ApiError, match="Bad range"):
            await ledger.bootstrap()

        assert len(ledger.accounts) == 7
        assert ledger.category_spent("10") == pytest.approx(120.4)
        assert ledger.last_refresh is None

    @pytest.mark.asyncio
    async def test_refresh_one_resource(self, ledger: Ledger, populated_fake: FakeFirefly):
        await ledger.refresh("categories")

        assert len(ledger.categories) == 2
        assert ledger.last_refresh is not None
        assert populated_fake.requests_to("/accounts") == []

    @pytest.mark.asyncio
    async def test_refresh_accounts_includes_special(self, ledger: Ledger):
        await ledger.refresh("accounts")

        assert [a.name for a in ledger.accounts_of_type("special")] == ["Cash wallet"]

    @pytest.mark.asyncio
    async def test_refresh_unknown_resource(self, ledger: Ledger):
        with pytest.raises(ValueError, match="Unknown resource"):
            await ledger.refresh("budgets")


class TestPeriod:
    """Test the period surface and period-scoped refreshes."""

    def test_period_bounds(self, ledger: Ledger):
        assert ledger.current_period_start() == datetime(2026, 3, 1)
        assert ledger.current_period_end() == datetime(2026, 3, 31, 23, 59, 59, 999999)

    def test_advance_and_retreat(self, ledger: Ledger):
        ledger.advance_period()
        assert ledger.current_period_start() == datetime(2026, 4, 1)

        ledger.retreat_period()
        ledger.retreat_period()
        assert ledger.current_period_start() == datetime(2026, 2, 1)
        assert ledger.current_period_end().day == 28

    def test_set_period(self, ledger: Ledger):
        ledger.set_period(2025, 12)

        assert ledger.current_period_start() == datetime(2025, 12, 1)

    @pytest.mark.asyncio
    async def test_period_data_follows_window(self, ledger: Ledger, populated_fake: FakeFirefly):
        await ledger.bootstrap()
        ledger.advance_period()

        await ledger.refresh_period_data()

        for path in ("/summary/basic", "/insight/expense/expense", "/insight/income/revenue", "/insight/expense/category"):
            request = populated_fake.requests_to(path)[-1]
            assert request.url.params["start"] == "2026-04-01", path
            assert request.url.params["end"] == "2026-04-30", path


class TestMutations:
    """Test server mutations."""

    @pytest.mark.asyncio
    async def test_create_asset_account(self, ledger: Ledger, populated_fake: FakeFirefly):
        populated_fake.add_json("POST", "/accounts", {"data": {"id": "42"}})

        account_id = await ledger.create_asset_account("Wallet", "eur")

        assert account_id == "42"
        assert FakeFirefly.body(populated_fake.requests[-1]) == {
            "name": "Wallet",
            "type": "asset",
            "currency_code": "EUR",
            "include_net_worth": True,
            "active": True,
            "account_role": "defaultAsset",
        }

    @pytest.mark.asyncio
    async def test_create_expense_account(self, ledger: Ledger, populated_fake: FakeFirefly):
        populated_fake.add_json("POST", "/accounts", {"data": {"id": "43"}})

        assert await ledger.create_expense_account("Bakery") == "43"
        assert FakeFirefly.body(populated_fake.requests[-1]) == {"name": "Bakery", "type": "expense"}

    @pytest.mark.asyncio
    async def test_create_revenue_account(self, ledger: Ledger, populated_fake: FakeFirefly):
        populated_fake.add_json("POST", "/accounts", {"data": {"id": "44"}})

        assert await ledger.create_revenue_account("Side gig") == "44"
        assert FakeFirefly.body(populated_fake.requests[-1])["type"] == "revenue"

    @pytest.mark.asyncio
    async def test_create_liability_account(self, ledger: Ledger, populated_fake: FakeFirefly):
        populated_fake.add_json("POST", "/accounts", {"data": {"id": "45"}})

        account_id = await ledger.create_liability_account(
            NewLiability(name="Mortgage", currency_code="eur", type="mortgage", direction="credit")
        )

        assert account_id == "45"
        assert FakeFirefly.body(populated_fake.requests[-1]) == {
            "name": "Mortgage",
            "type": "liability",
            "currency_code": "EUR",
            "liability_type": "mortgage",
            "liability_direction": "credit",
        }

    @pytest.mark.asyncio
    async def test_create_does_not_touch_cache(self, ledger: Ledger, populated_fake: FakeFirefly):
        await ledger.bootstrap()
        populated_fake.add_json("POST", "/accounts", {"data": {"id": "46"}})

        await ledger.create_expense_account("Bakery")

        assert ledger.account_by_id("46") == Account()

    @pytest.mark.asyncio
    async def test_create_category(self, ledger: Ledger, populated_fake: FakeFirefly):
        populated_fake.add_json("POST", "/categories", {"data": {"id": "12"}})

        assert await ledger.create_category("Pets", "Cat food") == "12"
        assert FakeFirefly.body(populated_fake.requests[-1]) == {"name": "Pets", "notes": "Cat food"}

    @pytest.mark.asyncio
    async def test_transaction_round_trip(self, ledger: Ledger, populated_fake: FakeFirefly):
        populated_fake.add_json("POST", "/transactions", {"data": {"id": "900"}})
        populated_fake.add_json("DELETE", "/transactions/900", None, status_code=204)

        transaction_id = await ledger.create_transaction(RequestTransaction(transactions=[
            RequestSplit(type="withdrawal", date="2026-03-05", amount="3.20", description="Coffee",
                         source_id="1", destination_id="3"),
        ]))
        await ledger.delete_transaction(transaction_id)

        assert [r.method for r in populated_fake.requests] == ["POST", "DELETE"]

    @pytest.mark.asyncio
    async def test_update_transaction(self, ledger: Ledger, populated_fake: FakeFirefly):
        populated_fake.add_json("PUT", "/transactions/900", {"data": {"id": "900"}})

        result = await ledger.update_transaction("900", RequestTransaction(transactions=[RequestSplit(amount="4.00")]))

        assert result == "900"


class TestQueries:
    """Test server-side reads that bypass the cache."""

    @pytest.mark.asyncio
    async def test_current_user_email(self, ledger: Ledger, populated_fake: FakeFirefly):
        populated_fake.add_json("GET", "/about/user", {"data": {"id": "1", "attributes": {"email": "me@example.com"}}})

        assert await ledger.current_user_email() == "me@example.com"

    @pytest.mark.asyncio
    async def test_list_transactions_resolves_names(self, ledger: Ledger, populated_fake: FakeFirefly):
        populated_fake.add_pages("/transactions", [[
            group_item("100", [split_item("1", "withdrawal", "1", "3", "12.50", "Bread", category_id="10")]),
        ]])
        await ledger.bootstrap()

        transactions = await ledger.list_transactions()

        assert transactions[0].source.name == "Checking"
        assert transactions[0].destination.spent == pytest.approx(120.4)
        assert transactions[0].category.name == "Groceries"
