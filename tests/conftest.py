"""
Test fixtures for the YNAB MCP tools and the client pool.

The YNAB SDK API classes are replaced with Mock(spec=...) objects, so no test
ever calls the real YNAB API.
"""

import sys
from collections.abc import AsyncGenerator, Generator
from datetime import date
from pathlib import Path
from typing import Any
from unittest.mock import Mock, patch

import fastmcp
import pytest
import ynab
from fastmcp.client import Client, FastMCPTransport

# Add parent directory to path to import server module
sys.path.insert(0, str(Path(__file__).parent.parent))
import server
from cache import cache


@pytest.fixture(autouse=True)
def clear_cache() -> Generator[None, None, None]:
    """Each test starts and ends with an empty response cache."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def mock_environment_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    """Mock environment variables for testing."""
    monkeypatch.setenv("YNAB_ACCESS_TOKEN", "test_token_123")
    monkeypatch.setenv("YNAB_BUDGET", "test_budget_id")


def _mock_api(api_class: type) -> Generator[Mock, None, None]:
    mock_api = Mock(spec=api_class)
    with patch(f"ynab.{api_class.__name__}", return_value=mock_api):
        yield mock_api


@pytest.fixture
def accounts_api(mock_environment_variables: None) -> Generator[Mock, None, None]:
    yield from _mock_api(ynab.AccountsApi)


@pytest.fixture
def budgets_api(mock_environment_variables: None) -> Generator[Mock, None, None]:
    yield from _mock_api(ynab.BudgetsApi)


@pytest.fixture
def categories_api(mock_environment_variables: None) -> Generator[Mock, None, None]:
    yield from _mock_api(ynab.CategoriesApi)


@pytest.fixture
def months_api(mock_environment_variables: None) -> Generator[Mock, None, None]:
    yield from _mock_api(ynab.MonthsApi)


@pytest.fixture
def payees_api(mock_environment_variables: None) -> Generator[Mock, None, None]:
    yield from _mock_api(ynab.PayeesApi)


@pytest.fixture
def transactions_api(mock_environment_variables: None) -> Generator[Mock, None, None]:
    yield from _mock_api(ynab.TransactionsApi)


@pytest.fixture
def scheduled_transactions_api(
    mock_environment_variables: None,
) -> Generator[Mock, None, None]:
    yield from _mock_api(ynab.ScheduledTransactionsApi)


@pytest.fixture
def user_api(mock_environment_variables: None) -> Generator[Mock, None, None]:
    yield from _mock_api(ynab.UserApi)


@pytest.fixture
async def mcp_client() -> AsyncGenerator[Client[FastMCPTransport], None]:
    """In-memory MCP client connected to the server."""
    async with fastmcp.Client(server.mcp) as client:
        yield client


# Test data factories
def create_ynab_account(
    *,
    id: str = "acc-1",
    name: str = "Test Account",
    account_type: ynab.AccountType = ynab.AccountType.CHECKING,
    on_budget: bool = True,
    closed: bool = False,
    balance: int = 100_000,
    deleted: bool = False,
    **kwargs: Any,
) -> ynab.Account:
    """Create a YNAB Account for testing with sensible defaults."""
    return ynab.Account(
        id=id,
        name=name,
        type=account_type,
        on_budget=on_budget,
        closed=closed,
        note=kwargs.get("note"),
        balance=balance,
        cleared_balance=kwargs.get("cleared_balance", balance - 5_000),
        uncleared_balance=kwargs.get("uncleared_balance", 5_000),
        transfer_payee_id=kwargs.get("transfer_payee_id"),
        direct_import_linked=kwargs.get("direct_import_linked", False),
        direct_import_in_error=kwargs.get("direct_import_in_error", False),
        last_reconciled_at=kwargs.get("last_reconciled_at"),
        debt_original_balance=kwargs.get("debt_original_balance"),
        debt_interest_rates=kwargs.get("debt_interest_rates"),
        debt_minimum_payments=kwargs.get("debt_minimum_payments"),
        debt_escrow_amounts=kwargs.get("debt_escrow_amounts"),
        deleted=deleted,
    )


def accounts_response(*accounts: ynab.Account) -> ynab.AccountsResponse:
    return ynab.AccountsResponse(
        data=ynab.AccountsResponseData(accounts=list(accounts), server_knowledge=0)
    )


def create_ynab_payee(
    *,
    id: str = "payee-1",
    name: str = "Test Payee",
    deleted: bool = False,
    **kwargs: Any,
) -> ynab.Payee:
    """Create a YNAB Payee for testing with sensible defaults."""
    return ynab.Payee(
        id=id,
        name=name,
        transfer_account_id=kwargs.get("transfer_account_id"),
        deleted=deleted,
    )


def create_ynab_category(
    *,
    id: str = "cat-1",
    name: str = "Test Category",
    category_group_id: str = "group-1",
    hidden: bool = False,
    deleted: bool = False,
    budgeted: int = 50_000,
    activity: int = -30_000,
    balance: int = 20_000,
    **kwargs: Any,
) -> ynab.Category:
    """Create a YNAB Category for testing with sensible defaults."""
    return ynab.Category(
        id=id,
        category_group_id=category_group_id,
        category_group_name=kwargs.get("category_group_name"),
        name=name,
        hidden=hidden,
        original_category_group_id=kwargs.get("original_category_group_id"),
        note=kwargs.get("note"),
        budgeted=budgeted,
        activity=activity,
        balance=balance,
        goal_type=kwargs.get("goal_type"),
        goal_needs_whole_amount=kwargs.get("goal_needs_whole_amount"),
        goal_day=kwargs.get("goal_day"),
        goal_cadence=kwargs.get("goal_cadence"),
        goal_cadence_frequency=kwargs.get("goal_cadence_frequency"),
        goal_creation_month=kwargs.get("goal_creation_month"),
        goal_target=kwargs.get("goal_target"),
        goal_target_month=kwargs.get("goal_target_month"),
        goal_percentage_complete=kwargs.get("goal_percentage_complete"),
        goal_months_to_budget=kwargs.get("goal_months_to_budget"),
        goal_under_funded=kwargs.get("goal_under_funded"),
        goal_overall_funded=kwargs.get("goal_overall_funded"),
        goal_overall_left=kwargs.get("goal_overall_left"),
        deleted=deleted,
    )


def category_response(category: ynab.Category) -> ynab.CategoryResponse:
    return ynab.CategoryResponse(data=ynab.CategoryResponseData(category=category))


def save_category_response(category: ynab.Category) -> ynab.SaveCategoryResponse:
    return ynab.SaveCategoryResponse(
        data=ynab.SaveCategoryResponseData(category=category, server_knowledge=0)
    )


def create_ynab_month(
    *,
    month: date = date(2024, 1, 1),
    categories: list[ynab.Category] | None = None,
    **kwargs: Any,
) -> ynab.MonthDetail:
    """Create a YNAB MonthDetail for testing with sensible defaults."""
    return ynab.MonthDetail(
        month=month,
        note=kwargs.get("note"),
        income=kwargs.get("income", 400_000),
        budgeted=kwargs.get("budgeted", 350_000),
        activity=kwargs.get("activity", -200_000),
        to_be_budgeted=kwargs.get("to_be_budgeted", 50_000),
        age_of_money=kwargs.get("age_of_money", 15),
        deleted=False,
        categories=categories or [],
    )


def month_response(month: ynab.MonthDetail) -> ynab.MonthDetailResponse:
    return ynab.MonthDetailResponse(data=ynab.MonthDetailResponseData(month=month))


def create_ynab_subtransaction(
    *,
    id: str = "sub-1",
    transaction_id: str = "txn-1",
    amount: int = -25_000,
    deleted: bool = False,
    **kwargs: Any,
) -> ynab.SubTransaction:
    """Create a YNAB SubTransaction for testing with sensible defaults."""
    return ynab.SubTransaction(
        id=id,
        transaction_id=transaction_id,
        amount=amount,
        memo=kwargs.get("memo"),
        payee_id=kwargs.get("payee_id"),
        payee_name=kwargs.get("payee_name"),
        category_id=kwargs.get("category_id"),
        category_name=kwargs.get("category_name"),
        transfer_account_id=kwargs.get("transfer_account_id"),
        transfer_transaction_id=kwargs.get("transfer_transaction_id"),
        deleted=deleted,
    )


def create_ynab_transaction(
    *,
    id: str = "txn-1",
    transaction_date: date = date(2024, 1, 15),
    amount: int = -50_000,
    account_id: str = "acc-1",
    deleted: bool = False,
    **kwargs: Any,
) -> ynab.TransactionDetail:
    """Create a YNAB TransactionDetail for testing with sensible defaults."""
    return ynab.TransactionDetail(
        id=id,
        date=transaction_date,
        amount=amount,
        memo=kwargs.get("memo"),
        cleared=kwargs.get("cleared", ynab.TransactionClearedStatus.CLEARED),
        approved=kwargs.get("approved", True),
        flag_color=kwargs.get("flag_color"),
        account_id=account_id,
        account_name=kwargs.get("account_name", "Test Account"),
        payee_id=kwargs.get("payee_id"),
        payee_name=kwargs.get("payee_name"),
        category_id=kwargs.get("category_id"),
        category_name=kwargs.get("category_name"),
        transfer_account_id=kwargs.get("transfer_account_id"),
        transfer_transaction_id=kwargs.get("transfer_transaction_id"),
        matched_transaction_id=kwargs.get("matched_transaction_id"),
        import_id=kwargs.get("import_id"),
        import_payee_name=kwargs.get("import_payee_name"),
        import_payee_name_original=kwargs.get("import_payee_name_original"),
        debt_transaction_type=kwargs.get("debt_transaction_type"),
        deleted=deleted,
        subtransactions=kwargs.get("subtransactions", []),
    )


def transactions_response(
    *transactions: ynab.TransactionDetail,
) -> ynab.TransactionsResponse:
    return ynab.TransactionsResponse(
        data=ynab.TransactionsResponseData(
            transactions=list(transactions), server_knowledge=0
        )
    )


def transaction_response(
    transaction: ynab.TransactionDetail,
) -> ynab.TransactionResponse:
    return ynab.TransactionResponse(
        data=ynab.TransactionResponseData(transaction=transaction)
    )


def create_ynab_scheduled_transaction(
    *,
    id: str = "st-1",
    date_first: date = date(2024, 1, 1),
    date_next: date = date(2024, 2, 1),
    frequency: str = "monthly",
    amount: int = -120_000,
    account_id: str = "acc-1",
    deleted: bool = False,
    **kwargs: Any,
) -> ynab.ScheduledTransactionDetail:
    """Create a YNAB ScheduledTransactionDetail for testing with sensible defaults."""
    return ynab.ScheduledTransactionDetail(
        id=id,
        date_first=date_first,
        date_next=date_next,
        frequency=frequency,
        amount=amount,
        memo=kwargs.get("memo"),
        flag_color=kwargs.get("flag_color"),
        flag_name=kwargs.get("flag_name"),
        account_id=account_id,
        account_name=kwargs.get("account_name", "Checking"),
        payee_id=kwargs.get("payee_id"),
        payee_name=kwargs.get("payee_name"),
        category_id=kwargs.get("category_id"),
        category_name=kwargs.get("category_name"),
        transfer_account_id=None,
        deleted=deleted,
        subtransactions=kwargs.get("subtransactions", []),
    )
