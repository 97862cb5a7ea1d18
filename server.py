import calendar
import logging
import os
import sys
import time
from collections import defaultdict
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, cast

import ynab
from fastmcp import FastMCP
from fastmcp.exceptions import ValidationError
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools import ToolResult
from mcp.types import CallToolRequestParams
from pydantic import Field
from ynab.exceptions import ApiException

from cache import cache
from errors import (
    YNABToolError,
    api_error,
    configuration_error,
    translate_api_errors,
    validation_error,
)
from models import (
    Account,
    AccountsResponse,
    BudgetMonth,
    BudgetRef,
    BudgetsResponse,
    BudgetSummary,
    CashFlowTotals,
    Category,
    CategorySpending,
    ClearedStatus,
    CreatedTransactions,
    Frequency,
    HealthStatus,
    MonthlyCashFlow,
    MoveFundsResult,
    OperationResult,
    Payee,
    PayeesResponse,
    ReportPeriod,
    ScheduledTransaction,
    ScheduledTransactionsResponse,
    SpendingAnalysis,
    SpendingReport,
    SubtransactionInput,
    Transaction,
    TransactionFilters,
    TransactionInput,
    TransactionSearch,
    TransactionSearchSummary,
    TransactionUpdate,
    TransferResult,
    UnapprovedTransactions,
    UpdatedTransactions,
    currency_to_milliunits,
    milliunits_to_currency,
    round_currency,
)

logger = logging.getLogger(__name__)

mcp = FastMCP[None](
    name="YNAB",
    instructions="""
    Gives you access to a user's YNAB budgets, including accounts, categories,
    payees, transactions and scheduled transactions. If a user is ever asking about
    budgeting, their personal finances, banking, saving, or spending, their YNAB
    budget is very relevant to them.

    Call list_budgets first when you don't know which budget to use, then pass its
    id as budget_id to the other tools. Use list_accounts before creating
    transactions and get_month_detail to find category ids.

    Amounts are in currency units: negative amounts are outflows (spending),
    positive amounts are inflows (income). move_funds reallocates budgeted money
    between categories; create_transfer moves money between accounts.
    """,
)


class ArgumentValidationErrors(Middleware):
    """Report arguments FastMCP rejects as validation errors, like our own."""

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        try:
            return await call_next(context)
        except ValidationError as e:
            raise validation_error(
                f"Invalid arguments for {context.message.name}: {e}"
            ) from e


mcp.add_middleware(ArgumentValidationErrors())

MonthArg = date | Literal["current", "last", "next"]

# Prefixes of every cached read that depends on a budget's contents
BUDGET_READ_CACHE_KEYS = (
    "budget_summary",
    "list_accounts",
    "payees",
    "analyze_transactions",
    "analyze_spending",
    "spending_report",
)


def get_ynab_client() -> ynab.ApiClient:
    """Get authenticated YNAB API client."""
    access_token = os.getenv("YNAB_ACCESS_TOKEN")
    if not access_token:
        raise configuration_error(
            "YNAB_ACCESS_TOKEN environment variable is required. Connect a YNAB "
            "account or set a Personal Access Token."
        )

    configuration = ynab.Configuration(access_token=access_token)
    return ynab.ApiClient(configuration)


def resolve_budget_id(budget_id: str | None) -> str:
    """Use the given budget, falling back to the YNAB_BUDGET default."""
    resolved = budget_id or os.getenv("YNAB_BUDGET")
    if not resolved:
        raise configuration_error(
            "No budget ID provided. Call list_budgets first to get a budget ID, "
            "then pass it as budget_id."
        )
    return resolved


def _cached[T](key: str, fetch: Callable[[], T], ttl_minutes: float = 5) -> T:
    """Return the cached value for key, or fetch and cache it."""
    cached = cache.get(key)
    if cached is not None:
        logger.info(f"Returning cached result for {key}")
        return cast(T, cached)

    result = fetch()
    cache.set(key, result, ttl_minutes)
    return result


def _invalidate_budget_reads(budget_id: str) -> None:
    for prefix in BUDGET_READ_CACHE_KEYS:
        cache.invalidate(f"{prefix}:{budget_id}:")


def _filter_active_items[T](
    items: list[T],
    *,
    exclude_deleted: bool = True,
    exclude_hidden: bool = False,
    exclude_closed: bool = False,
) -> list[T]:
    """Filter items to exclude deleted/hidden/closed based on flags."""
    filtered = []
    for item in items:
        if exclude_deleted and getattr(item, "deleted", False):
            continue
        if exclude_hidden and getattr(item, "hidden", False):
            continue
        if exclude_closed and getattr(item, "closed", False):
            continue
        filtered.append(item)
    return filtered


def convert_month_to_date(month: MonthArg) -> date:
    """Convert month parameter to appropriate date object for YNAB API.

    Args:
        month: Month in ISO format (date object), or "current", "last", "next" literals

    Returns:
        date object representing the first day of the specified month:
        - "current": first day of current month
        - "last": first day of previous month
        - "next": first day of next month
        - date objects are moved to the first day of their month
    """
    if isinstance(month, date):
        return month.replace(day=1)

    today = datetime.now().date()
    year, month_num = today.year, today.month

    match month:
        case "current":
            return date(year, month_num, 1)
        case "last":
            return (
                date(year - 1, 12, 1)
                if month_num == 1
                else date(year, month_num - 1, 1)
            )
        case "next":
            return (
                date(year + 1, 1, 1)
                if month_num == 12
                else date(year, month_num + 1, 1)
            )
        case _:
            raise validation_error(f"Invalid month value: {month}")


def months_ago(day: date, months: int) -> date:
    """The same day `months` calendar months earlier, clamped to month end."""
    year, month_index = divmod(day.year * 12 + day.month - 1 - months, 12)
    month = month_index + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


@mcp.tool()
def list_budgets() -> BudgetsResponse:
    """List all budgets the connected YNAB account can access.

    This is the first tool to call when you don't have a budget_id; almost every
    other tool needs one. Store the chosen budget id for the rest of the
    conversation.

    Returns:
        BudgetsResponse with the id and name of each budget
    """

    def fetch() -> BudgetsResponse:
        logger.info("Listing budgets")
        with get_ynab_client() as api_client, translate_api_errors("listing budgets"):
            budgets_api = ynab.BudgetsApi(api_client)
            budgets_response = budgets_api.get_budgets()

        budgets = [
            BudgetRef(id=budget.id, name=budget.name)
            for budget in budgets_response.data.budgets
        ]
        logger.info(f"Found {len(budgets)} budgets")
        return BudgetsResponse(budgets=budgets)

    return _cached("budgets:list", fetch)


@mcp.tool()
def budget_summary(
    budget_id: str | None = None,
    month: MonthArg = "current",
) -> BudgetSummary:
    """Summarize a budget month: income, budgeted, activity, Ready to Assign,
    open account balances, and which categories are overspent.

    Hidden and deleted categories and closed accounts are excluded automatically.

    Args:
        budget_id: Budget to summarize (optional, defaults to the configured budget)
        month: Specifies which budget month to summarize:
              • "current": Current calendar month
              • "last": Previous calendar month
              • "next": Next calendar month
              • date object: Specific month (uses first day of month)
              (default: "current")

    Returns:
        BudgetSummary with month totals, accounts and overspent category names
    """
    resolved_budget = resolve_budget_id(budget_id)
    converted_month = convert_month_to_date(month)

    def fetch() -> BudgetSummary:
        logger.info(
            f"Getting budget summary for {resolved_budget} month {converted_month}"
        )
        with (
            get_ynab_client() as api_client,
            translate_api_errors(f"summarizing budget {resolved_budget}"),
        ):
            accounts_response = ynab.AccountsApi(api_client).get_accounts(
                resolved_budget
            )
            month_response = ynab.MonthsApi(api_client).get_budget_month(
                resolved_budget, converted_month
            )

        accounts = _filter_active_items(
            accounts_response.data.accounts, exclude_closed=True
        )
        month_data = month_response.data.month
        visible_categories = _filter_active_items(
            month_data.categories, exclude_hidden=True
        )

        return BudgetSummary(
            month=BudgetMonth.from_ynab(month_data, visible_categories),
            accounts=[Account.from_ynab(account) for account in accounts],
            overspent_categories=[
                category.name
                for category in visible_categories
                if category.balance < 0
            ],
        )

    return _cached(
        f"budget_summary:{resolved_budget}:{converted_month.isoformat()}", fetch
    )


@mcp.tool()
def get_month_detail(
    budget_id: str | None = None,
    month: MonthArg = "current",
) -> BudgetMonth:
    """Get full details for a budget month, including Age of Money, Ready to
    Assign and every category's budgeted amount, activity and balance.

    Use this to review budget status and to find category IDs for adjustments.
    Hidden categories are included and marked; deleted categories are excluded.

    Args:
        budget_id: Budget to read (optional, defaults to the configured budget)
        month: "current", "last", "next" or a specific month date
              (default: "current")

    Returns:
        BudgetMonth with month totals and all categories
    """
    resolved_budget = resolve_budget_id(budget_id)
    converted_month = convert_month_to_date(month)

    logger.info(f"Getting month detail for {converted_month} in {resolved_budget}")
    with (
        get_ynab_client() as api_client,
        translate_api_errors(f"getting month {converted_month}"),
    ):
        months_api = ynab.MonthsApi(api_client)
        month_response = months_api.get_budget_month(resolved_budget, converted_month)

    month_data = month_response.data.month
    return BudgetMonth.from_ynab(
        month_data, _filter_active_items(month_data.categories)
    )


@mcp.tool()
def list_accounts(budget_id: str | None = None) -> AccountsResponse:
    """List the accounts in a budget with their types and balances.

    You need an account_id before creating transactions or transfers. Deleted
    accounts are excluded; closed accounts are included and marked.

    Args:
        budget_id: Budget to read (optional, defaults to the configured budget)

    Returns:
        AccountsResponse with the budget's accounts
    """
    resolved_budget = resolve_budget_id(budget_id)

    def fetch() -> AccountsResponse:
        logger.info(f"Listing accounts for budget {resolved_budget}")
        with get_ynab_client() as api_client, translate_api_errors("listing accounts"):
            accounts_api = ynab.AccountsApi(api_client)
            accounts_response = accounts_api.get_accounts(resolved_budget)

        accounts = _filter_active_items(accounts_response.data.accounts)
        return AccountsResponse(
            accounts=[Account.from_ynab(account) for account in accounts]
        )

    return _cached(f"list_accounts:{resolved_budget}:", fetch)


@mcp.tool()
def get_payees(budget_id: str | None = None) -> PayeesResponse:
    """List the payees in a budget, sorted by name.

    Payees are the entities you pay money to (merchants, people, companies, etc.).
    Deleted payees are excluded automatically.

    Args:
        budget_id: Budget to read (optional, defaults to the configured budget)

    Returns:
        PayeesResponse with the budget's payees
    """
    resolved_budget = resolve_budget_id(budget_id)

    def fetch() -> PayeesResponse:
        logger.info(f"Listing payees for budget {resolved_budget}")
        with get_ynab_client() as api_client, translate_api_errors("listing payees"):
            payees_api = ynab.PayeesApi(api_client)
            payees_response = payees_api.get_payees(resolved_budget)

        payees = [
            Payee.from_ynab(payee)
            for payee in _filter_active_items(payees_response.data.payees)
        ]
        payees.sort(key=lambda p: p.name.lower())
        return PayeesResponse(payees=payees)

    return _cached(f"payees:{resolved_budget}:", fetch)


@mcp.tool()
def get_single_payee(payee_id: str, budget_id: str | None = None) -> Payee:
    """Get one payee by ID.

    Args:
        payee_id: Payee to fetch (required)
        budget_id: Budget to read (optional, defaults to the configured budget)

    Returns:
        The payee
    """
    resolved_budget = resolve_budget_id(budget_id)
    with (
        get_ynab_client() as api_client,
        translate_api_errors(f"getting payee {payee_id}"),
    ):
        payees_api = ynab.PayeesApi(api_client)
        payee_response = payees_api.get_payee_by_id(resolved_budget, payee_id)

    return Payee.from_ynab(payee_response.data.payee)


@mcp.tool()
def get_unapproved_transactions(
    budget_id: str | None = None,
) -> UnapprovedTransactions:
    """Fetch all unapproved (pending) transactions in a budget.

    Use this to discover transactions that need review, then approve them with
    approve_transaction.

    Args:
        budget_id: Budget to read (optional, defaults to the configured budget)

    Returns:
        UnapprovedTransactions with the transactions and their count
    """
    resolved_budget = resolve_budget_id(budget_id)

    logger.info(f"Getting unapproved transactions for budget {resolved_budget}")
    with (
        get_ynab_client() as api_client,
        translate_api_errors("getting unapproved transactions"),
    ):
        transactions_api = ynab.TransactionsApi(api_client)
        response = transactions_api.get_transactions(
            resolved_budget, since_date=None, type="unapproved"
        )

    transactions = [
        Transaction.from_ynab(txn)
        for txn in _filter_active_items(response.data.transactions)
    ]
    return UnapprovedTransactions(
        transactions=transactions, transaction_count=len(transactions)
    )


@mcp.tool()
def list_scheduled_transactions(
    budget_id: str | None = None,
    account_id: str | None = None,
    frequency: Frequency | None = None,
    upcoming_days: int | None = None,
) -> ScheduledTransactionsResponse:
    """List scheduled (recurring) transactions such as bills, salary and
    subscriptions, earliest next occurrence first.

    Example queries this tool can answer:
    - "Show me all monthly recurring expenses" (use frequency="monthly")
    - "What bills are due in the next 7 days?" (use upcoming_days=7)

    Args:
        budget_id: Budget to read (optional, defaults to the configured budget)
        account_id: Filter by specific account (optional)
        frequency: Filter by recurrence frequency, e.g. "monthly" (optional)
        upcoming_days: Only show scheduled transactions with next occurrence
                       within this many days (optional)

    Returns:
        ScheduledTransactionsResponse with the matching scheduled transactions
    """
    resolved_budget = resolve_budget_id(budget_id)

    with (
        get_ynab_client() as api_client,
        translate_api_errors("listing scheduled transactions"),
    ):
        scheduled_transactions_api = ynab.ScheduledTransactionsApi(api_client)
        response = scheduled_transactions_api.get_scheduled_transactions(
            resolved_budget
        )

    today = datetime.now().date()
    scheduled_transactions = []
    for st in _filter_active_items(response.data.scheduled_transactions):
        if account_id and st.account_id != account_id:
            continue
        if frequency and st.frequency != frequency:
            continue
        if upcoming_days is not None and (st.date_next - today).days > upcoming_days:
            continue
        scheduled_transactions.append(ScheduledTransaction.from_ynab(st))

    scheduled_transactions.sort(key=lambda st: st.date_next)
    return ScheduledTransactionsResponse(scheduled_transactions=scheduled_transactions)


@mcp.tool()
def analyze_transactions(
    budget_id: str | None = None,
    account_id: str | None = None,
    category_id: str | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    limit: Annotated[int, Field(ge=1, le=100)] = 50,
) -> TransactionSearch:
    """Search transactions by account, category and date range, newest first.

    Returns payee, amount, category, memo and split details for each match.
    Perfect for finding specific transactions (and their IDs) or reviewing
    recent activity.

    Args:
        budget_id: Budget to search (optional, defaults to the configured budget)
        account_id: Only transactions in this account (optional)
        category_id: Only transactions in this category (optional)
        from_date: Only transactions on or after this date (optional)
        to_date: Only transactions on or before this date (optional)
        limit: Maximum number of transactions to return, 1-100 (default: 50)

    Returns:
        TransactionSearch with a summary of the filters and the transactions
    """
    resolved_budget = resolve_budget_id(budget_id)
    filters = TransactionFilters(
        account_id=account_id,
        category_id=category_id,
        from_date=from_date,
        to_date=to_date,
    )

    def fetch() -> TransactionSearch:
        logger.info(f"Analyzing transactions for budget {resolved_budget}")
        with (
            get_ynab_client() as api_client,
            translate_api_errors("searching transactions"),
        ):
            transactions_api = ynab.TransactionsApi(api_client)

            response: ynab.TransactionsResponse | ynab.HybridTransactionsResponse
            if account_id:
                response = transactions_api.get_transactions_by_account(
                    resolved_budget, account_id, since_date=from_date, type=None
                )
            elif category_id:
                response = transactions_api.get_transactions_by_category(
                    resolved_budget, category_id, since_date=from_date, type=None
                )
            else:
                response = transactions_api.get_transactions(
                    resolved_budget, since_date=from_date, type=None
                )

        transactions = _filter_active_items(
            cast(
                list[ynab.TransactionDetail | ynab.HybridTransaction],
                response.data.transactions,
            )
        )
        if account_id and category_id:
            transactions = [t for t in transactions if t.category_id == category_id]
        if to_date is not None:
            transactions = [t for t in transactions if t.var_date <= to_date]

        transactions.sort(key=lambda t: t.var_date, reverse=True)
        shown = [Transaction.from_ynab(t) for t in transactions[:limit]]

        return TransactionSearch(
            summary=TransactionSearchSummary(
                total_found=len(transactions), showing=len(shown), filters=filters
            ),
            transactions=shown,
        )

    key = ":".join(
        [
            "analyze_transactions",
            resolved_budget,
            account_id or "all",
            category_id or "all",
            from_date.isoformat() if from_date else "any",
            to_date.isoformat() if to_date else "any",
            str(limit),
        ]
    )
    return _cached(key, fetch)


@mcp.tool()
def analyze_spending_by_category(
    budget_id: str | None = None,
    months_back: Annotated[int, Field(ge=1, le=12)] = 1,
) -> SpendingAnalysis:
    """Analyze where money went: total spending over the last N months broken
    down by category, ranked from highest to lowest.

    Only outflows count; income and transfers between accounts are excluded.
    Split transactions are attributed to each subtransaction's category.

    Example queries this tool can answer:
    - "Where did my money go this month?" (months_back=1)
    - "What were my biggest spending categories this quarter?" (months_back=3)

    Args:
        budget_id: Budget to analyze (optional, defaults to the configured budget)
        months_back: Number of months to analyze, 1-12 (default: 1)

    Returns:
        SpendingAnalysis with totals per category and a short summary
    """
    resolved_budget = resolve_budget_id(budget_id)

    def fetch() -> SpendingAnalysis:
        today = datetime.now().date()
        start_date = months_ago(today, months_back)
        logger.info(
            f"Analyzing spending for budget {resolved_budget} since {start_date}"
        )
        with (
            get_ynab_client() as api_client,
            translate_api_errors("analyzing spending"),
        ):
            transactions_api = ynab.TransactionsApi(api_client)
            response = transactions_api.get_transactions(
                resolved_budget, since_date=start_date, type=None
            )

        spending = [
            t
            for t in response.data.transactions
            if t.amount < 0 and not t.transfer_account_id and not t.deleted
        ]

        totals: dict[str, Decimal] = defaultdict(Decimal)
        counts: dict[str, int] = defaultdict(int)
        category_ids: dict[str, str | None] = {}

        def add(name: str | None, category_id: str | None, milliunits: int) -> None:
            name = name or "Uncategorized"
            totals[name] += milliunits_to_currency(abs(milliunits))
            counts[name] += 1
            category_ids[name] = category_id

        for t in spending:
            if t.subtransactions:
                for sub in t.subtransactions:
                    if not sub.deleted:
                        add(sub.category_name, sub.category_id, sub.amount)
            else:
                add(t.category_name, t.category_id, t.amount)

        breakdown = sorted(
            (
                CategorySpending(
                    category=name,
                    category_id=category_ids[name],
                    total=round_currency(total),
                    transaction_count=counts[name],
                )
                for name, total in totals.items()
            ),
            key=lambda c: c.total,
            reverse=True,
        )
        total_spending = round_currency(sum(totals.values(), Decimal(0)))

        summary = (
            f"Over the last {months_back} month(s), you spent a total of "
            f"{total_spending} across {len(spending)} transactions."
        )
        if breakdown:
            summary += (
                f' Your top spending category was "{breakdown[0].category}" '
                f"at {breakdown[0].total}."
            )

        return SpendingAnalysis(
            period=ReportPeriod(
                from_date=start_date, to_date=today, months_back=months_back
            ),
            total_spending=total_spending,
            category_breakdown=breakdown,
            conversational_summary=summary,
        )

    return _cached(f"analyze_spending:{resolved_budget}:{months_back}", fetch)


@mcp.tool()
def generate_spending_report(
    budget_id: str | None = None,
    months_back: Annotated[int, Field(ge=1, le=24)] = 6,
) -> SpendingReport:
    """Generate an income and expense report broken down by calendar month.

    Shows each month's income, expenses and net, overall totals and monthly
    averages. Transfers between accounts are excluded. Useful for financial
    planning and spotting trends.

    Args:
        budget_id: Budget to report on (optional, defaults to the configured budget)
        months_back: Number of months to include, 1-24 (default: 6)

    Returns:
        SpendingReport with monthly figures, totals and averages
    """
    resolved_budget = resolve_budget_id(budget_id)

    def fetch() -> SpendingReport:
        today = datetime.now().date()
        start_date = months_ago(today, months_back).replace(day=1)
        logger.info(
            f"Generating spending report for budget {resolved_budget} "
            f"since {start_date}"
        )
        with (
            get_ynab_client() as api_client,
            translate_api_errors("generating spending report"),
        ):
            transactions_api = ynab.TransactionsApi(api_client)
            response = transactions_api.get_transactions(
                resolved_budget, since_date=start_date, type=None
            )

        income: dict[str, Decimal] = defaultdict(Decimal)
        expenses: dict[str, Decimal] = defaultdict(Decimal)
        for t in response.data.transactions:
            if t.deleted or t.transfer_account_id:
                continue
            month = t.var_date.strftime("%Y-%m")
            amount = milliunits_to_currency(t.amount)
            if amount > 0:
                income[month] += amount
            else:
                expenses[month] += -amount

        monthly_report = [
            MonthlyCashFlow(
                month=month,
                income=round_currency(income[month]),
                expenses=round_currency(expenses[month]),
                net=round_currency(income[month] - expenses[month]),
            )
            for month in sorted(income.keys() | expenses.keys())
        ]

        total_income = sum((m.income for m in monthly_report), Decimal(0))
        total_expenses = sum((m.expenses for m in monthly_report), Decimal(0))
        month_count = max(len(monthly_report), 1)
        average_income = round_currency(total_income / month_count)
        average_expenses = round_currency(total_expenses / month_count)

        return SpendingReport(
            period=ReportPeriod(
                from_date=start_date, to_date=today, months_back=months_back
            ),
            monthly_report=monthly_report,
            totals=CashFlowTotals(
                income=total_income,
                expenses=total_expenses,
                net=total_income - total_expenses,
            ),
            average_monthly_income=average_income,
            average_monthly_expenses=average_expenses,
            conversational_summary=(
                f"Over the last {months_back} months, your average monthly income "
                f"was {average_income} and average monthly expenses were "
                f"{average_expenses}."
            ),
        )

    return _cached(
        f"spending_report:{resolved_budget}:{months_back}", fetch, ttl_minutes=10
    )


@mcp.tool()
def health_check(budget_id: str | None = None) -> HealthStatus:
    """Check YNAB API connectivity and whether the budget is reachable.

    Args:
        budget_id: Budget to check (optional, defaults to the configured budget)

    Returns:
        HealthStatus with the user ID, API latency and budget status
    """
    budget_to_check = budget_id or os.getenv("YNAB_BUDGET")

    with get_ynab_client() as api_client:
        start = time.perf_counter()
        with translate_api_errors("checking YNAB connectivity"):
            user_response = ynab.UserApi(api_client).get_user()
        latency_ms = int((time.perf_counter() - start) * 1000)

        budget_status = "Not checked"
        if budget_to_check:
            try:
                budgets_response = ynab.BudgetsApi(api_client).get_budgets()
            except ApiException as e:
                logger.error(f"Health check could not list budgets: {e}")
                budget_status = "Invalid Budget ID or Permission Denied"
            else:
                names = {b.id: b.name for b in budgets_response.data.budgets}
                budget_status = (
                    f'Connected to "{names[budget_to_check]}"'
                    if budget_to_check in names
                    else "Invalid Budget ID or Permission Denied"
                )

    return HealthStatus(
        user_id=user_response.data.user.id,
        latency_ms=latency_ms,
        budget_status=budget_status,
    )


def _check_split(amount: Decimal, subtransactions: list[SubtransactionInput]) -> None:
    split_total = sum((sub.amount for sub in subtransactions), Decimal(0))
    if abs(split_total - amount) > Decimal("0.01"):
        raise validation_error(
            f"Subtransaction amounts ({split_total}) do not match the transaction "
            f"amount ({amount})."
        )


def _create_transactions(
    budget_id: str, transactions: list[TransactionInput]
) -> CreatedTransactions:
    if not transactions:
        raise validation_error(
            "Transactions list is required and must not be empty. Provide at least "
            "one transaction."
        )
    for txn in transactions:
        if txn.subtransactions:
            _check_split(txn.amount, txn.subtransactions)

    logger.info(f"Creating {len(transactions)} transactions for budget {budget_id}")
    with (
        get_ynab_client() as api_client,
        translate_api_errors("creating transactions"),
    ):
        transactions_api = ynab.TransactionsApi(api_client)
        wrapper = ynab.PostTransactionsWrapper(
            transactions=[txn.to_ynab() for txn in transactions]
        )
        response = transactions_api.create_transaction(budget_id, wrapper)

    _invalidate_budget_reads(budget_id)

    transaction_ids = list(response.data.transaction_ids)
    duplicates = list(response.data.duplicate_import_ids or [])
    logger.info(f"Created {len(transaction_ids)} transactions")
    if duplicates:
        logger.info(f"Skipped {len(duplicates)} duplicate import IDs")

    return CreatedTransactions(
        total_requested=len(transactions),
        total_created=len(transaction_ids),
        transaction_ids=transaction_ids,
        duplicate_import_ids=duplicates,
    )


@mcp.tool()
def create_transaction(
    account_id: str,
    date: date,
    amount: Decimal,
    payee_name: str | None = None,
    payee_id: str | None = None,
    category_id: str | None = None,
    memo: str | None = None,
    cleared: ClearedStatus | None = None,
    approved: bool | None = None,
    flag_color: str | None = None,
    budget_id: str | None = None,
) -> CreatedTransactions:
    """Create a single transaction.

    Args:
        account_id: Account the money moved in or out of, from list_accounts
        date: Transaction date (YYYY-MM-DD)
        amount: Amount in currency units. Negative for expenses (e.g. -10.99),
                positive for income (e.g. 1000.00)
        payee_name: Payee name; YNAB creates the payee if it doesn't exist (optional)
        payee_id: Existing payee ID (optional)
        category_id: Category ID, from get_month_detail (optional)
        memo: Memo (optional)
        cleared: "cleared", "uncleared" or "reconciled" (optional)
        approved: Whether the transaction is approved (optional)
        flag_color: red, orange, yellow, green, blue or purple (optional)
        budget_id: Budget to write to (optional, defaults to the configured budget)

    Returns:
        CreatedTransactions with the new transaction's ID
    """
    transaction = TransactionInput(
        account_id=account_id,
        date=date,
        amount=amount,
        payee_name=payee_name,
        payee_id=payee_id,
        category_id=category_id,
        memo=memo,
        cleared=cleared,
        approved=approved,
        flag_color=flag_color,
    )
    return _create_transactions(resolve_budget_id(budget_id), [transaction])


@mcp.tool()
def create_multiple_transactions(
    transactions: list[TransactionInput],
    budget_id: str | None = None,
) -> CreatedTransactions:
    """Create several transactions at once (bulk import).

    Use this when the user has several transactions to add in one step rather
    than calling create_transaction repeatedly. Transactions with an import_id
    that YNAB has already seen are skipped and reported as duplicates.

    Args:
        transactions: Transactions to create; each may include split lines
        budget_id: Budget to write to (optional, defaults to the configured budget)

    Returns:
        CreatedTransactions with created IDs and duplicate import IDs
    """
    return _create_transactions(resolve_budget_id(budget_id), transactions)


def _put_transaction(
    budget_id: str, transaction_id: str, action: str, **fields: object
) -> ynab.TransactionDetail:
    with get_ynab_client() as api_client, translate_api_errors(action):
        transactions_api = ynab.TransactionsApi(api_client)
        put_wrapper = ynab.PutTransactionWrapper(
            transaction=ynab.ExistingTransaction(**fields)
        )
        response = transactions_api.update_transaction(
            budget_id, transaction_id, put_wrapper
        )

    _invalidate_budget_reads(budget_id)
    return response.data.transaction


@mcp.tool()
def update_single_transaction(
    transaction_id: str,
    account_id: str | None = None,
    date: date | None = None,
    amount: Decimal | None = None,
    payee_name: str | None = None,
    payee_id: str | None = None,
    category_id: str | None = None,
    memo: str | None = None,
    cleared: ClearedStatus | None = None,
    approved: bool | None = None,
    flag_color: str | None = None,
    budget_id: str | None = None,
) -> Transaction:
    """Update an existing transaction. Only the fields you pass are changed.

    Commonly used to assign the right category to imported transactions, fix an
    amount or date, or add a memo. At least one field besides transaction_id is
    required.

    Args:
        transaction_id: Transaction to update, from analyze_transactions (required)
        account_id: Move the transaction to this account (optional)
        date: New date (optional)
        amount: New amount in currency units (optional)
        payee_name: New payee name (optional)
        payee_id: New payee ID (optional)
        category_id: New category ID (optional)
        memo: New memo (optional)
        cleared: "cleared", "uncleared" or "reconciled" (optional)
        approved: Approval status (optional)
        flag_color: red, orange, yellow, green, blue or purple (optional)
        budget_id: Budget to write to (optional, defaults to the configured budget)

    Returns:
        Transaction with updated information
    """
    resolved_budget = resolve_budget_id(budget_id)
    update = TransactionUpdate(
        id=transaction_id,
        account_id=account_id,
        date=date,
        amount=amount,
        payee_name=payee_name,
        payee_id=payee_id,
        category_id=category_id or None,
        memo=memo,
        cleared=cleared,
        approved=approved,
        flag_color=flag_color,
    )
    changes = update.changes()
    if not changes:
        raise validation_error(
            "At least one field to update is required. Specify amount, category, "
            "date, payee, memo, cleared or approved."
        )

    logger.info(f"Updating transaction {transaction_id} in budget {resolved_budget}")
    updated = _put_transaction(
        resolved_budget,
        transaction_id,
        f"updating transaction {transaction_id}",
        **changes,
    )
    return Transaction.from_ynab(updated)


@mcp.tool()
def update_multiple_transactions(
    transactions: list[TransactionUpdate],
    budget_id: str | None = None,
) -> UpdatedTransactions:
    """Update several transactions in one request, e.g. recategorizing a batch
    of imported transactions. Each entry needs an id and at least one change.

    Args:
        transactions: Updates to apply, each with the transaction id
        budget_id: Budget to write to (optional, defaults to the configured budget)

    Returns:
        UpdatedTransactions with the IDs YNAB reported as saved
    """
    resolved_budget = resolve_budget_id(budget_id)
    if not transactions:
        raise validation_error("Provide at least one transaction update.")

    patches = []
    for update in transactions:
        changes = update.changes()
        if not changes:
            raise validation_error(f"Transaction {update.id} has no fields to update.")
        patches.append(ynab.SaveTransactionWithIdOrImportId(id=update.id, **changes))

    logger.info(f"Updating {len(patches)} transactions in budget {resolved_budget}")
    with (
        get_ynab_client() as api_client,
        translate_api_errors("updating transactions"),
    ):
        transactions_api = ynab.TransactionsApi(api_client)
        response = transactions_api.update_transactions(
            resolved_budget, ynab.PatchTransactionsWrapper(transactions=patches)
        )

    _invalidate_budget_reads(resolved_budget)
    transaction_ids = list(response.data.transaction_ids)
    return UpdatedTransactions(
        total_requested=len(patches),
        total_updated=len(transaction_ids),
        transaction_ids=transaction_ids,
    )


@mcp.tool()
def approve_transaction(
    transaction_id: str,
    approved: bool = True,
    budget_id: str | None = None,
) -> OperationResult:
    """Approve (or un-approve) a transaction, marking it as reviewed.

    Args:
        transaction_id: Transaction to approve, e.g. from get_unapproved_transactions
        approved: True to approve, False to un-approve (default: True)
        budget_id: Budget to write to (optional, defaults to the configured budget)

    Returns:
        OperationResult with the transaction ID
    """
    resolved_budget = resolve_budget_id(budget_id)
    updated = _put_transaction(
        resolved_budget,
        transaction_id,
        f"approving transaction {transaction_id}",
        approved=approved,
    )
    return OperationResult(
        message="Transaction approved."
        if approved
        else "Transaction marked as unapproved.",
        id=updated.id,
    )


@mcp.tool()
def clear_transaction(
    transaction_id: str,
    cleared: ClearedStatus = "cleared",
    budget_id: str | None = None,
) -> OperationResult:
    """Set a transaction's cleared status, e.g. once it shows up on the bank
    statement.

    Args:
        transaction_id: Transaction to update (required)
        cleared: "cleared", "uncleared" or "reconciled" (default: "cleared")
        budget_id: Budget to write to (optional, defaults to the configured budget)

    Returns:
        OperationResult with the transaction ID
    """
    resolved_budget = resolve_budget_id(budget_id)
    updated = _put_transaction(
        resolved_budget,
        transaction_id,
        f"clearing transaction {transaction_id}",
        cleared=cleared,
    )
    return OperationResult(message=f"Transaction marked as {cleared}.", id=updated.id)


@mcp.tool()
def create_split_transaction(
    transaction_id: str,
    subtransactions: list[SubtransactionInput],
    amount: Decimal | None = None,
    memo: str | None = None,
    budget_id: str | None = None,
) -> Transaction:
    """Split an existing transaction across several categories.

    The parent transaction loses its own category; each subtransaction carries
    one. Subtransaction amounts use the same sign as the parent (negative for
    spending).

    Args:
        transaction_id: Transaction to split (required)
        subtransactions: At least two split lines
        amount: Parent total; when given the split lines must add up to it.
                Defaults to the sum of the split lines (optional)
        memo: New memo for the parent transaction (optional)
        budget_id: Budget to write to (optional, defaults to the configured budget)

    Returns:
        Transaction with its subtransactions
    """
    resolved_budget = resolve_budget_id(budget_id)
    if len(subtransactions) < 2:
        raise validation_error(
            "At least 2 subtransactions are required for a split transaction."
        )

    split_total = sum((sub.amount for sub in subtransactions), Decimal(0))
    if amount is not None:
        _check_split(amount, subtransactions)
    total = amount if amount is not None else split_total

    fields: dict[str, object] = {
        "amount": currency_to_milliunits(total),
        "category_id": None,
        "subtransactions": [sub.to_ynab() for sub in subtransactions],
    }
    if memo is not None:
        fields["memo"] = memo

    logger.info(f"Splitting transaction {transaction_id} in budget {resolved_budget}")
    updated = _put_transaction(
        resolved_budget,
        transaction_id,
        f"splitting transaction {transaction_id}",
        **fields,
    )
    return Transaction.from_ynab(updated)


@mcp.tool()
def delete_transaction(
    transaction_id: str,
    budget_id: str | None = None,
) -> OperationResult:
    """Permanently delete a transaction. This cannot be undone.

    Only use this to remove duplicates or clear errors; use
    update_single_transaction for corrections.

    Args:
        transaction_id: Transaction to delete (required)
        budget_id: Budget to write to (optional, defaults to the configured budget)

    Returns:
        OperationResult confirming the deletion
    """
    resolved_budget = resolve_budget_id(budget_id)

    logger.info(f"Deleting transaction {transaction_id} from budget {resolved_budget}")
    with (
        get_ynab_client() as api_client,
        translate_api_errors(f"deleting transaction {transaction_id}"),
    ):
        transactions_api = ynab.TransactionsApi(api_client)
        transactions_api.delete_transaction(resolved_budget, transaction_id)

    _invalidate_budget_reads(resolved_budget)
    return OperationResult(
        message=f"Deleted transaction {transaction_id}. This cannot be undone.",
        id=transaction_id,
    )


@mcp.tool()
def create_transfer(
    from_account_id: str,
    to_account_id: str,
    amount: Decimal,
    date: date,
    memo: str | None = None,
    budget_id: str | None = None,
) -> TransferResult:
    """Move money between two of the user's accounts (e.g. checking to savings).

    Creates a linked transfer: an outflow on the source account and the
    matching inflow on the destination. Do NOT use this for moving money between
    categories; use move_funds for that.

    Args:
        from_account_id: Account the money comes FROM, from list_accounts
        to_account_id: Account the money goes TO, from list_accounts
        amount: Positive amount to transfer, e.g. 500.00
        date: Transfer date (YYYY-MM-DD)
        memo: Memo, e.g. "Emergency fund" (optional)
        budget_id: Budget to write to (optional, defaults to the configured budget)

    Returns:
        TransferResult with both sides of the transfer
    """
    resolved_budget = resolve_budget_id(budget_id)
    if from_account_id == to_account_id:
        raise validation_error("Cannot transfer to the same account.")
    if amount <= 0:
        raise validation_error("Transfer amount must be positive.")

    with get_ynab_client() as api_client:
        with translate_api_errors("looking up transfer accounts"):
            accounts_response = ynab.AccountsApi(api_client).get_accounts(
                resolved_budget
            )
        accounts = {a.id: a for a in accounts_response.data.accounts}

        from_account = accounts.get(from_account_id)
        to_account = accounts.get(to_account_id)
        if from_account is None:
            raise validation_error(
                f"Source account {from_account_id} not found. Call list_accounts."
            )
        if to_account is None:
            raise validation_error(
                f"Destination account {to_account_id} not found. Call list_accounts."
            )
        if not to_account.transfer_payee_id:
            raise validation_error(
                f"Destination account '{to_account.name}' has no transfer payee."
            )

        transaction = ynab.NewTransaction(
            account_id=from_account_id,
            date=date,
            amount=-currency_to_milliunits(amount),
            payee_id=to_account.transfer_payee_id,
            memo=memo,
            cleared="cleared",
            approved=True,
        )
        logger.info(
            f"Transferring {amount} from {from_account.name} to {to_account.name}"
        )
        with translate_api_errors("creating transfer"):
            response = ynab.TransactionsApi(api_client).create_transaction(
                resolved_budget, ynab.PostTransactionsWrapper(transaction=transaction)
            )

    _invalidate_budget_reads(resolved_budget)
    created = response.data.transaction
    return TransferResult(
        message=f"Transferred {amount} from {from_account.name} to {to_account.name}.",
        transaction_id=created.id,
        transfer_transaction_id=created.transfer_transaction_id,
    )


@mcp.tool()
def create_scheduled_transaction(
    account_id: str,
    date: date,
    amount: Decimal,
    frequency: Frequency,
    payee_id: str | None = None,
    payee_name: str | None = None,
    category_id: str | None = None,
    memo: str | None = None,
    budget_id: str | None = None,
) -> ScheduledTransaction:
    """Create a recurring transaction for bills, salary, subscriptions, etc.

    Scheduled transactions are reminders; they are entered into the register
    when they come due.

    Args:
        account_id: Account for the transaction, from list_accounts
        date: First occurrence (YYYY-MM-DD); later dates follow the frequency
        amount: Amount in currency units. Negative for expenses (e.g. -1500),
                positive for income (e.g. 2500)
        frequency: How often it repeats, e.g. "monthly", "weekly", "yearly"
        payee_id: Existing payee ID (optional)
        payee_name: Payee name; YNAB creates the payee if it doesn't exist (optional)
        category_id: Category ID (optional)
        memo: Memo, e.g. "Monthly rent" (optional)
        budget_id: Budget to write to (optional, defaults to the configured budget)

    Returns:
        The created ScheduledTransaction
    """
    resolved_budget = resolve_budget_id(budget_id)

    scheduled_transaction = ynab.SaveScheduledTransaction(
        account_id=account_id,
        date=date,
        amount=currency_to_milliunits(amount),
        frequency=frequency,
        payee_id=payee_id,
        payee_name=payee_name,
        category_id=category_id,
        memo=memo,
    )
    logger.info(f"Creating {frequency} scheduled transaction in {resolved_budget}")
    with (
        get_ynab_client() as api_client,
        translate_api_errors("creating scheduled transaction"),
    ):
        scheduled_transactions_api = ynab.ScheduledTransactionsApi(api_client)
        response = scheduled_transactions_api.create_scheduled_transaction(
            resolved_budget,
            ynab.PostScheduledTransactionWrapper(
                scheduled_transaction=scheduled_transaction
            ),
        )
    _invalidate_budget_reads(resolved_budget)

    return ScheduledTransaction.from_ynab(response.data.scheduled_transaction)


@mcp.tool()
def delete_scheduled_transaction(
    scheduled_transaction_id: str,
    budget_id: str | None = None,
) -> OperationResult:
    """Delete a scheduled (recurring) transaction. Transactions it already
    entered are not affected.

    Args:
        scheduled_transaction_id: Scheduled transaction to delete (required)
        budget_id: Budget to write to (optional, defaults to the configured budget)

    Returns:
        OperationResult confirming the deletion
    """
    resolved_budget = resolve_budget_id(budget_id)
    with (
        get_ynab_client() as api_client,
        translate_api_errors(
            f"deleting scheduled transaction {scheduled_transaction_id}"
        ),
    ):
        scheduled_transactions_api = ynab.ScheduledTransactionsApi(api_client)
        scheduled_transactions_api.delete_scheduled_transaction(
            resolved_budget, scheduled_transaction_id
        )
    _invalidate_budget_reads(resolved_budget)

    return OperationResult(
        message=f"Deleted scheduled transaction {scheduled_transaction_id}.",
        id=scheduled_transaction_id,
    )


def _set_budgeted(
    categories_api: ynab.CategoriesApi,
    budget_id: str,
    month: date,
    category_id: str,
    budgeted_milliunits: int,
) -> ynab.Category:
    save_month_category = ynab.SaveMonthCategory(budgeted=budgeted_milliunits)
    patch_wrapper = ynab.PatchMonthCategoryWrapper(category=save_month_category)
    response = categories_api.update_month_category(
        budget_id, month, category_id, patch_wrapper
    )
    return response.data.category


@mcp.tool()
def update_category_budget(
    category_id: str,
    budgeted: Decimal,
    month: MonthArg = "current",
    budget_id: str | None = None,
) -> Category:
    """Set the budgeted (assigned) amount for a category in a specific month.

    IMPORTANT: For categories with NEED goals (refill up to X monthly), budget the
    full goal_target amount regardless of current balance.

    Args:
        category_id: Category to update (required)
        budgeted: Amount to budget for this category in currency units (required)
        month: "current", "last", "next" or a specific month date
              (default: "current")
        budget_id: Budget to write to (optional, defaults to the configured budget)

    Returns:
        Category with updated budget information
    """
    resolved_budget = resolve_budget_id(budget_id)
    converted_month = convert_month_to_date(month)

    with (
        get_ynab_client() as api_client,
        translate_api_errors(f"updating category {category_id}"),
    ):
        categories_api = ynab.CategoriesApi(api_client)
        category = _set_budgeted(
            categories_api,
            resolved_budget,
            converted_month,
            category_id,
            currency_to_milliunits(budgeted),
        )

    _invalidate_budget_reads(resolved_budget)
    return Category.from_ynab(category)


@mcp.tool()
def move_funds(
    source_category_id: str,
    destination_category_id: str,
    amount: Decimal,
    month: MonthArg = "current",
    budget_id: str | None = None,
) -> MoveFundsResult:
    """Move budgeted money from one category to another within a month.

    This is "Move Money" in YNAB: it only adjusts the budgeted amounts of the two
    categories and never touches accounts or transactions. Use it for requests
    like "Move $200 from Entertainment to Groceries" or "Cover overspending in
    Dining with money from Miscellaneous".

    Args:
        source_category_id: Category to take money FROM (required)
        destination_category_id: Category to give money TO (required)
        amount: Positive amount to move in currency units, e.g. 200.00 (required)
        month: "current", "last", "next" or a specific month date
              (default: "current")
        budget_id: Budget to write to (optional, defaults to the configured budget)

    Returns:
        MoveFundsResult with both categories' new budgeted amounts
    """
    resolved_budget = resolve_budget_id(budget_id)
    converted_month = convert_month_to_date(month)
    if source_category_id == destination_category_id:
        raise validation_error("Source and destination categories must be different.")
    if amount <= 0:
        raise validation_error("Amount must be a positive number, e.g. 50.00.")

    move_milliunits = currency_to_milliunits(amount)
    logger.info(
        f"Moving {amount} from {source_category_id} to {destination_category_id} "
        f"in {converted_month}"
    )

    with get_ynab_client() as api_client:
        categories_api = ynab.CategoriesApi(api_client)
        with translate_api_errors("reading categories to move funds"):
            source = categories_api.get_month_category_by_id(
                resolved_budget, converted_month, source_category_id
            ).data.category
            destination = categories_api.get_month_category_by_id(
                resolved_budget, converted_month, destination_category_id
            ).data.category

        new_source_budgeted = source.budgeted - move_milliunits
        new_destination_budgeted = destination.budgeted + move_milliunits

        with translate_api_errors(f"taking funds from '{source.name}'"):
            _set_budgeted(
                categories_api,
                resolved_budget,
                converted_month,
                source_category_id,
                new_source_budgeted,
            )

        # The two updates are independent requests; there is nothing to roll
        # back with, so a failure here leaves the source already reduced.
        try:
            _set_budgeted(
                categories_api,
                resolved_budget,
                converted_month,
                destination_category_id,
                new_destination_budgeted,
            )
        except ApiException as e:
            _invalidate_budget_reads(resolved_budget)
            error = api_error(f"adding funds to '{destination.name}'", e)
            logger.error(
                f"Move funds left budget {resolved_budget} partially updated: "
                f"{source.name} reduced, {destination.name} unchanged ({e})"
            )
            raise YNABToolError(
                error.kind,
                f"{error.message}. '{source.name}' was already reduced to "
                f"{milliunits_to_currency(new_source_budgeted)}; assign "
                f"{amount} to '{destination.name}' again or restore the source.",
                status=error.status,
            ) from e

    _invalidate_budget_reads(resolved_budget)
    return MoveFundsResult(
        message=f"Moved {amount} from '{source.name}' to '{destination.name}' "
        f"in {converted_month:%Y-%m}.",
        month=converted_month,
        amount=amount,
        new_source_budgeted=milliunits_to_currency(new_source_budgeted),
        new_destination_budgeted=milliunits_to_currency(new_destination_budgeted),
    )


@mcp.prompt()
def budget_assistant() -> str:
    """Guidance for working with a user's YNAB budget."""
    return """You are a helpful budgeting assistant with access to the user's YNAB
budget through tools.

Workflow:
1. If you don't know the budget, call list_budgets and confirm which one to use.
2. Use budget_summary for a quick overview and get_month_detail for category IDs.
3. Use list_accounts before creating transactions or transfers.
4. Confirm with the user before deleting anything; deletions cannot be undone.

Remember YNAB's rules: give every dollar a job, embrace true expenses, roll with
the punches (move_funds covers overspending), and age your money. Negative
amounts are spending, positive amounts are income."""


@mcp.prompt()
def analyze_spending(months_back: int = 1) -> str:
    """Walk through the user's recent spending."""
    return f"""Review my spending over the last {months_back} month(s).

1. Call analyze_spending_by_category with months_back={months_back}.
2. Call budget_summary for the current month to compare against what I budgeted.
3. Point out the top categories, anything overspent, and one or two concrete
   suggestions, such as a move_funds to cover overspending."""


@mcp.prompt()
def transaction_maintenance() -> str:
    """Tidy up unapproved and uncategorized transactions."""
    return """Help me clean up my transactions.

1. Call get_unapproved_transactions and list them briefly.
2. For each transaction without a category, suggest one from get_month_detail.
3. After I confirm, apply the categories with update_multiple_transactions and
   approve the transactions with approve_transaction."""


@mcp.prompt()
def resource_allocation_guidance() -> str:
    """Choosing between move_funds, update_category_budget and splits."""
    return """Help me allocate money across my categories.

- To move money from one category to another, use move_funds. It lowers the
  source and raises the destination by the same amount, so Ready to Assign is
  unchanged.
- To set a category to a specific amount regardless of where the money comes
  from, use update_category_budget.
- Before moving a large amount, check balances with get_month_detail or
  budget_summary so the source category doesn't go negative.
- To see where the money actually goes, use analyze_spending_by_category.
- A purchase that covers several categories belongs in a split; use
  create_split_transaction.
- If I ask whether I can afford something, look at category balances and
  list_accounts and give me the numbers; the decision is mine."""


if __name__ == "__main__":
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    mcp.run()
