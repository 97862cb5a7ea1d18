"""
Pydantic models for YNAB MCP tool inputs and responses.

YNAB stores every amount in milliunits (1000 milliunits = 1 currency unit).
These models always carry currency units as Decimal so the model never has to
do the conversion itself; negative amounts are outflows, positive are inflows.
"""

from __future__ import annotations

import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal

import ynab
from pydantic import BaseModel, Field


def milliunits_to_currency(milliunits: int, decimal_digits: int = 2) -> Decimal:
    """Convert YNAB milliunits to currency amount.

    YNAB uses milliunits where 1000 milliunits = 1 currency unit.
    """
    return Decimal(milliunits) / Decimal("1000")


def currency_to_milliunits(amount: Decimal | int | float | str) -> int:
    """Convert a currency amount to YNAB milliunits, rounding half away from zero."""
    milliunits = Decimal(str(amount)) * Decimal("1000")
    return int(milliunits.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_currency(amount: Decimal) -> Decimal:
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


ClearedStatus = Literal["cleared", "uncleared", "reconciled"]

Frequency = Literal[
    "never",
    "daily",
    "weekly",
    "everyOtherWeek",
    "twiceAMonth",
    "every4Weeks",
    "monthly",
    "everyOtherMonth",
    "every3Months",
    "every4Months",
    "twiceAYear",
    "yearly",
    "everyOtherYear",
]


class BudgetRef(BaseModel):
    """A budget the access token can see."""

    id: str = Field(..., description="Budget ID, pass as budget_id to other tools")
    name: str = Field(..., description="Budget name")


class BudgetsResponse(BaseModel):
    """Response for list_budgets tool."""

    budgets: list[BudgetRef] = Field(..., description="Available budgets")


class Account(BaseModel):
    """A YNAB account with balance information.

    All amounts are in currency units with Decimal precision.
    """

    id: str = Field(..., description="Unique account identifier")
    name: str = Field(..., description="User-defined account name")
    type: str = Field(
        ...,
        description="Account type. Common values: 'checking', 'savings', 'creditCard', "
        "'cash', 'lineOfCredit', 'otherAsset', 'otherLiability'",
    )
    on_budget: bool = Field(
        ..., description="Whether this account is included in budget calculations"
    )
    closed: bool = Field(..., description="Whether this account has been closed")
    note: str | None = Field(None, description="User-defined account notes")
    balance: Decimal | None = Field(
        None, description="Current account balance in currency units"
    )
    cleared_balance: Decimal | None = Field(
        None, description="Balance of cleared transactions in currency units"
    )

    @classmethod
    def from_ynab(cls, account: ynab.Account) -> Account:
        """Convert YNAB Account object to our Account model."""
        return cls(
            id=account.id,
            name=account.name,
            type=account.type,
            on_budget=account.on_budget,
            closed=account.closed,
            note=account.note,
            balance=milliunits_to_currency(account.balance)
            if account.balance is not None
            else None,
            cleared_balance=milliunits_to_currency(account.cleared_balance)
            if account.cleared_balance is not None
            else None,
        )


class AccountsResponse(BaseModel):
    """Response for list_accounts tool."""

    accounts: list[Account] = Field(..., description="List of accounts")


class Category(BaseModel):
    """A YNAB category with budget and goal information."""

    id: str = Field(..., description="Unique category identifier")
    name: str = Field(..., description="Category name")
    category_group_id: str = Field(..., description="Category group ID")
    category_group_name: str | None = Field(None, description="Category group name")
    note: str | None = Field(None, description="Category notes")
    hidden: bool = Field(False, description="Whether hidden from the budget view")
    budgeted: Decimal | None = Field(None, description="Amount budgeted")
    activity: Decimal | None = Field(
        None,
        description="Spending activity (negative = spending)",
    )
    balance: Decimal | None = Field(None, description="Available balance")
    overspent: bool = Field(False, description="Whether the balance is negative")
    goal_type: str | None = Field(
        None,
        description="Goal type: NEED (refill up to X monthly - budget full target), "
        "TB (target balance by date), TBD (target by specific date), MF (funding)",
    )
    goal_target: Decimal | None = Field(None, description="Goal target amount")
    goal_percentage_complete: int | None = Field(
        None, description="Goal percentage complete"
    )

    @classmethod
    def from_ynab(cls, category: ynab.Category) -> Category:
        """Convert YNAB Category object to our Category model."""
        return cls(
            id=category.id,
            name=category.name,
            category_group_id=category.category_group_id,
            category_group_name=category.category_group_name,
            note=category.note,
            hidden=category.hidden,
            budgeted=milliunits_to_currency(category.budgeted)
            if category.budgeted is not None
            else None,
            activity=milliunits_to_currency(category.activity)
            if category.activity is not None
            else None,
            balance=milliunits_to_currency(category.balance)
            if category.balance is not None
            else None,
            overspent=category.balance is not None and category.balance < 0,
            goal_type=category.goal_type,
            goal_target=milliunits_to_currency(category.goal_target)
            if category.goal_target is not None
            else None,
            goal_percentage_complete=category.goal_percentage_complete,
        )


class BudgetMonth(BaseModel):
    """Monthly budget totals with category details.

    Includes income, budgeted amounts, spending activity, and category breakdowns.
    """

    month: datetime.date | None = Field(None, description="Budget month date")
    note: str | None = Field(
        None, description="User-defined notes for this budget month"
    )
    income: Decimal | None = Field(
        None, description="Total income for the month in currency units"
    )
    budgeted: Decimal | None = Field(
        None, description="Total amount budgeted across all categories"
    )
    activity: Decimal | None = Field(
        None, description="Total spending activity for the month"
    )
    to_be_budgeted: Decimal | None = Field(
        None, description="Ready to Assign: amount remaining to be budgeted"
    )
    age_of_money: int | None = Field(
        None,
        description="Age of money in days (how long money sits before being spent)",
    )
    categories: list[Category] = Field(
        ..., description="Categories with monthly budget data"
    )

    @classmethod
    def from_ynab(
        cls, month: ynab.MonthDetail, categories: list[ynab.Category]
    ) -> BudgetMonth:
        return cls(
            month=month.month,
            note=month.note,
            income=milliunits_to_currency(month.income),
            budgeted=milliunits_to_currency(month.budgeted),
            activity=milliunits_to_currency(month.activity),
            to_be_budgeted=milliunits_to_currency(month.to_be_budgeted),
            age_of_money=month.age_of_money,
            categories=[Category.from_ynab(category) for category in categories],
        )


class BudgetSummary(BaseModel):
    """Response for budget_summary tool."""

    month: BudgetMonth = Field(
        ..., description="Month totals with visible categories only"
    )
    accounts: list[Account] = Field(..., description="Open accounts")
    overspent_categories: list[str] = Field(
        ..., description="Names of categories with a negative balance"
    )


def format_flag(flag_color: str | None, flag_name: str | None) -> str | None:
    """Format flag as 'Name (Color)' or just color if no name."""
    if not flag_color:
        return None
    if flag_name:
        return f"{flag_name} ({flag_color.title()})"
    return flag_color.title()


class BaseTransaction(BaseModel):
    """Base fields shared between Transaction and ScheduledTransaction models."""

    id: str = Field(..., description="Unique identifier")
    amount: Decimal | None = Field(
        None,
        description="Amount in currency units (negative = spending, positive = income)",
    )
    memo: str | None = Field(None, description="User-entered memo")
    flag: str | None = Field(
        None,
        description="Flag as 'Name (Color)' format",
    )
    account_id: str = Field(..., description="Account ID")
    account_name: str | None = Field(None, description="Account name")
    payee_id: str | None = Field(None, description="Payee ID")
    payee_name: str | None = Field(None, description="Payee name")
    category_id: str | None = Field(None, description="Category ID")
    category_name: str | None = Field(None, description="Category name")


class Subtransaction(BaseModel):
    """A subtransaction within a split transaction."""

    id: str = Field(..., description="Unique subtransaction identifier")
    amount: Decimal | None = Field(None, description="Amount in currency units")
    memo: str | None = Field(None, description="Memo")
    payee_id: str | None = Field(None, description="Payee ID")
    payee_name: str | None = Field(None, description="Payee name")
    category_id: str | None = Field(None, description="Category ID")
    category_name: str | None = Field(None, description="Category name")


class Transaction(BaseTransaction):
    """A YNAB transaction with full details."""

    date: datetime.date = Field(..., description="Transaction date")
    cleared: str = Field(..., description="Cleared status")
    approved: bool = Field(
        ...,
        description="Whether transaction is approved",
    )
    transfer_account_id: str | None = Field(
        None, description="Other account of a transfer, if this is one"
    )
    import_id: str | None = Field(None, description="Import ID, if imported")
    subtransactions: list[Subtransaction] | None = Field(
        None, description="Subtransactions for splits"
    )

    @classmethod
    def from_ynab(
        cls, txn: ynab.TransactionDetail | ynab.HybridTransaction
    ) -> Transaction:
        """Convert YNAB transaction object to our Transaction model."""
        amount = milliunits_to_currency(txn.amount)

        parent_payee_id = txn.payee_id
        parent_payee_name = getattr(txn, "payee_name", None)

        subtransactions = None
        if getattr(txn, "subtransactions", None):
            subtransactions = []
            for sub in txn.subtransactions:
                if sub.deleted:
                    continue
                # Subtransactions without a payee inherit the parent's
                subtransactions.append(
                    Subtransaction(
                        id=sub.id,
                        amount=milliunits_to_currency(sub.amount),
                        memo=sub.memo,
                        payee_id=sub.payee_id or parent_payee_id,
                        payee_name=sub.payee_name or parent_payee_name,
                        category_id=sub.category_id,
                        category_name=sub.category_name,
                    )
                )

        return cls(
            id=txn.id,
            date=txn.var_date,
            amount=amount,
            memo=txn.memo,
            cleared=txn.cleared,
            approved=txn.approved,
            flag=format_flag(txn.flag_color, getattr(txn, "flag_name", None)),
            account_id=txn.account_id,
            account_name=getattr(txn, "account_name", None),
            payee_id=parent_payee_id,
            payee_name=parent_payee_name,
            category_id=txn.category_id,
            category_name=getattr(txn, "category_name", None),
            transfer_account_id=txn.transfer_account_id,
            import_id=txn.import_id,
            subtransactions=subtransactions,
        )


class TransactionFilters(BaseModel):
    account_id: str | None = None
    category_id: str | None = None
    from_date: datetime.date | None = None
    to_date: datetime.date | None = None


class TransactionSearchSummary(BaseModel):
    total_found: int = Field(..., description="Transactions matching the filters")
    showing: int = Field(..., description="Transactions included in this response")
    filters: TransactionFilters = Field(..., description="Filters that were applied")


class TransactionSearch(BaseModel):
    """Response for analyze_transactions tool."""

    summary: TransactionSearchSummary
    transactions: list[Transaction] = Field(..., description="Newest first")


class UnapprovedTransactions(BaseModel):
    """Response for get_unapproved_transactions tool."""

    transactions: list[Transaction] = Field(..., description="Unapproved transactions")
    transaction_count: int = Field(..., description="Number of unapproved transactions")


class ScheduledSubtransaction(BaseModel):
    """A scheduled subtransaction within a split scheduled transaction."""

    id: str = Field(..., description="Unique scheduled subtransaction identifier")
    amount: Decimal | None = Field(None, description="Amount in currency units")
    memo: str | None = Field(None, description="Memo")
    payee_id: str | None = Field(None, description="Payee ID")
    payee_name: str | None = Field(None, description="Payee name")
    category_id: str | None = Field(None, description="Category ID")
    category_name: str | None = Field(None, description="Category name")


class ScheduledTransaction(BaseTransaction):
    """A YNAB scheduled transaction with frequency and timing details."""

    date_first: datetime.date = Field(..., description="First occurrence date")
    date_next: datetime.date = Field(..., description="Next occurrence date")
    frequency: str = Field(
        ...,
        description="Recurrence frequency",
    )
    subtransactions: list[ScheduledSubtransaction] | None = Field(
        None, description="Scheduled subtransactions for splits"
    )

    @classmethod
    def from_ynab(cls, st: ynab.ScheduledTransactionDetail) -> ScheduledTransaction:
        """Convert YNAB scheduled transaction to ScheduledTransaction model."""
        subtransactions = None
        if getattr(st, "subtransactions", None):
            subtransactions = [
                ScheduledSubtransaction(
                    id=sub.id,
                    amount=milliunits_to_currency(sub.amount),
                    memo=sub.memo,
                    payee_id=sub.payee_id,
                    payee_name=sub.payee_name,
                    category_id=sub.category_id,
                    category_name=sub.category_name,
                )
                for sub in st.subtransactions
                if not sub.deleted
            ]

        return cls(
            id=st.id,
            date_first=st.date_first,
            date_next=st.date_next,
            frequency=st.frequency,
            amount=milliunits_to_currency(st.amount),
            memo=st.memo,
            flag=format_flag(st.flag_color, getattr(st, "flag_name", None)),
            account_id=st.account_id,
            account_name=getattr(st, "account_name", None),
            payee_id=st.payee_id,
            payee_name=getattr(st, "payee_name", None),
            category_id=st.category_id,
            category_name=getattr(st, "category_name", None),
            subtransactions=subtransactions,
        )


class ScheduledTransactionsResponse(BaseModel):
    """Response for list_scheduled_transactions tool."""

    scheduled_transactions: list[ScheduledTransaction] = Field(
        ..., description="List of scheduled transactions"
    )


class Payee(BaseModel):
    """A YNAB payee (person, company, or entity that receives payments)."""

    id: str = Field(..., description="Unique payee identifier")
    name: str = Field(..., description="Payee name")
    transfer_account_id: str | None = Field(
        None, description="Account ID when this payee represents a transfer"
    )

    @classmethod
    def from_ynab(cls, payee: ynab.Payee) -> Payee:
        """Convert YNAB Payee object to our Payee model."""
        return cls(
            id=payee.id,
            name=payee.name,
            transfer_account_id=payee.transfer_account_id,
        )


class PayeesResponse(BaseModel):
    """Response for get_payees tool."""

    payees: list[Payee] = Field(..., description="List of payees")


class SubtransactionInput(BaseModel):
    """One line of a split transaction."""

    amount: Decimal = Field(
        ..., description="Amount in currency units, same sign as the parent"
    )
    category_id: str | None = Field(None, description="Category for this portion")
    memo: str | None = None
    payee_id: str | None = None
    payee_name: str | None = None

    def to_ynab(self) -> ynab.SaveSubTransaction:
        return ynab.SaveSubTransaction(
            amount=currency_to_milliunits(self.amount),
            category_id=self.category_id,
            memo=self.memo,
            payee_id=self.payee_id,
            payee_name=self.payee_name,
        )


class TransactionInput(BaseModel):
    """A transaction to create."""

    account_id: str = Field(..., description="Account ID, from list_accounts")
    date: datetime.date = Field(..., description="Transaction date (YYYY-MM-DD)")
    amount: Decimal = Field(
        ...,
        description="Amount in currency units. Negative for expenses (e.g. -10.99), "
        "positive for income (e.g. 1000.00)",
    )
    payee_id: str | None = None
    payee_name: str | None = Field(
        None, description="Payee name; YNAB creates the payee if it doesn't exist"
    )
    category_id: str | None = None
    memo: str | None = None
    cleared: ClearedStatus | None = None
    approved: bool | None = None
    flag_color: str | None = None
    import_id: str | None = None
    subtransactions: list[SubtransactionInput] | None = Field(
        None,
        description="Split lines; their amounts must add up to the transaction amount",
    )

    def to_ynab(self) -> ynab.NewTransaction:
        return ynab.NewTransaction(
            account_id=self.account_id,
            date=self.date,
            amount=currency_to_milliunits(self.amount),
            payee_id=self.payee_id,
            payee_name=self.payee_name,
            category_id=self.category_id,
            memo=self.memo,
            cleared=self.cleared,
            approved=self.approved,
            flag_color=self.flag_color,
            import_id=self.import_id,
            subtransactions=[sub.to_ynab() for sub in self.subtransactions]
            if self.subtransactions
            else None,
        )


class TransactionUpdate(BaseModel):
    """Fields to change on an existing transaction; omitted fields are untouched."""

    id: str = Field(..., description="Transaction ID to update")
    account_id: str | None = None
    date: datetime.date | None = None
    amount: Decimal | None = Field(None, description="New amount in currency units")
    payee_id: str | None = None
    payee_name: str | None = None
    category_id: str | None = None
    memo: str | None = None
    cleared: ClearedStatus | None = None
    approved: bool | None = None
    flag_color: str | None = None

    def changes(self) -> dict[str, object]:
        """The fields to send to YNAB, with amounts in milliunits."""
        fields = self.model_dump(exclude={"id"}, exclude_none=True)
        if "amount" in fields:
            fields["amount"] = currency_to_milliunits(fields["amount"])
        return fields


class CreatedTransactions(BaseModel):
    """Response for the transaction creation tools."""

    total_requested: int
    total_created: int
    transaction_ids: list[str]
    duplicate_import_ids: list[str] = Field(
        default_factory=list,
        description="Import IDs YNAB skipped because they already exist",
    )


class UpdatedTransactions(BaseModel):
    """Response for update_multiple_transactions tool."""

    total_requested: int
    total_updated: int
    transaction_ids: list[str]


class OperationResult(BaseModel):
    """Outcome of a write that has no richer payload."""

    success: bool = True
    message: str
    id: str | None = Field(None, description="ID of the affected entity")


class TransferResult(BaseModel):
    """Response for create_transfer tool."""

    success: bool = True
    message: str
    transaction_id: str
    transfer_transaction_id: str | None = Field(
        None, description="The matching transaction YNAB created on the other account"
    )


class MoveFundsResult(BaseModel):
    """Response for move_funds tool."""

    success: bool = True
    message: str
    month: datetime.date
    amount: Decimal
    new_source_budgeted: Decimal
    new_destination_budgeted: Decimal


class ReportPeriod(BaseModel):
    from_date: datetime.date
    to_date: datetime.date
    months_back: int


class CategorySpending(BaseModel):
    category: str = Field(..., description="Category name or 'Uncategorized'")
    category_id: str | None = None
    total: Decimal = Field(..., description="Total spent (positive)")
    transaction_count: int


class SpendingAnalysis(BaseModel):
    """Response for analyze_spending_by_category tool."""

    period: ReportPeriod
    total_spending: Decimal
    category_breakdown: list[CategorySpending] = Field(
        ..., description="Categories ranked from highest to lowest spending"
    )
    conversational_summary: str


class MonthlyCashFlow(BaseModel):
    month: str = Field(..., description="Calendar month as YYYY-MM")
    income: Decimal
    expenses: Decimal
    net: Decimal


class CashFlowTotals(BaseModel):
    income: Decimal
    expenses: Decimal
    net: Decimal


class SpendingReport(BaseModel):
    """Response for generate_spending_report tool."""

    period: ReportPeriod
    monthly_report: list[MonthlyCashFlow] = Field(..., description="Oldest first")
    totals: CashFlowTotals
    average_monthly_income: Decimal
    average_monthly_expenses: Decimal
    conversational_summary: str


class HealthStatus(BaseModel):
    """Response for health_check tool."""

    status: Literal["ok"] = "ok"
    user_id: str
    latency_ms: int
    budget_status: str
