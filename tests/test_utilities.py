"""
Test utility functions in the server and models modules.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import patch

import pytest
import ynab
from fastmcp.exceptions import ToolError

import server
from models import (
    Transaction,
    TransactionInput,
    TransactionUpdate,
    currency_to_milliunits,
    milliunits_to_currency,
)


def test_decimal_precision_milliunits_conversion() -> None:
    """Test that milliunits conversion maintains Decimal precision."""
    test_cases = [
        (123456, Decimal("123.456")),
        (1, Decimal("0.001")),
        (999, Decimal("0.999")),
        (1000, Decimal("1")),
        (999999999, Decimal("999999.999")),
        (-50000, Decimal("-50")),
        (0, Decimal("0")),
    ]

    for milliunits, expected in test_cases:
        result = milliunits_to_currency(milliunits)
        assert result == expected, (
            f"Failed for {milliunits}: got {result}, expected {expected}"
        )
        assert isinstance(result, Decimal)


def test_milliunits_to_currency_none_input() -> None:
    """Test milliunits conversion with None input raises TypeError."""
    with pytest.raises(TypeError):
        milliunits_to_currency(None)  # type: ignore


def test_currency_to_milliunits_rounds_half_up() -> None:
    assert currency_to_milliunits(Decimal("10.99")) == 10_990
    assert currency_to_milliunits("-0.0005") == -1
    assert currency_to_milliunits(Decimal("0.0005")) == 1
    assert currency_to_milliunits(Decimal("0.0004")) == 0
    assert currency_to_milliunits(12.3) == 12_300


def test_convert_month_to_date_with_date_object() -> None:
    """Dates are moved to the first day of their month."""
    assert server.convert_month_to_date(date(2024, 3, 15)) == date(2024, 3, 1)


def test_convert_month_to_date_with_current() -> None:
    with patch("server.datetime") as mock_datetime:
        mock_datetime.now.return_value = datetime(2024, 9, 20, 16, 45, 0)

        assert server.convert_month_to_date("current") == date(2024, 9, 1)


def test_convert_month_to_date_with_last_and_next() -> None:
    """Test convert_month_to_date with 'last' and 'next' literals."""
    with patch("server.datetime") as mock_datetime:
        mock_datetime.now.return_value = datetime(2024, 6, 15, 10, 30, 0)

        assert server.convert_month_to_date("last") == date(2024, 5, 1)
        assert server.convert_month_to_date("next") == date(2024, 7, 1)

    # January -> December of the previous year
    with patch("server.datetime") as mock_datetime:
        mock_datetime.now.return_value = datetime(2024, 1, 10, 14, 45, 0)

        assert server.convert_month_to_date("last") == date(2023, 12, 1)
        assert server.convert_month_to_date("next") == date(2024, 2, 1)

    # December -> January of the next year
    with patch("server.datetime") as mock_datetime:
        mock_datetime.now.return_value = datetime(2024, 12, 25, 9, 15, 0)

        assert server.convert_month_to_date("last") == date(2024, 11, 1)
        assert server.convert_month_to_date("next") == date(2025, 1, 1)


def test_convert_month_to_date_invalid_value() -> None:
    with pytest.raises(ToolError) as exc_info:
        server.convert_month_to_date("invalid")  # type: ignore[arg-type]

    payload = json.loads(str(exc_info.value))
    assert payload["kind"] == "validation"
    assert payload["error"] == "Invalid month value: invalid"


def test_months_ago() -> None:
    assert server.months_ago(date(2024, 6, 15), 1) == date(2024, 5, 15)
    assert server.months_ago(date(2024, 1, 10), 1) == date(2023, 12, 10)
    assert server.months_ago(date(2024, 3, 31), 1) == date(2024, 2, 29)
    assert server.months_ago(date(2024, 6, 15), 24) == date(2022, 6, 15)
    assert server.months_ago(date(2024, 6, 15), 0) == date(2024, 6, 15)


def test_transaction_from_ynab_split_inherits_payee() -> None:
    txn = ynab.TransactionDetail(
        id="txn-123",
        date=date(2024, 6, 15),
        amount=-50000,
        memo="Weekly shop",
        cleared=ynab.TransactionClearedStatus.CLEARED,
        approved=True,
        flag_color=ynab.TransactionFlagColor.RED,
        account_id="acc-1",
        payee_id="payee-1",
        category_id=None,
        transfer_account_id=None,
        transfer_transaction_id=None,
        matched_transaction_id=None,
        import_id="YNAB:-50000:2024-06-15:1",
        import_payee_name=None,
        import_payee_name_original=None,
        debt_transaction_type=None,
        deleted=False,
        account_name="Checking",
        payee_name="Costco",
        category_name="Split",
        subtransactions=[
            ynab.SubTransaction(
                id="sub-1",
                transaction_id="txn-123",
                amount=-30000,
                memo=None,
                payee_id=None,
                payee_name=None,
                category_id="cat-groceries",
                category_name="Groceries",
                transfer_account_id=None,
                transfer_transaction_id=None,
                deleted=False,
            ),
            ynab.SubTransaction(
                id="sub-2",
                transaction_id="txn-123",
                amount=-20000,
                memo=None,
                payee_id=None,
                payee_name=None,
                category_id="cat-home",
                category_name="Household",
                transfer_account_id=None,
                transfer_transaction_id=None,
                deleted=True,
            ),
        ],
    )

    result = Transaction.from_ynab(txn)

    assert result.amount == Decimal("-50")
    assert result.flag == "Red"
    assert result.import_id == "YNAB:-50000:2024-06-15:1"
    assert result.subtransactions is not None
    assert len(result.subtransactions) == 1
    assert result.subtransactions[0].payee_name == "Costco"
    assert result.subtransactions[0].amount == Decimal("-30")


def test_transaction_input_to_ynab() -> None:
    transaction = TransactionInput(
        account_id="acc-1",
        date=date(2024, 6, 15),
        amount=Decimal("-10.99"),
        payee_name="Coffee",
        cleared="cleared",
    ).to_ynab()

    assert transaction.amount == -10_990
    assert transaction.var_date == date(2024, 6, 15)
    assert transaction.payee_name == "Coffee"
    assert transaction.subtransactions is None


def test_transaction_update_changes_only_supplied_fields() -> None:
    update = TransactionUpdate(id="txn-1", amount=Decimal("-12.5"), memo="Lunch")

    assert update.changes() == {"amount": -12_500, "memo": "Lunch"}
    assert TransactionUpdate(id="txn-1").changes() == {}
