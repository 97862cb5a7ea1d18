"""
Test the error kinds and their wire format.
"""

import json
import logging

import pytest
import ynab
from fastmcp.exceptions import ToolError

from errors import (
    ErrorKind,
    YNABToolError,
    api_error,
    error_payload,
    translate_api_errors,
)


def test_error_payload() -> None:
    assert error_payload(ErrorKind.NOT_FOUND, "Category not found", 404) == {
        "success": False,
        "kind": "not_found",
        "error": "Category not found",
        "status": 404,
    }


def test_tool_error_text_is_the_payload() -> None:
    error = YNABToolError(ErrorKind.VALIDATION, "Amount must be positive")

    assert isinstance(error, ToolError)
    assert json.loads(str(error)) == {
        "success": False,
        "kind": "validation",
        "error": "Amount must be positive",
        "status": None,
    }


@pytest.mark.parametrize(
    ("status", "kind"),
    [
        (401, ErrorKind.AUTHENTICATION),
        (403, ErrorKind.AUTHENTICATION),
        (404, ErrorKind.NOT_FOUND),
        (429, ErrorKind.UPSTREAM),
        (500, ErrorKind.UPSTREAM),
    ],
)
def test_api_error_kind_follows_status(status: int, kind: ErrorKind) -> None:
    error = api_error("listing accounts", ynab.ApiException(status=status, reason="x"))

    assert error.kind is kind
    assert error.status == status


def test_api_error_message() -> None:
    error = api_error(
        "listing accounts", ynab.ApiException(status=500, reason="Internal Error")
    )

    assert error.message == "YNAB API error while listing accounts: Internal Error"


def test_translate_api_errors(caplog: pytest.LogCaptureFixture) -> None:
    with pytest.raises(YNABToolError) as exc_info:
        with translate_api_errors("deleting transaction txn-1"):
            raise ynab.ApiException(status=404, reason="Not Found")

    assert exc_info.value.kind is ErrorKind.NOT_FOUND
    assert isinstance(exc_info.value.__cause__, ynab.ApiException)
    assert any(
        record.levelno == logging.ERROR and "deleting transaction txn-1" in record.message
        for record in caplog.records
    )


def test_translate_api_errors_ignores_other_exceptions() -> None:
    with pytest.raises(KeyError):
        with translate_api_errors("anything"):
            raise KeyError("not an API problem")
