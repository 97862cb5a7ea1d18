"""
Error kinds and the single error-to-wire mapping used by the MCP tools.

Every failure a tool reports reaches the MCP client as the JSON produced by
error_payload(), so the chat layer can tell configuration mistakes apart from
YNAB outages without parsing free-form text.
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from enum import StrEnum
from typing import Any

from fastmcp.exceptions import ToolError
from ynab.exceptions import ApiException

logger = logging.getLogger(__name__)


class ErrorKind(StrEnum):
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream"


class InvalidCredentialError(ValueError):
    """Raised when a pooled client is requested without a usable access token."""


def error_payload(
    kind: ErrorKind, message: str, status: int | None = None
) -> dict[str, Any]:
    """Render an error as the structured payload sent over the wire."""
    return {
        "success": False,
        "kind": str(kind),
        "error": message,
        "status": status,
    }


class YNABToolError(ToolError):
    """A tool failure with a known kind.

    The exception text is the JSON payload, which FastMCP passes through to the
    client unchanged as the error content.
    """

    def __init__(self, kind: ErrorKind, message: str, status: int | None = None):
        self.kind = kind
        self.message = message
        self.status = status
        super().__init__(json.dumps(error_payload(kind, message, status)))


def configuration_error(message: str) -> YNABToolError:
    return YNABToolError(ErrorKind.CONFIGURATION, message)


def validation_error(message: str) -> YNABToolError:
    return YNABToolError(ErrorKind.VALIDATION, message)


def _kind_for_status(status: int | None) -> ErrorKind:
    match status:
        case 401 | 403:
            return ErrorKind.AUTHENTICATION
        case 404:
            return ErrorKind.NOT_FOUND
        case _:
            return ErrorKind.UPSTREAM


def api_error(action: str, error: ApiException) -> YNABToolError:
    """Map a YNAB SDK exception to a tool error."""
    kind = _kind_for_status(error.status)
    if kind is ErrorKind.AUTHENTICATION:
        message = (
            f"Authentication failed while {action}. The YNAB access token is "
            "invalid or expired; reconnect the YNAB account."
        )
    else:
        detail = error.reason or str(error)
        message = f"YNAB API error while {action}: {detail}"
    return YNABToolError(kind, message, status=error.status)


@contextmanager
def translate_api_errors(action: str) -> Iterator[None]:
    """Log YNAB API failures and re-raise them as tool errors."""
    try:
        yield
    except ApiException as e:
        logger.error(f"YNAB API error {e.status} while {action}: {e}")
        raise api_error(action, e) from e
