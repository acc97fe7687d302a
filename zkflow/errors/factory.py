"""
Error construction — FlowError, create_error, cause shaping.

FlowError is the only exception type zkflow raises across its public
surface. It wraps an ErrorEnvelope; ``str(err)`` renders the envelope
with format_envelope so tracebacks stay readable.

Receipt-not-found detection lives here because status derivation needs
to tell "not mined yet" apart from a genuine RPC failure, and backends
disagree on how they say it (exception class, error code, or message).
"""

from __future__ import annotations

import re
from typing import Any

from zkflow.errors.envelope import ErrorEnvelope, ErrorType, RevertDetail
from zkflow.errors.formatter import format_envelope


class FlowError(Exception):
    """Exception carrying a structured ErrorEnvelope."""

    def __init__(self, envelope: ErrorEnvelope) -> None:
        super().__init__(envelope.message)
        self.envelope = envelope

    @property
    def type(self) -> ErrorType:
        return self.envelope.type

    def __str__(self) -> str:
        return format_envelope(self.envelope)


def is_flow_error(value: object) -> bool:
    """True when *value* is a FlowError with an envelope attached."""
    return isinstance(value, FlowError) and isinstance(value.envelope, ErrorEnvelope)


def create_error(
    type: ErrorType | str,
    *,
    resource: str,
    operation: str,
    message: str,
    context: dict[str, Any] | None = None,
    revert: RevertDetail | None = None,
    cause: BaseException | dict[str, Any] | None = None,
) -> FlowError:
    """Build a FlowError of the given type.

    ``cause`` may be an exception (shaped with shape_cause and chained as
    ``__cause__``) or an already-shaped dict.
    """
    shaped: dict[str, Any] | None
    if isinstance(cause, BaseException):
        shaped = shape_cause(cause)
    else:
        shaped = cause
    err = FlowError(
        ErrorEnvelope(
            type=ErrorType(type),
            resource=resource,
            operation=operation,
            message=message,
            context=dict(context or {}),
            revert=revert,
            cause=shaped,
        )
    )
    if isinstance(cause, BaseException):
        err.__cause__ = cause
    return err


# =========================================================================
# Cause shaping
# =========================================================================


def _raw_error_data(err: BaseException) -> Any:
    data = getattr(err, "data", None)
    if isinstance(data, dict) and "data" in data:
        return data["data"]
    inner = getattr(err, "error", None)
    if isinstance(inner, dict) and "data" in inner:
        return inner["data"]
    return data


def shape_cause(err: BaseException) -> dict[str, Any]:
    """Summarize an exception as ``{name, message, code?, data?}``.

    Hex revert data is cut to its selector plus an ellipsis so envelopes
    stay small enough to log.
    """
    message = getattr(err, "message", None)
    if not isinstance(message, str):
        message = str(err)
    shaped: dict[str, Any] = {"name": type(err).__name__, "message": message}

    code = getattr(err, "code", None)
    if code is not None:
        shaped["code"] = code

    data = _raw_error_data(err)
    if isinstance(data, str) and data.startswith("0x"):
        shaped["data"] = f"{data[:10]}…"
    return shaped


# =========================================================================
# Receipt-not-found detection
# =========================================================================

_NOT_FOUND_NAMES = frozenset(
    {
        "TransactionReceiptNotFoundError",
        "TransactionNotFoundError",
        "TransactionNotFound",
        "NotFoundError",
    }
)
_NOT_FOUND_CODES = frozenset({"TRANSACTION_NOT_FOUND", "RECEIPT_NOT_FOUND", "NOT_FOUND", -32000})
_NOT_FOUND_MESSAGE = re.compile(
    r"(transaction|receipt)[\s\S]*?(not\s+(?:be\s+)?found|missing)", re.IGNORECASE
)
_MAX_CAUSE_DEPTH = 5


def _matches_not_found(err: BaseException) -> bool:
    if type(err).__name__ in _NOT_FOUND_NAMES:
        return True
    code = getattr(err, "code", None)
    if isinstance(code, (str, int)) and code in _NOT_FOUND_CODES:
        return True
    if isinstance(err, FlowError):
        message = err.envelope.message
    else:
        message = str(err)
    return bool(_NOT_FOUND_MESSAGE.search(message))


def is_receipt_not_found(err: BaseException | None) -> bool:
    """Detect "transaction/receipt not found" across the cause chain.

    Checks the exception, then up to four levels of ``__cause__`` /
    ``__context__``.
    """
    current = err
    depth = 0
    while current is not None and depth < _MAX_CAUSE_DEPTH:
        if _matches_not_found(current):
            return True
        current = current.__cause__ or current.__context__
        depth += 1
    return False
