"""
Error envelope — the one shape every surfaced failure takes.

Callers never see a raw backend exception. Every boundary catches what
the chain client raised and re-raises a FlowError whose ``envelope`` is
an ErrorEnvelope:

    type       closed taxonomy (ErrorType)
    resource   which surface failed ("deposits", "withdrawals", ...)
    operation  stable dotted name for log correlation
    message    human-readable summary
    context    small dict of identifying values (hashes, chain ids)
    revert     decoded contract revert, when there was one
    cause      shaped summary of the underlying exception

The ``try_*`` API variants return Ok/Err instead of raising; Err carries
the same envelope.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorType(StrEnum):
    """Closed failure taxonomy."""

    VALIDATION = "VALIDATION"
    STATE = "STATE"
    EXECUTION = "EXECUTION"
    RPC = "RPC"
    TIMEOUT = "TIMEOUT"
    INTERNAL = "INTERNAL"


@dataclass(frozen=True)
class RevertDetail:
    """Decoded contract revert.

    Attributes:
        selector: 4-byte error selector ("0x" + 8 hex chars). Always
            present when revert data was found.
        name: Solidity error name when a registered ABI matched.
        args: Decoded error arguments.
        contract: Label of the ABI that matched (e.g. "IL1Nullifier").
        fn: Function name when the call site is known.
    """

    selector: str
    name: str | None = None
    args: tuple[Any, ...] = ()
    contract: str | None = None
    fn: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"selector": self.selector}
        if self.name is not None:
            d["name"] = self.name
        if self.args:
            d["args"] = list(self.args)
        if self.contract is not None:
            d["contract"] = self.contract
        if self.fn is not None:
            d["fn"] = self.fn
        return d


@dataclass(frozen=True)
class ErrorEnvelope:
    """Structured, serializable description of a failure."""

    type: ErrorType
    resource: str
    operation: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    revert: RevertDetail | None = None
    cause: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "type": str(self.type),
            "resource": self.resource,
            "operation": self.operation,
            "message": self.message,
            "context": dict(self.context),
        }
        if self.revert is not None:
            d["revert"] = self.revert.to_dict()
        if self.cause is not None:
            d["cause"] = dict(self.cause)
        return d


# =========================================================================
# Result variants for try_* operations
# =========================================================================


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok: bool = True


@dataclass(frozen=True)
class Err:
    error: ErrorEnvelope
    ok: bool = False


Result = Union[Ok[T], Err]
