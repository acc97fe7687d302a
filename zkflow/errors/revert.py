"""
Revert decoding — selector → Solidity error name and args.

Decoding order:
    1. Built-ins: Error(string), Panic(uint256).
    2. Registered error ABIs, in registration order.
    3. Fallback: selector only.

The registry ships with the errors of the bridge contracts zkflow talks
to. ``register_error_abi`` adds or replaces a labelled set at runtime;
writes go through a lock, reads take a snapshot.

Withdrawal readiness:
    ``classify_readiness_from_revert`` maps a failed finalizeDeposit
    simulation to FinalizeReadiness using REVERT_TO_READINESS. Mapped
    names use the table; a "paused" message is NOT_READY(paused); any
    other decodable revert is UNFINALIZABLE(unsupported); no revert data
    at all is NOT_READY(unknown).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from zkflow.errors.envelope import RevertDetail
from zkflow.plans import FinalizeReadiness, ReadinessKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ErrorAbi:
    """One Solidity custom error: name plus positional arg types."""

    name: str
    inputs: tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> str:
        return "0x" + keccak(text=self.signature)[:4].hex()


_ERROR_STRING = ErrorAbi("Error", ("string",))
_PANIC = ErrorAbi("Panic", ("uint256",))

_DEFAULT_REGISTRY: list[tuple[str, tuple[ErrorAbi, ...]]] = [
    (
        "IL1Nullifier",
        (
            ErrorAbi("WithdrawalAlreadyFinalized"),
            ErrorAbi("BatchNotExecuted", ("uint256",)),
            ErrorAbi("LocalRootIsZero"),
            ErrorAbi("LocalRootMustBeZero"),
            ErrorAbi("WrongL2Sender", ("address",)),
            ErrorAbi("InvalidSelector", ("bytes4",)),
            ErrorAbi("L2WithdrawalMessageWrongLength", ("uint256",)),
            ErrorAbi("WrongMsgLength", ("uint256", "uint256")),
            ErrorAbi("TokenNotLegacy"),
            ErrorAbi("TokenIsLegacy"),
            ErrorAbi("InvalidProof"),
            ErrorAbi("InvalidChainId"),
            ErrorAbi("NotSettlementLayer"),
            ErrorAbi("OnlyEraSupported"),
        ),
    ),
    (
        "IERC20",
        (
            ErrorAbi("ERC20InsufficientAllowance", ("address", "uint256", "uint256")),
            ErrorAbi("ERC20InsufficientBalance", ("address", "uint256", "uint256")),
            ErrorAbi("ERC20InvalidSpender", ("address",)),
        ),
    ),
    (
        "IL1NativeTokenVault",
        (
            ErrorAbi("TokenNotSupported", ("address",)),
            ErrorAbi("AssetIdNotSupported", ("bytes32",)),
        ),
    ),
    (
        "IL2NativeTokenVault",
        (
            ErrorAbi("EmptyAddress"),
            ErrorAbi("TokenNotRegistered", ("address",)),
        ),
    ),
    (
        "Mailbox",
        (
            ErrorAbi("MsgValueTooLow", ("uint256", "uint256")),
            ErrorAbi("TooManyFactoryDeps"),
            ErrorAbi("ValidateTxnNotEnoughGas"),
        ),
    ),
]

_registry_lock = threading.Lock()
_registry: list[tuple[str, tuple[ErrorAbi, ...]]] = list(_DEFAULT_REGISTRY)


def register_error_abi(name: str, errors: list[ErrorAbi] | tuple[ErrorAbi, ...]) -> None:
    """Add (or replace) a labelled set of custom errors for decoding."""
    entry = (name, tuple(errors))
    with _registry_lock:
        for i, (label, _) in enumerate(_registry):
            if label == name:
                _registry[i] = entry
                return
        _registry.append(entry)


def _snapshot() -> list[tuple[str, tuple[ErrorAbi, ...]]]:
    with _registry_lock:
        return list(_registry)


# =========================================================================
# Revert data extraction
# =========================================================================


def _as_revert_hex(value: Any) -> str | None:
    if isinstance(value, bytes) and len(value) >= 4:
        return "0x" + value.hex()
    if isinstance(value, str) and value.startswith("0x") and len(value) >= 10:
        return value
    return None


def _revert_data_of(err: BaseException) -> str | None:
    data = getattr(err, "data", None)
    candidates: list[Any] = []
    if isinstance(data, dict):
        candidates.append(data.get("data"))
    inner = getattr(err, "error", None)
    if isinstance(inner, dict):
        candidates.append(inner.get("data"))
        nested = inner.get("error")
        if isinstance(nested, dict):
            candidates.append(nested.get("data"))
    candidates.append(data)
    candidates.extend(err.args)
    for candidate in candidates:
        found = _as_revert_hex(candidate)
        if found is not None:
            return found
    return None


def extract_revert_data(err: BaseException | None) -> str | None:
    """Find hex revert data on an exception or anything in its cause chain."""
    current = err
    depth = 0
    while current is not None and depth < 5:
        found = _revert_data_of(current)
        if found is not None:
            return found
        current = current.__cause__ or current.__context__
        depth += 1
    return None


# =========================================================================
# Decoding
# =========================================================================


def _try_decode(abi: ErrorAbi, payload: bytes) -> tuple[Any, ...] | None:
    try:
        return tuple(abi_decode(list(abi.inputs), payload))
    except (DecodingError, ValueError, OverflowError):
        return None


def decode_revert_data(data: str) -> RevertDetail:
    """Decode raw revert bytes (hex). Always returns at least the selector."""
    selector = data[:10].lower()
    try:
        raw = bytes.fromhex(data[2:])
    except ValueError:
        return RevertDetail(selector=selector)
    payload = raw[4:]

    for builtin in (_ERROR_STRING, _PANIC):
        if selector == builtin.selector:
            args = _try_decode(builtin, payload)
            if args is not None:
                return RevertDetail(selector=selector, name=builtin.name, args=args)

    for label, errors in _snapshot():
        for abi in errors:
            if abi.selector != selector:
                continue
            args = _try_decode(abi, payload)
            if args is not None:
                return RevertDetail(
                    selector=selector, name=abi.name, args=args, contract=label
                )

    return RevertDetail(selector=selector)


def decode_revert(err: BaseException | None) -> RevertDetail | None:
    """Decode the revert carried by *err*, or None when there is none."""
    data = extract_revert_data(err)
    if data is None:
        return None
    return decode_revert_data(data)


# =========================================================================
# Withdrawal readiness
# =========================================================================

REVERT_TO_READINESS: dict[str, FinalizeReadiness] = {
    "WithdrawalAlreadyFinalized": FinalizeReadiness(ReadinessKind.FINALIZED),
    # temporary
    "BatchNotExecuted": FinalizeReadiness(ReadinessKind.NOT_READY, "batch-not-executed"),
    "LocalRootIsZero": FinalizeReadiness(ReadinessKind.NOT_READY, "root-missing"),
    # permanent for this message
    "WrongL2Sender": FinalizeReadiness(ReadinessKind.UNFINALIZABLE, "message-invalid"),
    "InvalidSelector": FinalizeReadiness(ReadinessKind.UNFINALIZABLE, "message-invalid"),
    "L2WithdrawalMessageWrongLength": FinalizeReadiness(
        ReadinessKind.UNFINALIZABLE, "message-invalid"
    ),
    "WrongMsgLength": FinalizeReadiness(ReadinessKind.UNFINALIZABLE, "message-invalid"),
    "TokenNotLegacy": FinalizeReadiness(ReadinessKind.UNFINALIZABLE, "message-invalid"),
    "TokenIsLegacy": FinalizeReadiness(ReadinessKind.UNFINALIZABLE, "message-invalid"),
    "InvalidProof": FinalizeReadiness(ReadinessKind.UNFINALIZABLE, "message-invalid"),
    "InvalidChainId": FinalizeReadiness(ReadinessKind.UNFINALIZABLE, "invalid-chain"),
    "NotSettlementLayer": FinalizeReadiness(ReadinessKind.UNFINALIZABLE, "settlement-layer"),
    # environment mismatch
    "OnlyEraSupported": FinalizeReadiness(ReadinessKind.UNFINALIZABLE, "unsupported"),
    "LocalRootMustBeZero": FinalizeReadiness(ReadinessKind.UNFINALIZABLE, "unsupported"),
}


def classify_readiness_from_revert(err: BaseException) -> FinalizeReadiness:
    """Classify a failed finalize simulation into a readiness verdict."""
    decoded = decode_revert(err)
    name = decoded.name if decoded is not None else None

    if name is not None and name in REVERT_TO_READINESS:
        return REVERT_TO_READINESS[name]

    message = getattr(err, "message", None)
    if not isinstance(message, str):
        message = str(err)
    lower = message.lower()
    if "paused" in lower:
        return FinalizeReadiness(ReadinessKind.NOT_READY, "paused")

    if decoded is not None:
        logger.debug("unmapped finalize revert %s", name or decoded.selector)
        return FinalizeReadiness(
            ReadinessKind.UNFINALIZABLE, "unsupported", detail=name or decoded.selector
        )

    return FinalizeReadiness(ReadinessKind.NOT_READY, "unknown", detail=lower or None)
