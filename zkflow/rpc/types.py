"""
Normalized chain data — receipts, logs, proofs, genesis, block metadata.

Nodes disagree on encodings (hex quantities vs. JSON numbers, snake_case
vs. camelCase, tuples vs. objects). Everything crossing into zkflow is
converted to these frozen dataclasses first, so the flow logic only ever
sees ints and lowercase-agnostic hex strings.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


def coerce_int(value: Any) -> int:
    """Coerce a hex quantity, decimal string or int to int.

    Raises:
        ValueError: For bools, None, or unparseable strings.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"not an integer quantity: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text, 10)
    raise ValueError(f"not an integer quantity: {value!r}")


def coerce_hex(value: Any) -> str:
    """Coerce bytes or a 0x-string to a lowercase 0x-prefixed hex string."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str) and value.startswith("0x"):
        return value.lower()
    raise ValueError(f"not a hex value: {value!r}")


def _get(raw: Any, *names: str) -> Any:
    for name in names:
        if isinstance(raw, Mapping):
            if name in raw:
                return raw[name]
        elif hasattr(raw, name):
            return getattr(raw, name)
    return None


# =========================================================================
# Receipts and logs
# =========================================================================


@dataclass(frozen=True)
class Log:
    address: str
    topics: tuple[str, ...]
    data: str
    block_number: int | None = None
    log_index: int | None = None
    transaction_hash: str | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> Log:
        block = _get(raw, "blockNumber", "block_number")
        index = _get(raw, "logIndex", "log_index")
        tx_hash = _get(raw, "transactionHash", "transaction_hash")
        return cls(
            address=str(_get(raw, "address") or ""),
            topics=tuple(coerce_hex(t) for t in (_get(raw, "topics") or ())),
            data=coerce_hex(_get(raw, "data") or "0x"),
            block_number=coerce_int(block) if block is not None else None,
            log_index=coerce_int(index) if index is not None else None,
            transaction_hash=coerce_hex(tx_hash) if tx_hash is not None else None,
        )


@dataclass(frozen=True)
class L2ToL1Log:
    sender: str
    key: str
    value: str
    tx_number_in_block: int | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> L2ToL1Log:
        tx_number = _get(raw, "txNumberInBlock", "tx_number_in_block")
        return cls(
            sender=str(_get(raw, "sender") or ""),
            key=str(_get(raw, "key") or ""),
            value=str(_get(raw, "value") or ""),
            tx_number_in_block=coerce_int(tx_number) if tx_number is not None else None,
        )


@dataclass(frozen=True)
class Receipt:
    """Transaction receipt, optionally carrying L2→L1 logs.

    ``l2_to_l1_logs`` is always a tuple; receipts from chains (or
    endpoints) that don't report them have it empty.
    """

    transaction_hash: str
    status: int
    block_number: int
    transaction_index: int = 0
    logs: tuple[Log, ...] = ()
    l2_to_l1_logs: tuple[L2ToL1Log, ...] = ()

    @classmethod
    def from_raw(cls, raw: Any) -> Receipt:
        l2_logs = _get(raw, "l2ToL1Logs", "l2_to_l1_logs")
        if not isinstance(l2_logs, (list, tuple)):
            l2_logs = []
        status = _get(raw, "status")
        tx_index = _get(raw, "transactionIndex", "transaction_index")
        return cls(
            transaction_hash=coerce_hex(_get(raw, "transactionHash", "transaction_hash")),
            status=coerce_int(status) if status is not None else 0,
            block_number=coerce_int(_get(raw, "blockNumber", "block_number")),
            transaction_index=coerce_int(tx_index) if tx_index is not None else 0,
            logs=tuple(Log.from_raw(lg) for lg in (_get(raw, "logs") or ())),
            l2_to_l1_logs=tuple(L2ToL1Log.from_raw(lg) for lg in l2_logs),
        )


# =========================================================================
# zks_* results
# =========================================================================


@dataclass(frozen=True)
class ProofNormalized:
    """L2→L1 log inclusion proof."""

    id: int
    batch_number: int
    proof: tuple[str, ...]
    root: str | None = None


@dataclass(frozen=True)
class GenesisContract:
    address: str
    bytecode: str


@dataclass(frozen=True)
class GenesisStorageEntry:
    key: str
    value: str


@dataclass(frozen=True)
class GenesisInput:
    initial_contracts: tuple[GenesisContract, ...]
    additional_storage: tuple[GenesisStorageEntry, ...]
    execution_version: int
    genesis_root: str


@dataclass(frozen=True)
class BlockMetadata:
    pubdata_price_per_byte: int
    native_price: int
    execution_version: int
