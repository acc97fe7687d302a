"""
zks_* RPC surface with normalization.

| Method                          | Returns            | Rule                                   |
|---------------------------------|--------------------|----------------------------------------|
| zks_getBridgehubContract        | hex address        | must start with 0x, else RPC           |
| zks_getBytecodeSupplierContract | hex address        | same                                   |
| zks_getL2ToL1LogProof           | ProofNormalized    | id/index, batch_number/batchNumber     |
|                                 |                    | aliases; falsy result → STATE          |
| eth_getTransactionReceipt       | Receipt | None     | l2ToL1Logs coerced to a list           |
| zks_getGenesis                  | GenesisInput       | tuples → named fields; bad shape → RPC |
| zks_getBlockMetadataByNumber    | BlockMetadata|None | snake/camel aliases; null → None       |

Every call runs inside ``with_rpc_op`` so transport failures surface as
RPC errors on resource "zksrpc". Normalization failures raised as
FlowError (STATE for the not-yet-available proof) pass through as-is.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from zkflow.errors import ErrorType, FlowError, create_error, with_rpc_op
from zkflow.operations import OP_ZKS
from zkflow.rpc.types import (
    BlockMetadata,
    GenesisContract,
    GenesisInput,
    GenesisStorageEntry,
    ProofNormalized,
    Receipt,
    coerce_int,
)

RESOURCE = "zksrpc"


@runtime_checkable
class RawRpc(Protocol):
    """Anything that can issue a raw JSON-RPC call."""

    async def send(self, method: str, params: list[Any]) -> Any: ...


def _rpc_error(operation: str, message: str, ctx: dict[str, Any] | None = None) -> FlowError:
    return create_error(
        ErrorType.RPC, resource=RESOURCE, operation=operation, message=message, context=ctx
    )


# =====================================================================
# Pure normalizers
# =====================================================================


def normalize_address(value: Any, operation: str) -> str:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise _rpc_error(operation, "Unexpected address shape in RPC response.", {"value": value})
    return value


def normalize_proof(raw: Any) -> ProofNormalized:
    """Normalize a zks_getL2ToL1LogProof result.

    Raises:
        FlowError: STATE when the proof is not available yet (falsy
            result); RPC when required fields are missing or malformed.
    """
    op = OP_ZKS.get_l2_to_l1_log_proof
    if not raw:
        raise create_error(
            ErrorType.STATE,
            resource=RESOURCE,
            operation=op,
            message="Proof not yet available. Please try again later.",
        )
    if not isinstance(raw, dict):
        raise _rpc_error(op, "Malformed proof response.", {"keys": []})

    id_raw = raw.get("id", raw.get("index"))
    batch_raw = raw.get("batch_number", raw.get("batchNumber"))
    proof_raw = raw.get("proof")
    if id_raw is None or batch_raw is None or not isinstance(proof_raw, list):
        raise _rpc_error(op, "Malformed proof response.", {"keys": sorted(raw)})

    try:
        root = raw.get("root")
        return ProofNormalized(
            id=coerce_int(id_raw),
            batch_number=coerce_int(batch_raw),
            proof=tuple(str(p) for p in proof_raw),
            root=str(root) if root else None,
        )
    except ValueError as exc:
        raise create_error(
            ErrorType.RPC,
            resource=RESOURCE,
            operation=op,
            message="Malformed proof response.",
            context={"keys": sorted(raw)},
            cause=exc,
        ) from exc


def _pair(entry: Any) -> tuple[str, str] | None:
    if isinstance(entry, (list, tuple)) and len(entry) == 2:
        a, b = entry
        if isinstance(a, str) and isinstance(b, str):
            return a, b
    return None


def normalize_genesis(raw: Any) -> GenesisInput:
    """Normalize a zks_getGenesis result (snake_case tuple arrays)."""
    op = OP_ZKS.get_genesis
    if not isinstance(raw, dict):
        raise _rpc_error(op, "Malformed genesis response.")

    contracts_raw = raw.get("initial_contracts")
    storage_raw = raw.get("additional_storage")
    if not isinstance(contracts_raw, list) or not isinstance(storage_raw, list):
        raise _rpc_error(op, "Malformed genesis response.", {"keys": sorted(raw)})

    contracts: list[GenesisContract] = []
    for entry in contracts_raw:
        pair = _pair(entry)
        if pair is None:
            raise _rpc_error(op, "Malformed genesis initial contract entry.", {"entry": entry})
        contracts.append(GenesisContract(address=pair[0], bytecode=pair[1]))

    storage: list[GenesisStorageEntry] = []
    for entry in storage_raw:
        pair = _pair(entry)
        if pair is None:
            raise _rpc_error(op, "Malformed genesis storage entry.", {"entry": entry})
        storage.append(GenesisStorageEntry(key=pair[0], value=pair[1]))

    root = raw.get("genesis_root")
    if not isinstance(root, str) or not root.startswith("0x"):
        raise _rpc_error(op, "Malformed genesis root.", {"genesis_root": root})

    try:
        version = coerce_int(raw.get("execution_version"))
    except ValueError as exc:
        raise create_error(
            ErrorType.RPC,
            resource=RESOURCE,
            operation=op,
            message="Malformed genesis execution version.",
            cause=exc,
        ) from exc

    return GenesisInput(
        initial_contracts=tuple(contracts),
        additional_storage=tuple(storage),
        execution_version=version,
        genesis_root=root,
    )


def normalize_block_metadata(raw: Any) -> BlockMetadata | None:
    """Normalize zks_getBlockMetadataByNumber; None stays None."""
    if raw is None:
        return None
    op = OP_ZKS.get_block_metadata_by_number
    if not isinstance(raw, dict):
        raise _rpc_error(op, "Malformed block metadata response.")
    try:
        return BlockMetadata(
            pubdata_price_per_byte=coerce_int(
                raw.get("pubdata_price_per_byte", raw.get("pubdataPricePerByte"))
            ),
            native_price=coerce_int(raw.get("native_price", raw.get("nativePrice"))),
            execution_version=coerce_int(
                raw.get("execution_version", raw.get("executionVersion"))
            ),
        )
    except ValueError as exc:
        raise create_error(
            ErrorType.RPC,
            resource=RESOURCE,
            operation=op,
            message="Malformed block metadata response.",
            context={"keys": sorted(raw)},
            cause=exc,
        ) from exc


# =====================================================================
# Client
# =====================================================================


class ZksRpc:
    """Typed wrapper over the chain-specific RPC methods.

    Args:
        rpc: Raw JSON-RPC sender bound to the L2 endpoint.
    """

    def __init__(self, rpc: RawRpc) -> None:
        self._rpc = rpc

    async def get_bridgehub_address(self) -> str:
        op = OP_ZKS.get_bridgehub_address

        async def call() -> str:
            return normalize_address(await self._rpc.send("zks_getBridgehubContract", []), op)

        return await with_rpc_op(op, "Failed to fetch Bridgehub address.", {}, call)

    async def get_bytecode_supplier_address(self) -> str:
        op = OP_ZKS.get_bytecode_supplier_address

        async def call() -> str:
            raw = await self._rpc.send("zks_getBytecodeSupplierContract", [])
            return normalize_address(raw, op)

        return await with_rpc_op(op, "Failed to fetch bytecode supplier address.", {}, call)

    async def get_l2_to_l1_log_proof(self, tx_hash: str, index: int) -> ProofNormalized:
        async def call() -> ProofNormalized:
            raw = await self._rpc.send("zks_getL2ToL1LogProof", [tx_hash, index])
            return normalize_proof(raw)

        return await with_rpc_op(
            OP_ZKS.get_l2_to_l1_log_proof,
            "Failed to fetch L2→L1 log proof.",
            {"txHash": tx_hash, "index": index},
            call,
        )

    async def get_receipt_with_l2_to_l1(self, tx_hash: str) -> Receipt | None:
        async def call() -> Receipt | None:
            raw = await self._rpc.send("eth_getTransactionReceipt", [tx_hash])
            if raw is None:
                return None
            return Receipt.from_raw(raw)

        return await with_rpc_op(
            OP_ZKS.get_receipt_with_l2_to_l1,
            "Failed to fetch transaction receipt.",
            {"txHash": tx_hash},
            call,
        )

    async def get_genesis(self) -> GenesisInput:
        async def call() -> GenesisInput:
            return normalize_genesis(await self._rpc.send("zks_getGenesis", []))

        return await with_rpc_op(OP_ZKS.get_genesis, "Failed to fetch genesis.", {}, call)

    async def get_block_metadata_by_number(self, block_number: int) -> BlockMetadata | None:
        async def call() -> BlockMetadata | None:
            raw = await self._rpc.send("zks_getBlockMetadataByNumber", [block_number])
            return normalize_block_metadata(raw)

        return await with_rpc_op(
            OP_ZKS.get_block_metadata_by_number,
            "Failed to fetch block metadata.",
            {"blockNumber": block_number},
            call,
        )
