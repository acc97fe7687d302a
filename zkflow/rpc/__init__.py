"""
JSON-RPC plumbing and chain-specific RPC normalization.

    - ``JsonRpcTransport`` / ``HttpxTransport`` — HTTP seam.
    - ``JsonRpcClient`` — raw ``send(method, params)``.
    - ``ZksRpc`` — typed zks_* methods with normalized results.
"""

from zkflow.rpc.client import JsonRpcClient, JsonRpcError
from zkflow.rpc.transport import HttpxTransport, JsonRpcTransport
from zkflow.rpc.types import (
    BlockMetadata,
    GenesisContract,
    GenesisInput,
    GenesisStorageEntry,
    L2ToL1Log,
    Log,
    ProofNormalized,
    Receipt,
)
from zkflow.rpc.zks import RawRpc, ZksRpc

__all__ = [
    "BlockMetadata",
    "GenesisContract",
    "GenesisInput",
    "GenesisStorageEntry",
    "HttpxTransport",
    "JsonRpcClient",
    "JsonRpcError",
    "JsonRpcTransport",
    "L2ToL1Log",
    "Log",
    "ProofNormalized",
    "RawRpc",
    "Receipt",
    "ZksRpc",
]
