"""
Interop bundle encoding — interoperable addresses, call/bundle attributes
and asset-router payloads.

ERC-7930 interoperable addresses (version 1, chain type eip-155):

    chain only    00 01 | 00 00 | len(chainRef) | chainRef | 00
    address only  00 01 | 00 00 | 00 | 14 | address(20)

ERC-7786 attributes are encoded exactly like function calls: 4-byte
selector of the attribute's signature followed by its ABI arguments.

| Attribute         | Scope  | Argument                               |
|-------------------|--------|----------------------------------------|
| interopCallValue  | call   | uint256 base-token value for the call  |
| indirectCall      | call   | uint256 message value for the router   |
| executionAddress  | bundle | bytes, ERC-7930 address of the executor|
| unbundlerAddress  | bundle | bytes, ERC-7930 address of unbundler   |

Bridged tokens travel as a call to the destination asset router whose
data is ``0x01 ‖ abi(bytes32 assetId, bytes transferData)`` with
``transferData = abi(uint256 amount, address receiver, address token)``.
"""

from __future__ import annotations

from typing import Any

from zkflow.abi import (
    ATTR_EXECUTION_ADDRESS,
    ATTR_INDIRECT_CALL,
    ATTR_INTEROP_CALL_VALUE,
    ATTR_UNBUNDLER_ADDRESS,
    ContractFunction,
    checksum,
    decode_args,
    encode_args,
    hex_to_bytes,
)
from zkflow.constants import PREFIX_EVM_ADDRESS, PREFIX_EVM_CHAIN

ASSET_ROUTER_PAYLOAD_VERSION = b"\x01"

_ATTRIBUTES: tuple[ContractFunction, ...] = (
    ATTR_INTEROP_CALL_VALUE,
    ATTR_INDIRECT_CALL,
    ATTR_EXECUTION_ADDRESS,
    ATTR_UNBUNDLER_ADDRESS,
)
_BY_SELECTOR = {fn.selector: fn for fn in _ATTRIBUTES}


# =========================================================================
# ERC-7930 interoperable addresses
# =========================================================================


def format_interop_evm_chain(chain_id: int) -> bytes:
    """Interoperable address naming an EVM chain but no account."""
    if chain_id < 0:
        raise ValueError(f"chain id must be non-negative: {chain_id}")
    chain_ref = chain_id.to_bytes(max(1, (chain_id.bit_length() + 7) // 8), "big")
    return PREFIX_EVM_CHAIN + bytes([len(chain_ref)]) + chain_ref + b"\x00"


def format_interop_evm_address(address: str) -> bytes:
    """Interoperable address naming an EVM account on no particular chain."""
    return PREFIX_EVM_ADDRESS + hex_to_bytes(checksum(address))


# =========================================================================
# ERC-7786 attributes
# =========================================================================


def interop_call_value(value: int) -> bytes:
    return hex_to_bytes(ATTR_INTEROP_CALL_VALUE.encode(value))


def indirect_call(message_value: int) -> bytes:
    return hex_to_bytes(ATTR_INDIRECT_CALL.encode(message_value))


def execution_address(executor: str) -> bytes:
    return hex_to_bytes(ATTR_EXECUTION_ADDRESS.encode(format_interop_evm_address(executor)))


def unbundler_address(unbundler: str) -> bytes:
    return hex_to_bytes(ATTR_UNBUNDLER_ADDRESS.encode(format_interop_evm_address(unbundler)))


def decode_attribute(attr: str | bytes) -> dict[str, Any]:
    """Decode one encoded attribute for display.

    Returns:
        ``{"selector", "name", "args"}``. Unknown selectors come back with
        name ``"unknown"`` and the raw remainder as the only argument.
    """
    raw = hex_to_bytes(attr)
    selector, body = raw[:4], raw[4:]
    fn = _BY_SELECTOR.get(selector)
    if fn is None:
        return {"selector": "0x" + selector.hex(), "name": "unknown", "args": ["0x" + body.hex()]}
    args = [
        "0x" + value.hex() if isinstance(value, bytes) else value
        for value in decode_args(list(fn.inputs), body)
    ]
    return {"selector": "0x" + selector.hex(), "name": fn.name, "args": args}


# =========================================================================
# Asset router payloads
# =========================================================================


def encode_ntv_transfer_data(amount: int, receiver: str, token: str) -> bytes:
    return hex_to_bytes(encode_args(["uint256", "address", "address"], [amount, receiver, token]))


def encode_asset_router_payload(asset_id: str | bytes, transfer_data: bytes) -> bytes:
    """Versioned second-bridge payload consumed by the destination asset router."""
    body = encode_args(["bytes32", "bytes"], [hex_to_bytes(asset_id), transfer_data])
    return ASSET_ROUTER_PAYLOAD_VERSION + hex_to_bytes(body)
