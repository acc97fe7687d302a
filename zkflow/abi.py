"""
Contract function and event descriptors.

zkflow never loads JSON ABIs. Each contract call it makes is described
by a ContractFunction (name + input/output types) and encoded with
eth-abi; each event it parses is an EventSpec whose topic0 is derived
from its canonical signature. Backends receive plain calldata, so the
same descriptors work for any chain client.

Struct arguments are written as tuple types, e.g. the Bridgehub direct
request:

    (uint256 chainId, uint256 mintValue, address l2Contract,
     uint256 l2Value, bytes l2Calldata, uint256 l2GasLimit,
     uint256 l2GasPerPubdataByteLimit, bytes[] factoryDeps,
     address refundRecipient)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import keccak, to_checksum_address


def _hex_to_bytes(data: str | bytes) -> bytes:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    return bytes.fromhex(data[2:] if data.startswith("0x") else data)


@dataclass(frozen=True)
class ContractFunction:
    name: str
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return keccak(text=self.signature)[:4]

    def encode(self, *args: Any) -> str:
        """ABI-encode a call as 0x-prefixed calldata."""
        return "0x" + (self.selector + abi_encode(list(self.inputs), list(args))).hex()

    def decode_output(self, data: str | bytes) -> Any:
        """Decode return data. A single output is unwrapped."""
        values = abi_decode(list(self.outputs), _hex_to_bytes(data))
        if len(self.outputs) == 1:
            return values[0]
        return tuple(values)


@dataclass(frozen=True)
class EventSpec:
    """Event with its indexed/non-indexed split.

    Attributes:
        name: Event name.
        indexed: Types of indexed params, in order (topics[1:]).
        data: Types of non-indexed params, in order (log data).
    """

    name: str
    indexed: tuple[str, ...] = ()
    data: tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.indexed + self.data)})"

    @property
    def topic(self) -> str:
        return "0x" + keccak(text=self.signature).hex()

    def decode_data(self, data: str | bytes) -> tuple[Any, ...]:
        return tuple(abi_decode(list(self.data), _hex_to_bytes(data)))


def encode_args(types: list[str], values: list[Any]) -> str:
    """Plain ABI encoding (no selector), 0x-prefixed."""
    return "0x" + abi_encode(types, values).hex()


def decode_args(types: list[str], data: str | bytes) -> tuple[Any, ...]:
    return tuple(abi_decode(types, _hex_to_bytes(data)))


def checksum(address: str) -> str:
    return to_checksum_address(address)


def hex_to_bytes(data: str | bytes) -> bytes:
    return _hex_to_bytes(data)


# =========================================================================
# Bridgehub / asset router / nullifier (L1)
# =========================================================================

_DIRECT_REQUEST = "(uint256,uint256,address,uint256,bytes,uint256,uint256,bytes[],address)"
_TWO_BRIDGES_REQUEST = "(uint256,uint256,uint256,uint256,uint256,address,address,uint256,bytes)"
_FINALIZE_PARAMS = "(uint256,uint256,uint256,address,uint16,bytes,bytes32[])"

BRIDGEHUB_BASE_TOKEN = ContractFunction("baseToken", ("uint256",), ("address",))
BRIDGEHUB_ASSET_ROUTER = ContractFunction("assetRouter", (), ("address",))
BRIDGEHUB_L2_TX_BASE_COST = ContractFunction(
    "l2TransactionBaseCost", ("uint256", "uint256", "uint256", "uint256"), ("uint256",)
)
BRIDGEHUB_REQUEST_DIRECT = ContractFunction(
    "requestL2TransactionDirect", (_DIRECT_REQUEST,), ("bytes32",)
)
BRIDGEHUB_REQUEST_TWO_BRIDGES = ContractFunction(
    "requestL2TransactionTwoBridges", (_TWO_BRIDGES_REQUEST,), ("bytes32",)
)

L1_ASSET_ROUTER_NULLIFIER = ContractFunction("L1_NULLIFIER", (), ("address",))
L1_NULLIFIER_NATIVE_TOKEN_VAULT = ContractFunction("l1NativeTokenVault", (), ("address",))
L1_NULLIFIER_IS_WITHDRAWAL_FINALIZED = ContractFunction(
    "isWithdrawalFinalized", ("uint256", "uint256", "uint256"), ("bool",)
)
L1_NULLIFIER_FINALIZE_DEPOSIT = ContractFunction("finalizeDeposit", (_FINALIZE_PARAMS,))

# =========================================================================
# Tokens (either chain)
# =========================================================================

ERC20_ALLOWANCE = ContractFunction("allowance", ("address", "address"), ("uint256",))
ERC20_APPROVE = ContractFunction("approve", ("address", "uint256"), ("bool",))

# =========================================================================
# L2 system contracts
# =========================================================================

L2_BASE_TOKEN_WITHDRAW = ContractFunction("withdraw", ("address",))
L2_ASSET_ROUTER_WITHDRAW = ContractFunction("withdraw", ("bytes32", "bytes"), ("bytes32",))
L2_ASSET_ROUTER_BASE_TOKEN_ASSET_ID = ContractFunction("BASE_TOKEN_ASSET_ID", (), ("bytes32",))
L2_NTV_ENSURE_TOKEN_REGISTERED = ContractFunction(
    "ensureTokenIsRegistered", ("address",), ("bytes32",)
)
L2_NTV_ASSET_ID = ContractFunction("assetId", ("address",), ("bytes32",))

INTEROP_CENTER_SEND_BUNDLE = ContractFunction(
    "sendBundle", ("bytes", "(bytes,bytes,bytes[])[]", "bytes[]"), ("bytes32",)
)
INTEROP_HANDLER_EXECUTE_BUNDLE = ContractFunction(
    "executeBundle", ("bytes", "(uint256,uint256,uint256,(uint16,address,bytes),bytes32[])")
)
INTEROP_ROOT_STORAGE_ROOTS = ContractFunction(
    "interopRoots", ("uint256", "uint256"), ("bytes32",)
)

# ERC-7786 attribute selectors, encoded as calls.
ATTR_INTEROP_CALL_VALUE = ContractFunction("interopCallValue", ("uint256",))
ATTR_INDIRECT_CALL = ContractFunction("indirectCall", ("uint256",))
ATTR_EXECUTION_ADDRESS = ContractFunction("executionAddress", ("bytes",))
ATTR_UNBUNDLER_ADDRESS = ContractFunction("unbundlerAddress", ("bytes",))

# =========================================================================
# Native token vaults (token identity lookups)
# =========================================================================

# Both vaults expose these with the same signatures.
NTV_ASSET_ID = L2_NTV_ASSET_ID
NTV_TOKEN_ADDRESS = ContractFunction("tokenAddress", ("bytes32",), ("address",))
NTV_WETH_TOKEN = ContractFunction("WETH_TOKEN", (), ("address",))

L2_NTV_L2_TOKEN_ADDRESS = ContractFunction("l2TokenAddress", ("address",), ("address",))
L2_NTV_ORIGIN_CHAIN_ID = ContractFunction("originChainId", ("bytes32",), ("uint256",))
L2_NTV_L1_CHAIN_ID = ContractFunction("L1_CHAIN_ID", (), ("uint256",))
L2_NTV_BASE_TOKEN_ASSET_ID = ContractFunction("BASE_TOKEN_ASSET_ID", (), ("bytes32",))
L2_NTV_CALCULATE_CREATE2_TOKEN_ADDRESS = ContractFunction(
    "calculateCreate2TokenAddress", ("uint256", "address"), ("address",)
)
L2_ASSET_ROUTER_L1_TOKEN_ADDRESS = ContractFunction("l1TokenAddress", ("address",), ("address",))

# =========================================================================
# Events
# =========================================================================

EVENT_NEW_PRIORITY_REQUEST = EventSpec(
    "NewPriorityRequest", indexed=("uint256", "address"), data=("bytes32", "uint256", "bytes")
)
EVENT_L1_MESSAGE_SENT = EventSpec(
    "L1MessageSent", indexed=("address", "bytes32"), data=("bytes",)
)

_INTEROP_BUNDLE = (
    "(bytes1,uint256,uint256,bytes32,"
    "(bytes1,bool,address,address,uint256,bytes)[],"
    "(bytes,bytes))"
)
EVENT_INTEROP_BUNDLE_SENT = EventSpec(
    "InteropBundleSent", data=("bytes32", "bytes32", _INTEROP_BUNDLE)
)
EVENT_BUNDLE_VERIFIED = EventSpec("BundleVerified", indexed=("bytes32",))
EVENT_BUNDLE_EXECUTED = EventSpec("BundleExecuted", indexed=("bytes32",))
EVENT_BUNDLE_UNBUNDLED = EventSpec("BundleUnbundled", indexed=("bytes32",))
