"""
Protocol constants — system contract addresses, event topics, gas knobs.

Addresses are stored lowercase except where a checksum form is needed by
a contract call; comparisons anywhere in zkflow go through ``addr_eq``
so case never matters.

Event topics are computed from their canonical signatures at import time
where the signature is known; the two canonical-transaction markers are
pinned literals because their signatures are not part of any ABI shipped
here.
"""

from __future__ import annotations

from eth_utils import keccak


def k256hex(text: str) -> str:
    """Keccak-256 of a UTF-8 string as lowercase 0x-prefixed hex."""
    return "0x" + keccak(text=text).hex()


# =========================================================================
# Addresses
# =========================================================================

# The formal zero address used to represent ETH on L1.
FORMAL_ETH_ADDRESS = "0x0000000000000000000000000000000000000000"

# Some contracts reject the zero address; 0x…01 stands in for ETH there.
ETH_ADDRESS = "0x0000000000000000000000000000000000000001"

L2_ASSET_ROUTER_ADDRESS = "0x0000000000000000000000000000000000010003"
L2_NATIVE_TOKEN_VAULT_ADDRESS = "0x0000000000000000000000000000000000010004"
L1_MESSENGER_ADDRESS = "0x0000000000000000000000000000000000008008"
L2_BASE_TOKEN_ADDRESS = "0x000000000000000000000000000000000000800a"

L2_INTEROP_ROOT_STORAGE_ADDRESS = "0x0000000000000000000000000000000000010008"
L2_INTEROP_CENTER_ADDRESS = "0x000000000000000000000000000000000001000d"
L2_INTEROP_HANDLER_ADDRESS = "0x000000000000000000000000000000000001000e"

# =========================================================================
# Event topics
# =========================================================================

TOPIC_L1_MESSAGE_SENT_NEW = k256hex("L1MessageSent(uint256,bytes32,bytes)")
TOPIC_L1_MESSAGE_SENT_LEG = k256hex("L1MessageSent(address,bytes32,bytes)")

TOPIC_CANONICAL_ASSIGNED = "0x779f441679936c5441b671969f37400b8c3ed0071cb47444431bf985754560df"
TOPIC_CANONICAL_SUCCESS = "0xe4def01b981193a97a9e81230d7b9f31812ceaf23f864a828a82c687911cb2df"

# =========================================================================
# Gas
# =========================================================================

BUFFER = 20  # percent
TX_OVERHEAD_GAS = 10_000
TX_MEMORY_OVERHEAD_GAS = 10
DEFAULT_PUBDATA_BYTES = 155
DEFAULT_ABI_BYTES = 400
SAFE_L1_BRIDGE_GAS = 700_000
MIN_L2_GAS_FOR_ERC20 = 2_500_000

# L1 fee estimates are scaled by NUMERATOR / DENOMINATOR.
L1_FEE_ESTIMATION_COEF_NUMERATOR = 12
L1_FEE_ESTIMATION_COEF_DENOMINATOR = 10

# Missing step gas limits are estimated and scaled by this ratio.
STEP_GAS_NUMERATOR = 115
STEP_GAS_DENOMINATOR = 100

# =========================================================================
# Interop
# =========================================================================

ZERO_HASH = "0x" + "0" * 64
DEFAULT_POLL_MS = 1_000
DEFAULT_TIMEOUT_MS = 300_000

# Leading byte of an interop bundle payload carried in an L1 message.
BUNDLE_IDENTIFIER = "0x01"

# ERC-7930 prefixes: version 0x0001, chain type eip-155 (0x0000).
PREFIX_EVM_CHAIN = bytes.fromhex("00010000")
PREFIX_EVM_ADDRESS = bytes.fromhex("000100000014")
