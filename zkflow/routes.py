"""
Route selection — pure functions from (token, base asset) to a route tag.

Every selector here is synchronous, total and deterministic: no I/O, no
exceptions for well-formed inputs, and address comparisons are
case-insensitive. Callers resolve the chain's base token first and pass
it in.

Deposits (L1 → L2):
    ETH sentinel or alias, base is ETH     → eth-base
    ETH sentinel or alias, base not ETH    → eth-nonbase
    token equals base                      → erc20-base
    anything else                          → erc20-nonbase

Withdrawals (L2 → L1):
    ETH sentinel or L2 base-token alias    → base
    anything else                          → erc20-nonbase

Interop (L2 → L2):
    ERC-20 actions present, or source/destination base tokens differ
                                           → indirect
    otherwise                              → direct
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Union

from zkflow.constants import ETH_ADDRESS, FORMAL_ETH_ADDRESS, L2_BASE_TOKEN_ADDRESS


class DepositRoute(StrEnum):
    ETH_BASE = "eth-base"
    ETH_NONBASE = "eth-nonbase"
    ERC20_BASE = "erc20-base"
    ERC20_NONBASE = "erc20-nonbase"


class WithdrawRoute(StrEnum):
    BASE = "base"
    ERC20_NONBASE = "erc20-nonbase"


class InteropRoute(StrEnum):
    DIRECT = "direct"
    INDIRECT = "indirect"


# =========================================================================
# Address helpers
# =========================================================================


def addr_eq(a: str | None, b: str | None) -> bool:
    """Case-insensitive address equality. None never matches."""
    if a is None or b is None:
        return False
    return a.lower() == b.lower()


def is_eth(token: str) -> bool:
    """True for either ETH sentinel (0x…00 or 0x…01)."""
    return addr_eq(token, ETH_ADDRESS) or addr_eq(token, FORMAL_ETH_ADDRESS)


def _is_eth_or_alias(token: str) -> bool:
    return is_eth(token) or addr_eq(token, L2_BASE_TOKEN_ADDRESS)


# =========================================================================
# Interop actions
# =========================================================================


@dataclass(frozen=True)
class SendNative:
    """Send base-token value to ``to`` on the destination chain."""

    to: str
    amount: int


@dataclass(frozen=True)
class SendErc20:
    """Bridge ``amount`` of an L2 ERC-20 to ``to`` on the destination chain."""

    token: str
    to: str
    amount: int


@dataclass(frozen=True)
class Call:
    """Arbitrary call on the destination chain, optionally with value."""

    to: str
    data: str = "0x"
    value: int | None = None


InteropAction = Union[SendNative, SendErc20, Call]


def sum_action_msg_value(actions: list[InteropAction] | tuple[InteropAction, ...]) -> int:
    """Total native value carried by the actions (sendNative + call.value)."""
    total = 0
    for action in actions:
        if isinstance(action, SendNative):
            total += action.amount
        elif isinstance(action, Call) and action.value:
            total += action.value
    return total


def sum_erc20_amounts(actions: list[InteropAction] | tuple[InteropAction, ...]) -> int:
    """Total ERC-20 amount across sendErc20 actions."""
    return sum(a.amount for a in actions if isinstance(a, SendErc20))


# =========================================================================
# Selectors
# =========================================================================


def pick_deposit_route(token: str, base_token: str) -> DepositRoute:
    """Route for depositing *token* into a chain whose base asset is *base_token*."""
    if _is_eth_or_alias(token):
        return DepositRoute.ETH_BASE if is_eth(base_token) else DepositRoute.ETH_NONBASE
    if addr_eq(token, base_token):
        return DepositRoute.ERC20_BASE
    return DepositRoute.ERC20_NONBASE


def pick_withdraw_route(token: str) -> WithdrawRoute:
    """Route for withdrawing *token* from L2."""
    if _is_eth_or_alias(token):
        return WithdrawRoute.BASE
    return WithdrawRoute.ERC20_NONBASE


def pick_interop_route(
    actions: list[InteropAction] | tuple[InteropAction, ...],
    src_base_token: str,
    dst_base_token: str,
) -> InteropRoute:
    """Route for an interop bundle between two chains."""
    has_erc20 = any(isinstance(a, SendErc20) for a in actions)
    if has_erc20 or not addr_eq(src_base_token, dst_base_token):
        return InteropRoute.INDIRECT
    return InteropRoute.DIRECT
