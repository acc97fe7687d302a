"""Withdrawal parameters and the per-build context every route reads from."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from zkflow.backend import ExecutionBackend
from zkflow.errors import ErrorHandlers, ErrorType
from zkflow.operations import OP_WITHDRAWALS
from zkflow.plans import TxOverrides
from zkflow.routes import WithdrawRoute, pick_withdraw_route

if TYPE_CHECKING:
    from zkflow.client import FlowClient

handlers = ErrorHandlers("withdrawals")


@dataclass(frozen=True)
class WithdrawParams:
    """What to withdraw and where.

    Attributes:
        token: L2 token address, the ETH sentinel, or the L2 base-token
            system address.
        amount: Amount in the token's smallest unit.
        to: L1 receiver (defaults to the L2 sender).
        l2_tx_overrides: Fee/gas/nonce pinned on every L2 step.
    """

    token: str
    amount: int
    to: str | None = None
    l2_tx_overrides: TxOverrides | None = None


@dataclass(frozen=True)
class WithdrawContext:
    l2: ExecutionBackend
    route: WithdrawRoute
    sender: str
    receiver: str
    chain_id_l2: int
    base_token: str
    l2_asset_router: str
    l2_native_token_vault: str
    l2_base_token_system: str
    gas_buffer_pct: int
    overrides: TxOverrides | None


async def build_context(client: FlowClient, params: WithdrawParams) -> WithdrawContext:
    if params.amount <= 0:
        raise handlers.error(
            ErrorType.VALIDATION,
            OP_WITHDRAWALS.prepare,
            "Withdrawal amount must be positive.",
            ctx={"amount": params.amount},
        )

    addresses = await client.ensure_addresses()
    chain_id = await handlers.wrap_as(
        ErrorType.RPC, OP_WITHDRAWALS.prepare, client.l2.chain_id,
        message="Failed to read L2 chain id.",
    )
    sender = await handlers.wrap_as(
        ErrorType.RPC, OP_WITHDRAWALS.prepare, client.l2.signer_address,
        message="Failed to resolve L2 signer.",
    )
    base_token = await client.base_token(chain_id)

    return WithdrawContext(
        l2=client.l2,
        route=pick_withdraw_route(params.token),
        sender=sender,
        receiver=params.to or sender,
        chain_id_l2=chain_id,
        base_token=base_token,
        l2_asset_router=addresses.l2_asset_router,
        l2_native_token_vault=addresses.l2_native_token_vault,
        l2_base_token_system=addresses.l2_base_token_system,
        gas_buffer_pct=client.config.gas_buffer_pct,
        overrides=params.l2_tx_overrides,
    )
