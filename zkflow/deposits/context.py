"""Deposit parameters and the per-build context every route reads from."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from zkflow.backend import ExecutionBackend
from zkflow.errors import ErrorHandlers, ErrorType
from zkflow.operations import OP_DEPOSITS
from zkflow.plans import TxOverrides
from zkflow.routes import DepositRoute, pick_deposit_route

if TYPE_CHECKING:
    from zkflow.client import FlowClient

handlers = ErrorHandlers("deposits")


@dataclass(frozen=True)
class DepositParams:
    """What to deposit and where.

    Attributes:
        token: L1 token address, or an ETH sentinel.
        amount: Amount in the token's smallest unit.
        to: L2 receiver (defaults to the L1 sender).
        refund_recipient: L2 address refunded unused base token.
        l2_gas_limit: Fixed L2 gas limit; skips L2 estimation.
        gas_per_pubdata: Overrides the client's gas-per-pubdata limit.
        operator_tip: Overrides the client's operator tip.
        l1_tx_overrides: Fee/gas/nonce pinned on every L1 step.
    """

    token: str
    amount: int
    to: str | None = None
    refund_recipient: str | None = None
    l2_gas_limit: int | None = None
    gas_per_pubdata: int | None = None
    operator_tip: int | None = None
    l1_tx_overrides: TxOverrides | None = None


@dataclass(frozen=True)
class DepositContext:
    l1: ExecutionBackend
    l2: ExecutionBackend
    route: DepositRoute
    sender: str
    receiver: str
    refund_recipient: str
    chain_id_l2: int
    base_token: str
    bridgehub: str
    l1_asset_router: str
    gas_per_pubdata: int
    operator_tip: int
    l2_gas_limit: int | None
    gas_buffer_pct: int
    overrides: TxOverrides | None


async def build_context(client: FlowClient, params: DepositParams) -> DepositContext:
    """Resolve addresses, chain facts and the route for *params*."""
    if params.amount < 0:
        raise handlers.error(
            ErrorType.VALIDATION,
            OP_DEPOSITS.prepare,
            "Deposit amount must be non-negative.",
            ctx={"amount": params.amount},
        )

    addresses = await client.ensure_addresses()
    chain_id = await handlers.wrap_as(
        ErrorType.RPC, OP_DEPOSITS.base_token, client.l2.chain_id,
        message="Failed to read L2 chain id.",
    )
    sender = await handlers.wrap_as(
        ErrorType.RPC, OP_DEPOSITS.prepare, client.l1.signer_address,
        message="Failed to resolve L1 signer.",
    )
    base_token = await client.base_token(chain_id)
    config = client.config

    return DepositContext(
        l1=client.l1,
        l2=client.l2,
        route=pick_deposit_route(params.token, base_token),
        sender=sender,
        receiver=params.to or sender,
        refund_recipient=params.refund_recipient or sender,
        chain_id_l2=chain_id,
        base_token=base_token,
        bridgehub=addresses.bridgehub,
        l1_asset_router=addresses.l1_asset_router,
        gas_per_pubdata=(
            params.gas_per_pubdata if params.gas_per_pubdata is not None else config.gas_per_pubdata
        ),
        operator_tip=params.operator_tip if params.operator_tip is not None else config.operator_tip,
        l2_gas_limit=params.l2_gas_limit if params.l2_gas_limit is not None else config.l2_gas_limit,
        gas_buffer_pct=config.gas_buffer_pct,
        overrides=params.l1_tx_overrides,
    )
