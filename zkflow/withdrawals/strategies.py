"""
Withdrawal route strategies — one per WithdrawRoute.

| Route         | L2 call                                  | Approval (spender: L2 NTV) | msg.value |
|---------------|------------------------------------------|----------------------------|-----------|
| base          | L2BaseToken.withdraw(receiver)           | none                       | amount    |
| erc20-nonbase | L2AssetRouter.withdraw(assetId, data)    | token for amount           | 0         |

For erc20-nonbase the asset id comes from a static call to
``ensureTokenIsRegistered`` on the native token vault, and the asset data
is ``abi(uint256 amount, address l1Receiver, address l2Token)``. When an
approval step precedes the withdraw, the withdraw is not estimated at
build time (it would revert on the missing allowance); the executor
estimates it after the approval lands.
"""

from __future__ import annotations

from typing import Protocol

from zkflow.abi import (
    L2_ASSET_ROUTER_WITHDRAW,
    L2_BASE_TOKEN_WITHDRAW,
    L2_NTV_ENSURE_TOKEN_REGISTERED,
    encode_args,
    hex_to_bytes,
)
from zkflow.constants import FORMAL_ETH_ADDRESS
from zkflow.errors import ErrorType
from zkflow.execution import plan_approval
from zkflow.gas import GasQuote, fetch_fee_caps, quote_tx_gas
from zkflow.operations import OP_WITHDRAWALS
from zkflow.plans import FeeBreakdown, PlanStep, RouteBuild, TxRequest
from zkflow.routes import WithdrawRoute, addr_eq
from zkflow.rpc.types import coerce_hex
from zkflow.withdrawals.context import WithdrawContext, WithdrawParams, handlers


class WithdrawStrategy(Protocol):
    async def preflight(self, params: WithdrawParams, ctx: WithdrawContext) -> None: ...

    async def build(self, params: WithdrawParams, ctx: WithdrawContext) -> RouteBuild: ...


def _check_receiver(ctx: WithdrawContext) -> None:
    if addr_eq(ctx.receiver, FORMAL_ETH_ADDRESS):
        raise handlers.error(
            ErrorType.VALIDATION,
            OP_WITHDRAWALS.prepare,
            "Withdrawal receiver must not be the zero address.",
            ctx={"to": ctx.receiver},
        )


async def _quote(ctx: WithdrawContext, tx: TxRequest, *, estimate: bool) -> GasQuote | None:
    if not estimate:
        max_fee, priority = await handlers.wrap_as(
            ErrorType.RPC,
            OP_WITHDRAWALS.prepare,
            lambda: fetch_fee_caps(ctx.l2),
            message="Failed to read L2 fee market.",
        )
        return GasQuote(0, max_fee, priority)
    return await handlers.wrap_as(
        ErrorType.RPC,
        OP_WITHDRAWALS.prepare,
        lambda: quote_tx_gas(
            ctx.l2, tx, overrides=ctx.overrides, buffer_pct=ctx.gas_buffer_pct
        ),
        message="Failed to quote L2 gas for withdrawal.",
        ctx={"to": tx.get("to")},
    )


def _withdraw_step(
    tx: TxRequest, quote: GasQuote | None, *, key: str, description: str
) -> PlanStep:
    if quote is not None:
        if quote.gas_limit:
            tx["gas"] = quote.gas_limit
        tx["maxFeePerGas"] = quote.max_fee_per_gas
        tx["maxPriorityFeePerGas"] = quote.max_priority_fee_per_gas
    return PlanStep(key=key, kind=key, description=description, tx=tx)


def _fees(ctx: WithdrawContext, quote: GasQuote | None) -> FeeBreakdown:
    if quote is None:
        return FeeBreakdown(token=ctx.base_token)
    return FeeBreakdown(
        token=ctx.base_token,
        l2_gas_limit=quote.gas_limit,
        l2_max_fee_per_gas=quote.max_fee_per_gas,
        l2_max_total=quote.max_cost,
    )


class BaseRoute:
    """The chain's base token through the L2 base-token system contract."""

    async def preflight(self, params: WithdrawParams, ctx: WithdrawContext) -> None:
        _check_receiver(ctx)

    async def build(self, params: WithdrawParams, ctx: WithdrawContext) -> RouteBuild:
        tx: TxRequest = {
            "to": ctx.l2_base_token_system,
            "from": ctx.sender,
            "data": L2_BASE_TOKEN_WITHDRAW.encode(ctx.receiver),
            "value": params.amount,
        }
        quote = await _quote(ctx, tx, estimate=True)
        step = _withdraw_step(
            tx,
            quote,
            key="l2-base-token:withdraw",
            description="Withdraw base token via L2 Base Token System",
        )
        return RouteBuild(steps=[step], approvals=[], fees=_fees(ctx, quote))


class Erc20NonBaseRoute:
    """Any non-base ERC-20, burned through the L2 asset router."""

    async def preflight(self, params: WithdrawParams, ctx: WithdrawContext) -> None:
        _check_receiver(ctx)
        if addr_eq(params.token, ctx.base_token):
            raise handlers.error(
                ErrorType.VALIDATION,
                OP_WITHDRAWALS.prepare,
                "erc20-nonbase route requires a non-base ERC-20 token.",
                ctx={"token": params.token, "baseToken": ctx.base_token},
            )

    async def build(self, params: WithdrawParams, ctx: WithdrawContext) -> RouteBuild:
        steps: list[PlanStep] = []
        approve = await plan_approval(
            ctx.l2,
            handlers=handlers,
            operation=OP_WITHDRAWALS.allowance,
            token=params.token,
            owner=ctx.sender,
            spender=ctx.l2_native_token_vault,
            amount=params.amount,
            description=f"Approve {params.amount} to NativeTokenVault",
        )
        if approve is not None:
            steps.append(approve)

        asset_id = await handlers.wrap_as(
            ErrorType.RPC,
            OP_WITHDRAWALS.ensure_registered,
            lambda: ctx.l2.read(
                ctx.l2_native_token_vault, L2_NTV_ENSURE_TOKEN_REGISTERED, (params.token,)
            ),
            message="Failed to ensure token is registered in L2NativeTokenVault.",
            ctx={"token": params.token},
        )
        calldata = await handlers.wrap(
            OP_WITHDRAWALS.encode,
            lambda: L2_ASSET_ROUTER_WITHDRAW.encode(
                hex_to_bytes(coerce_hex(asset_id)),
                hex_to_bytes(
                    encode_args(
                        ["uint256", "address", "address"],
                        [params.amount, ctx.receiver, params.token],
                    )
                ),
            ),
            message="Failed to encode asset router withdraw calldata.",
            ctx={"token": params.token},
        )

        tx: TxRequest = {
            "to": ctx.l2_asset_router,
            "from": ctx.sender,
            "data": calldata,
            "value": 0,
        }
        quote = await _quote(ctx, tx, estimate=approve is None)
        steps.append(
            _withdraw_step(
                tx,
                quote,
                key="l2-asset-router:withdraw",
                description="Burn on L2 & send L2→L1 message",
            )
        )
        return RouteBuild(
            steps=steps,
            approvals=[s.approval for s in steps if s.approval is not None],
            fees=_fees(ctx, quote),
            extras={"assetId": coerce_hex(asset_id)},
        )


ROUTES: dict[WithdrawRoute, WithdrawStrategy] = {
    WithdrawRoute.BASE: BaseRoute(),
    WithdrawRoute.ERC20_NONBASE: Erc20NonBaseRoute(),
}
