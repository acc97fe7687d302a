"""
Deposit route strategies — one per DepositRoute.

| Route         | Bridgehub call   | Approvals (spender: L1 asset router) | msg.value           |
|---------------|------------------|--------------------------------------|---------------------|
| eth-base      | direct           | none                                 | mint                |
| erc20-base    | direct           | base token for mint                  | 0                   |
| eth-nonbase   | two-bridges      | base token for baseCost + tip        | amount              |
| erc20-nonbase | two-bridges      | token for amount; base for mint      | mint if base is ETH |
|               |                  | (only when base is not ETH)          | else 0              |

mint = L2 base cost + operator tip (+ amount when the deposited asset is
the base token). Each strategy reads allowances at build time and emits
an approve step only when the current allowance is short; execution
re-checks right before sending.
"""

from __future__ import annotations

from typing import Protocol

from zkflow.abi import (
    BRIDGEHUB_REQUEST_DIRECT,
    BRIDGEHUB_REQUEST_TWO_BRIDGES,
    encode_args,
    hex_to_bytes,
)
from zkflow.constants import (
    ETH_ADDRESS,
    MIN_L2_GAS_FOR_ERC20,
    SAFE_L1_BRIDGE_GAS,
)
from zkflow.deposits.context import DepositContext, DepositParams, handlers
from zkflow.errors import ErrorType
from zkflow.execution import plan_approval
from zkflow.gas import GasQuote, quote_l2_base_cost, quote_l2_gas, quote_tx_gas
from zkflow.operations import OP_DEPOSITS
from zkflow.plans import FeeBreakdown, PlanStep, RouteBuild, TxRequest
from zkflow.routes import DepositRoute, addr_eq, is_eth

# Two-bridges ERC-20 deposits run token deployment on L2; estimate high.
_ERC20_NONBASE_L1_BUFFER_PCT = 25


class DepositStrategy(Protocol):
    async def preflight(self, params: DepositParams, ctx: DepositContext) -> None: ...

    async def build(self, params: DepositParams, ctx: DepositContext) -> RouteBuild: ...


# =========================================================================
# Shared pieces
# =========================================================================


def _invalid(operation: str, message: str, **ctx: object) -> None:
    raise handlers.error(ErrorType.VALIDATION, operation, message, ctx=dict(ctx))


def _l2_model_tx(ctx: DepositContext, value: int) -> TxRequest:
    return {"to": ctx.receiver, "from": ctx.sender, "data": "0x", "value": value}


async def _l2_gas(
    ctx: DepositContext, route: DepositRoute, model_value: int
) -> GasQuote:
    return await handlers.wrap_as(
        ErrorType.RPC,
        OP_DEPOSITS.est_gas,
        lambda: quote_l2_gas(
            ctx.l2,
            route,
            model_tx=_l2_model_tx(ctx, model_value),
            gas_per_pubdata=ctx.gas_per_pubdata,
            override_gas_limit=ctx.l2_gas_limit,
            buffer_pct=ctx.gas_buffer_pct,
        ),
        message="Failed to quote L2 gas for deposit.",
        ctx={"route": str(route)},
    )


async def _base_cost(ctx: DepositContext, l2_gas_limit: int) -> int:
    return await handlers.wrap_as(
        ErrorType.RPC,
        OP_DEPOSITS.base_cost,
        lambda: quote_l2_base_cost(
            ctx.l1,
            bridgehub=ctx.bridgehub,
            chain_id=ctx.chain_id_l2,
            l2_gas_limit=l2_gas_limit,
            gas_per_pubdata=ctx.gas_per_pubdata,
        ),
        message="Failed to quote L2 base cost from Bridgehub.",
        ctx={"chainId": ctx.chain_id_l2, "l2GasLimit": l2_gas_limit},
    )


def _direct_calldata(ctx: DepositContext, mint: int, l2_value: int, l2_gas_limit: int) -> str:
    request = (
        ctx.chain_id_l2,
        mint,
        ctx.receiver,
        l2_value,
        b"",
        l2_gas_limit,
        ctx.gas_per_pubdata,
        [],
        ctx.refund_recipient,
    )
    return BRIDGEHUB_REQUEST_DIRECT.encode(request)


def _two_bridges_calldata(
    ctx: DepositContext,
    *,
    mint: int,
    l2_value: int,
    l2_gas_limit: int,
    second_bridge_value: int,
    second_bridge_calldata: str,
) -> str:
    request = (
        ctx.chain_id_l2,
        mint,
        l2_value,
        l2_gas_limit,
        ctx.gas_per_pubdata,
        ctx.refund_recipient,
        ctx.l1_asset_router,
        second_bridge_value,
        hex_to_bytes(second_bridge_calldata),
    )
    return BRIDGEHUB_REQUEST_TWO_BRIDGES.encode(request)


def encode_second_bridge_args(token: str, amount: int, receiver: str) -> str:
    """Asset router calldata for a two-bridges deposit: (token, amount, receiver)."""
    return encode_args(["address", "uint256", "address"], [token, amount, receiver])


async def _bridge_step(
    ctx: DepositContext,
    *,
    key: str,
    kind: str,
    description: str,
    calldata: str,
    value: int,
    buffer_pct: int | None = None,
    fallback_gas_limit: int | None = None,
) -> tuple[PlanStep, GasQuote | None]:
    tx: TxRequest = {"to": ctx.bridgehub, "from": ctx.sender, "data": calldata, "value": value}
    quote = await handlers.wrap_as(
        ErrorType.RPC,
        OP_DEPOSITS.est_gas,
        lambda: quote_tx_gas(
            ctx.l1,
            tx,
            overrides=ctx.overrides,
            buffer_pct=buffer_pct if buffer_pct is not None else ctx.gas_buffer_pct,
            fallback_gas_limit=fallback_gas_limit,
        ),
        message="Failed to quote L1 gas for deposit.",
        ctx={"to": ctx.bridgehub},
    )
    if quote is not None:
        tx["gas"] = quote.gas_limit
        tx["maxFeePerGas"] = quote.max_fee_per_gas
        tx["maxPriorityFeePerGas"] = quote.max_priority_fee_per_gas
    return PlanStep(key=key, kind=kind, description=description, tx=tx), quote


def _fees(
    ctx: DepositContext,
    *,
    l1_gas: GasQuote | None,
    l2_gas: GasQuote,
    base_cost: int,
    mint: int,
) -> FeeBreakdown:
    return FeeBreakdown(
        token=ctx.base_token,
        l1_gas_limit=l1_gas.gas_limit if l1_gas else 0,
        l1_max_fee_per_gas=l1_gas.max_fee_per_gas if l1_gas else 0,
        l1_max_total=l1_gas.max_cost if l1_gas else 0,
        l2_gas_limit=l2_gas.gas_limit,
        l2_base_cost=base_cost,
        operator_tip=ctx.operator_tip,
        mint_value=mint,
    )


# =========================================================================
# Routes
# =========================================================================


class EthBaseRoute:
    """ETH into an ETH-based chain via requestL2TransactionDirect."""

    async def preflight(self, params: DepositParams, ctx: DepositContext) -> None:
        if not is_eth(ctx.base_token):
            _invalid(OP_DEPOSITS.prepare, "eth-base route requires an ETH-based chain.",
                     baseToken=ctx.base_token)

    async def build(self, params: DepositParams, ctx: DepositContext) -> RouteBuild:
        l2_gas = await _l2_gas(ctx, DepositRoute.ETH_BASE, params.amount)
        base_cost = await _base_cost(ctx, l2_gas.gas_limit)
        mint = base_cost + ctx.operator_tip + params.amount

        step, l1_gas = await _bridge_step(
            ctx,
            key="bridgehub:direct",
            kind="bridgehub:direct",
            description="Bridge ETH via Bridgehub.requestL2TransactionDirect",
            calldata=_direct_calldata(ctx, mint, params.amount, l2_gas.gas_limit),
            value=mint,
        )
        return RouteBuild(
            steps=[step],
            approvals=[],
            fees=_fees(ctx, l1_gas=l1_gas, l2_gas=l2_gas, base_cost=base_cost, mint=mint),
        )


class Erc20BaseRoute:
    """The chain's ERC-20 base token via requestL2TransactionDirect."""

    async def preflight(self, params: DepositParams, ctx: DepositContext) -> None:
        if is_eth(params.token):
            _invalid(OP_DEPOSITS.prepare, "erc20-base route requires an ERC-20 token (not ETH).",
                     token=params.token)
        if not addr_eq(params.token, ctx.base_token):
            _invalid(OP_DEPOSITS.prepare,
                     "Provided token is not the base token for the target chain.",
                     baseToken=ctx.base_token, provided=params.token)

    async def build(self, params: DepositParams, ctx: DepositContext) -> RouteBuild:
        l2_gas = await _l2_gas(ctx, DepositRoute.ERC20_BASE, 0)
        base_cost = await _base_cost(ctx, l2_gas.gas_limit)
        mint = base_cost + ctx.operator_tip + params.amount

        steps: list[PlanStep] = []
        approve = await plan_approval(
            ctx.l1,
            handlers=handlers,
            operation=OP_DEPOSITS.allowance,
            token=ctx.base_token,
            owner=ctx.sender,
            spender=ctx.l1_asset_router,
            amount=mint,
            description="Approve base token for mintValue",
        )
        if approve is not None:
            steps.append(approve)

        step, l1_gas = await _bridge_step(
            ctx,
            key="bridgehub:direct:erc20-base",
            kind="bridgehub:direct",
            description="Bridge base ERC-20 via Bridgehub.requestL2TransactionDirect",
            calldata=_direct_calldata(ctx, mint, params.amount, l2_gas.gas_limit),
            value=0,
            fallback_gas_limit=SAFE_L1_BRIDGE_GAS,
        )
        steps.append(step)
        return RouteBuild(
            steps=steps,
            approvals=[s.approval for s in steps if s.approval is not None],
            fees=_fees(ctx, l1_gas=l1_gas, l2_gas=l2_gas, base_cost=base_cost, mint=mint),
        )


class EthNonBaseRoute:
    """ETH into a chain whose base token is an ERC-20; fees paid in base."""

    async def preflight(self, params: DepositParams, ctx: DepositContext) -> None:
        if is_eth(ctx.base_token):
            _invalid(OP_DEPOSITS.prepare,
                     "eth-nonbase route requires target chain base token other than ETH.",
                     baseToken=ctx.base_token, chainIdL2=ctx.chain_id_l2)

    async def build(self, params: DepositParams, ctx: DepositContext) -> RouteBuild:
        l2_gas = await _l2_gas(ctx, DepositRoute.ETH_NONBASE, 0)
        base_cost = await _base_cost(ctx, l2_gas.gas_limit)
        mint = base_cost + ctx.operator_tip

        steps: list[PlanStep] = []
        approve = await plan_approval(
            ctx.l1,
            handlers=handlers,
            operation=OP_DEPOSITS.allowance,
            token=ctx.base_token,
            owner=ctx.sender,
            spender=ctx.l1_asset_router,
            amount=mint,
            description="Approve base token for fees (mintValue)",
        )
        if approve is not None:
            steps.append(approve)

        second = await handlers.wrap(
            OP_DEPOSITS.encode,
            lambda: encode_second_bridge_args(ETH_ADDRESS, params.amount, ctx.receiver),
            message="Failed to encode ETH bridging calldata.",
        )
        step, l1_gas = await _bridge_step(
            ctx,
            key="bridgehub:two-bridges:eth-nonbase",
            kind="bridgehub:two-bridges",
            description=(
                "Bridge ETH (fees in base ERC-20) via Bridgehub.requestL2TransactionTwoBridges"
            ),
            calldata=_two_bridges_calldata(
                ctx,
                mint=mint,
                l2_value=params.amount,
                l2_gas_limit=l2_gas.gas_limit,
                second_bridge_value=params.amount,
                second_bridge_calldata=second,
            ),
            value=params.amount,
            fallback_gas_limit=SAFE_L1_BRIDGE_GAS,
        )
        steps.append(step)
        return RouteBuild(
            steps=steps,
            approvals=[s.approval for s in steps if s.approval is not None],
            fees=_fees(ctx, l1_gas=l1_gas, l2_gas=l2_gas, base_cost=base_cost, mint=mint),
        )


class Erc20NonBaseRoute:
    """Any other ERC-20, through the asset router as second bridge."""

    async def preflight(self, params: DepositParams, ctx: DepositContext) -> None:
        if addr_eq(params.token, ctx.base_token):
            _invalid(OP_DEPOSITS.assert_non_base,
                     "erc20-nonbase route requires a non-base ERC-20 deposit token.",
                     depositToken=params.token, baseToken=ctx.base_token)

    async def build(self, params: DepositParams, ctx: DepositContext) -> RouteBuild:
        l2_gas = await _l2_gas(ctx, DepositRoute.ERC20_NONBASE, 0)
        if ctx.l2_gas_limit is None and l2_gas.gas_limit < MIN_L2_GAS_FOR_ERC20:
            l2_gas = GasQuote(
                MIN_L2_GAS_FOR_ERC20,
                l2_gas.max_fee_per_gas,
                gas_per_pubdata=l2_gas.gas_per_pubdata,
            )
        base_cost = await _base_cost(ctx, l2_gas.gas_limit)
        mint = base_cost + ctx.operator_tip
        base_is_eth = is_eth(ctx.base_token)

        steps: list[PlanStep] = []
        token_approve = await plan_approval(
            ctx.l1,
            handlers=handlers,
            operation=OP_DEPOSITS.allowance,
            token=params.token,
            owner=ctx.sender,
            spender=ctx.l1_asset_router,
            amount=params.amount,
            description="Approve deposit token for amount",
        )
        if token_approve is not None:
            steps.append(token_approve)
        if not base_is_eth:
            base_approve = await plan_approval(
                ctx.l1,
                handlers=handlers,
                operation=OP_DEPOSITS.allowance,
                token=ctx.base_token,
                owner=ctx.sender,
                spender=ctx.l1_asset_router,
                amount=mint,
                description="Approve base token for mintValue",
            )
            if base_approve is not None:
                steps.append(base_approve)

        second = await handlers.wrap(
            OP_DEPOSITS.encode,
            lambda: encode_second_bridge_args(params.token, params.amount, ctx.receiver),
            message="Failed to encode bridging calldata.",
        )
        step, l1_gas = await _bridge_step(
            ctx,
            key="bridgehub:two-bridges:erc20-nonbase",
            kind="bridgehub:two-bridges",
            description=(
                "Bridge ERC-20 (fees in ETH) via Bridgehub.requestL2TransactionTwoBridges"
                if base_is_eth
                else "Bridge ERC-20 (fees in base ERC-20) via "
                "Bridgehub.requestL2TransactionTwoBridges"
            ),
            calldata=_two_bridges_calldata(
                ctx,
                mint=mint,
                l2_value=0,
                l2_gas_limit=l2_gas.gas_limit,
                second_bridge_value=0,
                second_bridge_calldata=second,
            ),
            value=mint if base_is_eth else 0,
            buffer_pct=_ERC20_NONBASE_L1_BUFFER_PCT,
            fallback_gas_limit=SAFE_L1_BRIDGE_GAS,
        )
        steps.append(step)
        return RouteBuild(
            steps=steps,
            approvals=[s.approval for s in steps if s.approval is not None],
            fees=_fees(ctx, l1_gas=l1_gas, l2_gas=l2_gas, base_cost=base_cost, mint=mint),
        )


ROUTES: dict[DepositRoute, DepositStrategy] = {
    DepositRoute.ETH_BASE: EthBaseRoute(),
    DepositRoute.ETH_NONBASE: EthNonBaseRoute(),
    DepositRoute.ERC20_BASE: Erc20BaseRoute(),
    DepositRoute.ERC20_NONBASE: Erc20NonBaseRoute(),
}
