"""
Interop route strategies — one per InteropRoute.

Both routes end in a single ``InteropCenter.sendBundle(dstChain, calls,
bundleAttrs)`` step on the source chain; they differ in how actions
become bundle calls.

| Action       | direct                                    | indirect                                        |
|--------------|-------------------------------------------|-------------------------------------------------|
| sendNative   | (to, 0x, [interopCallValue(amount)])      | same, or via asset router when bases differ     |
|              |                                           | (router, payload(baseAssetId), [indirectCall(amount)]) |
| sendErc20    | rejected                                  | (router, payload(assetId), [indirectCall(0)])   |
| call         | (to, data, [interopCallValue(value)]?)    | same; value rejected when bases differ          |

Indirect builds may prepend, per ERC-20 token, a registration step on the
L2 native token vault (token has no asset id yet) and an approve step
(allowance short). ``msg.value`` of the bundle step is the total native
value of the actions.
"""

from __future__ import annotations

import logging
from typing import Protocol

from zkflow.abi import (
    INTEROP_CENTER_SEND_BUNDLE,
    L2_ASSET_ROUTER_BASE_TOKEN_ASSET_ID,
    L2_NTV_ASSET_ID,
    L2_NTV_ENSURE_TOKEN_REGISTERED,
    hex_to_bytes,
)
from zkflow.constants import FORMAL_ETH_ADDRESS, ZERO_HASH
from zkflow.errors import ErrorType
from zkflow.execution import plan_approval
from zkflow.gas import GasQuote, fetch_fee_caps, quote_tx_gas
from zkflow.interop.attributes import (
    encode_asset_router_payload,
    encode_ntv_transfer_data,
    execution_address,
    format_interop_evm_address,
    format_interop_evm_chain,
    indirect_call,
    interop_call_value,
    unbundler_address,
)
from zkflow.interop.context import InteropContext, InteropParams, handlers
from zkflow.operations import OP_INTEROP
from zkflow.plans import FeeBreakdown, PlanStep, RouteBuild, TxRequest
from zkflow.routes import (
    Call,
    InteropRoute,
    SendErc20,
    SendNative,
    sum_action_msg_value,
    sum_erc20_amounts,
)
from zkflow.rpc.types import coerce_hex

logger = logging.getLogger(__name__)

BundleCall = tuple[bytes, bytes, list[bytes]]


class InteropStrategy(Protocol):
    async def preflight(self, params: InteropParams, ctx: InteropContext) -> None: ...

    async def build(self, params: InteropParams, ctx: InteropContext) -> RouteBuild: ...


# =========================================================================
# Shared pieces
# =========================================================================


def _invalid(operation: str, message: str, **ctx: object) -> None:
    raise handlers.error(ErrorType.VALIDATION, operation, message, ctx=dict(ctx))


def _check_amounts(params: InteropParams, operation: str) -> None:
    for i, action in enumerate(params.actions):
        if isinstance(action, SendNative) and action.amount < 0:
            _invalid(operation, "sendNative.amount must be >= 0.", index=i)
        if isinstance(action, SendErc20) and action.amount < 0:
            _invalid(operation, "sendErc20.amount must be >= 0.", index=i)
        if isinstance(action, Call) and action.value is not None and action.value < 0:
            _invalid(operation, "call.value must be >= 0 when provided.", index=i)


def _bundle_attrs(params: InteropParams) -> list[bytes]:
    attrs: list[bytes] = []
    if params.execution_only:
        attrs.append(execution_address(params.execution_only))
    if params.unbundler:
        attrs.append(unbundler_address(params.unbundler))
    return attrs


def _direct_call(action: SendNative | Call) -> BundleCall:
    to = format_interop_evm_address(action.to)
    if isinstance(action, SendNative):
        return to, b"", [interop_call_value(action.amount)]
    attrs = [interop_call_value(action.value)] if action.value else []
    return to, hex_to_bytes(action.data or "0x"), attrs


def _send_bundle_tx(
    ctx: InteropContext, params: InteropParams, calls: list[BundleCall], operation: str
) -> TxRequest:
    try:
        data = INTEROP_CENTER_SEND_BUNDLE.encode(
            format_interop_evm_chain(ctx.dst_chain_id), calls, _bundle_attrs(params)
        )
    except Exception as exc:
        raise handlers.error(
            ErrorType.INTERNAL,
            operation,
            "Failed to encode sendBundle calldata.",
            ctx={"dstChainId": ctx.dst_chain_id, "calls": len(calls)},
            cause=exc,
        ) from exc
    return {
        "to": ctx.interop_center,
        "from": ctx.sender,
        "data": data,
        "value": sum_action_msg_value(params.actions),
    }


async def _quote(ctx: InteropContext, tx: TxRequest, *, estimate: bool, operation: str) -> GasQuote:
    if estimate:
        quote = await handlers.wrap_as(
            ErrorType.RPC,
            operation,
            lambda: quote_tx_gas(
                ctx.l2, tx, overrides=ctx.overrides, buffer_pct=ctx.gas_buffer_pct
            ),
            message="Failed to quote gas for sendBundle.",
            ctx={"interopCenter": ctx.interop_center},
        )
        if quote is not None:
            return quote
    # Unestimated: the executor fills gas at send time.
    max_fee, priority = await handlers.wrap_as(
        ErrorType.RPC, operation, lambda: fetch_fee_caps(ctx.l2),
        message="Failed to read source fee market.",
    )
    return GasQuote(0, max_fee, priority)


def _bundle_step(tx: TxRequest, quote: GasQuote, description: str) -> PlanStep:
    if quote.gas_limit:
        tx["gas"] = quote.gas_limit
    tx["maxFeePerGas"] = quote.max_fee_per_gas
    tx["maxPriorityFeePerGas"] = quote.max_priority_fee_per_gas
    return PlanStep(key="sendBundle", kind="interop.center", description=description, tx=tx)


def _fees(ctx: InteropContext, quote: GasQuote) -> FeeBreakdown:
    return FeeBreakdown(
        token=ctx.src_base_token,
        l2_gas_limit=quote.gas_limit,
        l2_max_fee_per_gas=quote.max_fee_per_gas,
        l2_max_total=quote.max_cost,
    )


# =========================================================================
# Routes
# =========================================================================


class DirectRoute:
    """Native value and plain calls between chains sharing a base token."""

    async def preflight(self, params: InteropParams, ctx: InteropContext) -> None:
        op = OP_INTEROP.routes_direct_preflight
        if not params.actions:
            _invalid(op, 'route "direct" requires at least one action.')
        if any(isinstance(a, SendErc20) for a in params.actions):
            _invalid(op, 'route "direct" does not support ERC-20 actions; use the indirect route.')
        if not ctx.base_tokens_match:
            _invalid(
                op,
                'route "direct" requires matching base tokens between source and destination.',
                srcBaseToken=ctx.src_base_token,
                dstBaseToken=ctx.dst_base_token,
            )
        _check_amounts(params, op)

    async def build(self, params: InteropParams, ctx: InteropContext) -> RouteBuild:
        op = OP_INTEROP.routes_direct_build
        calls = [_direct_call(a) for a in params.actions if isinstance(a, (SendNative, Call))]
        tx = _send_bundle_tx(ctx, params, calls, op)
        quote = await _quote(ctx, tx, estimate=True, operation=op)
        step = _bundle_step(tx, quote, "Send interop bundle (direct route)")
        return RouteBuild(
            steps=[step],
            approvals=[],
            fees=_fees(ctx, quote),
            extras={
                "totalActionValue": sum_action_msg_value(params.actions),
                "bridgedTokenTotal": 0,
            },
        )


class IndirectRoute:
    """Bridged ERC-20s, or any bundle between chains with different base tokens."""

    async def preflight(self, params: InteropParams, ctx: InteropContext) -> None:
        op = OP_INTEROP.routes_indirect_preflight
        if not params.actions:
            _invalid(op, 'route "indirect" requires at least one action.')
        has_erc20 = any(isinstance(a, SendErc20) for a in params.actions)
        if not has_erc20 and ctx.base_tokens_match:
            _invalid(
                op,
                'route "indirect" requires ERC-20 actions or mismatched base tokens; '
                "use the direct route instead.",
            )
        _check_amounts(params, op)
        if not ctx.base_tokens_match:
            for i, action in enumerate(params.actions):
                if isinstance(action, Call) and action.value:
                    _invalid(
                        op,
                        "indirect route does not support call.value when base tokens differ.",
                        index=i,
                        value=action.value,
                    )

    async def _asset_id(self, ctx: InteropContext, token: str) -> tuple[str, bool]:
        """Asset id of *token* and whether it is registered on the vault yet."""
        op = OP_INTEROP.routes_indirect_build
        current = await handlers.wrap_as(
            ErrorType.RPC,
            op,
            lambda: ctx.l2.read(ctx.l2_native_token_vault, L2_NTV_ASSET_ID, (token,)),
            message="Failed to read asset id from L2NativeTokenVault.",
            ctx={"token": token},
        )
        current = coerce_hex(current)
        if current != ZERO_HASH:
            return current, True
        # Simulated registration yields the id the vault will assign.
        predicted = await handlers.wrap_as(
            ErrorType.RPC,
            op,
            lambda: ctx.l2.read(ctx.l2_native_token_vault, L2_NTV_ENSURE_TOKEN_REGISTERED, (token,)),
            message="Failed to ensure token is registered in L2NativeTokenVault.",
            ctx={"token": token},
        )
        return coerce_hex(predicted), False

    async def build(self, params: InteropParams, ctx: InteropContext) -> RouteBuild:
        op = OP_INTEROP.routes_indirect_build
        steps: list[PlanStep] = []

        totals: dict[str, tuple[str, int]] = {}
        for action in params.actions:
            if isinstance(action, SendErc20):
                token, amount = totals.get(action.token.lower(), (action.token, 0))
                totals[action.token.lower()] = (token, amount + action.amount)

        asset_ids: dict[str, str] = {}
        for key, (token, amount) in totals.items():
            asset_id, registered = await self._asset_id(ctx, token)
            asset_ids[key] = asset_id
            if not registered:
                steps.append(
                    PlanStep(
                        key=f"register:{token}",
                        kind="register",
                        description=f"Register {token} in L2NativeTokenVault",
                        tx={
                            "to": ctx.l2_native_token_vault,
                            "data": L2_NTV_ENSURE_TOKEN_REGISTERED.encode(token),
                            "value": 0,
                        },
                    )
                )
            approve = await plan_approval(
                ctx.l2,
                handlers=handlers,
                operation=op,
                token=token,
                owner=ctx.sender,
                spender=ctx.l2_native_token_vault,
                amount=amount,
                description=f"Approve {amount} of {token} to NativeTokenVault",
            )
            if approve is not None:
                steps.append(approve)

        base_asset_id: str | None = None
        router = format_interop_evm_address(ctx.l2_asset_router)
        calls: list[BundleCall] = []
        for action in params.actions:
            if isinstance(action, SendErc20):
                payload = encode_asset_router_payload(
                    asset_ids[action.token.lower()],
                    encode_ntv_transfer_data(action.amount, action.to, FORMAL_ETH_ADDRESS),
                )
                calls.append((router, payload, [indirect_call(0)]))
            elif isinstance(action, SendNative) and not ctx.base_tokens_match:
                if base_asset_id is None:
                    base_asset_id = coerce_hex(
                        await handlers.wrap_as(
                            ErrorType.RPC,
                            op,
                            lambda: ctx.l2.read(
                                ctx.l2_asset_router, L2_ASSET_ROUTER_BASE_TOKEN_ASSET_ID
                            ),
                            message="Failed to read base token asset id.",
                        )
                    )
                payload = encode_asset_router_payload(
                    base_asset_id,
                    encode_ntv_transfer_data(action.amount, action.to, FORMAL_ETH_ADDRESS),
                )
                calls.append((router, payload, [indirect_call(action.amount)]))
            else:
                calls.append(_direct_call(action))

        tx = _send_bundle_tx(ctx, params, calls, op)
        # Estimating ahead of pending registration/approval steps would revert.
        quote = await _quote(ctx, tx, estimate=not steps, operation=op)
        steps.append(_bundle_step(tx, quote, "Send interop bundle (indirect route)"))
        if len(steps) > 1:
            logger.debug("indirect bundle needs %d preparatory step(s)", len(steps) - 1)

        return RouteBuild(
            steps=steps,
            approvals=[s.approval for s in steps if s.approval is not None],
            fees=_fees(ctx, quote),
            extras={
                "totalActionValue": sum_action_msg_value(params.actions),
                "bridgedTokenTotal": sum_erc20_amounts(params.actions),
            },
        )


ROUTES: dict[InteropRoute, InteropStrategy] = {
    InteropRoute.DIRECT: DirectRoute(),
    InteropRoute.INDIRECT: IndirectRoute(),
}
