"""
InteropResource — quote, prepare, create, status, wait and finalize for
L2 → L2 bundles.

    handle = await client.interop.create(InteropParams(dst_chain_id=..., actions=(...)))
    info = await client.interop.wait(handle)          # FinalizationInfo | None
    result = await client.interop.finalize(info)      # executeBundle on destination

``wait`` returns None when its deadline passes; every other failure
(including a destination root that differs from the proven one) raises.
``finalize`` accepts a FinalizationInfo from ``wait``, or a handle / source
tx hash, in which case it waits first and a timeout surfaces as TIMEOUT.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Union

from zkflow.errors import ErrorType, FlowError, Result
from zkflow.execution import execute_plan
from zkflow.interop.context import InteropParams, build_context, handlers
from zkflow.interop.finalization import (
    derive_status,
    execute_bundle,
    find_bundle_sent,
    wait_for_finalization,
)
from zkflow.interop.strategies import ROUTES
from zkflow.operations import OP_INTEROP
from zkflow.plans import (
    FinalizationInfo,
    InteropFinalizeResult,
    InteropHandle,
    InteropStatus,
    Plan,
    Quote,
)
from zkflow.polling import clamp_poll_ms
from zkflow.routes import InteropRoute

if TYPE_CHECKING:
    from zkflow.client import FlowClient

logger = logging.getLogger(__name__)

InteropWaitable = Union[InteropHandle, str]


def _ids(h: InteropWaitable) -> tuple[str | None, str | None, int | None]:
    if isinstance(h, str):
        return h, None, None
    return h.l2_src_tx_hash, h.bundle_hash, h.dst_chain_id


class InteropResource:
    def __init__(self, client: FlowClient) -> None:
        self._client = client

    async def _build_plan(self, params: InteropParams) -> Plan:
        ctx = await build_context(self._client, params)
        strategy = ROUTES[ctx.route]
        await strategy.preflight(params, ctx)
        built = await strategy.build(params, ctx)
        summary = Quote(
            route=str(ctx.route),
            token=None,
            amount=built.extras.get("totalActionValue", 0),
            approvals=tuple(built.approvals),
            fees=built.fees,
            extras={"dstChainId": ctx.dst_chain_id, **built.extras},
        )
        return Plan(route=str(ctx.route), summary=summary, steps=tuple(built.steps))

    # -----------------------------------------------------------------
    # Plan
    # -----------------------------------------------------------------

    async def quote(self, params: InteropParams) -> Quote:
        async def run() -> Quote:
            return (await self._build_plan(params)).summary

        return await handlers.wrap(
            OP_INTEROP.quote, run,
            message="Internal error while preparing an interop quote.",
            ctx={"dstChainId": params.dst_chain_id},
        )

    async def try_quote(self, params: InteropParams) -> Result[Quote]:
        return await handlers.to_result(OP_INTEROP.try_quote, lambda: self.quote(params))

    async def prepare(self, params: InteropParams) -> Plan:
        return await handlers.wrap(
            OP_INTEROP.prepare, lambda: self._build_plan(params),
            message="Internal error while preparing an interop plan.",
            ctx={"dstChainId": params.dst_chain_id},
        )

    async def try_prepare(self, params: InteropParams) -> Result[Plan]:
        return await handlers.to_result(OP_INTEROP.try_prepare, lambda: self.prepare(params))

    # -----------------------------------------------------------------
    # Execute
    # -----------------------------------------------------------------

    async def create(self, params: InteropParams) -> InteropHandle:
        """Prepare and send every step on the source chain, in order.

        The bundle hash is read from the sendBundle receipt; when it can't
        be, the handle carries None and ``status`` recovers it later.
        """

        async def run() -> InteropHandle:
            plan = await self.prepare(params)
            result = await execute_plan(
                self._client.l2,
                plan,
                handlers=handlers,
                operation=OP_INTEROP.exec_send_step,
                overrides=params.l2_tx_overrides,
                step_gas_ratio=self._client.config.step_gas_ratio,
            )
            bundle_hash: str | None = None
            receipt = result.last_receipt
            if receipt is not None:
                addresses = await self._client.ensure_addresses()
                try:
                    bundle_hash, _ = find_bundle_sent(
                        receipt, interop_center=addresses.interop_center
                    )
                except FlowError as err:
                    logger.warning(
                        "bundle hash not found in %s: %s",
                        receipt.transaction_hash, err.envelope.message,
                    )
            return InteropHandle(
                route=InteropRoute(plan.route),
                step_hashes=dict(result.step_hashes),
                plan=plan,
                l2_src_tx_hash=result.last_hash or "",
                dst_chain_id=int(params.dst_chain_id),
                bundle_hash=bundle_hash,
            )

        return await handlers.wrap(
            OP_INTEROP.create, run,
            message="Internal error while creating interop transactions.",
            ctx={"dstChainId": params.dst_chain_id, "actions": len(params.actions)},
        )

    async def try_create(self, params: InteropParams) -> Result[InteropHandle]:
        return await handlers.to_result(OP_INTEROP.try_create, lambda: self.create(params))

    # -----------------------------------------------------------------
    # Track
    # -----------------------------------------------------------------

    async def status(self, h: InteropWaitable) -> InteropStatus:
        """Phase of the bundle, derived from source and destination state now."""
        l2_src_tx_hash, bundle_hash, dst_chain_id = _ids(h)
        return await handlers.wrap(
            OP_INTEROP.status,
            lambda: derive_status(
                self._client,
                l2_src_tx_hash,
                bundle_hash=bundle_hash,
                dst_chain_id=dst_chain_id,
            ),
            message="Internal error while checking interop status.",
            ctx={"l2SrcTxHash": l2_src_tx_hash, "bundleHash": bundle_hash},
        )

    async def _wait(
        self, h: InteropWaitable, poll_ms: int | None, timeout_ms: int | None
    ) -> FinalizationInfo:
        l2_src_tx_hash, bundle_hash, _ = _ids(h)
        if not l2_src_tx_hash:
            raise handlers.error(
                ErrorType.STATE,
                OP_INTEROP.svc_source_receipt,
                "Cannot wait for interop finalization: missing l2SrcTxHash.",
                ctx={"bundleHash": bundle_hash},
            )
        config = self._client.config
        return await wait_for_finalization(
            self._client,
            l2_src_tx_hash,
            bundle_hash=bundle_hash,
            poll_ms=clamp_poll_ms(poll_ms, config.min_poll_ms, config.interop_poll_ms),
            timeout_ms=timeout_ms if timeout_ms is not None else config.interop_timeout_ms,
        )

    async def wait(
        self,
        h: InteropWaitable,
        *,
        poll_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> FinalizationInfo | None:
        """Wait until the bundle can be executed on its destination.

        Args:
            h: Handle or source tx hash.
            poll_ms: Poll interval; clamped to the configured minimum.
            timeout_ms: Deadline shared by every stage of the wait.

        Returns:
            FinalizationInfo for ``finalize``, or None at the deadline.

        Raises:
            FlowError: STATE on a destination root mismatch or a source
                receipt that doesn't describe a bundle.
        """

        async def run() -> FinalizationInfo | None:
            try:
                return await self._wait(h, poll_ms, timeout_ms)
            except FlowError as err:
                if err.type is not ErrorType.TIMEOUT:
                    raise
                logger.debug("interop wait ended without result: %s", err.envelope.message)
                return None

        return await handlers.wrap(
            OP_INTEROP.wait, run,
            message="Internal error while waiting for interop finalization.",
            ctx={"l2SrcTxHash": _ids(h)[0]},
        )

    async def try_wait(
        self,
        h: InteropWaitable,
        *,
        poll_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> Result[FinalizationInfo]:
        async def run() -> FinalizationInfo:
            info = await self.wait(h, poll_ms=poll_ms, timeout_ms=timeout_ms)
            if info is not None:
                return info
            raise handlers.error(
                ErrorType.STATE,
                OP_INTEROP.try_wait,
                "Interop bundle did not become executable (timed out).",
                ctx={"l2SrcTxHash": _ids(h)[0]},
            )

        return await handlers.to_result(OP_INTEROP.try_wait, run)

    # -----------------------------------------------------------------
    # Finalize
    # -----------------------------------------------------------------

    async def finalize(
        self, h: InteropWaitable | FinalizationInfo
    ) -> InteropFinalizeResult:
        """Execute the bundle on its destination chain.

        Raises:
            FlowError: STATE when the bundle was already executed or
                unbundled (nothing is sent); TIMEOUT when waiting for a
                handle's finalization info runs out; EXECUTION when the
                executeBundle transaction fails.
        """

        async def run() -> InteropFinalizeResult:
            if isinstance(h, FinalizationInfo):
                info = h
            else:
                info = await self._wait(h, None, None)
            return await execute_bundle(self._client, info)

        return await handlers.wrap(
            OP_INTEROP.finalize, run,
            message="Internal error while finalizing interop bundle.",
            ctx={"bundleHash": getattr(h, "bundle_hash", None)},
        )

    async def try_finalize(
        self, h: InteropWaitable | FinalizationInfo
    ) -> Result[InteropFinalizeResult]:
        return await handlers.to_result(OP_INTEROP.try_finalize, lambda: self.finalize(h))
