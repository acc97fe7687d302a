"""
WithdrawalsResource — quote, prepare, create, status, wait and finalize
for L2 → L1.

Phase derivation:

    no L2 receipt                           → L2_PENDING
    L2 receipt, finalize params not derivable → PENDING
    isWithdrawalFinalized / revert says so  → FINALIZED
    our finalize tx not mined yet           → FINALIZING
    our finalize tx reverted                → FINALIZE_FAILED
    finalizeDeposit dry-run succeeds        → READY_TO_FINALIZE
    anything else                           → PENDING

``finalize`` is idempotent: an already-finalized withdrawal returns its
status without sending. A finalize send that fails is re-checked before
the error surfaces, since another actor may have finalized it first.

The finalize-hash cache maps a WithdrawalKey to the L1 transaction this
resource sent for it. It is advisory: ``wait(for_="finalized")`` uses it
to return the L1 receipt and returns None when it has no entry.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Literal, Union

from zkflow.errors import ErrorType, FlowError, Result
from zkflow.execution import execute_plan
from zkflow.operations import OP_WITHDRAWALS
from zkflow.plans import (
    FinalizeDepositParams,
    FinalizeResult,
    Plan,
    Quote,
    ReadinessKind,
    WithdrawalHandle,
    WithdrawalKey,
    WithdrawalPhase,
    WithdrawalStatus,
)
from zkflow.polling import clamp_poll_ms, poll_until
from zkflow.routes import WithdrawRoute
from zkflow.rpc.types import Receipt
from zkflow.withdrawals.context import WithdrawParams, build_context, handlers
from zkflow.withdrawals.finalization import (
    fetch_finalize_params,
    send_finalize,
    simulate_readiness,
)
from zkflow.withdrawals.strategies import ROUTES

if TYPE_CHECKING:
    from zkflow.client import FlowClient

logger = logging.getLogger(__name__)

WithdrawalWaitable = Union[WithdrawalHandle, str]
WithdrawalTarget = Literal["l2", "ready", "finalized"]


def _l2_hash(h: WithdrawalWaitable) -> str | None:
    return h if isinstance(h, str) else h.l2_tx_hash


class WithdrawalsResource:
    def __init__(self, client: FlowClient) -> None:
        self._client = client
        self._finalize_hashes: dict[WithdrawalKey, str] = {}

    async def _build_plan(self, params: WithdrawParams) -> Plan:
        ctx = await build_context(self._client, params)
        strategy = ROUTES[ctx.route]
        await strategy.preflight(params, ctx)
        built = await strategy.build(params, ctx)
        summary = Quote(
            route=str(ctx.route),
            token=params.token,
            amount=params.amount,
            approvals=tuple(built.approvals),
            fees=built.fees,
            extras=dict(built.extras),
        )
        return Plan(route=str(ctx.route), summary=summary, steps=tuple(built.steps))

    # -----------------------------------------------------------------
    # Plan
    # -----------------------------------------------------------------

    async def quote(self, params: WithdrawParams) -> Quote:
        async def run() -> Quote:
            return (await self._build_plan(params)).summary

        return await handlers.wrap(
            OP_WITHDRAWALS.quote, run,
            message="Internal error while preparing a withdrawal quote.",
            ctx={"token": params.token},
        )

    async def try_quote(self, params: WithdrawParams) -> Result[Quote]:
        return await handlers.to_result(OP_WITHDRAWALS.try_quote, lambda: self.quote(params))

    async def prepare(self, params: WithdrawParams) -> Plan:
        return await handlers.wrap(
            OP_WITHDRAWALS.prepare, lambda: self._build_plan(params),
            message="Internal error while preparing a withdrawal plan.",
            ctx={"token": params.token},
        )

    async def try_prepare(self, params: WithdrawParams) -> Result[Plan]:
        return await handlers.to_result(
            OP_WITHDRAWALS.try_prepare, lambda: self.prepare(params)
        )

    # -----------------------------------------------------------------
    # Execute
    # -----------------------------------------------------------------

    async def create(self, params: WithdrawParams) -> WithdrawalHandle:
        """Prepare and send every step on L2, in order.

        Returns:
            A handle whose ``l2_tx_hash`` is the withdraw transaction.
        """

        async def run() -> WithdrawalHandle:
            plan = await self.prepare(params)
            result = await execute_plan(
                self._client.l2,
                plan,
                handlers=handlers,
                operation=OP_WITHDRAWALS.send_step,
                overrides=params.l2_tx_overrides,
                step_gas_ratio=self._client.config.step_gas_ratio,
            )
            return WithdrawalHandle(
                route=WithdrawRoute(plan.route),
                step_hashes=dict(result.step_hashes),
                plan=plan,
                l2_tx_hash=result.last_hash or "",
            )

        return await handlers.wrap(
            OP_WITHDRAWALS.create, run,
            message="Internal error while creating withdrawal transactions.",
            ctx={"token": params.token, "amount": params.amount, "to": params.to},
        )

    async def try_create(self, params: WithdrawParams) -> Result[WithdrawalHandle]:
        return await handlers.to_result(OP_WITHDRAWALS.try_create, lambda: self.create(params))

    # -----------------------------------------------------------------
    # Track
    # -----------------------------------------------------------------

    async def _derive_status(self, l2_tx_hash: str | None) -> WithdrawalStatus:
        if not l2_tx_hash:
            return WithdrawalStatus(WithdrawalPhase.UNKNOWN)

        receipt = await handlers.wrap_receipt(
            OP_WITHDRAWALS.status,
            lambda: self._client.l2.get_receipt(l2_tx_hash),
            message="Failed to fetch L2 transaction receipt.",
            ctx={"l2TxHash": l2_tx_hash},
        )
        if receipt is None:
            return WithdrawalStatus(WithdrawalPhase.L2_PENDING, l2_tx_hash)

        try:
            params = await fetch_finalize_params(self._client, l2_tx_hash)
        except FlowError as err:
            if err.type is not ErrorType.STATE:
                raise
            logger.debug("withdrawal %s not provable yet: %s", l2_tx_hash, err.envelope.message)
            return WithdrawalStatus(WithdrawalPhase.PENDING, l2_tx_hash)

        key = params.key
        readiness = await simulate_readiness(self._client, params)
        if readiness.kind is ReadinessKind.FINALIZED:
            return WithdrawalStatus(WithdrawalPhase.FINALIZED, l2_tx_hash, key)

        l1_hash = self._finalize_hashes.get(key)
        if l1_hash is not None:
            sent = await handlers.wrap_receipt(
                OP_WITHDRAWALS.status,
                lambda: self._client.l1.get_receipt(l1_hash),
                message="Failed to fetch finalize transaction receipt.",
                ctx={"l1TxHash": l1_hash},
            )
            if sent is None:
                return WithdrawalStatus(WithdrawalPhase.FINALIZING, l2_tx_hash, key)
            if sent.status != 1:
                return WithdrawalStatus(WithdrawalPhase.FINALIZE_FAILED, l2_tx_hash, key)

        if readiness.kind is ReadinessKind.READY:
            return WithdrawalStatus(WithdrawalPhase.READY_TO_FINALIZE, l2_tx_hash, key)
        return WithdrawalStatus(WithdrawalPhase.PENDING, l2_tx_hash, key)

    async def status(self, h: WithdrawalWaitable) -> WithdrawalStatus:
        """Phase of the withdrawal, derived from L2 and L1 state now."""
        return await handlers.wrap(
            OP_WITHDRAWALS.status,
            lambda: self._derive_status(_l2_hash(h)),
            message="Internal error while checking withdrawal status.",
            ctx={"l2TxHash": _l2_hash(h)},
        )

    async def _wait_l2(self, l2_tx_hash: str) -> Receipt:
        receipt = await handlers.wrap_as(
            ErrorType.RPC,
            OP_WITHDRAWALS.wait,
            lambda: self._client.l2.wait_for_receipt(l2_tx_hash),
            message="Failed while waiting for L2 transaction.",
            ctx={"l2TxHash": l2_tx_hash},
        )
        if receipt.l2_to_l1_logs:
            return receipt
        try:
            raw = await self._client.zks.get_receipt_with_l2_to_l1(l2_tx_hash)
        except FlowError as err:
            logger.warning("L2->L1 log enrichment failed for %s: %s", l2_tx_hash, err)
            return receipt
        if raw is None:
            return receipt
        return dataclasses.replace(receipt, l2_to_l1_logs=raw.l2_to_l1_logs)

    async def _finalize_receipt(self, key: WithdrawalKey | None) -> Receipt | None:
        l1_hash = self._finalize_hashes.get(key) if key is not None else None
        if l1_hash is None:
            return None
        receipt = await handlers.wrap_as(
            ErrorType.RPC,
            OP_WITHDRAWALS.wait,
            lambda: self._client.l1.get_receipt(l1_hash),
            message="Failed to fetch finalize transaction receipt.",
            ctx={"l1TxHash": l1_hash},
        )
        if receipt is not None:
            del self._finalize_hashes[key]
        return receipt

    async def wait(
        self,
        h: WithdrawalWaitable,
        *,
        for_: WithdrawalTarget = "l2",
        poll_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> Receipt | WithdrawalStatus | None:
        """Wait for L2 inclusion, finalize readiness, or finalization.

        Args:
            h: Handle or L2 transaction hash.
            for_: ``"l2"`` suspends on the native receipt wait and
                returns the receipt with its L2→L1 logs. ``"ready"``
                polls until READY_TO_FINALIZE (or FINALIZED) and returns
                that status. ``"finalized"`` polls until FINALIZED and
                returns the L1 finalize receipt when this resource sent it.
            poll_ms: Poll interval; clamped to the configured minimum.
            timeout_ms: Deadline for the polled targets.

        Returns:
            None when the deadline passes first, when the input has no
            hash, or when a finalized withdrawal has no cached L1 hash.
        """
        l2_tx_hash = _l2_hash(h)
        config = self._client.config

        async def run() -> Receipt | WithdrawalStatus | None:
            if not l2_tx_hash:
                return None
            if for_ == "l2":
                return await self._wait_l2(l2_tx_hash)

            wanted = (
                {WithdrawalPhase.READY_TO_FINALIZE, WithdrawalPhase.FINALIZED}
                if for_ == "ready"
                else {WithdrawalPhase.FINALIZED}
            )

            async def check() -> WithdrawalStatus | None:
                current = await self._derive_status(l2_tx_hash)
                return current if current.phase in wanted else None

            reached = await poll_until(
                check,
                poll_ms=clamp_poll_ms(poll_ms, config.min_poll_ms, config.poll_ms),
                timeout_ms=timeout_ms,
                label=f"withdrawal {l2_tx_hash} for {for_}",
            )
            if reached is None or for_ == "ready":
                return reached
            return await self._finalize_receipt(reached.key)

        return await handlers.wrap(
            OP_WITHDRAWALS.wait, run,
            message="Internal error while waiting for withdrawal.",
            ctx={"l2TxHash": l2_tx_hash, "for": for_},
        )

    async def try_wait(
        self,
        h: WithdrawalWaitable,
        *,
        for_: WithdrawalTarget = "l2",
        poll_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> Result[Receipt | WithdrawalStatus]:
        async def run() -> Receipt | WithdrawalStatus:
            value = await self.wait(h, for_=for_, poll_ms=poll_ms, timeout_ms=timeout_ms)
            if value is not None:
                return value
            raise handlers.error(
                ErrorType.STATE,
                OP_WITHDRAWALS.try_wait,
                f"Withdrawal did not reach '{for_}' (timed out or no result available).",
                ctx={"for": for_, "l2TxHash": _l2_hash(h)},
            )

        return await handlers.to_result(OP_WITHDRAWALS.try_wait, run)

    # -----------------------------------------------------------------
    # Finalize
    # -----------------------------------------------------------------

    async def finalize(self, h: WithdrawalWaitable) -> FinalizeResult:
        """Finalize the withdrawal on L1, or report it already finalized.

        Raises:
            FlowError: STATE when finalize parameters are unavailable or
                the withdrawal is not (or never) finalizable; EXECUTION
                when the finalize transaction fails and the withdrawal is
                still open afterwards.
        """
        l2_tx_hash = _l2_hash(h) or ""

        async def run() -> FinalizeResult:
            try:
                params = await fetch_finalize_params(self._client, l2_tx_hash)
            except FlowError as err:
                raise handlers.error(
                    ErrorType.STATE,
                    OP_WITHDRAWALS.fetch_params_receipt,
                    "Withdrawal not ready: finalize params unavailable.",
                    ctx={"l2TxHash": l2_tx_hash},
                    cause=err,
                ) from err
            key = params.key

            readiness = await simulate_readiness(self._client, params)
            if readiness.kind is ReadinessKind.FINALIZED:
                return FinalizeResult(
                    WithdrawalStatus(WithdrawalPhase.FINALIZED, l2_tx_hash, key)
                )
            if readiness.kind is not ReadinessKind.READY:
                raise handlers.error(
                    ErrorType.STATE,
                    OP_WITHDRAWALS.readiness_simulate,
                    "Withdrawal not ready to finalize."
                    if readiness.kind is ReadinessKind.NOT_READY
                    else "Withdrawal cannot be finalized.",
                    ctx={
                        "kind": str(readiness.kind),
                        "reason": readiness.reason,
                        "detail": readiness.detail,
                    },
                )

            try:
                receipt = await send_finalize(self._client, params)
            except FlowError as err:
                return await self._reconcile(l2_tx_hash, params, err)

            self._finalize_hashes[key] = receipt.transaction_hash
            if receipt.status != 1:
                err = handlers.error(
                    ErrorType.EXECUTION,
                    OP_WITHDRAWALS.finalize_wait,
                    "finalizeDeposit transaction reverted.",
                    ctx={"l1TxHash": receipt.transaction_hash, "l2TxHash": l2_tx_hash},
                )
                return await self._reconcile(l2_tx_hash, params, err, receipt)

            logger.debug("withdrawal %s finalized in %s", l2_tx_hash, receipt.transaction_hash)
            return FinalizeResult(
                WithdrawalStatus(WithdrawalPhase.FINALIZED, l2_tx_hash, key), receipt
            )

        return await handlers.wrap(
            OP_WITHDRAWALS.finalize, run,
            message="Internal error while attempting to finalize withdrawal.",
            ctx={"l2TxHash": l2_tx_hash},
        )

    async def _reconcile(
        self,
        l2_tx_hash: str,
        params: FinalizeDepositParams,
        err: FlowError,
        receipt: Receipt | None = None,
    ) -> FinalizeResult:
        """Settle a failed finalize send against the live L1 state."""
        again = await simulate_readiness(self._client, params)
        if again.kind is ReadinessKind.FINALIZED:
            logger.debug("withdrawal %s was finalized concurrently", l2_tx_hash)
            return FinalizeResult(
                WithdrawalStatus(WithdrawalPhase.FINALIZED, l2_tx_hash, params.key), receipt
            )
        logger.debug(
            "withdrawal %s finalize failed (%s), readiness now %s",
            l2_tx_hash, err.envelope.message, again.kind,
        )
        raise err

    async def try_finalize(self, h: WithdrawalWaitable) -> Result[FinalizeResult]:
        return await handlers.to_result(OP_WITHDRAWALS.try_finalize, lambda: self.finalize(h))
