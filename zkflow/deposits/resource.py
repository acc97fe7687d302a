"""
DepositsResource — quote, prepare, create, status and wait for L1 → L2.

Every public method runs inside ``handlers.wrap`` with its stable
operation name; the ``try_*`` twins return Ok/Err instead of raising.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from zkflow.deposits.context import DepositParams, build_context, handlers
from zkflow.deposits.status import derive_status, extract_l2_tx_hash
from zkflow.deposits.strategies import ROUTES
from zkflow.errors import ErrorType, Result
from zkflow.execution import execute_plan
from zkflow.operations import OP_DEPOSITS
from zkflow.plans import DepositHandle, DepositStatus, Plan, Quote
from zkflow.routes import DepositRoute
from zkflow.rpc.types import Receipt

if TYPE_CHECKING:
    from zkflow.client import FlowClient

logger = logging.getLogger(__name__)

DepositWaitable = DepositHandle | str
DepositTarget = Literal["l1", "l2"]


def _l1_hash(h: DepositWaitable) -> str | None:
    return h if isinstance(h, str) else h.l1_tx_hash


class DepositsResource:
    def __init__(self, client: FlowClient) -> None:
        self._client = client

    async def _build_plan(self, params: DepositParams) -> Plan:
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
            extras={"gasPerPubdata": ctx.gas_per_pubdata, **built.extras},
        )
        return Plan(route=str(ctx.route), summary=summary, steps=tuple(built.steps))

    # -----------------------------------------------------------------
    # Plan
    # -----------------------------------------------------------------

    async def quote(self, params: DepositParams) -> Quote:
        """Route and fee summary for *params*; nothing is sent."""

        async def run() -> Quote:
            return (await self._build_plan(params)).summary

        return await handlers.wrap(
            OP_DEPOSITS.quote, run,
            message="Internal error while preparing a deposit quote.",
            ctx={"token": params.token},
        )

    async def try_quote(self, params: DepositParams) -> Result[Quote]:
        return await handlers.to_result(OP_DEPOSITS.try_quote, lambda: self.quote(params))

    async def prepare(self, params: DepositParams) -> Plan:
        """Full plan (steps with tx requests) for *params*; nothing is sent."""
        return await handlers.wrap(
            OP_DEPOSITS.prepare, lambda: self._build_plan(params),
            message="Internal error while preparing a deposit plan.",
            ctx={"token": params.token},
        )

    async def try_prepare(self, params: DepositParams) -> Result[Plan]:
        return await handlers.to_result(OP_DEPOSITS.try_prepare, lambda: self.prepare(params))

    # -----------------------------------------------------------------
    # Execute
    # -----------------------------------------------------------------

    async def create(self, params: DepositParams) -> DepositHandle:
        """Prepare and send every step on L1, in order.

        Returns:
            A handle whose ``l1_tx_hash`` is the bridge transaction.
        """

        async def run() -> DepositHandle:
            plan = await self.prepare(params)
            result = await execute_plan(
                self._client.l1,
                plan,
                handlers=handlers,
                operation=OP_DEPOSITS.send_step,
                overrides=params.l1_tx_overrides,
                step_gas_ratio=self._client.config.step_gas_ratio,
            )
            last = result.last_receipt
            l2_tx_hash = extract_l2_tx_hash(last.logs) if last is not None else None
            return DepositHandle(
                route=DepositRoute(plan.route),
                step_hashes=dict(result.step_hashes),
                plan=plan,
                l1_tx_hash=result.last_hash or "",
                l2_tx_hash=l2_tx_hash,
            )

        return await handlers.wrap(
            OP_DEPOSITS.create, run,
            message="Internal error while creating a deposit.",
            ctx={"token": params.token, "amount": params.amount, "to": params.to},
        )

    async def try_create(self, params: DepositParams) -> Result[DepositHandle]:
        return await handlers.to_result(OP_DEPOSITS.try_create, lambda: self.create(params))

    # -----------------------------------------------------------------
    # Track
    # -----------------------------------------------------------------

    async def status(self, h: DepositWaitable) -> DepositStatus:
        """Phase of the deposit, derived from L1 and L2 state now."""
        return await handlers.wrap(
            OP_DEPOSITS.status,
            lambda: derive_status(self._client.l1, self._client.l2, _l1_hash(h)),
            message="Internal error while checking deposit status.",
            ctx={"l1TxHash": _l1_hash(h)},
        )

    async def wait(
        self,
        h: DepositWaitable,
        *,
        for_: DepositTarget = "l2",
        timeout_s: float | None = None,
    ) -> Receipt | None:
        """Wait for L1 inclusion (``"l1"``) or L2 execution (``"l2"``).

        Both targets suspend on the backend's native receipt wait.

        Returns:
            The L1 or L2 receipt; None when the input has no L1 hash.

        Raises:
            FlowError: STATE when no L2 hash can be derived from the L1
                receipt; EXECUTION when the L2 transaction failed.
        """
        l1_hash = _l1_hash(h)

        async def run() -> Receipt | None:
            if not l1_hash:
                return None
            l1_receipt = await handlers.wrap_as(
                ErrorType.RPC,
                OP_DEPOSITS.wait,
                lambda: self._client.l1.wait_for_receipt(l1_hash, timeout_s),
                message="Failed while waiting for L1 transaction.",
                ctx={"l1TxHash": l1_hash, "for": for_},
            )
            if for_ == "l1":
                return l1_receipt

            l2_hash = extract_l2_tx_hash(l1_receipt.logs)
            if l2_hash is None:
                raise handlers.error(
                    ErrorType.STATE,
                    OP_DEPOSITS.wait,
                    "Failed to extract L2 transaction hash from L1 logs.",
                    ctx={"l1TxHash": l1_hash, "logCount": len(l1_receipt.logs)},
                )
            l2_receipt = await handlers.wrap_as(
                ErrorType.RPC,
                OP_DEPOSITS.wait,
                lambda: self._client.l2.wait_for_receipt(l2_hash, timeout_s),
                message="Failed while waiting for L2 execution.",
                ctx={"l1TxHash": l1_hash, "l2TxHash": l2_hash},
            )
            if l2_receipt.status != 1:
                raise handlers.error(
                    ErrorType.EXECUTION,
                    OP_DEPOSITS.wait,
                    "L2 transaction execution failed.",
                    ctx={"l1TxHash": l1_hash, "l2TxHash": l2_hash, "status": l2_receipt.status},
                )
            logger.debug("deposit %s executed on L2 as %s", l1_hash, l2_hash)
            return l2_receipt

        return await handlers.wrap(
            OP_DEPOSITS.wait, run,
            message="Internal error while waiting for deposit.",
            ctx={"l1TxHash": l1_hash, "for": for_},
        )

    async def try_wait(
        self,
        h: DepositWaitable,
        *,
        for_: DepositTarget = "l2",
        timeout_s: float | None = None,
    ) -> Result[Receipt]:
        async def run() -> Receipt:
            receipt = await self.wait(h, for_=for_, timeout_s=timeout_s)
            if receipt is not None:
                return receipt
            raise handlers.error(
                ErrorType.STATE,
                OP_DEPOSITS.try_wait,
                "No L2 receipt yet; the deposit has not executed on L2."
                if for_ == "l2"
                else "No L1 receipt yet; the deposit has not been included on L1.",
                ctx={"for": for_, "l1TxHash": _l1_hash(h)},
            )

        return await handlers.to_result(OP_DEPOSITS.try_wait, run)
