"""
Sequential plan execution — one step at a time, each mined before the next.

For every step, in order:

    approve step?  re-read the live allowance; skip when already enough
    overrides      caller's TxOverrides replace the step's fee/gas/nonce
    gas missing?   estimate on the step's chain × step_gas_ratio
                   (estimation failure leaves gas to the node)
    send_and_wait  receipt status must be 1, else EXECUTION

Nothing is rolled back when a step fails: earlier transactions are
already on chain. The error context names the failing step and its hash
so the caller can reconcile with ``status``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from zkflow.abi import ERC20_ALLOWANCE, ERC20_APPROVE
from zkflow.backend import ExecutionBackend
from zkflow.constants import STEP_GAS_DENOMINATOR, STEP_GAS_NUMERATOR
from zkflow.errors import ErrorHandlers, ErrorType, FlowError
from zkflow.plans import ApprovalNeed, Plan, PlanStep, TxOverrides
from zkflow.rpc.types import Receipt

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Hashes of the steps that were sent, in send order."""

    step_hashes: dict[str, str] = field(default_factory=dict)
    receipts: dict[str, Receipt] = field(default_factory=dict)

    @property
    def last_hash(self) -> str | None:
        if not self.step_hashes:
            return None
        return list(self.step_hashes.values())[-1]

    @property
    def last_receipt(self) -> Receipt | None:
        if not self.receipts:
            return None
        return list(self.receipts.values())[-1]


async def _allowance_sufficient(
    backend: ExecutionBackend,
    step: PlanStep,
    sender: str,
    handlers: ErrorHandlers,
    operation: str,
) -> bool:
    need = step.approval
    if need is None:
        return False
    current = await handlers.wrap_as(
        ErrorType.RPC,
        operation,
        lambda: backend.read(need.token, ERC20_ALLOWANCE, (sender, need.spender)),
        message="Failed to read ERC-20 allowance before approve step.",
        ctx={"step": step.key, "token": need.token, "spender": need.spender},
    )
    return int(current) >= need.amount


async def execute_plan(
    backend: ExecutionBackend,
    plan: Plan,
    *,
    handlers: ErrorHandlers,
    operation: str,
    overrides: TxOverrides | None = None,
    step_gas_ratio: tuple[int, int] = (STEP_GAS_NUMERATOR, STEP_GAS_DENOMINATOR),
) -> ExecutionResult:
    """Send every step of *plan* on *backend*.

    Args:
        backend: Chain the steps execute on.
        plan: Plan from ``prepare``.
        handlers: Resource-scoped error handlers.
        operation: Operation name stamped on step failures.
        overrides: Caller-pinned tx fields applied to every step.
        step_gas_ratio: Multiplier for estimated step gas.

    Raises:
        FlowError: EXECUTION when a send fails or a receipt reverts;
            RPC when the allowance re-check cannot be read.
    """
    result = ExecutionResult()
    sender = await handlers.wrap_as(
        ErrorType.RPC, operation, backend.signer_address, message="Failed to resolve signer."
    )
    numerator, denominator = step_gas_ratio

    for step in plan.steps:
        if step.kind == "approve" and await _allowance_sufficient(
            backend, step, sender, handlers, operation
        ):
            logger.debug("step %s skipped: allowance already sufficient", step.key)
            continue

        tx = dict(step.tx)
        tx.setdefault("from", sender)
        if overrides is not None:
            tx = overrides.apply(tx)

        if tx.get("gas") is None:
            try:
                tx["gas"] = await backend.estimate_gas(tx) * numerator // denominator
            except Exception as exc:
                logger.debug("gas estimation for step %s failed, node will fill: %s", step.key, exc)

        logger.debug("sending step %s (%s)", step.key, step.kind)
        try:
            receipt = await backend.send_and_wait(tx)
        except FlowError:
            raise
        except Exception as exc:
            raise handlers.error(
                ErrorType.EXECUTION,
                operation,
                "Failed to send or confirm a transaction step.",
                ctx={"step": step.key},
                cause=exc,
            ) from exc

        result.step_hashes[step.key] = receipt.transaction_hash
        result.receipts[step.key] = receipt
        if receipt.status != 1:
            raise handlers.error(
                ErrorType.EXECUTION,
                operation,
                "Transaction reverted during a step.",
                ctx={"step": step.key, "txHash": receipt.transaction_hash, "status": receipt.status},
            )

    return result


async def plan_approval(
    backend: ExecutionBackend,
    *,
    handlers: ErrorHandlers,
    operation: str,
    token: str,
    owner: str,
    spender: str,
    amount: int,
    description: str,
) -> PlanStep | None:
    """Return an approve step when *owner*'s allowance is below *amount*.

    Raises:
        FlowError: RPC when the allowance cannot be read.
    """
    current = await handlers.wrap_as(
        ErrorType.RPC,
        operation,
        lambda: backend.read(token, ERC20_ALLOWANCE, (owner, spender)),
        message="Failed to read ERC-20 allowance.",
        ctx={"token": token, "spender": spender},
    )
    if int(current) >= amount:
        return None
    need = ApprovalNeed(token=token, spender=spender, amount=amount)
    return PlanStep(
        key=f"approve:{token}:{spender}",
        kind="approve",
        description=description,
        tx={"to": token, "data": ERC20_APPROVE.encode(spender, amount), "value": 0},
        approval=need,
    )
