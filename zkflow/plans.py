"""
Plan, handle and status types shared by all flows.

Lifecycle of a flow instance:

    params ──build──► Plan ──create──► Handle ──status/wait/finalize──► ...

    - Plan: route + quote summary + ordered steps. Nothing sent yet.
    - Handle: produced exactly once by ``create``. Immutable. Records
      every step hash and the flow's identifying hashes. It is the only
      input status/wait/finalize need.
    - Status: derived from chain state on every call, never stored.

Transactions are plain dicts in web3 field naming (``to``, ``from``,
``data``, ``value``, ``gas``, ``maxFeePerGas``, ...) so any backend can
pass them straight through.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Union

from zkflow.routes import DepositRoute, InteropRoute, WithdrawRoute

TxRequest = dict[str, Any]


# =========================================================================
# Overrides
# =========================================================================


@dataclass(frozen=True)
class TxOverrides:
    """Caller-pinned transaction fields applied to every step."""

    gas_limit: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None
    nonce: int | None = None

    def apply(self, tx: TxRequest) -> TxRequest:
        """Return a copy of *tx* with every non-None override set."""
        out = dict(tx)
        if self.gas_limit is not None:
            out["gas"] = self.gas_limit
        if self.max_fee_per_gas is not None:
            out["maxFeePerGas"] = self.max_fee_per_gas
        if self.max_priority_fee_per_gas is not None:
            out["maxPriorityFeePerGas"] = self.max_priority_fee_per_gas
        if self.nonce is not None:
            out["nonce"] = self.nonce
        return out


# =========================================================================
# Plans
# =========================================================================


@dataclass(frozen=True)
class ApprovalNeed:
    """An ERC-20 allowance the plan requires before its main step."""

    token: str
    spender: str
    amount: int


@dataclass(frozen=True)
class PlanStep:
    """One transaction in a plan.

    Attributes:
        key: Unique key within the plan (e.g. "approve:0xTok:0xSpender").
        kind: Step category. "approve" steps are re-checked against the
            live allowance right before sending.
        description: Human-readable summary.
        tx: Backend transaction request.
        approval: The allowance this step grants, for approve steps.
        preview: Optional decoded view of the call for display.
    """

    key: str
    kind: str
    description: str
    tx: TxRequest
    approval: ApprovalNeed | None = None
    preview: dict[str, Any] | None = None


@dataclass(frozen=True)
class FeeBreakdown:
    """Fee components of a quote, in wei of ``token``."""

    token: str
    l1_gas_limit: int = 0
    l1_max_fee_per_gas: int = 0
    l1_max_total: int = 0
    l2_gas_limit: int = 0
    l2_base_cost: int = 0
    operator_tip: int = 0
    mint_value: int = 0
    l2_max_fee_per_gas: int = 0
    l2_max_total: int = 0

    @property
    def max_total(self) -> int:
        return self.l1_max_total + self.l2_max_total + self.l2_base_cost + self.operator_tip


@dataclass(frozen=True)
class Quote:
    """Summary of a plan without its transactions."""

    route: str
    token: str | None
    amount: int
    approvals: tuple[ApprovalNeed, ...] = ()
    fees: FeeBreakdown | None = None
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Plan:
    route: str
    summary: Quote
    steps: tuple[PlanStep, ...]


@dataclass(frozen=True)
class RouteBuild:
    """What a route strategy's ``build`` returns."""

    steps: list[PlanStep]
    approvals: list[ApprovalNeed]
    fees: FeeBreakdown | None = None
    extras: dict[str, Any] = field(default_factory=dict)


# =========================================================================
# Handles
# =========================================================================


@dataclass(frozen=True)
class DepositHandle:
    route: DepositRoute
    step_hashes: dict[str, str]
    plan: Plan
    l1_tx_hash: str
    l2_tx_hash: str | None = None
    kind: str = "deposit"


@dataclass(frozen=True)
class WithdrawalHandle:
    route: WithdrawRoute
    step_hashes: dict[str, str]
    plan: Plan
    l2_tx_hash: str
    kind: str = "withdrawal"


@dataclass(frozen=True)
class InteropHandle:
    route: InteropRoute
    step_hashes: dict[str, str]
    plan: Plan
    l2_src_tx_hash: str
    dst_chain_id: int
    bundle_hash: str | None = None
    kind: str = "interop"


# =========================================================================
# Deposit status
# =========================================================================


class DepositPhase(StrEnum):
    UNKNOWN = "UNKNOWN"
    L1_PENDING = "L1_PENDING"
    L1_INCLUDED = "L1_INCLUDED"
    L2_PENDING = "L2_PENDING"
    L2_EXECUTED = "L2_EXECUTED"
    L2_FAILED = "L2_FAILED"


@dataclass(frozen=True)
class DepositStatus:
    phase: DepositPhase
    l1_tx_hash: str | None = None
    l2_tx_hash: str | None = None


# =========================================================================
# Withdrawal status & finalization
# =========================================================================


class WithdrawalPhase(StrEnum):
    UNKNOWN = "UNKNOWN"
    L2_PENDING = "L2_PENDING"
    PENDING = "PENDING"
    READY_TO_FINALIZE = "READY_TO_FINALIZE"
    FINALIZING = "FINALIZING"
    FINALIZED = "FINALIZED"
    FINALIZE_FAILED = "FINALIZE_FAILED"


@dataclass(frozen=True)
class WithdrawalKey:
    """Identifies a withdrawal message on L1."""

    chain_id_l2: int
    l2_batch_number: int
    l2_message_index: int


@dataclass(frozen=True)
class WithdrawalStatus:
    phase: WithdrawalPhase
    l2_tx_hash: str | None = None
    key: WithdrawalKey | None = None


class ReadinessKind(StrEnum):
    READY = "READY"
    FINALIZED = "FINALIZED"
    NOT_READY = "NOT_READY"
    UNFINALIZABLE = "UNFINALIZABLE"


@dataclass(frozen=True)
class FinalizeReadiness:
    """Would a finalizeDeposit call succeed right now?

    ``reason`` is set for NOT_READY (paused, batch-not-executed,
    root-missing, unknown) and UNFINALIZABLE (message-invalid,
    invalid-chain, settlement-layer, unsupported).
    """

    kind: ReadinessKind
    reason: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class FinalizeDepositParams:
    """Arguments of L1Nullifier.finalizeDeposit."""

    chain_id: int
    l2_batch_number: int
    l2_message_index: int
    l2_sender: str
    l2_tx_number_in_batch: int
    message: bytes
    merkle_proof: tuple[str, ...]

    @property
    def key(self) -> WithdrawalKey:
        return WithdrawalKey(self.chain_id, self.l2_batch_number, self.l2_message_index)

    def as_abi_tuple(self) -> tuple[Any, ...]:
        return (
            self.chain_id,
            self.l2_batch_number,
            self.l2_message_index,
            self.l2_sender,
            self.l2_tx_number_in_batch,
            self.message,
            [bytes.fromhex(p[2:]) for p in self.merkle_proof],
        )


@dataclass(frozen=True)
class FinalizeResult:
    """Outcome of ``withdrawals.finalize``."""

    status: WithdrawalStatus
    receipt: Any | None = None


# =========================================================================
# Interop status & finalization
# =========================================================================


class InteropPhase(StrEnum):
    UNKNOWN = "UNKNOWN"
    SENT = "SENT"
    VERIFIED = "VERIFIED"
    EXECUTED = "EXECUTED"
    UNBUNDLED = "UNBUNDLED"


@dataclass(frozen=True)
class InteropStatus:
    phase: InteropPhase
    l2_src_tx_hash: str | None = None
    bundle_hash: str | None = None
    dst_chain_id: int | None = None
    dst_exec_tx_hash: str | None = None


@dataclass(frozen=True)
class InteropExpectedRoot:
    root_chain_id: int
    batch_number: int
    expected_root: str


@dataclass(frozen=True)
class InteropMessage:
    tx_number_in_batch: int
    sender: str
    data: str


@dataclass(frozen=True)
class InteropMessageProof:
    chain_id: int
    l1_batch_number: int
    l2_message_index: int
    message: InteropMessage
    proof: tuple[str, ...]

    def as_abi_tuple(self) -> tuple[Any, ...]:
        return (
            self.chain_id,
            self.l1_batch_number,
            self.l2_message_index,
            (
                self.message.tx_number_in_batch,
                self.message.sender,
                bytes.fromhex(self.message.data[2:]),
            ),
            [bytes.fromhex(p[2:]) for p in self.proof],
        )


@dataclass(frozen=True)
class FinalizationInfo:
    """Everything ``executeBundle`` needs. Produced once by the wait stage."""

    l2_src_tx_hash: str
    bundle_hash: str
    dst_chain_id: int
    expected_root: InteropExpectedRoot
    proof: InteropMessageProof
    encoded_data: str


@dataclass(frozen=True)
class InteropFinalizeResult:
    bundle_hash: str
    dst_exec_tx_hash: str


Handle = Union[DepositHandle, WithdrawalHandle, InteropHandle]
