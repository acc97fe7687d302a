"""
zkflow: Client-side flows between a base chain and its rollups.

Every flow is planned, executed and tracked the same way:
- a route chosen from the token and the chains' base assets
- a plan of ordered transactions, quoted before anything is sent
- a handle recording what was sent
- a status derived from chain state on demand

Deposits move value L1 → L2, withdrawals L2 → L1 (with L1 finalization),
interop bundles L2 → L2 (with destination execution).
"""

__version__ = "0.1.0"

from zkflow.backend import ExecutionBackend, FeesPerGas
from zkflow.client import FlowClient, ResolvedAddresses
from zkflow.config import AddressOverrides, FlowConfig
from zkflow.deposits import DepositParams
from zkflow.errors import (
    Err,
    ErrorEnvelope,
    ErrorType,
    FlowError,
    Ok,
    Result,
    RevertDetail,
    is_flow_error,
)
from zkflow.interop import InteropParams
from zkflow.plans import (
    DepositHandle,
    DepositPhase,
    DepositStatus,
    FinalizationInfo,
    InteropFinalizeResult,
    InteropHandle,
    InteropPhase,
    InteropStatus,
    Plan,
    PlanStep,
    Quote,
    TxOverrides,
    WithdrawalHandle,
    WithdrawalPhase,
    WithdrawalStatus,
)
from zkflow.routes import (
    Call,
    DepositRoute,
    InteropRoute,
    SendErc20,
    SendNative,
    WithdrawRoute,
    pick_deposit_route,
    pick_interop_route,
    pick_withdraw_route,
)
from zkflow.tokens import ResolvedToken, TokenKind, TokenRef
from zkflow.withdrawals import WithdrawParams

__all__ = [
    "AddressOverrides",
    "Call",
    "DepositHandle",
    "DepositParams",
    "DepositPhase",
    "DepositRoute",
    "DepositStatus",
    "Err",
    "ErrorEnvelope",
    "ErrorType",
    "ExecutionBackend",
    "FeesPerGas",
    "FinalizationInfo",
    "FlowClient",
    "FlowConfig",
    "FlowError",
    "InteropFinalizeResult",
    "InteropHandle",
    "InteropParams",
    "InteropPhase",
    "InteropRoute",
    "InteropStatus",
    "Ok",
    "Plan",
    "PlanStep",
    "Quote",
    "ResolvedAddresses",
    "ResolvedToken",
    "Result",
    "RevertDetail",
    "SendErc20",
    "SendNative",
    "TokenKind",
    "TokenRef",
    "TxOverrides",
    "WithdrawParams",
    "WithdrawRoute",
    "WithdrawalHandle",
    "WithdrawalPhase",
    "WithdrawalStatus",
    "is_flow_error",
    "pick_deposit_route",
    "pick_interop_route",
    "pick_withdraw_route",
]
