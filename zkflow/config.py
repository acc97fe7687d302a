"""
Client configuration — tunables shared by every flow resource.

One frozen dataclass, fully defaulted. A FlowClient owns exactly one
instance; per-call knobs (poll interval, timeout, tx overrides) are
passed to the individual operations and take precedence.

Interop status precedence:
    When a destination-chain query returns lifecycle logs for more than
    one phase, the first phase in ``interop_status_precedence`` that has
    a log wins. The default ranks terminal phases above VERIFIED and
    UNBUNDLED above EXECUTED. Set it to ``("EXECUTED", "UNBUNDLED",
    "VERIFIED")`` to rank execution first instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from zkflow.constants import (
    BUFFER,
    DEFAULT_POLL_MS,
    DEFAULT_TIMEOUT_MS,
    STEP_GAS_DENOMINATOR,
    STEP_GAS_NUMERATOR,
)

_VALID_INTEROP_PHASES = frozenset({"UNBUNDLED", "EXECUTED", "VERIFIED"})


@dataclass(frozen=True)
class AddressOverrides:
    """Pinned contract addresses that skip on-chain resolution.

    Any field left as None is resolved through the bridgehub chain of
    reads (bridgehub → asset router → nullifier → native token vault)
    or the well-known L2 system address.
    """

    bridgehub: str | None = None
    l1_asset_router: str | None = None
    l1_nullifier: str | None = None
    l1_native_token_vault: str | None = None
    l2_asset_router: str | None = None
    l2_native_token_vault: str | None = None
    l2_base_token_system: str | None = None


@dataclass(frozen=True)
class FlowConfig:
    """Tunables for deposits, withdrawals and interop.

    Attributes:
        poll_ms: Default interval for status polling waits.
        min_poll_ms: Floor applied to every caller-supplied interval.
        interop_poll_ms: Poll interval for interop finalization waits.
        interop_timeout_ms: Deadline for interop finalization waits.
        gas_buffer_pct: Safety margin applied to gas estimates.
        step_gas_ratio: Multiplier applied to estimated step gas at
            execution time, as (numerator, denominator).
        gas_per_pubdata: L2 gas-per-pubdata-byte limit for deposits.
        operator_tip: Extra base-token value paid to the operator.
        l2_gas_limit: Fixed L2 gas limit for deposits (None = estimate).
        interop_status_precedence: Destination phases in priority order.
        addresses: Pinned contract addresses.
    """

    poll_ms: int = 5_500
    min_poll_ms: int = 1_000
    interop_poll_ms: int = DEFAULT_POLL_MS
    interop_timeout_ms: int = DEFAULT_TIMEOUT_MS
    gas_buffer_pct: int = BUFFER
    step_gas_ratio: tuple[int, int] = (STEP_GAS_NUMERATOR, STEP_GAS_DENOMINATOR)
    gas_per_pubdata: int = 800
    operator_tip: int = 0
    l2_gas_limit: int | None = None
    interop_status_precedence: tuple[str, ...] = ("UNBUNDLED", "EXECUTED", "VERIFIED")
    addresses: AddressOverrides = field(default_factory=AddressOverrides)

    def __post_init__(self) -> None:
        if self.min_poll_ms <= 0:
            raise ValueError("min_poll_ms must be positive")
        unknown = set(self.interop_status_precedence) - _VALID_INTEROP_PHASES
        if unknown:
            raise ValueError(
                f"interop_status_precedence has unknown phases: {sorted(unknown)}"
            )
