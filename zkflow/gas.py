"""
Gas quoting for plan builders.

Three quotes feed every fee breakdown:

    quote_tx_gas       gas limit + fee caps for a transaction on its own
                       chain (L1 deposit leg, L2 withdraw leg). Explicit
                       limits win; otherwise estimate × (100 + buffer)%.
    quote_l2_gas       L2 execution gas of a deposit, modeled as the
                       estimate of the L2 leg plus fixed overheads for
                       tx processing, memory and pubdata, then buffered.
    quote_l2_base_cost Bridgehub.l2TransactionBaseCost at the current L1
                       gas price: what the L2 charges for the priority tx.

Estimation failures degrade (fallback limit, logged at WARNING) rather
than fail the quote; a missing fee market does fail it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from zkflow.abi import BRIDGEHUB_L2_TX_BASE_COST
from zkflow.backend import ExecutionBackend
from zkflow.constants import (
    BUFFER,
    DEFAULT_ABI_BYTES,
    DEFAULT_PUBDATA_BYTES,
    TX_MEMORY_OVERHEAD_GAS,
    TX_OVERHEAD_GAS,
)
from zkflow.plans import TxOverrides, TxRequest
from zkflow.routes import DepositRoute

logger = logging.getLogger(__name__)

# Overheads observed for bridged ERC-20 finalization on L2.
_ERC20_NONBASE_MEMORY_BYTES = 500
_ERC20_NONBASE_PUBDATA_BYTES = 200


@dataclass(frozen=True)
class GasQuote:
    gas_limit: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int = 0
    gas_per_pubdata: int | None = None

    @property
    def max_cost(self) -> int:
        return self.gas_limit * self.max_fee_per_gas


def _buffered(gas: int, buffer_pct: int) -> int:
    return gas * (100 + buffer_pct) // 100


async def fetch_fee_caps(backend: ExecutionBackend) -> tuple[int, int]:
    """Current (max_fee_per_gas, max_priority_fee_per_gas) on *backend*.

    Legacy chains report only a gas price, which is used as the max fee
    with a zero tip.
    """
    fees = await backend.estimate_fees_per_gas()
    if fees.max_fee_per_gas is not None:
        return fees.max_fee_per_gas, fees.max_priority_fee_per_gas or 0
    return fees.gas_price or 0, 0


async def quote_tx_gas(
    backend: ExecutionBackend,
    tx: TxRequest,
    *,
    overrides: TxOverrides | None = None,
    buffer_pct: int = BUFFER,
    fallback_gas_limit: int | None = None,
) -> GasQuote | None:
    """Quote gas for *tx* on the chain *backend* is bound to.

    Returns:
        The quote, or None when estimation fails and no fallback limit
        was given. The step then goes out without a gas field and the
        executor estimates it at send time.
    """
    overrides = overrides or TxOverrides()

    market: tuple[int, int] | None = None
    if overrides.max_fee_per_gas is None or overrides.max_priority_fee_per_gas is None:
        market = await fetch_fee_caps(backend)
    max_fee = overrides.max_fee_per_gas if overrides.max_fee_per_gas is not None else market[0]
    priority = (
        overrides.max_priority_fee_per_gas
        if overrides.max_priority_fee_per_gas is not None
        else market[1]
    )

    explicit = overrides.gas_limit if overrides.gas_limit is not None else tx.get("gas")
    if explicit is not None:
        return GasQuote(int(explicit), max_fee, priority)

    try:
        estimate = await backend.estimate_gas(tx)
    except Exception as exc:
        if fallback_gas_limit is not None:
            logger.warning(
                "gas estimation failed for %s, using fallback %d: %s",
                tx.get("to"), fallback_gas_limit, exc,
            )
            return GasQuote(fallback_gas_limit, max_fee, priority)
        logger.warning("gas estimation failed for %s: %s", tx.get("to"), exc)
        return None
    return GasQuote(_buffered(estimate, buffer_pct), max_fee, priority)


async def quote_l2_gas(
    l2: ExecutionBackend,
    route: DepositRoute,
    *,
    model_tx: TxRequest | None,
    gas_per_pubdata: int,
    override_gas_limit: int | None = None,
    buffer_pct: int = BUFFER,
) -> GasQuote:
    """Quote the L2 execution gas of a deposit.

    Args:
        l2: Destination chain backend.
        route: Deposit route; erc20-nonbase carries larger overheads.
        model_tx: Stand-in for the L2 leg used for estimation.
        gas_per_pubdata: Gas-per-pubdata-byte limit of the request.
        override_gas_limit: Fixed limit; skips estimation entirely.
        buffer_pct: Safety margin on the modeled total.
    """
    max_fee, _ = await fetch_fee_caps(l2)

    if override_gas_limit is not None:
        return GasQuote(override_gas_limit, max_fee, gas_per_pubdata=gas_per_pubdata)
    if model_tx is None:
        return GasQuote(0, max_fee, gas_per_pubdata=gas_per_pubdata)

    try:
        execution = await l2.estimate_gas(model_tx)
    except Exception as exc:
        logger.warning("L2 gas estimation failed for %s route: %s", route, exc)
        return GasQuote(0, max_fee, gas_per_pubdata=gas_per_pubdata)

    if route is DepositRoute.ERC20_NONBASE:
        memory_bytes, pubdata_bytes = _ERC20_NONBASE_MEMORY_BYTES, _ERC20_NONBASE_PUBDATA_BYTES
    else:
        memory_bytes, pubdata_bytes = DEFAULT_ABI_BYTES, DEFAULT_PUBDATA_BYTES

    total = (
        execution
        + TX_OVERHEAD_GAS
        + memory_bytes * TX_MEMORY_OVERHEAD_GAS
        + pubdata_bytes * gas_per_pubdata
    )
    return GasQuote(_buffered(total, buffer_pct), max_fee, gas_per_pubdata=gas_per_pubdata)


async def quote_l2_base_cost(
    l1: ExecutionBackend,
    *,
    bridgehub: str,
    chain_id: int,
    l2_gas_limit: int,
    gas_per_pubdata: int,
) -> int:
    """Bridgehub.l2TransactionBaseCost at the current L1 gas price.

    Raises:
        ValueError: When the L1 fee market reports a zero gas price.
    """
    max_fee, priority = await fetch_fee_caps(l1)
    gas_price = max_fee or priority
    if gas_price == 0:
        raise ValueError("Could not fetch L1 gas price for Bridgehub base cost calculation.")
    return int(
        await l1.read(
            bridgehub,
            BRIDGEHUB_L2_TX_BASE_COST,
            (chain_id, gas_price, l2_gas_limit, gas_per_pubdata),
        )
    )
