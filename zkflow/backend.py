"""
Execution backend protocol — the chain boundary.

Defines the interface every flow resource depends on, not a concrete
implementation. One backend instance is bound to one chain (L1, the
source L2, a destination L2). All route, plan, status and finalize
logic lives in zkflow and talks to chains only through this protocol,
so a new chain client library needs nothing more than a thin
implementation of it.

Concrete implementations:
    - Web3Backend (web3.AsyncWeb3, see web3_backend.py)
    - FakeBackend (tests)

Contract reads go through ``call`` with calldata built from
zkflow.abi descriptors; ``read`` is the convenience that encodes and
decodes around it.

Error contract:
    - ``get_receipt`` returns None for a not-yet-mined transaction.
    - ``call``/``estimate_gas`` raise the client's native exception on
      revert, with revert data reachable as ``.data`` (or in ``args``).
    - Everything else propagates; the resources wrap it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from zkflow.abi import ContractFunction
from zkflow.plans import TxRequest
from zkflow.rpc.types import Log, Receipt


@dataclass(frozen=True)
class FeesPerGas:
    """Current fee market. Legacy chains report only ``gas_price``."""

    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None
    gas_price: int | None = None


@runtime_checkable
class ExecutionBackend(Protocol):
    """Interface for one chain's reads, estimates and sends."""

    async def chain_id(self) -> int: ...

    async def signer_address(self) -> str:
        """Address that signs transactions sent through this backend."""
        ...

    async def read(self, address: str, fn: ContractFunction, args: tuple[Any, ...] = ()) -> Any:
        """Call a view function and return its decoded output."""
        ...

    async def call(self, tx: TxRequest) -> str:
        """eth_call; returns hex return data. Raises on revert."""
        ...

    async def estimate_gas(self, tx: TxRequest) -> int: ...

    async def estimate_fees_per_gas(self) -> FeesPerGas: ...

    async def send_and_wait(self, tx: TxRequest) -> Receipt:
        """Sign, send and wait for the receipt of *tx*.

        Returns the receipt whatever its status; callers check
        ``receipt.status``.
        """
        ...

    async def get_receipt(self, tx_hash: str) -> Receipt | None: ...

    async def wait_for_receipt(self, tx_hash: str, timeout_s: float | None = None) -> Receipt:
        """Native receipt wait: a single suspension until mined."""
        ...

    async def get_logs(
        self,
        *,
        address: str,
        topics: list[str | None],
        from_block: int | str = "earliest",
        to_block: int | str = "latest",
    ) -> list[Log]: ...

    async def get_block_number(self, tag: str = "latest") -> int:
        """Number of the block at *tag* ("latest", "finalized", ...)."""
        ...

    async def send(self, method: str, params: list[Any]) -> Any:
        """Raw JSON-RPC call for chain-specific methods."""
        ...
