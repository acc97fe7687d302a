"""Interop parameters and the per-build context every route reads from."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from zkflow.backend import ExecutionBackend
from zkflow.errors import ErrorHandlers, ErrorType
from zkflow.operations import OP_INTEROP
from zkflow.plans import TxOverrides
from zkflow.routes import InteropAction, InteropRoute, addr_eq, pick_interop_route

if TYPE_CHECKING:
    from zkflow.client import FlowClient

handlers = ErrorHandlers("interop")


@dataclass(frozen=True)
class InteropParams:
    """A bundle of actions to run on another L2.

    Attributes:
        dst_chain_id: Destination chain id; a backend must be registered
            for it on the client.
        actions: Ordered SendNative / SendErc20 / Call actions.
        execution_only: Restrict bundle execution to this address.
        unbundler: Address allowed to unbundle the bundle.
        l2_tx_overrides: Fee/gas/nonce pinned on every source step.
    """

    dst_chain_id: int
    actions: tuple[InteropAction, ...] = field(default_factory=tuple)
    execution_only: str | None = None
    unbundler: str | None = None
    l2_tx_overrides: TxOverrides | None = None


@dataclass(frozen=True)
class InteropContext:
    l2: ExecutionBackend
    route: InteropRoute
    sender: str
    src_chain_id: int
    dst_chain_id: int
    src_base_token: str
    dst_base_token: str
    interop_center: str
    l2_asset_router: str
    l2_native_token_vault: str
    gas_buffer_pct: int
    overrides: TxOverrides | None

    @property
    def base_tokens_match(self) -> bool:
        return addr_eq(self.src_base_token, self.dst_base_token)


async def build_context(client: FlowClient, params: InteropParams) -> InteropContext:
    addresses = await client.ensure_addresses()
    src_chain_id = await handlers.wrap_as(
        ErrorType.RPC, OP_INTEROP.prepare, client.l2.chain_id,
        message="Failed to read source chain id.",
    )
    sender = await handlers.wrap_as(
        ErrorType.RPC, OP_INTEROP.prepare, client.l2.signer_address,
        message="Failed to resolve source signer.",
    )
    src_base = await client.base_token(src_chain_id)
    dst_base = await client.base_token(params.dst_chain_id)

    return InteropContext(
        l2=client.l2,
        route=pick_interop_route(params.actions, src_base, dst_base),
        sender=sender,
        src_chain_id=src_chain_id,
        dst_chain_id=int(params.dst_chain_id),
        src_base_token=src_base,
        dst_base_token=dst_base,
        interop_center=addresses.interop_center,
        l2_asset_router=addresses.l2_asset_router,
        l2_native_token_vault=addresses.l2_native_token_vault,
        gas_buffer_pct=client.config.gas_buffer_pct,
        overrides=params.l2_tx_overrides,
    )
