"""
FlowClient — the entry point tying backends, addresses and resources.

    client = FlowClient(l1=Web3Backend(l1_url, account=acct),
                        l2=Web3Backend(l2_url, account=acct))
    handle = await client.deposits.create(DepositParams(token=ETH_ADDRESS, amount=10**18))
    await client.deposits.wait(handle, for_="l2")

Address resolution:
    bridgehub         zks_getBridgehubContract on L2 (or override)
    l1_asset_router   bridgehub.assetRouter()
    l1_nullifier      l1_asset_router.L1_NULLIFIER()
    l1_native_vault   l1_nullifier.l1NativeTokenVault()
    L2 addresses      well-known system addresses (or overrides)

The resolved set is memoized per client behind an asyncio.Lock so
concurrent first callers trigger one chain of reads. ``refresh`` drops
it. Values are chain constants, so a stale set is only ever replaced by
an identical one.

Interop destinations are registered per chain id; the source L2 is
always registered under its own id.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from zkflow.abi import (
    BRIDGEHUB_ASSET_ROUTER,
    BRIDGEHUB_BASE_TOKEN,
    L1_ASSET_ROUTER_NULLIFIER,
    L1_NULLIFIER_NATIVE_TOKEN_VAULT,
)
from zkflow.backend import ExecutionBackend
from zkflow.config import FlowConfig
from zkflow.constants import (
    L2_ASSET_ROUTER_ADDRESS,
    L2_BASE_TOKEN_ADDRESS,
    L2_INTEROP_CENTER_ADDRESS,
    L2_INTEROP_HANDLER_ADDRESS,
    L2_INTEROP_ROOT_STORAGE_ADDRESS,
    L2_NATIVE_TOKEN_VAULT_ADDRESS,
)
from zkflow.deposits import DepositsResource
from zkflow.errors import ErrorHandlers, ErrorType
from zkflow.interop import InteropResource
from zkflow.operations import OP_CLIENT
from zkflow.rpc.zks import ZksRpc
from zkflow.tokens import TokensResource
from zkflow.withdrawals import WithdrawalsResource

logger = logging.getLogger(__name__)

_handlers = ErrorHandlers("client")


@dataclass(frozen=True)
class ResolvedAddresses:
    bridgehub: str
    l1_asset_router: str
    l1_nullifier: str
    l1_native_token_vault: str
    l2_asset_router: str
    l2_native_token_vault: str
    l2_base_token_system: str
    interop_center: str = L2_INTEROP_CENTER_ADDRESS
    interop_handler: str = L2_INTEROP_HANDLER_ADDRESS
    interop_root_storage: str = L2_INTEROP_ROOT_STORAGE_ADDRESS


class FlowClient:
    """Binds an L1 backend and a source L2 backend to the flow resources.

    Args:
        l1: Base chain backend.
        l2: Source rollup backend. Also used for zks_* RPC calls.
        config: Tunables; defaults apply when omitted.
        zks: Normalized RPC wrapper; built over ``l2`` when omitted.
    """

    def __init__(
        self,
        l1: ExecutionBackend,
        l2: ExecutionBackend,
        *,
        config: FlowConfig | None = None,
        zks: ZksRpc | None = None,
    ) -> None:
        self.l1 = l1
        self.l2 = l2
        self.config = config or FlowConfig()
        self.zks = zks or ZksRpc(l2)
        self._addresses: ResolvedAddresses | None = None
        self._lock = asyncio.Lock()
        self._chains: dict[int, ExecutionBackend] = {}

        self.deposits = DepositsResource(self)
        self.withdrawals = WithdrawalsResource(self)
        self.interop = InteropResource(self)
        self.tokens = TokensResource(self)

    # -----------------------------------------------------------------
    # Chains
    # -----------------------------------------------------------------

    def register_chain(self, chain_id: int, backend: ExecutionBackend) -> None:
        """Make *backend* the interop destination for *chain_id*."""
        self._chains[int(chain_id)] = backend

    async def backend_for(self, chain_id: int) -> ExecutionBackend:
        """Backend registered for *chain_id*; the source L2 matches its own id.

        Raises:
            FlowError: STATE when no backend is known for the chain.
        """
        chain_id = int(chain_id)
        if chain_id in self._chains:
            return self._chains[chain_id]
        l2_id = await _handlers.wrap_as(
            ErrorType.RPC, OP_CLIENT.backend_for, self.l2.chain_id,
            message="Failed to read L2 chain id.",
        )
        if l2_id == chain_id:
            self._chains[chain_id] = self.l2
            return self.l2
        raise _handlers.error(
            ErrorType.STATE,
            OP_CLIENT.backend_for,
            "No backend registered for destination chain.",
            ctx={"chainId": chain_id},
        )

    # -----------------------------------------------------------------
    # Addresses
    # -----------------------------------------------------------------

    async def ensure_addresses(self) -> ResolvedAddresses:
        """Resolve (once) and return the bridge contract addresses."""
        if self._addresses is not None:
            return self._addresses
        async with self._lock:
            if self._addresses is None:
                self._addresses = await _handlers.wrap_as(
                    ErrorType.RPC,
                    OP_CLIENT.ensure_addresses,
                    self._resolve,
                    message="Failed to resolve bridge contract addresses.",
                )
            return self._addresses

    def refresh(self) -> None:
        """Forget resolved addresses; the next call re-resolves them."""
        self._addresses = None

    async def _resolve(self) -> ResolvedAddresses:
        pinned = self.config.addresses
        bridgehub = pinned.bridgehub or await self.zks.get_bridgehub_address()
        asset_router = pinned.l1_asset_router or await self.l1.read(
            bridgehub, BRIDGEHUB_ASSET_ROUTER
        )
        nullifier = pinned.l1_nullifier or await self.l1.read(
            asset_router, L1_ASSET_ROUTER_NULLIFIER
        )
        vault = pinned.l1_native_token_vault or await self.l1.read(
            nullifier, L1_NULLIFIER_NATIVE_TOKEN_VAULT
        )
        resolved = ResolvedAddresses(
            bridgehub=bridgehub,
            l1_asset_router=asset_router,
            l1_nullifier=nullifier,
            l1_native_token_vault=vault,
            l2_asset_router=pinned.l2_asset_router or L2_ASSET_ROUTER_ADDRESS,
            l2_native_token_vault=pinned.l2_native_token_vault or L2_NATIVE_TOKEN_VAULT_ADDRESS,
            l2_base_token_system=pinned.l2_base_token_system or L2_BASE_TOKEN_ADDRESS,
        )
        logger.debug("resolved addresses: %s", resolved)
        return resolved

    async def base_token(self, chain_id: int) -> str:
        """L1 address of *chain_id*'s base token, per Bridgehub."""
        addresses = await self.ensure_addresses()
        return await _handlers.wrap_as(
            ErrorType.RPC,
            OP_CLIENT.base_token,
            lambda: self.l1.read(addresses.bridgehub, BRIDGEHUB_BASE_TOKEN, (int(chain_id),)),
            message="Failed to read base token from Bridgehub.",
            ctx={"chainId": chain_id},
        )
