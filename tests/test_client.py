"""
Tests for FlowClient wiring — address resolution, chains, base tokens.

Test plan:
- ensure_addresses: bridgehub from zks_getBridgehubContract, then the
  L1 read chain; resolved once even under concurrent first callers;
  refresh re-resolves; pinned overrides skip reads; L2 system
  addresses default to the well-known ones
- Resolution failure surfaces as RPC on resource "client"
- backend_for: registered chain, source L2 by its own id, unknown → STATE
- base_token: Bridgehub read, failure → RPC with chainId
"""

import asyncio

import pytest

from fakes import (
    BRIDGEHUB,
    L1_ASSET_ROUTER,
    L1_NTV,
    L1_NULLIFIER,
    FakeBackend,
)
from zkflow.abi import (
    BRIDGEHUB_ASSET_ROUTER,
    BRIDGEHUB_BASE_TOKEN,
    L1_ASSET_ROUTER_NULLIFIER,
    L1_NULLIFIER_NATIVE_TOKEN_VAULT,
)
from zkflow.client import FlowClient
from zkflow.config import AddressOverrides, FlowConfig
from zkflow.constants import (
    L2_ASSET_ROUTER_ADDRESS,
    L2_INTEROP_CENTER_ADDRESS,
    L2_NATIVE_TOKEN_VAULT_ADDRESS,
)
from zkflow.errors import ErrorType, FlowError

L2_ROUTER_OVERRIDE = "0x9999999999999999999999999999999999999999"


def resolvable() -> tuple[FakeBackend, FakeBackend]:
    l1 = FakeBackend(chain_id=1)
    l2 = FakeBackend(chain_id=324)
    l2.rpc["zks_getBridgehubContract"] = BRIDGEHUB
    l1.on_read(BRIDGEHUB, BRIDGEHUB_ASSET_ROUTER, L1_ASSET_ROUTER)
    l1.on_read(L1_ASSET_ROUTER, L1_ASSET_ROUTER_NULLIFIER, L1_NULLIFIER)
    l1.on_read(L1_NULLIFIER, L1_NULLIFIER_NATIVE_TOKEN_VAULT, L1_NTV)
    return l1, l2


def reads(backend: FakeBackend) -> list[str]:
    return [payload[1] for method, payload in backend.calls if method == "read"]


# ---------------------------------------------------------------------------
# Addresses
# ---------------------------------------------------------------------------


class TestEnsureAddresses:
    @pytest.mark.asyncio
    async def test_resolves_through_bridgehub(self) -> None:
        l1, l2 = resolvable()
        client = FlowClient(l1, l2)

        addresses = await client.ensure_addresses()

        assert addresses.bridgehub == BRIDGEHUB
        assert addresses.l1_asset_router == L1_ASSET_ROUTER
        assert addresses.l1_nullifier == L1_NULLIFIER
        assert addresses.l1_native_token_vault == L1_NTV
        assert addresses.l2_asset_router == L2_ASSET_ROUTER_ADDRESS
        assert addresses.l2_native_token_vault == L2_NATIVE_TOKEN_VAULT_ADDRESS
        assert addresses.interop_center == L2_INTEROP_CENTER_ADDRESS
        assert reads(l1) == ["assetRouter", "L1_NULLIFIER", "l1NativeTokenVault"]

    @pytest.mark.asyncio
    async def test_concurrent_callers_resolve_once(self) -> None:
        l1, l2 = resolvable()
        client = FlowClient(l1, l2)

        results = await asyncio.gather(*(client.ensure_addresses() for _ in range(5)))

        assert all(r is results[0] for r in results)
        assert len(reads(l1)) == 3
        assert [c for c in l2.calls if c[0] == "send"] == [
            ("send", ("zks_getBridgehubContract", []))
        ]

    @pytest.mark.asyncio
    async def test_refresh_re_resolves(self) -> None:
        l1, l2 = resolvable()
        client = FlowClient(l1, l2)

        first = await client.ensure_addresses()
        client.refresh()
        second = await client.ensure_addresses()

        assert first == second
        assert len(reads(l1)) == 6

    @pytest.mark.asyncio
    async def test_overrides_skip_reads(self) -> None:
        l1, l2 = FakeBackend(chain_id=1), FakeBackend(chain_id=324)
        config = FlowConfig(
            addresses=AddressOverrides(
                bridgehub=BRIDGEHUB,
                l1_asset_router=L1_ASSET_ROUTER,
                l1_nullifier=L1_NULLIFIER,
                l1_native_token_vault=L1_NTV,
                l2_asset_router=L2_ROUTER_OVERRIDE,
            )
        )
        client = FlowClient(l1, l2, config=config)

        addresses = await client.ensure_addresses()

        assert addresses.l2_asset_router == L2_ROUTER_OVERRIDE
        assert l1.calls == []
        assert l2.calls == []

    @pytest.mark.asyncio
    async def test_resolution_failure_is_rpc(self) -> None:
        l1, l2 = resolvable()
        l1.on_read(BRIDGEHUB, BRIDGEHUB_ASSET_ROUTER, ConnectionError("l1 down"))
        client = FlowClient(l1, l2)

        with pytest.raises(FlowError) as exc_info:
            await client.ensure_addresses()

        err = exc_info.value
        assert err.type is ErrorType.RPC
        assert err.envelope.resource == "client"
        assert err.envelope.cause["message"] == "l1 down"

    @pytest.mark.asyncio
    async def test_bad_bridgehub_shape_keeps_zks_error(self) -> None:
        l1, l2 = resolvable()
        l2.rpc["zks_getBridgehubContract"] = 42
        client = FlowClient(l1, l2)

        with pytest.raises(FlowError) as exc_info:
            await client.ensure_addresses()

        assert exc_info.value.type is ErrorType.RPC
        assert exc_info.value.envelope.resource == "zksrpc"


# ---------------------------------------------------------------------------
# Chains
# ---------------------------------------------------------------------------


class TestBackendFor:
    @pytest.mark.asyncio
    async def test_registered_chain(self) -> None:
        l1, l2 = resolvable()
        dst = FakeBackend(chain_id=325)
        client = FlowClient(l1, l2)
        client.register_chain(325, dst)
        assert await client.backend_for(325) is dst

    @pytest.mark.asyncio
    async def test_source_chain_by_id(self) -> None:
        l1, l2 = resolvable()
        client = FlowClient(l1, l2)
        assert await client.backend_for(324) is l2

    @pytest.mark.asyncio
    async def test_unknown_chain(self) -> None:
        l1, l2 = resolvable()
        client = FlowClient(l1, l2)

        with pytest.raises(FlowError) as exc_info:
            await client.backend_for(999)

        assert exc_info.value.type is ErrorType.STATE
        assert exc_info.value.envelope.context == {"chainId": 999}


# ---------------------------------------------------------------------------
# Base tokens
# ---------------------------------------------------------------------------


class TestBaseToken:
    @pytest.mark.asyncio
    async def test_reads_bridgehub(self) -> None:
        l1, l2 = resolvable()
        token = "0x4444444444444444444444444444444444444444"
        l1.on_read(BRIDGEHUB, BRIDGEHUB_BASE_TOKEN, lambda args: token if args == (324,) else None)
        client = FlowClient(l1, l2)

        assert await client.base_token(324) == token

    @pytest.mark.asyncio
    async def test_failure_is_rpc(self) -> None:
        l1, l2 = resolvable()
        l1.on_read(BRIDGEHUB, BRIDGEHUB_BASE_TOKEN, TimeoutError("slow"))
        client = FlowClient(l1, l2)

        with pytest.raises(FlowError) as exc_info:
            await client.base_token(324)

        assert exc_info.value.type is ErrorType.RPC
        assert exc_info.value.envelope.context == {"chainId": 324}
