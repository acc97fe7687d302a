"""
TokensResource — read-only token identity across L1 and the source L2.

    L1 token  ──l2TokenAddress──▶  L2 token        (L2 native token vault)
    L2 token  ──l1TokenAddress──▶  L1 token        (L2 asset router)
    token     ──assetId────────▶  asset id         (either vault)
    asset id  ──tokenAddress───▶  token            (either vault)

The chain's base token maps to the L2 base-token system contract in both
directions. The formal ETH address (0x…00) is read as the ETH sentinel
(0x…01) on L1.

An asset id is ``keccak256(abi.encode(originChainId, vault, token))``;
``is_chain_eth_based`` compares the chain's base asset id with the one
ETH gets on the L1 chain.

Vault constants (L1 chain id, base asset id, WETH) are read once per
resource.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Literal

from eth_utils import keccak

from zkflow.abi import (
    L2_ASSET_ROUTER_L1_TOKEN_ADDRESS,
    L2_NTV_BASE_TOKEN_ASSET_ID,
    L2_NTV_CALCULATE_CREATE2_TOKEN_ADDRESS,
    L2_NTV_L1_CHAIN_ID,
    L2_NTV_L2_TOKEN_ADDRESS,
    L2_NTV_ORIGIN_CHAIN_ID,
    NTV_ASSET_ID,
    NTV_TOKEN_ADDRESS,
    NTV_WETH_TOKEN,
    ContractFunction,
    encode_args,
    hex_to_bytes,
)
from zkflow.constants import (
    ETH_ADDRESS,
    FORMAL_ETH_ADDRESS,
    L2_BASE_TOKEN_ADDRESS,
    L2_NATIVE_TOKEN_VAULT_ADDRESS,
)
from zkflow.errors import ErrorHandlers, ErrorType
from zkflow.operations import OP_TOKENS
from zkflow.routes import addr_eq
from zkflow.rpc.types import coerce_hex

if TYPE_CHECKING:
    from zkflow.client import FlowClient

handlers = ErrorHandlers("tokens")

Chain = Literal["l1", "l2"]


class TokenKind(StrEnum):
    ETH = "eth"
    BASE = "base"
    ERC20 = "erc20"


@dataclass(frozen=True)
class TokenRef:
    """A token address on a named chain."""

    chain: Chain
    address: str


@dataclass(frozen=True)
class ResolvedToken:
    kind: TokenKind
    l1: str
    l2: str
    asset_id: str
    origin_chain_id: int
    is_chain_eth_based: bool
    base_token_asset_id: str
    weth_l1: str
    weth_l2: str


def encode_asset_id(origin_chain_id: int, vault: str, token: str) -> str:
    """Asset id the native token vault assigns to *token* from *origin_chain_id*."""
    encoded = encode_args(["uint256", "address", "address"], [origin_chain_id, vault, token])
    return "0x" + keccak(hexstr=encoded).hex()


def _normalize_l1(token: str) -> str:
    return ETH_ADDRESS if addr_eq(token, FORMAL_ETH_ADDRESS) else token


class TokensResource:
    def __init__(self, client: FlowClient) -> None:
        self._client = client
        self._constants: dict[str, Any] = {}

    async def _read(
        self,
        operation: str,
        fn: Callable[[], Awaitable[Any]],
        message: str,
        **ctx: Any,
    ) -> Any:
        return await handlers.wrap_as(
            ErrorType.RPC, operation, fn, message=message, ctx=ctx or None
        )

    async def _constant(self, key: str, operation: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        if key not in self._constants:
            self._constants[key] = await self._read(operation, fn, f"Failed to read {key}.")
        return self._constants[key]

    # -----------------------------------------------------------------
    # Address mapping
    # -----------------------------------------------------------------

    async def to_l2_address(self, l1_token: str) -> str:
        """L2 address of *l1_token*; the base token maps to the system contract."""
        token = _normalize_l1(l1_token)
        chain_id = await self._read(
            OP_TOKENS.to_l2_address, self._client.l2.chain_id, "Failed to read L2 chain id."
        )
        if addr_eq(token, await self._client.base_token(chain_id)):
            return L2_BASE_TOKEN_ADDRESS
        addresses = await self._client.ensure_addresses()
        return await self._read(
            OP_TOKENS.to_l2_address,
            lambda: self._client.l2.read(
                addresses.l2_native_token_vault, L2_NTV_L2_TOKEN_ADDRESS, (token,)
            ),
            "Failed to read L2 token address from L2NativeTokenVault.",
            token=l1_token,
        )

    async def to_l1_address(self, l2_token: str) -> str:
        """L1 address of *l2_token*; the base-token system contract maps to the base token."""
        if addr_eq(l2_token, ETH_ADDRESS):
            return ETH_ADDRESS
        if addr_eq(l2_token, L2_BASE_TOKEN_ADDRESS):
            chain_id = await self._read(
                OP_TOKENS.to_l1_address, self._client.l2.chain_id, "Failed to read L2 chain id."
            )
            return await self._client.base_token(chain_id)
        addresses = await self._client.ensure_addresses()
        return await self._read(
            OP_TOKENS.to_l1_address,
            lambda: self._client.l2.read(
                addresses.l2_asset_router, L2_ASSET_ROUTER_L1_TOKEN_ADDRESS, (l2_token,)
            ),
            "Failed to read L1 token address from L2AssetRouter.",
            token=l2_token,
        )

    async def compute_l2_bridged_address(self, origin_chain_id: int, l1_token: str) -> str:
        """CREATE2 address the L2 vault deploys a bridged *l1_token* to."""
        addresses = await self._client.ensure_addresses()
        return await self._read(
            OP_TOKENS.compute_l2_bridged_address,
            lambda: self._client.l2.read(
                addresses.l2_native_token_vault,
                L2_NTV_CALCULATE_CREATE2_TOKEN_ADDRESS,
                (origin_chain_id, _normalize_l1(l1_token)),
            ),
            "Failed to compute bridged token address.",
            token=l1_token,
            originChainId=origin_chain_id,
        )

    # -----------------------------------------------------------------
    # Asset ids
    # -----------------------------------------------------------------

    async def asset_id_of_l1(self, l1_token: str) -> str:
        addresses = await self._client.ensure_addresses()
        asset_id = await self._read(
            OP_TOKENS.asset_id_of_l1,
            lambda: self._client.l1.read(
                addresses.l1_native_token_vault, NTV_ASSET_ID, (_normalize_l1(l1_token),)
            ),
            "Failed to read asset id from L1NativeTokenVault.",
            token=l1_token,
        )
        return coerce_hex(asset_id)

    async def asset_id_of_l2(self, l2_token: str) -> str:
        addresses = await self._client.ensure_addresses()
        asset_id = await self._read(
            OP_TOKENS.asset_id_of_l2,
            lambda: self._client.l2.read(
                addresses.l2_native_token_vault, NTV_ASSET_ID, (l2_token,)
            ),
            "Failed to read asset id from L2NativeTokenVault.",
            token=l2_token,
        )
        return coerce_hex(asset_id)

    async def l1_token_from_asset_id(self, asset_id: str) -> str:
        addresses = await self._client.ensure_addresses()
        return await self._read(
            OP_TOKENS.l1_token_from_asset_id,
            lambda: self._client.l1.read(
                addresses.l1_native_token_vault, NTV_TOKEN_ADDRESS, (hex_to_bytes(asset_id),)
            ),
            "Failed to read token address from L1NativeTokenVault.",
            assetId=asset_id,
        )

    async def l2_token_from_asset_id(self, asset_id: str) -> str:
        addresses = await self._client.ensure_addresses()
        return await self._read(
            OP_TOKENS.l2_token_from_asset_id,
            lambda: self._client.l2.read(
                addresses.l2_native_token_vault, NTV_TOKEN_ADDRESS, (hex_to_bytes(asset_id),)
            ),
            "Failed to read token address from L2NativeTokenVault.",
            assetId=asset_id,
        )

    async def origin_chain_id(self, asset_id: str) -> int:
        addresses = await self._client.ensure_addresses()
        chain_id = await self._read(
            OP_TOKENS.origin_chain_id,
            lambda: self._client.l2.read(
                addresses.l2_native_token_vault, L2_NTV_ORIGIN_CHAIN_ID, (hex_to_bytes(asset_id),)
            ),
            "Failed to read origin chain id from L2NativeTokenVault.",
            assetId=asset_id,
        )
        return int(chain_id)

    # -----------------------------------------------------------------
    # Chain constants
    # -----------------------------------------------------------------

    async def _l2_vault_constant(
        self, key: str, operation: str, function: ContractFunction
    ) -> Any:
        addresses = await self._client.ensure_addresses()
        return await self._constant(
            key,
            operation,
            lambda: self._client.l2.read(addresses.l2_native_token_vault, function),
        )

    async def base_token_asset_id(self) -> str:
        asset_id = await self._l2_vault_constant(
            "BASE_TOKEN_ASSET_ID", OP_TOKENS.base_token_asset_id, L2_NTV_BASE_TOKEN_ASSET_ID
        )
        return coerce_hex(asset_id)

    async def is_chain_eth_based(self) -> bool:
        """True when the source L2's base token is ETH."""
        base = await self.base_token_asset_id()
        l1_chain_id = await self._l2_vault_constant(
            "L1_CHAIN_ID", OP_TOKENS.is_chain_eth_based, L2_NTV_L1_CHAIN_ID
        )
        eth = encode_asset_id(int(l1_chain_id), L2_NATIVE_TOKEN_VAULT_ADDRESS, ETH_ADDRESS)
        return base.lower() == eth.lower()

    async def weth_l1(self) -> str:
        addresses = await self._client.ensure_addresses()
        return await self._constant(
            "WETH_TOKEN (L1)",
            OP_TOKENS.weth_l1,
            lambda: self._client.l1.read(addresses.l1_native_token_vault, NTV_WETH_TOKEN),
        )

    async def weth_l2(self) -> str:
        return await self._l2_vault_constant("WETH_TOKEN (L2)", OP_TOKENS.weth_l2, NTV_WETH_TOKEN)

    # -----------------------------------------------------------------
    # Resolve
    # -----------------------------------------------------------------

    async def resolve(self, ref: TokenRef | str, *, chain: Chain = "l1") -> ResolvedToken:
        """Everything known about a token, from its address on either chain.

        Args:
            ref: A TokenRef, or a bare address read on *chain*.
            chain: Chain of a bare address.
        """
        if isinstance(ref, str):
            ref = TokenRef(chain, ref)

        if ref.chain == "l1":
            l1 = _normalize_l1(ref.address)
            l2 = await self.to_l2_address(ref.address)
        else:
            l2 = ref.address
            l1 = await self.to_l1_address(ref.address)

        asset_id = await self.asset_id_of_l1(l1)
        origin = await self.origin_chain_id(asset_id)
        base_asset_id = await self.base_token_asset_id()

        if addr_eq(l1, ETH_ADDRESS):
            kind = TokenKind.ETH
        elif asset_id.lower() == base_asset_id.lower():
            kind = TokenKind.BASE
        else:
            kind = TokenKind.ERC20

        return ResolvedToken(
            kind=kind,
            l1=l1,
            l2=l2,
            asset_id=asset_id,
            origin_chain_id=origin,
            is_chain_eth_based=await self.is_chain_eth_based(),
            base_token_asset_id=base_asset_id,
            weth_l1=await self.weth_l1(),
            weth_l2=await self.weth_l2(),
        )
