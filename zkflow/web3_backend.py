"""
Web3Backend — ExecutionBackend over web3.AsyncWeb3.

Thin by design: field normalization in, Receipt/Log dataclasses out,
no flow logic. Signing is local when an eth-account ``LocalAccount`` is
supplied; otherwise transactions are sent with ``eth_sendTransaction``
and the node's unlocked account signs.

Chain-specific JSON-RPC methods (zks_*) go through a JsonRpcClient on
the same URL, which uses the httpx transport rather than web3's
provider so the raw response shape is preserved.
"""

from __future__ import annotations

import logging
from typing import Any

from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TransactionNotFound

from zkflow.abi import ContractFunction, checksum
from zkflow.backend import FeesPerGas
from zkflow.plans import TxRequest
from zkflow.rpc.client import JsonRpcClient
from zkflow.rpc.transport import JsonRpcTransport
from zkflow.rpc.types import Log, Receipt, coerce_hex

logger = logging.getLogger(__name__)

_ADDRESS_FIELDS = ("to", "from")


class Web3Backend:
    """ExecutionBackend for one EVM chain.

    Args:
        url: HTTP JSON-RPC endpoint.
        account: Optional local signer. When None, the node signs for
            ``default_sender``.
        default_sender: Sender used when no local account is given.
        transport: Optional transport for the raw JSON-RPC client.
        w3: Optional pre-built AsyncWeb3 (tests, custom middleware).
    """

    def __init__(
        self,
        url: str,
        *,
        account: LocalAccount | None = None,
        default_sender: str | None = None,
        transport: JsonRpcTransport | None = None,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(url))
        self._rpc = JsonRpcClient(url, transport)
        self._account = account
        self._default_sender = default_sender

    @property
    def w3(self) -> AsyncWeb3:
        return self._w3

    # -----------------------------------------------------------------
    # Identity
    # -----------------------------------------------------------------

    async def chain_id(self) -> int:
        return int(await self._w3.eth.chain_id)

    async def signer_address(self) -> str:
        if self._account is not None:
            return self._account.address
        if self._default_sender is not None:
            return checksum(self._default_sender)
        accounts = await self._w3.eth.accounts
        if not accounts:
            raise RuntimeError("no signer configured and node exposes no accounts")
        return accounts[0]

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    async def read(self, address: str, fn: ContractFunction, args: tuple[Any, ...] = ()) -> Any:
        data = await self.call({"to": address, "data": fn.encode(*args)})
        return fn.decode_output(data)

    async def call(self, tx: TxRequest) -> str:
        result = await self._w3.eth.call(_to_web3_tx(tx))
        return coerce_hex(bytes(result))

    async def estimate_gas(self, tx: TxRequest) -> int:
        return int(await self._w3.eth.estimate_gas(_to_web3_tx(tx)))

    async def estimate_fees_per_gas(self) -> FeesPerGas:
        block = await self._w3.eth.get_block("latest")
        base_fee = block.get("baseFeePerGas")
        if base_fee is None:
            return FeesPerGas(gas_price=int(await self._w3.eth.gas_price))
        priority = int(await self._w3.eth.max_priority_fee)
        return FeesPerGas(
            max_fee_per_gas=int(base_fee) * 2 + priority,
            max_priority_fee_per_gas=priority,
        )

    async def get_receipt(self, tx_hash: str) -> Receipt | None:
        try:
            raw = await self._w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        return Receipt.from_raw(raw)

    async def wait_for_receipt(self, tx_hash: str, timeout_s: float | None = None) -> Receipt:
        raw = await self._w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=timeout_s if timeout_s is not None else 120.0
        )
        return Receipt.from_raw(raw)

    async def get_logs(
        self,
        *,
        address: str,
        topics: list[str | None],
        from_block: int | str = "earliest",
        to_block: int | str = "latest",
    ) -> list[Log]:
        raw = await self._w3.eth.get_logs(
            {
                "address": checksum(address),
                "topics": topics,
                "fromBlock": from_block,
                "toBlock": to_block,
            }
        )
        return [Log.from_raw(lg) for lg in raw]

    async def get_block_number(self, tag: str = "latest") -> int:
        block = await self._w3.eth.get_block(tag)
        return int(block["number"])

    async def send(self, method: str, params: list[Any]) -> Any:
        return await self._rpc.send(method, params)

    # -----------------------------------------------------------------
    # Sends
    # -----------------------------------------------------------------

    async def send_and_wait(self, tx: TxRequest) -> Receipt:
        prepared = _to_web3_tx(tx)
        if self._account is None:
            prepared.setdefault("from", await self.signer_address())
            tx_hash = await self._w3.eth.send_transaction(prepared)
        else:
            signed = self._account.sign_transaction(await self._fill(self._account, prepared))
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.debug("sent tx %s", coerce_hex(bytes(tx_hash)))
        raw = await self._w3.eth.wait_for_transaction_receipt(tx_hash)
        return Receipt.from_raw(raw)

    async def _fill(self, account: LocalAccount, tx: dict[str, Any]) -> dict[str, Any]:
        tx["from"] = account.address
        if "nonce" not in tx:
            tx["nonce"] = await self._w3.eth.get_transaction_count(
                account.address, "pending"
            )
        if "chainId" not in tx:
            tx["chainId"] = await self.chain_id()
        if "gas" not in tx:
            tx["gas"] = await self._w3.eth.estimate_gas(tx)
        if "maxFeePerGas" not in tx and "gasPrice" not in tx:
            fees = await self.estimate_fees_per_gas()
            if fees.max_fee_per_gas is not None:
                tx["maxFeePerGas"] = fees.max_fee_per_gas
                tx["maxPriorityFeePerGas"] = fees.max_priority_fee_per_gas or 0
            else:
                tx["gasPrice"] = fees.gas_price
        return tx


def _to_web3_tx(tx: TxRequest) -> dict[str, Any]:
    out = {k: v for k, v in tx.items() if v is not None}
    for name in _ADDRESS_FIELDS:
        if name in out:
            out[name] = checksum(out[name])
    return out
