"""
In-memory collaborators shared by the flow tests — no network.

FakeBackend implements ExecutionBackend over plain dicts:

    reads        (address, signature) → value | exception | callable(args)
    receipts     tx hash → Receipt (get_receipt / wait_for_receipt)
    rpc          method → value | exception | callable(params)
    logs         returned by get_logs after address/topic filtering
    send_queue   receipts handed out by send_and_wait, in order

Every call is appended to ``calls`` as (method, payload) so tests can
assert on what was (and was not) sent.
"""

from __future__ import annotations

import itertools
from typing import Any

from zkflow.abi import (
    BRIDGEHUB_BASE_TOKEN,
    EVENT_BUNDLE_EXECUTED,
    EVENT_BUNDLE_UNBUNDLED,
    EVENT_BUNDLE_VERIFIED,
    EVENT_INTEROP_BUNDLE_SENT,
    ContractFunction,
    encode_args,
)
from zkflow.backend import FeesPerGas
from zkflow.client import FlowClient
from zkflow.config import AddressOverrides, FlowConfig
from zkflow.constants import (
    ETH_ADDRESS,
    L1_MESSENGER_ADDRESS,
    L2_INTEROP_CENTER_ADDRESS,
    L2_INTEROP_HANDLER_ADDRESS,
    TOPIC_L1_MESSAGE_SENT_NEW,
)
from zkflow.rpc.types import L2ToL1Log, Log, Receipt

SENDER = "0x1111111111111111111111111111111111111111"
RECEIVER = "0x2222222222222222222222222222222222222222"
TOKEN = "0x3333333333333333333333333333333333333333"
BASE_TOKEN = "0x4444444444444444444444444444444444444444"
BRIDGEHUB = "0x5555555555555555555555555555555555555555"
L1_ASSET_ROUTER = "0x6666666666666666666666666666666666666666"
L1_NULLIFIER = "0x7777777777777777777777777777777777777777"
L1_NTV = "0x8888888888888888888888888888888888888888"

_hashes = itertools.count(1)


def tx_hash(n: int | None = None) -> str:
    return "0x" + format(n if n is not None else next(_hashes), "064x")


def word(n: int) -> str:
    return "0x" + format(n, "064x")


class FakeBackend:
    """Minimal ExecutionBackend implementation for testing."""

    def __init__(
        self,
        *,
        chain_id: int = 324,
        signer: str = SENDER,
        fees: FeesPerGas | None = None,
        gas_estimate: int = 100_000,
    ) -> None:
        self._chain_id = chain_id
        self._signer = signer
        self._fees = fees or FeesPerGas(max_fee_per_gas=2_000, max_priority_fee_per_gas=100)
        self.gas_estimate = gas_estimate
        self.reads: dict[tuple[str, str], Any] = {}
        self.receipts: dict[str, Receipt | None] = {}
        self.rpc: dict[str, Any] = {}
        self.logs: list[Log] = []
        self.block_numbers: dict[str, int] = {"latest": 100, "finalized": 100}
        self.send_queue: list[Receipt] = []
        self.call_error: Exception | None = None
        self.estimate_error: Exception | None = None
        self.send_error: Exception | None = None
        self.calls: list[tuple[str, Any]] = []

    # -----------------------------------------------------------------
    # Setup helpers
    # -----------------------------------------------------------------

    def on_read(self, address: str, fn: ContractFunction, value: Any) -> None:
        self.reads[(address.lower(), fn.signature)] = value

    @property
    def sent(self) -> list[dict[str, Any]]:
        return [payload for method, payload in self.calls if method == "send_and_wait"]

    # -----------------------------------------------------------------
    # ExecutionBackend
    # -----------------------------------------------------------------

    async def chain_id(self) -> int:
        return self._chain_id

    async def signer_address(self) -> str:
        return self._signer

    async def read(self, address: str, fn: ContractFunction, args: tuple[Any, ...] = ()) -> Any:
        self.calls.append(("read", (address.lower(), fn.name, args)))
        key = (address.lower(), fn.signature)
        if key not in self.reads:
            raise LookupError(f"unexpected read {fn.signature} on {address}")
        value = self.reads[key]
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value(args)
        return value

    async def call(self, tx: dict[str, Any]) -> str:
        self.calls.append(("call", tx))
        if self.call_error is not None:
            raise self.call_error
        return "0x"

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        self.calls.append(("estimate_gas", tx))
        if self.estimate_error is not None:
            raise self.estimate_error
        return self.gas_estimate

    async def estimate_fees_per_gas(self) -> FeesPerGas:
        return self._fees

    async def send_and_wait(self, tx: dict[str, Any]) -> Receipt:
        self.calls.append(("send_and_wait", tx))
        if self.send_error is not None:
            raise self.send_error
        if self.send_queue:
            receipt = self.send_queue.pop(0)
        else:
            receipt = Receipt(transaction_hash=tx_hash(), status=1, block_number=10)
        self.receipts[receipt.transaction_hash] = receipt
        return receipt

    async def get_receipt(self, tx_hash: str) -> Receipt | None:
        self.calls.append(("get_receipt", tx_hash))
        value = self.receipts.get(tx_hash)
        if isinstance(value, Exception):
            raise value
        return value

    async def wait_for_receipt(self, tx_hash: str, timeout_s: float | None = None) -> Receipt:
        self.calls.append(("wait_for_receipt", tx_hash))
        receipt = self.receipts.get(tx_hash)
        if receipt is None:
            raise TimeoutError(f"receipt for {tx_hash} never arrived")
        return receipt

    async def get_logs(
        self,
        *,
        address: str,
        topics: list[str | None],
        from_block: int | str = "earliest",
        to_block: int | str = "latest",
    ) -> list[Log]:
        self.calls.append(("get_logs", (address.lower(), tuple(topics))))
        out = []
        for log in self.logs:
            if log.address.lower() != address.lower():
                continue
            if all(
                want is None or (i < len(log.topics) and log.topics[i] == want.lower())
                for i, want in enumerate(topics)
            ):
                out.append(log)
        return out

    async def get_block_number(self, tag: str = "latest") -> int:
        self.calls.append(("get_block_number", tag))
        return self.block_numbers[tag]

    async def send(self, method: str, params: list[Any]) -> Any:
        self.calls.append(("send", (method, params)))
        if method not in self.rpc:
            raise LookupError(f"unexpected rpc {method}")
        value = self.rpc[method]
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value(params)
        return value


class FakeNodeError(Exception):
    """Node-side exception carrying revert data the way client libraries do."""

    def __init__(self, message: str, data: str | None = None, code: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data
        self.code = code


# ---------------------------------------------------------------------------
# Log and receipt builders
# ---------------------------------------------------------------------------


def l1_message_sent_log(payload: bytes, *, sender: str = L2_INTEROP_CENTER_ADDRESS) -> Log:
    return Log(
        address=L1_MESSENGER_ADDRESS,
        topics=(
            TOPIC_L1_MESSAGE_SENT_NEW,
            "0x" + "00" * 12 + sender[2:].lower(),
            word(0xABC),
        ),
        data=encode_args(["bytes"], [payload]),
    )


def bundle_sent_log(bundle_hash: str, *, src_chain_id: int, dst_chain_id: int) -> Log:
    bundle = (b"\x01", src_chain_id, dst_chain_id, b"\x00" * 32, [], (b"", b""))
    data = encode_args(
        list(EVENT_INTEROP_BUNDLE_SENT.data),
        [b"\x11" * 32, bytes.fromhex(bundle_hash[2:]), bundle],
    )
    return Log(
        address=L2_INTEROP_CENTER_ADDRESS,
        topics=(EVENT_INTEROP_BUNDLE_SENT.topic,),
        data=data,
    )


def lifecycle_log(kind: str, bundle_hash: str, exec_hash: str | None = None) -> Log:
    event = {
        "verified": EVENT_BUNDLE_VERIFIED,
        "executed": EVENT_BUNDLE_EXECUTED,
        "unbundled": EVENT_BUNDLE_UNBUNDLED,
    }[kind]
    return Log(
        address=L2_INTEROP_HANDLER_ADDRESS,
        topics=(event.topic, bundle_hash.lower()),
        data="0x",
        transaction_hash=exec_hash,
    )


def messenger_l2_to_l1_log() -> L2ToL1Log:
    return L2ToL1Log(sender=L1_MESSENGER_ADDRESS, key=word(1), value=word(2))


def raw_receipt(receipt: Receipt) -> dict[str, Any]:
    """JSON-RPC shaped receipt, as eth_getTransactionReceipt returns it."""
    return {
        "transactionHash": receipt.transaction_hash,
        "status": hex(receipt.status),
        "blockNumber": hex(receipt.block_number),
        "transactionIndex": hex(receipt.transaction_index),
        "logs": [
            {"address": lg.address, "topics": list(lg.topics), "data": lg.data}
            for lg in receipt.logs
        ],
        "l2ToL1Logs": [
            {"sender": lg.sender, "key": lg.key, "value": lg.value}
            for lg in receipt.l2_to_l1_logs
        ],
    }


# ---------------------------------------------------------------------------
# Client wiring
# ---------------------------------------------------------------------------

PINNED = AddressOverrides(
    bridgehub=BRIDGEHUB,
    l1_asset_router=L1_ASSET_ROUTER,
    l1_nullifier=L1_NULLIFIER,
    l1_native_token_vault=L1_NTV,
)


def make_client(
    *,
    l1: FakeBackend | None = None,
    l2: FakeBackend | None = None,
    base_tokens: dict[int, str] | None = None,
    **config: Any,
) -> FlowClient:
    """FlowClient over fakes with pinned L1 addresses.

    ``base_tokens`` maps chain id → base token and is served from the
    Bridgehub ``baseToken`` read on L1 (default: ETH for every chain).
    """
    l1 = l1 or FakeBackend(chain_id=1)
    l2 = l2 or FakeBackend(chain_id=324)
    tokens = base_tokens or {}
    l1.on_read(
        BRIDGEHUB, BRIDGEHUB_BASE_TOKEN, lambda args: tokens.get(args[0], ETH_ADDRESS)
    )
    config.setdefault("addresses", PINNED)
    return FlowClient(l1, l2, config=FlowConfig(**config))
