"""
Interop finalization service — from a source ``sendBundle`` receipt to
``InteropHandler.executeBundle`` on the destination chain.

Protocol, all stages sharing one deadline:

    1. source receipt   zks receipt (with L2→L1 logs) of the source tx;
                        polled until mined
    2. bundle info      InteropBundleSent from the interop center gives
                        bundle hash, source and destination chain ids;
                        the L1MessageSent logs before it give the message
                        payload and its ordinal among messenger logs
    3. proof            wait for the source block to be finalized, then
                        zks_getL2ToL1LogProof(tx, messenger log index)
    4. root             poll InteropRootStorage.interopRoots(srcChain,
                        batch) on the destination until non-zero; a
                        different root is a protocol violation (STATE)
    5. execute          reject EXECUTED/UNBUNDLED bundles up front, then
                        executeBundle(payload without tag, proof)

Destination lifecycle is read from InteropHandler logs filtered by the
bundle hash (topic1) and classified locally by topic0:

    BundleUnbundled → UNBUNDLED   BundleExecuted → EXECUTED
    BundleVerified  → VERIFIED    none           → SENT

When several phases have logs, ``FlowConfig.interop_status_precedence``
decides; an empty precedence lets the last matching log win.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from zkflow.abi import (
    EVENT_BUNDLE_EXECUTED,
    EVENT_BUNDLE_UNBUNDLED,
    EVENT_BUNDLE_VERIFIED,
    EVENT_INTEROP_BUNDLE_SENT,
    EVENT_L1_MESSAGE_SENT,
    INTEROP_HANDLER_EXECUTE_BUNDLE,
    INTEROP_ROOT_STORAGE_ROOTS,
    hex_to_bytes,
)
from zkflow.backend import ExecutionBackend
from zkflow.constants import (
    BUNDLE_IDENTIFIER,
    L1_MESSENGER_ADDRESS,
    L2_INTEROP_CENTER_ADDRESS,
    TOPIC_L1_MESSAGE_SENT_LEG,
    TOPIC_L1_MESSAGE_SENT_NEW,
    ZERO_HASH,
)
from zkflow.errors import ErrorType, FlowError
from zkflow.errors.revert import extract_revert_data
from zkflow.interop.context import handlers
from zkflow.operations import OP_INTEROP, OP_ZKS
from zkflow.plans import (
    FinalizationInfo,
    InteropExpectedRoot,
    InteropFinalizeResult,
    InteropMessage,
    InteropMessageProof,
    InteropPhase,
    InteropStatus,
)
from zkflow.polling import Clock, Sleep, poll_until
from zkflow.routes import addr_eq
from zkflow.rpc.types import Log, ProofNormalized, Receipt, coerce_hex
from zkflow.withdrawals.finalization import messenger_log_index

if TYPE_CHECKING:
    from zkflow.client import FlowClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MESSAGE_SENT_TOPICS = (TOPIC_L1_MESSAGE_SENT_NEW, TOPIC_L1_MESSAGE_SENT_LEG)
_LIFECYCLE_TOPICS = {
    EVENT_BUNDLE_UNBUNDLED.topic: InteropPhase.UNBUNDLED,
    EVENT_BUNDLE_EXECUTED.topic: InteropPhase.EXECUTED,
    EVENT_BUNDLE_VERIFIED.topic: InteropPhase.VERIFIED,
}
_TERMINAL = (InteropPhase.EXECUTED, InteropPhase.UNBUNDLED)


@dataclass(frozen=True)
class BundleReceiptInfo:
    """What the source receipt says about one bundle."""

    bundle_hash: str
    dst_chain_id: int
    source_chain_id: int
    l1_message_data: str
    l1_message_index: int
    l2_to_l1_log_index: int
    tx_number_in_batch: int
    receipt: Receipt


# =========================================================================
# Receipt parsing
# =========================================================================


def _parse_error(message: str, **ctx: object) -> FlowError:
    return handlers.error(ErrorType.STATE, OP_INTEROP.svc_parse_sent_log, message, ctx=dict(ctx))


def _is_l1_message_sent(log: Log) -> bool:
    return (
        addr_eq(log.address, L1_MESSENGER_ADDRESS)
        and bool(log.topics)
        and log.topics[0] in _MESSAGE_SENT_TOPICS
    )


def _decode_bundle_sent(log: Log) -> tuple[str, int, int]:
    """(bundle hash, source chain id, destination chain id) of an InteropBundleSent log."""
    _msg_hash, bundle_hash, bundle = EVENT_INTEROP_BUNDLE_SENT.decode_data(log.data)
    return coerce_hex(bundle_hash), int(bundle[1]), int(bundle[2])


def find_bundle_sent(receipt: Receipt, *, interop_center: str) -> tuple[str, int]:
    """(bundle hash, destination chain id) of the first InteropBundleSent in *receipt*.

    Raises:
        FlowError: STATE when the receipt carries no such event.
    """
    topic = EVENT_INTEROP_BUNDLE_SENT.topic
    for log in receipt.logs:
        if addr_eq(log.address, interop_center) and log.topics and log.topics[0] == topic:
            bundle_hash, _src, dst = _decode_bundle_sent(log)
            return bundle_hash, dst
    raise _parse_error(
        "Failed to locate InteropBundleSent event in source receipt.",
        l2SrcTxHash=receipt.transaction_hash,
        interopCenter=interop_center,
    )


def parse_bundle_receipt_info(
    receipt: Receipt, *, interop_center: str, bundle_hash: str | None = None
) -> BundleReceiptInfo:
    """Locate the bundle in *receipt* together with its outbound L1 message.

    The message paired with a bundle is the last L1MessageSent log seen
    before its InteropBundleSent; its ordinal among messenger logs selects
    the L2→L1 log the proof is fetched for.

    Args:
        receipt: Source receipt including ``l2_to_l1_logs``.
        interop_center: Interop center address on the source chain.
        bundle_hash: Pick this bundle when the tx sent several.

    Raises:
        FlowError: STATE when the event, its message, or the messenger
            log index cannot be found or decoded.
    """
    tx_hash = receipt.transaction_hash
    wanted = bundle_hash.lower() if bundle_hash else None
    topic = EVENT_INTEROP_BUNDLE_SENT.topic

    message_index = -1
    message_data: str | None = None
    found: tuple[str, int, int] | None = None
    for log in receipt.logs:
        if _is_l1_message_sent(log):
            message_index += 1
            try:
                (payload,) = EVENT_L1_MESSAGE_SENT.decode_data(log.data)
            except Exception as exc:
                raise handlers.error(
                    ErrorType.STATE,
                    OP_INTEROP.svc_parse_sent_log,
                    "Failed to decode L1MessageSent log data for interop bundle.",
                    ctx={"l2SrcTxHash": tx_hash, "messageIndex": message_index},
                    cause=exc,
                ) from exc
            message_data = "0x" + bytes(payload).hex()
            continue
        if not (addr_eq(log.address, interop_center) and log.topics and log.topics[0] == topic):
            continue
        decoded = _decode_bundle_sent(log)
        if wanted is not None and decoded[0] != wanted:
            continue
        found = decoded
        break

    if found is None:
        raise _parse_error(
            "Failed to locate InteropBundleSent event in source receipt.",
            l2SrcTxHash=tx_hash,
            interopCenter=interop_center,
            bundleHash=bundle_hash,
        )
    if message_data is None:
        raise _parse_error(
            "Failed to locate L1MessageSent log data for interop bundle.",
            l2SrcTxHash=tx_hash,
            bundleHash=found[0],
        )

    log_index = messenger_log_index(receipt, index=message_index)
    if log_index is None:
        raise _parse_error(
            "Failed to derive L2->L1 messenger log index for interop bundle.",
            l2SrcTxHash=tx_hash,
            bundleHash=found[0],
            messageIndex=message_index,
        )

    bundle, source_chain_id, dst_chain_id = found
    return BundleReceiptInfo(
        bundle_hash=bundle,
        dst_chain_id=dst_chain_id,
        source_chain_id=source_chain_id,
        l1_message_data=message_data,
        l1_message_index=message_index,
        l2_to_l1_log_index=log_index,
        tx_number_in_batch=receipt.transaction_index,
        receipt=receipt,
    )


def validate_bundle_payload(message_data: str) -> str:
    """Strip the 1-byte bundle tag from an L1 message payload.

    Raises:
        FlowError: STATE when the payload is too short or the tag is not
            the bundle identifier.
    """
    data = message_data.lower()
    if len(data) <= 4:
        raise handlers.error(
            ErrorType.STATE,
            OP_INTEROP.svc_parse_sent_log,
            "L1MessageSent data is too short to contain bundle payload.",
            ctx={"length": max(0, (len(data) - 2) // 2)},
        )
    prefix = data[:4]
    if prefix != BUNDLE_IDENTIFIER:
        raise handlers.error(
            ErrorType.STATE,
            OP_INTEROP.svc_parse_sent_log,
            "Unexpected bundle prefix in L1MessageSent data.",
            ctx={"prefix": prefix, "expected": BUNDLE_IDENTIFIER},
        )
    return "0x" + data[4:]


def build_finalization_info(
    l2_src_tx_hash: str, info: BundleReceiptInfo, proof: ProofNormalized
) -> FinalizationInfo:
    """Assemble executeBundle inputs from parsed receipt data and a proof.

    Raises:
        FlowError: STATE when the proof carries no root or the message
            payload is malformed.
    """
    if not proof.root:
        raise handlers.error(
            ErrorType.STATE,
            OP_INTEROP.wait,
            "L2->L1 log proof missing expected root.",
            ctx={"l2SrcTxHash": l2_src_tx_hash, "batchNumber": proof.batch_number},
        )
    encoded = validate_bundle_payload(info.l1_message_data)
    return FinalizationInfo(
        l2_src_tx_hash=l2_src_tx_hash,
        bundle_hash=info.bundle_hash,
        dst_chain_id=info.dst_chain_id,
        expected_root=InteropExpectedRoot(
            root_chain_id=info.source_chain_id,
            batch_number=proof.batch_number,
            expected_root=proof.root,
        ),
        proof=InteropMessageProof(
            chain_id=info.source_chain_id,
            l1_batch_number=proof.batch_number,
            l2_message_index=proof.id,
            message=InteropMessage(
                tx_number_in_batch=info.tx_number_in_batch,
                sender=L2_INTEROP_CENTER_ADDRESS,
                data=info.l1_message_data,
            ),
            proof=proof.proof,
        ),
        encoded_data=encoded,
    )


def is_proof_not_ready(err: FlowError) -> bool:
    """True for proof fetch failures that only mean "try again later"."""
    envelope = err.envelope
    if envelope.operation != OP_ZKS.get_l2_to_l1_log_proof:
        return False
    if envelope.type is ErrorType.STATE and "proof not yet available" in envelope.message.lower():
        return True
    cause = str((envelope.cause or {}).get("message", "")).lower()
    return "l1 batch" in cause and "not" in cause and "executed" in cause


# =========================================================================
# Destination lifecycle
# =========================================================================


def classify_lifecycle(
    logs: list[Log], precedence: tuple[str, ...]
) -> tuple[InteropPhase, str | None]:
    """Phase and executing tx hash from destination lifecycle logs.

    Args:
        logs: InteropHandler logs for one bundle, in block order.
        precedence: Phase names in priority order; empty means the last
            lifecycle log decides.
    """
    tagged = [
        (_LIFECYCLE_TOPICS[lg.topics[0]], lg)
        for lg in logs
        if lg.topics and lg.topics[0] in _LIFECYCLE_TOPICS
    ]
    if not tagged:
        return InteropPhase.SENT, None

    if not precedence:
        phase, log = tagged[-1]
    else:
        chosen = None
        for name in precedence:
            matches = [pair for pair in tagged if pair[0] == name]
            if matches:
                chosen = matches[-1]
                break
        if chosen is None:
            return InteropPhase.SENT, None
        phase, log = chosen

    exec_hash = log.transaction_hash if phase in _TERMINAL else None
    return phase, exec_hash


async def bundle_lifecycle(
    client: FlowClient, dst: ExecutionBackend, bundle_hash: str, dst_chain_id: int
) -> tuple[InteropPhase, str | None]:
    """Query the destination InteropHandler for *bundle_hash*'s lifecycle logs."""
    addresses = await client.ensure_addresses()
    logs = await handlers.wrap_as(
        ErrorType.RPC,
        OP_INTEROP.svc_dst_logs,
        lambda: dst.get_logs(
            address=addresses.interop_handler, topics=[None, bundle_hash.lower()]
        ),
        message="Failed to query destination bundle lifecycle logs.",
        ctx={"dstChainId": dst_chain_id, "bundleHash": bundle_hash},
    )
    return classify_lifecycle(list(logs), client.config.interop_status_precedence)


async def derive_status(
    client: FlowClient,
    l2_src_tx_hash: str | None,
    *,
    bundle_hash: str | None = None,
    dst_chain_id: int | None = None,
) -> InteropStatus:
    """Current phase of a bundle.

    The bundle hash and destination are read from the source receipt when
    the caller doesn't know them. A source tx that isn't mined yet is SENT.
    """
    if not (bundle_hash and dst_chain_id is not None):
        if not l2_src_tx_hash:
            return InteropStatus(
                InteropPhase.UNKNOWN, bundle_hash=bundle_hash, dst_chain_id=dst_chain_id
            )
        receipt = await handlers.wrap_receipt(
            OP_INTEROP.svc_source_receipt,
            lambda: client.l2.get_receipt(l2_src_tx_hash),
            message="Failed to fetch source L2 receipt for interop tx.",
            ctx={"l2SrcTxHash": l2_src_tx_hash},
        )
        if receipt is None:
            return InteropStatus(InteropPhase.SENT, l2_src_tx_hash, bundle_hash, dst_chain_id)
        addresses = await client.ensure_addresses()
        bundle_hash, dst_chain_id = find_bundle_sent(
            receipt, interop_center=addresses.interop_center
        )

    dst = await client.backend_for(dst_chain_id)
    phase, exec_hash = await bundle_lifecycle(client, dst, bundle_hash, dst_chain_id)
    return InteropStatus(
        phase=phase,
        l2_src_tx_hash=l2_src_tx_hash,
        bundle_hash=bundle_hash,
        dst_chain_id=dst_chain_id,
        dst_exec_tx_hash=exec_hash,
    )


# =========================================================================
# Waiting
# =========================================================================


class _Deadline:
    """Shared deadline for the stages of one finalization wait."""

    def __init__(self, timeout_ms: int, poll_ms: int, sleep: Sleep, clock: Clock) -> None:
        self._clock = clock
        self._sleep = sleep
        self._poll_ms = poll_ms
        self._at = clock() + timeout_ms / 1000.0

    async def until(
        self, check: Callable[[], Awaitable[T | None]], message: str, ctx: dict[str, object]
    ) -> T:
        """Run *check* every poll interval until it returns a value.

        Raises:
            FlowError: TIMEOUT once the shared deadline has passed.
        """
        remaining_ms = max(0, int((self._at - self._clock()) * 1000))
        value = await poll_until(
            check,
            poll_ms=self._poll_ms,
            timeout_ms=remaining_ms,
            sleep=self._sleep,
            clock=self._clock,
            label=message,
        )
        if value is None:
            raise handlers.error(ErrorType.TIMEOUT, OP_INTEROP.svc_wait_timeout, message, ctx=ctx)
        return value


async def _source_receipt(client: FlowClient, tx_hash: str) -> Receipt | None:
    return await handlers.wrap_as(
        ErrorType.RPC,
        OP_INTEROP.svc_source_receipt,
        lambda: client.zks.get_receipt_with_l2_to_l1(tx_hash),
        message="Failed to fetch source L2 receipt (with L2->L1 logs) for interop tx.",
        ctx={"l2SrcTxHash": tx_hash},
    )


def _is_revert(exc: BaseException) -> bool:
    """A storage read the destination contract rejected, not a transport fault."""
    if extract_revert_data(exc) is not None:
        return True
    return "revert" in str(exc).lower()


async def _interop_root(
    dst: ExecutionBackend, storage: str, expected: InteropExpectedRoot, dst_chain_id: int
) -> str | None:
    try:
        root = await dst.read(
            storage,
            INTEROP_ROOT_STORAGE_ROOTS,
            (expected.root_chain_id, expected.batch_number),
        )
    except Exception as exc:
        if not _is_revert(exc):
            raise handlers.error(
                ErrorType.RPC,
                OP_INTEROP.svc_get_root,
                "Failed to read interop root on destination chain.",
                ctx={
                    "dstChainId": dst_chain_id,
                    "rootChainId": expected.root_chain_id,
                    "batchNumber": expected.batch_number,
                },
                cause=exc,
            ) from exc
        logger.debug("interop root read on chain %s reverted, retrying: %s", dst_chain_id, exc)
        return None
    root_hex = coerce_hex(root)
    return None if root_hex == ZERO_HASH else root_hex


async def wait_for_finalization(
    client: FlowClient,
    l2_src_tx_hash: str,
    *,
    bundle_hash: str | None = None,
    poll_ms: int,
    timeout_ms: int,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
) -> FinalizationInfo:
    """Wait until the bundle sent by *l2_src_tx_hash* is executable on its destination.

    Raises:
        FlowError: TIMEOUT when any stage outlives the deadline; STATE
            when the receipt doesn't describe a bundle or the destination
            root differs from the proven one; RPC on transport failures.
    """
    deadline = _Deadline(timeout_ms, poll_ms, sleep, clock)
    addresses = await client.ensure_addresses()

    receipt = await deadline.until(
        lambda: _source_receipt(client, l2_src_tx_hash),
        "Timed out waiting for source receipt to be available.",
        {"l2SrcTxHash": l2_src_tx_hash},
    )
    info = parse_bundle_receipt_info(
        receipt, interop_center=addresses.interop_center, bundle_hash=bundle_hash
    )
    logger.debug(
        "bundle %s: message #%d at L2->L1 log %d", info.bundle_hash,
        info.l1_message_index, info.l2_to_l1_log_index,
    )

    async def finalized_block() -> int | None:
        number = await handlers.wrap_as(
            ErrorType.RPC,
            OP_INTEROP.svc_wait_poll,
            lambda: client.l2.get_block_number("finalized"),
            message="Failed to read finalized source block.",
        )
        return number if number >= receipt.block_number else None

    await deadline.until(
        finalized_block,
        "Timed out waiting for block to be finalized.",
        {"l2SrcTxHash": l2_src_tx_hash, "blockNumber": receipt.block_number},
    )

    async def proof() -> ProofNormalized | None:
        try:
            return await client.zks.get_l2_to_l1_log_proof(
                l2_src_tx_hash, info.l2_to_l1_log_index
            )
        except FlowError as err:
            if is_proof_not_ready(err):
                return None
            raise

    proven = await deadline.until(
        proof,
        "Timed out waiting for L2->L1 log proof.",
        {"l2SrcTxHash": l2_src_tx_hash, "logIndex": info.l2_to_l1_log_index},
    )
    result = build_finalization_info(l2_src_tx_hash, info, proven)

    dst = await client.backend_for(info.dst_chain_id)
    expected = result.expected_root
    got = await deadline.until(
        lambda: _interop_root(dst, addresses.interop_root_storage, expected, info.dst_chain_id),
        "Timed out waiting for interop root to become available.",
        {"dstChainId": info.dst_chain_id, "expectedRoot": expected.expected_root},
    )
    if got.lower() != expected.expected_root.lower():
        raise handlers.error(
            ErrorType.STATE,
            OP_INTEROP.wait,
            "Interop root mismatch on destination chain.",
            ctx={
                "expected": expected.expected_root,
                "got": got,
                "dstChainId": info.dst_chain_id,
            },
        )
    return result


# =========================================================================
# Execution
# =========================================================================


async def execute_bundle(client: FlowClient, info: FinalizationInfo) -> InteropFinalizeResult:
    """Send executeBundle on the destination chain and wait for it.

    Raises:
        FlowError: STATE when the bundle was already executed or
            unbundled; EXECUTION when the send fails or the tx reverts.
    """
    dst = await client.backend_for(info.dst_chain_id)
    phase, _ = await bundle_lifecycle(client, dst, info.bundle_hash, info.dst_chain_id)
    if phase is InteropPhase.EXECUTED:
        raise handlers.error(
            ErrorType.STATE,
            OP_INTEROP.finalize,
            "Interop bundle has already been executed.",
            ctx={"bundleHash": info.bundle_hash},
        )
    if phase is InteropPhase.UNBUNDLED:
        raise handlers.error(
            ErrorType.STATE,
            OP_INTEROP.finalize,
            "Interop bundle has been unbundled and cannot be executed as a whole.",
            ctx={"bundleHash": info.bundle_hash},
        )

    addresses = await client.ensure_addresses()
    sender = await handlers.wrap_as(
        ErrorType.EXECUTION, OP_INTEROP.exec_send_step, dst.signer_address,
        message="Failed to resolve destination signer.",
    )
    tx = {
        "to": addresses.interop_handler,
        "from": sender,
        "data": INTEROP_HANDLER_EXECUTE_BUNDLE.encode(
            hex_to_bytes(info.encoded_data), info.proof.as_abi_tuple()
        ),
        "value": 0,
    }
    receipt = await handlers.wrap_as(
        ErrorType.EXECUTION,
        OP_INTEROP.exec_send_step,
        lambda: dst.send_and_wait(tx),
        message="Failed to send executeBundle transaction on destination chain.",
        ctx={"bundleHash": info.bundle_hash, "dstChainId": info.dst_chain_id},
    )
    if receipt.status != 1:
        raise handlers.error(
            ErrorType.EXECUTION,
            OP_INTEROP.exec_wait_step,
            "Interop bundle execution reverted on destination.",
            ctx={"txHash": receipt.transaction_hash, "bundleHash": info.bundle_hash},
        )
    logger.debug("bundle %s executed in %s", info.bundle_hash, receipt.transaction_hash)
    return InteropFinalizeResult(
        bundle_hash=info.bundle_hash, dst_exec_tx_hash=receipt.transaction_hash
    )
