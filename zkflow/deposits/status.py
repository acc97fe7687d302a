"""
Deposit lifecycle derivation.

    no L1 receipt                   → L1_PENDING
    L1 receipt, no L2 hash in logs  → L1_INCLUDED
    L2 hash, no L2 receipt          → L2_PENDING
    L2 receipt status 1 / 0         → L2_EXECUTED / L2_FAILED

The L2 hash comes from Bridgehub's NewPriorityRequest event in the L1
receipt; chains that emit the canonical-transaction markers instead are
read through their topics.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from zkflow.abi import EVENT_NEW_PRIORITY_REQUEST
from zkflow.backend import ExecutionBackend
from zkflow.constants import TOPIC_CANONICAL_ASSIGNED, TOPIC_CANONICAL_SUCCESS
from zkflow.deposits.context import handlers
from zkflow.operations import OP_DEPOSITS
from zkflow.plans import DepositPhase, DepositStatus
from zkflow.rpc.types import Log, coerce_hex

logger = logging.getLogger(__name__)

_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
_PRIORITY_TOPIC = EVENT_NEW_PRIORITY_REQUEST.topic


def _is_hash(value: str | None) -> bool:
    return value is not None and bool(_HASH_RE.match(value))


def extract_l2_tx_hash(logs: Iterable[Log]) -> str | None:
    """L2 transaction hash of the priority request in an L1 deposit receipt."""
    logs = list(logs)
    for log in logs:
        if not log.topics or log.topics[0] != _PRIORITY_TOPIC:
            continue
        try:
            tx_hash = coerce_hex(EVENT_NEW_PRIORITY_REQUEST.decode_data(log.data)[0])
        except Exception as exc:
            logger.debug("undecodable NewPriorityRequest log skipped: %s", exc)
            continue
        if _is_hash(tx_hash):
            return tx_hash

    for log in logs:
        topic0 = log.topics[0] if log.topics else None
        if topic0 == TOPIC_CANONICAL_ASSIGNED and len(log.topics) > 2:
            if _is_hash(log.topics[2]):
                return log.topics[2]
        if topic0 == TOPIC_CANONICAL_SUCCESS and len(log.topics) > 3:
            if _is_hash(log.topics[3]):
                return log.topics[3]
    return None


async def derive_status(
    l1: ExecutionBackend, l2: ExecutionBackend, l1_tx_hash: str | None
) -> DepositStatus:
    """Current phase of the deposit sent in *l1_tx_hash*."""
    if not l1_tx_hash:
        return DepositStatus(DepositPhase.UNKNOWN)

    l1_receipt = await handlers.wrap_receipt(
        OP_DEPOSITS.status,
        lambda: l1.get_receipt(l1_tx_hash),
        message="Failed to fetch L1 transaction receipt.",
        ctx={"l1TxHash": l1_tx_hash},
    )
    if l1_receipt is None:
        return DepositStatus(DepositPhase.L1_PENDING, l1_tx_hash)

    l2_tx_hash = await handlers.wrap(
        OP_DEPOSITS.l2_hash,
        lambda: extract_l2_tx_hash(l1_receipt.logs),
        message="Failed to derive L2 transaction hash from L1 logs.",
        ctx={"l1TxHash": l1_tx_hash},
    )
    if l2_tx_hash is None:
        return DepositStatus(DepositPhase.L1_INCLUDED, l1_tx_hash)

    l2_receipt = await handlers.wrap_receipt(
        OP_DEPOSITS.status,
        lambda: l2.get_receipt(l2_tx_hash),
        message="Failed to fetch L2 transaction receipt.",
        ctx={"l2TxHash": l2_tx_hash},
    )
    if l2_receipt is None:
        return DepositStatus(DepositPhase.L2_PENDING, l1_tx_hash, l2_tx_hash)

    phase = DepositPhase.L2_EXECUTED if l2_receipt.status == 1 else DepositPhase.L2_FAILED
    return DepositStatus(phase, l1_tx_hash, l2_tx_hash)
