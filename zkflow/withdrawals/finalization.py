"""
Withdrawal finalization service — everything between an L2 withdraw
receipt and L1Nullifier.finalizeDeposit.

Parameter derivation (all from the L2 receipt with L2→L1 logs):

    1. L1MessageSent log, preferring the one emitted by the L1 messenger
    2. message bytes = abi-decode(bytes) of that log's data
    3. messenger log index = position of the messenger's L2→L1 log
    4. proof = zks_getL2ToL1LogProof(txHash, messenger log index)
    5. l2Sender = the L2 asset router

Anything missing along the way means the withdrawal is not provable yet
and raises STATE; callers asking for a phase translate that into PENDING.

Readiness is decided by a dry-run ``eth_call`` of finalizeDeposit, after
a direct ``isWithdrawalFinalized`` read. Reverts are classified through
the revert decoder's readiness table.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from zkflow.abi import (
    EVENT_L1_MESSAGE_SENT,
    L1_NULLIFIER_FINALIZE_DEPOSIT,
    L1_NULLIFIER_IS_WITHDRAWAL_FINALIZED,
)
from zkflow.constants import (
    L1_MESSENGER_ADDRESS,
    TOPIC_L1_MESSAGE_SENT_LEG,
    TOPIC_L1_MESSAGE_SENT_NEW,
)
from zkflow.errors import ErrorType, FlowError, classify_readiness_from_revert
from zkflow.operations import OP_WITHDRAWALS
from zkflow.plans import (
    FinalizeDepositParams,
    FinalizeReadiness,
    ReadinessKind,
    TxRequest,
    WithdrawalKey,
)
from zkflow.routes import addr_eq
from zkflow.rpc.types import Log, Receipt
from zkflow.withdrawals.context import handlers

if TYPE_CHECKING:
    from zkflow.client import FlowClient

logger = logging.getLogger(__name__)

_MESSAGE_SENT_TOPICS = (TOPIC_L1_MESSAGE_SENT_NEW, TOPIC_L1_MESSAGE_SENT_LEG)


# =========================================================================
# Receipt inspection
# =========================================================================


def find_l1_message_sent_log(
    receipt: Receipt, *, prefer: str = L1_MESSENGER_ADDRESS, index: int = 0
) -> Log | None:
    """The L1MessageSent log of *receipt*.

    Among several matches the one emitted by *prefer* wins; otherwise the
    match at *index* (or the first one).
    """
    matches = [
        lg for lg in receipt.logs if lg.topics and lg.topics[0] in _MESSAGE_SENT_TOPICS
    ]
    if not matches:
        return None
    for lg in matches:
        if addr_eq(lg.address, prefer):
            return lg
    return matches[index] if index < len(matches) else matches[0]


def messenger_log_index(
    receipt: Receipt, *, index: int = 0, messenger: str = L1_MESSENGER_ADDRESS
) -> int | None:
    """Position in ``l2_to_l1_logs`` of the *index*-th log sent by *messenger*.

    Falls back to the first messenger log when *index* is out of range;
    None when the receipt carries none.
    """
    hits = [i for i, lg in enumerate(receipt.l2_to_l1_logs) if addr_eq(lg.sender, messenger)]
    if not hits:
        return None
    return hits[index] if index < len(hits) else hits[0]


# =========================================================================
# Parameters
# =========================================================================


def _not_provable(operation: str, message: str, **ctx: object) -> FlowError:
    return handlers.error(ErrorType.STATE, operation, message, ctx=dict(ctx))


async def fetch_finalize_params(client: FlowClient, l2_tx_hash: str) -> FinalizeDepositParams:
    """Build finalizeDeposit arguments for the withdrawal in *l2_tx_hash*.

    Raises:
        FlowError: STATE while the withdrawal is not provable yet (no
            receipt, no message log, proof unavailable); RPC on
            transport failures; INTERNAL when the message can't be decoded.
    """
    receipt = await client.zks.get_receipt_with_l2_to_l1(l2_tx_hash)
    if receipt is None:
        raise _not_provable(
            OP_WITHDRAWALS.fetch_params_receipt, "L2 receipt not found.", l2TxHash=l2_tx_hash
        )

    log = find_l1_message_sent_log(receipt)
    if log is None:
        raise _not_provable(
            OP_WITHDRAWALS.fetch_params_find_log,
            "No L1MessageSent event found in L2 receipt logs.",
            l2TxHash=l2_tx_hash,
        )
    (message,) = await handlers.wrap(
        OP_WITHDRAWALS.fetch_params_decode,
        lambda: EVENT_L1_MESSAGE_SENT.decode_data(log.data),
        message="Failed to decode withdrawal message.",
        ctx={"l2TxHash": l2_tx_hash},
    )

    log_index = messenger_log_index(receipt)
    if log_index is None:
        raise _not_provable(
            OP_WITHDRAWALS.fetch_params_find_log,
            "No L2->L1 messenger logs found in receipt.",
            l2TxHash=l2_tx_hash,
        )

    proof = await client.zks.get_l2_to_l1_log_proof(l2_tx_hash, log_index)
    addresses = await client.ensure_addresses()
    chain_id = await handlers.wrap_as(
        ErrorType.RPC,
        OP_WITHDRAWALS.fetch_params_proof,
        client.l2.chain_id,
        message="Failed to read L2 chain id.",
    )

    params = FinalizeDepositParams(
        chain_id=chain_id,
        l2_batch_number=proof.batch_number,
        l2_message_index=proof.id,
        l2_sender=addresses.l2_asset_router,
        l2_tx_number_in_batch=receipt.transaction_index,
        message=bytes(message),
        merkle_proof=proof.proof,
    )
    logger.debug("finalize params for %s: key=%s", l2_tx_hash, params.key)
    return params


# =========================================================================
# L1 reads and writes
# =========================================================================


async def is_withdrawal_finalized(client: FlowClient, key: WithdrawalKey) -> bool:
    addresses = await client.ensure_addresses()
    done = await handlers.wrap_as(
        ErrorType.RPC,
        OP_WITHDRAWALS.is_finalized,
        lambda: client.l1.read(
            addresses.l1_nullifier,
            L1_NULLIFIER_IS_WITHDRAWAL_FINALIZED,
            (key.chain_id_l2, key.l2_batch_number, key.l2_message_index),
        ),
        message="Failed to read finalization status.",
        ctx={"key": key},
    )
    return bool(done)


def _finalize_tx(nullifier: str, sender: str, params: FinalizeDepositParams) -> TxRequest:
    return {
        "to": nullifier,
        "from": sender,
        "data": L1_NULLIFIER_FINALIZE_DEPOSIT.encode(params.as_abi_tuple()),
        "value": 0,
    }


async def simulate_readiness(
    client: FlowClient, params: FinalizeDepositParams
) -> FinalizeReadiness:
    """Would finalizeDeposit succeed right now?

    Already-finalized is read directly first; otherwise the call is
    dry-run and any revert is classified.
    """
    if await is_withdrawal_finalized(client, params.key):
        return FinalizeReadiness(ReadinessKind.FINALIZED)

    addresses = await client.ensure_addresses()
    sender = await handlers.wrap_as(
        ErrorType.RPC,
        OP_WITHDRAWALS.readiness_simulate,
        client.l1.signer_address,
        message="Failed to resolve L1 signer.",
    )
    try:
        await client.l1.call(_finalize_tx(addresses.l1_nullifier, sender, params))
    except FlowError:
        raise
    except Exception as exc:
        readiness = classify_readiness_from_revert(exc)
        logger.debug("finalize simulation for %s reverted: %s", params.key, readiness)
        return readiness
    return FinalizeReadiness(ReadinessKind.READY)


async def send_finalize(client: FlowClient, params: FinalizeDepositParams) -> Receipt:
    """Send finalizeDeposit on L1 and wait for its receipt.

    Returns the receipt whatever its status.

    Raises:
        FlowError: EXECUTION when the transaction can't be sent or mined.
    """
    addresses = await client.ensure_addresses()
    sender = await handlers.wrap_as(
        ErrorType.RPC,
        OP_WITHDRAWALS.finalize_send,
        client.l1.signer_address,
        message="Failed to resolve L1 signer.",
    )
    tx = _finalize_tx(addresses.l1_nullifier, sender, params)
    return await handlers.wrap_as(
        ErrorType.EXECUTION,
        OP_WITHDRAWALS.finalize_send,
        lambda: client.l1.send_and_wait(tx),
        message="Failed to send finalizeDeposit transaction.",
        ctx={
            "chainId": params.chain_id,
            "l2BatchNumber": params.l2_batch_number,
            "l2MessageIndex": params.l2_message_index,
            "l1Nullifier": addresses.l1_nullifier,
        },
    )
