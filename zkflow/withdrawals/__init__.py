"""Withdrawals (L2 → L1)."""

from zkflow.withdrawals.context import WithdrawParams
from zkflow.withdrawals.finalization import find_l1_message_sent_log, messenger_log_index
from zkflow.withdrawals.resource import WithdrawalsResource

__all__ = [
    "WithdrawParams",
    "WithdrawalsResource",
    "find_l1_message_sent_log",
    "messenger_log_index",
]
