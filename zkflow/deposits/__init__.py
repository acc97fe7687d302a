"""Deposits (L1 → L2)."""

from zkflow.deposits.context import DepositParams
from zkflow.deposits.resource import DepositsResource
from zkflow.deposits.status import extract_l2_tx_hash

__all__ = ["DepositParams", "DepositsResource", "extract_l2_tx_hash"]
