"""Interop bundles (L2 → L2)."""

from zkflow.interop.context import InteropParams
from zkflow.interop.resource import InteropResource

__all__ = ["InteropParams", "InteropResource"]
