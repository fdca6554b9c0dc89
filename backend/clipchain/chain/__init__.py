"""Clip chain state model.

Usage:
    from clipchain.chain import ClipChainStore, ClipStatus
"""

from clipchain.chain.store import (
    ChainBusyError,
    ClipChainStore,
    ClipRecord,
    ClipStatus,
    InvalidTransitionError,
    Phase,
)

__all__ = [
    "ChainBusyError",
    "ClipChainStore",
    "ClipRecord",
    "ClipStatus",
    "InvalidTransitionError",
    "Phase",
]
