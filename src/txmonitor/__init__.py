"""Blockchain transaction lifecycle monitor."""

from .application.services.block_clock import BlockClock
from .application.services.tx_handle import TransactionHandle
from .application.tx_manager import TransactionManager
from .domain.errors import (
    TxMonitorError,
    BroadcastRejected,
    ChainReadError,
    ExplorerError,
    RecordNotFound,
    InvalidTransition,
    CodecError,
)
from .domain.models import TxRecord, TxStatus, TxRebroadcastStatus

__version__ = "0.1.0"

__all__ = [
    "BlockClock",
    "TransactionHandle",
    "TransactionManager",
    "TxMonitorError",
    "BroadcastRejected",
    "ChainReadError",
    "ExplorerError",
    "RecordNotFound",
    "InvalidTransition",
    "CodecError",
    "TxRecord",
    "TxStatus",
    "TxRebroadcastStatus",
]
