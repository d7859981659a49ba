from .block_clock import BlockClock
from .receipt_poller import ReceiptPoller, Observation, ObservationKind
from .rebroadcast import classify_rebroadcast, NonceIndexCache, RebroadcastReconciler
from .registry import TransactionRegistry
from .tx_handle import TransactionHandle
from .tx_state_machine import TxStateMachine, TransactionWatch, USER_DENIED_MESSAGE

__all__ = [
    "BlockClock",
    "ReceiptPoller",
    "Observation",
    "ObservationKind",
    "classify_rebroadcast",
    "NonceIndexCache",
    "RebroadcastReconciler",
    "TransactionRegistry",
    "TransactionHandle",
    "TxStateMachine",
    "TransactionWatch",
    "USER_DENIED_MESSAGE",
]
