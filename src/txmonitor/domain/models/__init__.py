from .status import TxStatus, TxRebroadcastStatus, DONE_STATUSES, PENDING_STATUSES, TRANSIENT_STATUSES
from .chain import TransactionLike, ReceiptLike, ExternalTx
from .transaction import (
    TxRecord,
    TxPayload,
    WaitingForApproval,
    CancelledByTheUser,
    Propagating,
    WaitingForConfirmation,
    Success,
    Failure,
    Error,
    PAYLOAD_TYPES,
    utcnow,
)
from .predicates import (
    is_done,
    is_done_but_not_successful,
    is_success,
    is_final,
    get_tx_hash,
    confirmations_for,
)

__all__ = [
    "TxStatus",
    "TxRebroadcastStatus",
    "DONE_STATUSES",
    "PENDING_STATUSES",
    "TRANSIENT_STATUSES",
    "TransactionLike",
    "ReceiptLike",
    "ExternalTx",
    "TxRecord",
    "TxPayload",
    "WaitingForApproval",
    "CancelledByTheUser",
    "Propagating",
    "WaitingForConfirmation",
    "Success",
    "Failure",
    "Error",
    "PAYLOAD_TYPES",
    "utcnow",
    "is_done",
    "is_done_but_not_successful",
    "is_success",
    "is_final",
    "get_tx_hash",
    "confirmations_for",
]
