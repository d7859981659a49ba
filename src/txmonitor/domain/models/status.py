from enum import Enum


class TxStatus(Enum):
    WAITING_FOR_APPROVAL = "WaitingForApproval"
    CANCELLED_BY_THE_USER = "CancelledByTheUser"
    PROPAGATING = "Propagating"
    WAITING_FOR_CONFIRMATION = "WaitingForConfirmation"
    SUCCESS = "Success"
    ERROR = "Error"
    FAILURE = "Failure"

    @property
    def rank(self) -> int:
        """Position along the lifecycle; terminal states share the top rank."""
        return _RANK[self]


class TxRebroadcastStatus(Enum):
    SPEEDUP = "speedup"
    CANCEL = "cancel"
    LOST = "lost"
    UNCHANGED = "unchanged"


_RANK = {
    TxStatus.WAITING_FOR_APPROVAL: 0,
    TxStatus.PROPAGATING: 1,
    TxStatus.WAITING_FOR_CONFIRMATION: 2,
    TxStatus.SUCCESS: 3,
    TxStatus.FAILURE: 3,
    TxStatus.ERROR: 3,
    TxStatus.CANCELLED_BY_THE_USER: 3,
}

DONE_STATUSES = frozenset(
    {TxStatus.CANCELLED_BY_THE_USER, TxStatus.ERROR, TxStatus.FAILURE, TxStatus.SUCCESS}
)
PENDING_STATUSES = frozenset({TxStatus.PROPAGATING, TxStatus.WAITING_FOR_CONFIRMATION})
# Meaningless after a reload: no hash exists yet, or the attempt was abandoned.
TRANSIENT_STATUSES = frozenset({TxStatus.WAITING_FOR_APPROVAL, TxStatus.CANCELLED_BY_THE_USER})
