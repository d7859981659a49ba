from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Optional, Union

from .chain import ReceiptLike
from .status import TxRebroadcastStatus, TxStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WaitingForApproval:
    status: ClassVar[TxStatus] = TxStatus.WAITING_FOR_APPROVAL


@dataclass(frozen=True)
class CancelledByTheUser:
    error: str
    status: ClassVar[TxStatus] = TxStatus.CANCELLED_BY_THE_USER


@dataclass(frozen=True)
class Propagating:
    tx_hash: str
    broadcasted_at: datetime
    status: ClassVar[TxStatus] = TxStatus.PROPAGATING


@dataclass(frozen=True)
class WaitingForConfirmation:
    tx_hash: str
    broadcasted_at: datetime
    status: ClassVar[TxStatus] = TxStatus.WAITING_FOR_CONFIRMATION


@dataclass(frozen=True)
class Success:
    tx_hash: str
    block_number: int
    receipt: ReceiptLike
    confirmations: int
    safe_confirmations: int
    rebroadcast: Optional[TxRebroadcastStatus] = None
    status: ClassVar[TxStatus] = TxStatus.SUCCESS

    @property
    def is_safe(self) -> bool:
        return self.confirmations >= self.safe_confirmations


@dataclass(frozen=True)
class Failure:
    tx_hash: str
    block_number: int
    receipt: ReceiptLike
    rebroadcast: Optional[TxRebroadcastStatus] = None
    status: ClassVar[TxStatus] = TxStatus.FAILURE


@dataclass(frozen=True)
class Error:
    tx_hash: str
    error: str
    status: ClassVar[TxStatus] = TxStatus.ERROR


TxPayload = Union[
    WaitingForApproval,
    CancelledByTheUser,
    Propagating,
    WaitingForConfirmation,
    Success,
    Failure,
    Error,
]

PAYLOAD_TYPES: Dict[TxStatus, type] = {
    TxStatus.WAITING_FOR_APPROVAL: WaitingForApproval,
    TxStatus.CANCELLED_BY_THE_USER: CancelledByTheUser,
    TxStatus.PROPAGATING: Propagating,
    TxStatus.WAITING_FOR_CONFIRMATION: WaitingForConfirmation,
    TxStatus.SUCCESS: Success,
    TxStatus.FAILURE: Failure,
    TxStatus.ERROR: Error,
}


@dataclass(frozen=True)
class TxRecord:
    """One tracked broadcast attempt: common envelope plus status payload."""

    tx_no: int
    account: str
    network_id: str
    meta: Dict[str, Any]
    start: datetime
    last_change: datetime
    payload: TxPayload = field(default_factory=WaitingForApproval)
    end: Optional[datetime] = None
    dismissed: bool = False

    @property
    def status(self) -> TxStatus:
        return self.payload.status

    def advance(self, payload: TxPayload, at: Optional[datetime] = None, terminal: bool = False) -> "TxRecord":
        """Copy with a new payload; ``terminal`` stamps the end time once."""
        now = at or utcnow()
        end = self.end
        if terminal and end is None:
            end = now
        return replace(self, payload=payload, last_change=now, end=end)

    def mark_dismissed(self) -> "TxRecord":
        return replace(self, dismissed=True)
