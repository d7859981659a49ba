from typing import Optional

from .status import DONE_STATUSES, TxStatus
from .transaction import Error, Failure, Success, TxRecord, WaitingForConfirmation


def is_done(record: TxRecord) -> bool:
    """No further status transition is expected (Success counts before it is safe)."""
    return record.status in DONE_STATUSES


def is_done_but_not_successful(record: TxRecord) -> bool:
    return record.status in (TxStatus.CANCELLED_BY_THE_USER, TxStatus.ERROR, TxStatus.FAILURE)


def is_success(record: TxRecord) -> bool:
    return record.status is TxStatus.SUCCESS


def is_final(record: TxRecord) -> bool:
    """Done, and for Success also buried under the safe number of confirmations."""
    if isinstance(record.payload, Success):
        return record.payload.is_safe
    return is_done(record)


def get_tx_hash(record: TxRecord) -> Optional[str]:
    if isinstance(record.payload, (Success, Failure, Error, WaitingForConfirmation)):
        return record.payload.tx_hash
    return None


def confirmations_for(current_block: int, receipt_block: int) -> int:
    return max(0, current_block - receipt_block)
