from dataclasses import dataclass

from ..models.transaction import TxRecord
from .base import Event


@dataclass
class TxStateEvent(Event):
    record: TxRecord
    kind: str  # "newTx" | "cachedTx"


@dataclass
class TxDismissedEvent(Event):
    tx_no: int
