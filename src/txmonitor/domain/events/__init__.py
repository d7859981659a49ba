from .base import Event
from .transaction import TxStateEvent, TxDismissedEvent

__all__ = ["Event", "TxStateEvent", "TxDismissedEvent"]
