from .event_bus import EventBus
from .tx_manager import TransactionManager

__all__ = ["EventBus", "TransactionManager"]
