class TxMonitorError(Exception):
    """Base class for transaction monitoring errors."""


class BroadcastRejected(TxMonitorError):
    """The wallet declined or failed the broadcast before a hash existed."""


class ChainReadError(TxMonitorError):
    """A poll against the chain node failed."""


class ExplorerError(TxMonitorError):
    """The account history query failed."""


class RecordNotFound(TxMonitorError):
    """No tracked transaction carries the requested sequence number."""

    def __init__(self, tx_no: int):
        super().__init__(f"No transaction with tx_no={tx_no}")
        self.tx_no = tx_no


class InvalidTransition(TxMonitorError):
    """Raised when a backwards or otherwise illegal status change is attempted."""


class CodecError(TxMonitorError):
    """Persisted transactions could not be decoded."""
