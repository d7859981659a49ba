from abc import ABC, abstractmethod
from typing import AsyncIterator, Awaitable, Callable, Optional

from ..domain.models.chain import ReceiptLike, TransactionLike

# Broadcast capability: resolves to the transaction hash, raises when rejected.
SendCallable = Callable[[], Awaitable[str]]


class ChainReaderPort(ABC):
    """Read access to a chain node."""

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> Optional[TransactionLike]:
        ...

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[ReceiptLike]:
        ...


class BlockFeedPort(ABC):
    """New-block signal."""

    @abstractmethod
    async def stream(self) -> AsyncIterator[int]:
        """Strictly increasing block numbers, the current one first."""
        ...

    async def close(self) -> None:
        return None
