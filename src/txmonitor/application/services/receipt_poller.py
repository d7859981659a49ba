import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional, Tuple

from loguru import logger

from ...domain.errors import ChainReadError
from ...domain.models.chain import ReceiptLike, TransactionLike
from ...domain.models.status import TxRebroadcastStatus
from ...ports.chain import ChainReaderPort

# Given the visible transaction, which hash should be polled for a receipt.
HashResolver = Callable[[TransactionLike], Awaitable[Tuple[str, Optional[TxRebroadcastStatus]]]]


class ObservationKind(Enum):
    NOT_VISIBLE = "not_visible"
    PENDING = "pending"
    RECEIPT = "receipt"


@dataclass(frozen=True)
class Observation:
    kind: ObservationKind
    tx_hash: str
    transaction: Optional[TransactionLike] = None
    receipt: Optional[ReceiptLike] = None
    rebroadcast: Optional[TxRebroadcastStatus] = None


class ReceiptPoller:
    """Polls a transaction and its receipt once per interval, up to a ceiling."""

    def __init__(
        self,
        chain: ChainReaderPort,
        interval_seconds: float = 1.0,
        ceiling_seconds: float = 30 * 60,
    ):
        self.chain = chain
        self.interval_seconds = interval_seconds
        self.ceiling_seconds = ceiling_seconds

    async def observe(self, tx_hash: str, resolve: Optional[HashResolver] = None) -> AsyncIterator[Observation]:
        """
        Yield one observation per poll until a mined receipt is seen.

        Until the transaction is visible only ``get_transaction`` is polled. Once
        visible, ``resolve`` may redirect the receipt poll to a replacement hash.
        When the ceiling elapses the generator ends without a receipt; callers
        treat that as a soft stop, not an error. Poll failures raise
        ``ChainReadError``.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.ceiling_seconds
        transaction: Optional[TransactionLike] = None

        while True:
            if transaction is None:
                transaction = await self._read("eth_getTransactionByHash", self.chain.get_transaction, tx_hash)
                if transaction is None:
                    yield Observation(ObservationKind.NOT_VISIBLE, tx_hash)

            if transaction is not None:
                poll_hash, rebroadcast = tx_hash, None
                if resolve is not None:
                    poll_hash, rebroadcast = await resolve(transaction)
                receipt = await self._read(
                    "eth_getTransactionReceipt", self.chain.get_transaction_receipt, poll_hash
                )
                if receipt is not None and receipt.block_number is not None:
                    yield Observation(
                        ObservationKind.RECEIPT,
                        poll_hash,
                        transaction=transaction,
                        receipt=receipt,
                        rebroadcast=rebroadcast,
                    )
                    return
                yield Observation(ObservationKind.PENDING, poll_hash, transaction=transaction, rebroadcast=rebroadcast)

            if loop.time() + self.interval_seconds > deadline:
                logger.warning(
                    f"[ReceiptPoller] Gave up on {tx_hash[:18]}... after {self.ceiling_seconds:.0f}s without a receipt"
                )
                return
            await asyncio.sleep(self.interval_seconds)

    async def _read(self, what: str, call, tx_hash: str):
        try:
            return await call(tx_hash)
        except ChainReadError:
            raise
        except Exception as exc:
            raise ChainReadError(f"{what}({tx_hash}) failed: {exc}") from exc
