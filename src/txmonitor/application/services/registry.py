import asyncio
import uuid
from typing import Dict, Iterable, List, Optional

from loguru import logger

from ...domain.errors import CodecError, RecordNotFound
from ...domain.events.transaction import TxDismissedEvent, TxStateEvent
from ...domain.models.transaction import TxRecord, utcnow
from ...infrastructure.persistence.codec import encode_transactions
from ...ports.store import KeyValueStorePort
from ..event_bus import EventBus


class TransactionRegistry:
    """
    Ordered collection of every transaction tracked this session.

    All mutations go through one lock and each one writes a snapshot of the
    persistable records to the store. The registry also owns the sequence
    counter handing out ``tx_no`` values.
    """

    def __init__(self, store: KeyValueStorePort, key: str = "transactions", bus: Optional[EventBus] = None):
        self.store = store
        self.key = key
        self.bus = bus
        self._records: Dict[int, TxRecord] = {}
        self._lock = asyncio.Lock()
        self._counter = 0

    @property
    def last_tx_no(self) -> int:
        return self._counter

    def next_tx_no(self) -> int:
        self._counter += 1
        return self._counter

    def restore_counter(self, records: Iterable[TxRecord]) -> int:
        """Continue numbering after the highest persisted ``tx_no``."""
        self._counter = max([self._counter] + [r.tx_no for r in records])
        return self._counter

    async def upsert(self, record: TxRecord, kind: str = "newTx") -> TxRecord:
        async with self._lock:
            existing = self._records.get(record.tx_no)
            if existing is not None and existing.dismissed and not record.dismissed:
                record = record.mark_dismissed()
            self._records[record.tx_no] = record
            await self._snapshot()
            if self.bus is not None:
                await self.bus.publish(
                    TxStateEvent(id=str(uuid.uuid4()), timestamp=utcnow(), source="registry", record=record, kind=kind),
                    sequence_key=f"tx:{record.tx_no}",
                )
            return record

    async def dismiss(self, tx_no: int) -> TxRecord:
        async with self._lock:
            existing = self._records.get(tx_no)
            if existing is None:
                raise RecordNotFound(tx_no)
            record = existing.mark_dismissed()
            self._records[tx_no] = record
            await self._snapshot()
            if self.bus is not None:
                await self.bus.publish(
                    TxDismissedEvent(id=str(uuid.uuid4()), timestamp=utcnow(), source="registry", tx_no=tx_no),
                    sequence_key=f"tx:{tx_no}",
                )
            return record

    def get(self, tx_no: int) -> Optional[TxRecord]:
        return self._records.get(tx_no)

    def list_for(self, account: str, network_id: str) -> List[TxRecord]:
        return [r for r in self._records.values() if r.account == account and r.network_id == network_id]

    def all(self) -> List[TxRecord]:
        return list(self._records.values())

    async def flush(self) -> None:
        async with self._lock:
            await self._snapshot()

    async def _snapshot(self) -> None:
        if not self._records:
            return
        try:
            blob = encode_transactions(self._records.values())
        except CodecError:
            blob = encode_transactions(self._encodable_records())
        try:
            await self.store.set(self.key, blob)
        except Exception as exc:
            logger.error(f"[Registry] Snapshot write failed: {exc}")

    def _encodable_records(self) -> List[TxRecord]:
        """Records that encode on their own; the rest are logged and left out of the snapshot."""
        kept = []
        for record in self._records.values():
            try:
                encode_transactions([record])
            except CodecError as exc:
                logger.error(f"[Registry] tx #{record.tx_no} left out of snapshot: {exc}")
            else:
                kept.append(record)
        return kept
