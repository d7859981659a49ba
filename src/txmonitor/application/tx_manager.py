import asyncio
import copy
from typing import Any, Dict, List, Optional, Set

from loguru import logger

from ..domain.errors import CodecError
from ..domain.models.predicates import is_final
from ..domain.models.status import PENDING_STATUSES, TxStatus
from ..domain.models.transaction import TxRecord, WaitingForApproval, utcnow
from ..infrastructure.config.app_config import MonitorSettings
from ..infrastructure.persistence.codec import check_persistable_meta, decode_transactions
from ..ports.chain import ChainReaderPort, SendCallable
from ..ports.explorer import ExplorerPort
from ..ports.store import KeyValueStorePort
from .event_bus import EventBus
from .services.block_clock import BlockClock
from .services.rebroadcast import NonceIndexCache, RebroadcastReconciler
from .services.receipt_poller import ReceiptPoller
from .services.registry import TransactionRegistry
from .services.tx_handle import TransactionHandle
from .services.tx_state_machine import TransactionWatch, TxStateMachine


class TransactionManager:
    """Entry point for callers: submit-and-watch, listing, dismissal, reload."""

    def __init__(
        self,
        chain: ChainReaderPort,
        store: KeyValueStorePort,
        clock: BlockClock,
        explorer: Optional[ExplorerPort] = None,
        settings: Optional[MonitorSettings] = None,
        storage_key: str = "transactions",
        bus: Optional[EventBus] = None,
    ):
        self.settings = settings or MonitorSettings()
        self.clock = clock
        self.store = store
        self.storage_key = storage_key
        self.registry = TransactionRegistry(store, storage_key, bus)
        self.fsm = TxStateMachine()
        self.poller = ReceiptPoller(
            chain,
            interval_seconds=self.settings.poll_interval_seconds,
            ceiling_seconds=self.settings.poll_ceiling_seconds,
        )
        self.reconciler = RebroadcastReconciler(NonceIndexCache(explorer) if explorer else None, clock)
        self._handles: Dict[int, TransactionHandle] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._started = False
        self._start_lock = asyncio.Lock()

    async def start(self) -> List[TransactionHandle]:
        """
        Hydrate persisted records and resume the ones still worth watching.

        Runs once; later calls return an empty list. ``watch_and_send`` calls it
        first so new records are numbered after the persisted ones.
        """
        async with self._start_lock:
            if self._started:
                return []
            self._started = True
            return await self._hydrate()

    async def _hydrate(self) -> List[TransactionHandle]:
        blob = await self.store.get(self.storage_key)
        if not blob:
            return []
        try:
            records = decode_transactions(blob)
        except CodecError as exc:
            logger.error(f"[TxManager] Ignoring unreadable persisted transactions: {exc}")
            return []

        self.registry.restore_counter(records)
        resumed: List[TransactionHandle] = []
        for record in records:
            await self.registry.upsert(record, kind="cachedTx")
            handle = TransactionHandle(record)
            self._handles[record.tx_no] = handle
            watch = self._make_watch(record, handle, kind="cachedTx")
            if record.status in PENDING_STATUSES:
                self._spawn(handle, watch.monitor())
                resumed.append(handle)
            elif record.status is TxStatus.SUCCESS and not is_final(record):
                self._spawn(handle, watch.resume_confirmations())
                resumed.append(handle)
            else:
                await handle.finish()

        logger.info(
            f"[TxManager] Hydrated {len(records)} transactions, resumed {len(resumed)} "
            f"(last tx_no {self.registry.last_tx_no})"
        )
        return resumed

    async def watch_and_send(
        self, account: str, network_id: str, meta: Dict[str, Any], send: SendCallable
    ) -> TransactionHandle:
        check_persistable_meta(meta)
        await self.start()
        now = utcnow()
        record = TxRecord(
            tx_no=self.registry.next_tx_no(),
            account=account,
            network_id=network_id,
            meta=copy.deepcopy(meta),
            start=now,
            last_change=now,
            payload=WaitingForApproval(),
        )
        await self.registry.upsert(record)
        handle = TransactionHandle(record)
        self._handles[record.tx_no] = handle
        watch = self._make_watch(record, handle, kind="newTx")
        self._spawn(handle, watch.send_and_monitor(send))
        return handle

    def list_transactions(self, account: str, network_id: str) -> List[TxRecord]:
        return self.registry.list_for(account, network_id)

    def handle(self, tx_no: int) -> Optional[TransactionHandle]:
        return self._handles.get(tx_no)

    async def dismiss(self, tx_no: int) -> TxRecord:
        record = await self.registry.dismiss(tx_no)
        handle = self._handles.get(tx_no)
        if handle is not None:
            await handle.publish(record)
        return record

    @property
    def active_watches(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every running watch has ended."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop all watches and write a final snapshot."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.registry.flush()
        logger.info(f"[TxManager] Shut down; final snapshot of {len(self.registry.all())} records written")

    def _make_watch(self, record: TxRecord, handle: TransactionHandle, kind: str) -> TransactionWatch:
        async def on_state(state: TxRecord) -> None:
            stored = await self.registry.upsert(state, kind=kind)
            await handle.publish(stored)

        return TransactionWatch(
            record,
            fsm=self.fsm,
            poller=self.poller,
            reconciler=self.reconciler,
            clock=self.clock,
            safe_confirmations=self.settings.safe_confirmations,
            on_state=on_state,
        )

    def _spawn(self, handle: TransactionHandle, coro) -> None:
        async def _run() -> None:
            try:
                await coro
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception(f"[TxManager] Watch for tx #{handle.tx_no} crashed: {exc}")
            finally:
                await handle.finish()

        task = asyncio.create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
