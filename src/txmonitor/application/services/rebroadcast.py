import asyncio
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from loguru import logger

from ...domain.models.chain import ExternalTx, TransactionLike
from ...domain.models.status import TxRebroadcastStatus
from ...ports.explorer import ExplorerPort
from .block_clock import BlockClock

NonceIndex = Mapping[int, ExternalTx]


def classify_rebroadcast(
    nonce: int,
    local_hash: str,
    local_call_data: str,
    index: NonceIndex,
) -> Tuple[str, TxRebroadcastStatus]:
    """Return the hash that will actually land for ``nonce`` and how it relates to ours."""
    external = index.get(nonce)
    if external is None:
        return local_hash, TxRebroadcastStatus.LOST
    if external.hash == local_hash:
        return local_hash, TxRebroadcastStatus.UNCHANGED
    if external.call_data == local_call_data:
        return external.hash, TxRebroadcastStatus.SPEEDUP
    return external.hash, TxRebroadcastStatus.CANCEL


@dataclass
class _IndexEntry:
    block_number: int
    index: Dict[int, ExternalTx]


class NonceIndexCache:
    """
    Per-account ``nonce -> ExternalTx`` index shared by all watches of an account.

    An entry is reused until a newer block is requested. Only one explorer query
    per account is in flight; concurrent callers await the same task. Explorer
    failures are logged and produce an empty index for that block.
    """

    def __init__(self, explorer: ExplorerPort):
        self.explorer = explorer
        self._entries: Dict[str, _IndexEntry] = {}
        self._first_block: Dict[str, int] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self.refreshes = 0

    async def get(self, account: str, block_number: int) -> Dict[int, ExternalTx]:
        key = account.lower()
        entry = self._entries.get(key)
        if entry is not None and entry.block_number >= block_number:
            return entry.index

        task = self._inflight.get(key)
        if task is None:
            since = self._first_block.setdefault(key, block_number)
            task = asyncio.create_task(self._refresh(key, account, since, block_number))
            self._inflight[key] = task
        # shield: a cancelled watcher must not cancel the refresh others wait on
        return await asyncio.shield(task)

    async def _refresh(self, key: str, account: str, since_block: int, block_number: int) -> Dict[int, ExternalTx]:
        self.refreshes += 1
        try:
            transactions = await self.explorer.get_account_transactions(account, since_block)
        except Exception as exc:
            logger.warning(f"[NonceIndex] History query failed for {account[:10]}...: {exc}")
            transactions = []
        finally:
            self._inflight.pop(key, None)

        index: Dict[int, ExternalTx] = {}
        for tx in transactions:
            index[tx.nonce] = tx
        self._entries[key] = _IndexEntry(block_number=block_number, index=index)
        return index


class RebroadcastReconciler:
    """Resolves the hash to poll for a watched transaction at the current block."""

    def __init__(self, cache: Optional[NonceIndexCache], clock: BlockClock):
        self.cache = cache
        self.clock = clock

    async def resolve(
        self, account: str, transaction: TransactionLike, local_hash: str
    ) -> Tuple[str, Optional[TxRebroadcastStatus]]:
        if self.cache is None:
            return local_hash, None
        block_number = self.clock.current
        if block_number is None:
            block_number = await self.clock.wait_for_first()
        index = await self.cache.get(account, block_number)
        return classify_rebroadcast(transaction.nonce, local_hash, transaction.input, index)
