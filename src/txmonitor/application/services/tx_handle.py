import asyncio
from typing import AsyncIterator, Callable, List, Optional

from ...domain.models.predicates import is_done, is_final
from ...domain.models.transaction import TxRecord


class TransactionHandle:
    """Live view of one watched transaction, updated by its watch task."""

    def __init__(self, record: TxRecord):
        self._history: List[TxRecord] = [record]
        self._finished = False
        self._cond = asyncio.Condition()

    @property
    def tx_no(self) -> int:
        return self._history[0].tx_no

    @property
    def state(self) -> TxRecord:
        return self._history[-1]

    @property
    def history(self) -> List[TxRecord]:
        return list(self._history)

    @property
    def finished(self) -> bool:
        return self._finished

    async def publish(self, record: TxRecord) -> None:
        async with self._cond:
            self._history.append(record)
            self._cond.notify_all()

    async def finish(self) -> None:
        async with self._cond:
            self._finished = True
            self._cond.notify_all()

    async def updates(self) -> AsyncIterator[TxRecord]:
        """Every state in order, starting with the first; ends when the watch ends."""
        seen = 0
        while True:
            async with self._cond:
                await self._cond.wait_for(lambda: len(self._history) > seen or self._finished)
                pending = self._history[seen:]
                done = self._finished
            for record in pending:
                yield record
            seen += len(pending)
            if done and seen == len(self._history):
                return

    async def wait_until(self, predicate: Callable[[TxRecord], bool], timeout: Optional[float] = None) -> TxRecord:
        async def _wait() -> TxRecord:
            async with self._cond:
                await self._cond.wait_for(lambda: predicate(self.state) or self._finished)
                return self.state

        return await asyncio.wait_for(_wait(), timeout)

    async def wait_done(self, timeout: Optional[float] = None) -> TxRecord:
        return await self.wait_until(is_done, timeout)

    async def wait_final(self, timeout: Optional[float] = None) -> TxRecord:
        return await self.wait_until(is_final, timeout)
