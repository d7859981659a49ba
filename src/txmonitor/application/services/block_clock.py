import asyncio
from typing import Optional

from loguru import logger

from ...ports.chain import BlockFeedPort


class BlockClock:
    """Latest observed block number, shared by every watch.

    Block numbers only move forward: stale or repeated values from the feed are
    ignored. Waiters are woken on every accepted block.
    """

    def __init__(self):
        self._current: Optional[int] = None
        self._cond = asyncio.Condition()

    @property
    def current(self) -> Optional[int]:
        return self._current

    async def publish(self, block_number: int) -> bool:
        async with self._cond:
            if self._current is not None and block_number <= self._current:
                logger.debug(f"[BlockClock] Ignoring block {block_number} (current {self._current})")
                return False
            self._current = block_number
            self._cond.notify_all()
            return True

    async def wait_for_first(self) -> int:
        async with self._cond:
            await self._cond.wait_for(lambda: self._current is not None)
            return self._current

    async def wait_for_block_after(self, block_number: int) -> int:
        async with self._cond:
            await self._cond.wait_for(lambda: self._current is not None and self._current > block_number)
            return self._current

    async def run(self, feed: BlockFeedPort) -> None:
        """Pump a block feed into the clock until the feed ends or the task is cancelled."""
        async for block_number in feed.stream():
            await self.publish(block_number)
