import asyncio
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Type

from loguru import logger

from ..domain.events.base import Event


class EventBus:
    """Pub/sub for transaction changes with per-key ordering."""

    def __init__(self):
        self._handlers: Dict[Type, List[Callable]] = defaultdict(list)
        self._ordered_queues: Dict[str, asyncio.Queue] = {}
        self._ordered_tasks: Dict[str, asyncio.Task] = {}

    def subscribe(
        self,
        event_type: Type[Event],
        handler: Callable[[Event], Awaitable[None]],
    ):
        """Subscribe handler to event type."""
        self._handlers[event_type].append(handler)

    async def publish(self, event: Event, sequence_key: str = "default"):
        """Queue an event; events sharing a sequence_key are dispatched in publish order."""
        if sequence_key not in self._ordered_queues:
            queue = asyncio.Queue()
            self._ordered_queues[sequence_key] = queue
            self._ordered_tasks[sequence_key] = asyncio.create_task(self._run_ordered(sequence_key))
        await self._ordered_queues[sequence_key].put(event)

    async def drain(self):
        """Wait until every queued event has been dispatched."""
        await asyncio.gather(*(q.join() for q in list(self._ordered_queues.values())))

    async def stop(self):
        """Stop all ordered workers."""
        for task in self._ordered_tasks.values():
            task.cancel()
        await asyncio.gather(*self._ordered_tasks.values(), return_exceptions=True)
        self._ordered_tasks.clear()
        self._ordered_queues.clear()

    async def _run_ordered(self, key: str):
        """Dedicated loop per sequence key to keep ordering stable."""
        queue = self._ordered_queues[key]
        while True:
            event = await queue.get()
            try:
                await self._dispatch(event)
            finally:
                queue.task_done()

    async def _dispatch(self, event: Event):
        event_type = type(event)
        for handler in self._handlers.get(event_type, []):
            try:
                await handler(event)
            except Exception as exc:
                logger.error(f"[EventBus] Handler error for {event_type.__name__}: {exc}")
