import asyncio
import uuid
from datetime import datetime, timezone

import pytest

from txmonitor.application.event_bus import EventBus
from txmonitor.domain.events import TxDismissedEvent


def dismissed(tx_no):
    return TxDismissedEvent(id=str(uuid.uuid4()), timestamp=datetime.now(timezone.utc), source="test", tx_no=tx_no)


@pytest.mark.anyio
async def test_same_key_events_keep_order():
    bus = EventBus()
    seen = []

    async def slow_handler(event):
        if event.tx_no == 1:
            await asyncio.sleep(0.01)
        seen.append(event.tx_no)

    bus.subscribe(TxDismissedEvent, slow_handler)
    for tx_no in (1, 2, 3):
        await bus.publish(dismissed(tx_no), sequence_key="tx:1")
    await bus.drain()
    await bus.stop()

    assert seen == [1, 2, 3]


@pytest.mark.anyio
async def test_handler_errors_do_not_stop_dispatch():
    bus = EventBus()
    seen = []

    async def broken(event):
        raise RuntimeError("boom")

    async def recorder(event):
        seen.append(event.tx_no)

    bus.subscribe(TxDismissedEvent, broken)
    bus.subscribe(TxDismissedEvent, recorder)
    await bus.publish(dismissed(1))
    await bus.publish(dismissed(2))
    await bus.drain()
    await bus.stop()

    assert seen == [1, 2]


def test_state_event_type_hints_resolve():
    from typing import get_type_hints

    from txmonitor.domain.events import TxStateEvent
    from txmonitor.domain.models import TxRecord

    assert get_type_hints(TxStateEvent)["record"] is TxRecord
