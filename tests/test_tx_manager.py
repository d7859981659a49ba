from datetime import datetime, timezone

import pytest

from fakes import FakeChain
from txmonitor.adapters.store.memory_store import InMemoryStore
from txmonitor.application.services.block_clock import BlockClock
from txmonitor.application.tx_manager import TransactionManager
from txmonitor.domain.errors import CodecError, RecordNotFound
from txmonitor.domain.models import (
    Failure,
    ReceiptLike,
    Success,
    TxRecord,
    TxStatus,
    WaitingForConfirmation,
)
from txmonitor.infrastructure.config.app_config import MonitorSettings
from txmonitor.infrastructure.persistence.codec import decode_transactions, encode_transactions

T0 = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
SETTINGS = MonitorSettings(poll_interval_seconds=0.01, poll_ceiling_seconds=2.0, safe_confirmations=3)


def record(tx_no, payload, account="0xacc"):
    return TxRecord(
        tx_no=tx_no,
        account=account,
        network_id="1",
        meta={"tx_no": tx_no},
        start=T0,
        last_change=T0,
        payload=payload,
    )


def persisted_store():
    unsafe_receipt = ReceiptLike(transaction_hash="0x03", status=True, block_number=50)
    failed_receipt = ReceiptLike(transaction_hash="0x07", status=False, block_number=40)
    records = [
        record(3, Success("0x03", 50, unsafe_receipt, confirmations=1, safe_confirmations=3)),
        record(5, WaitingForConfirmation(tx_hash="0x05", broadcasted_at=T0)),
        record(7, Failure("0x07", 40, failed_receipt)),
    ]
    return InMemoryStore({"transactions": encode_transactions(records)})


@pytest.mark.anyio
async def test_start_resumes_pending_and_unsafe_records():
    chain = FakeChain()
    chain.add_transaction("0x05")
    chain.mine("0x05", block_number=60)
    clock = BlockClock()
    await clock.publish(60)
    manager = TransactionManager(chain, persisted_store(), clock, settings=SETTINGS)

    resumed = await manager.start()
    assert sorted(h.tx_no for h in resumed) == [3, 5]

    await manager.handle(5).wait_until(lambda r: r.status is TxStatus.SUCCESS, timeout=2)
    await clock.publish(63)
    await manager.wait_idle()

    states = {r.tx_no: r for r in manager.list_transactions("0xacc", "1")}
    assert states[3].payload.is_safe
    assert states[3].payload.confirmations >= 10
    assert states[5].status is TxStatus.SUCCESS
    assert states[5].payload.confirmations == 3
    assert states[7].status is TxStatus.FAILURE
    assert manager.handle(7).finished


@pytest.mark.anyio
async def test_new_tx_numbers_continue_after_persisted_ones():
    chain = FakeChain()
    clock = BlockClock()
    await clock.publish(60)
    manager = TransactionManager(chain, persisted_store(), clock, settings=SETTINGS)
    await manager.start()

    async def rejected():
        raise RuntimeError("User denied transaction signature")

    handle = await manager.watch_and_send("0xacc", "1", {}, rejected)

    assert handle.tx_no == 8
    await manager.shutdown()


@pytest.mark.anyio
async def test_unreadable_store_starts_empty():
    manager = TransactionManager(FakeChain(), InMemoryStore({"transactions": "{not json"}), BlockClock())

    assert await manager.start() == []
    assert manager.registry.all() == []


@pytest.mark.anyio
async def test_meta_must_be_persistable():
    manager = TransactionManager(FakeChain(), InMemoryStore(), BlockClock(), settings=SETTINGS)

    async def send():
        return "0xabc"

    with pytest.raises(CodecError):
        await manager.watch_and_send("0xacc", "1", {"callback": object()}, send)
    assert manager.registry.all() == []


@pytest.mark.anyio
async def test_dismiss_does_not_stop_the_watch():
    chain = FakeChain()
    chain.add_transaction("0xabc")
    clock = BlockClock()
    await clock.publish(10)
    manager = TransactionManager(chain, InMemoryStore(), clock, settings=SETTINGS)

    async def send():
        return "0xabc"

    handle = await manager.watch_and_send("0xacc", "1", {}, send)
    await handle.wait_until(lambda r: r.status is TxStatus.WAITING_FOR_CONFIRMATION, timeout=2)
    await manager.dismiss(handle.tx_no)
    chain.mine("0xabc", block_number=10)
    final = await handle.wait_done(timeout=2)

    assert final.dismissed
    assert final.status is TxStatus.SUCCESS
    with pytest.raises(RecordNotFound):
        await manager.dismiss(42)
    await manager.shutdown()


@pytest.mark.anyio
async def test_shutdown_cancels_watches_and_flushes():
    chain = FakeChain()
    clock = BlockClock()
    await clock.publish(1)
    store = InMemoryStore()
    manager = TransactionManager(chain, store, clock, settings=SETTINGS)

    async def send():
        return "0xslow"

    handle = await manager.watch_and_send("0xacc", "1", {"note": "pending"}, send)
    await handle.wait_until(lambda r: r.status is TxStatus.PROPAGATING, timeout=2)
    writes = store.writes
    await manager.shutdown()

    assert manager.active_watches == 0
    assert handle.finished
    assert store.writes == writes + 1
    [saved] = decode_transactions(store.data["transactions"])
    assert saved.status is TxStatus.PROPAGATING
    assert saved.meta == {"note": "pending"}


@pytest.mark.anyio
async def test_caller_changes_to_meta_after_submit_are_not_stored():
    chain = FakeChain()
    store = InMemoryStore()
    manager = TransactionManager(chain, store, BlockClock(), settings=SETTINGS)

    async def rejected():
        raise RuntimeError("User denied transaction signature")

    async def send():
        return "0xabc"

    meta = {"note": "ok"}
    first = await manager.watch_and_send("0xacc", "1", meta, send)
    meta["callback"] = object()
    second = await manager.watch_and_send("0xacc", "1", {}, rejected)
    await second.wait_done(timeout=2)

    assert first.state.meta == {"note": "ok"}
    assert second.state.status is TxStatus.CANCELLED_BY_THE_USER
    await manager.shutdown()
    [saved] = decode_transactions(store.data["transactions"])
    assert saved.tx_no == first.tx_no
    assert saved.meta == {"note": "ok"}


@pytest.mark.anyio
async def test_submission_before_start_is_numbered_after_persisted_records():
    clock = BlockClock()
    await clock.publish(60)
    manager = TransactionManager(FakeChain(), persisted_store(), clock, settings=SETTINGS)

    async def send():
        return "0xnew"

    handle = await manager.watch_and_send("0xacc", "1", {"new": True}, send)
    assert await manager.start() == []

    assert handle.tx_no == 8
    tx_nos = sorted(r.tx_no for r in manager.list_transactions("0xacc", "1"))
    assert tx_nos == [3, 5, 7, 8]
    assert manager.handle(8) is handle
    await manager.shutdown()


@pytest.mark.anyio
async def test_start_runs_only_once():
    chain = FakeChain()
    clock = BlockClock()
    await clock.publish(60)
    manager = TransactionManager(chain, persisted_store(), clock, settings=SETTINGS)

    first = await manager.start()
    second = await manager.start()

    assert sorted(h.tx_no for h in first) == [3, 5]
    assert second == []
    assert manager.handle(5) in first
    await manager.shutdown()
