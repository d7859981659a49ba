import asyncio

import pytest

from fakes import FakeExplorer
from txmonitor.application.services.block_clock import BlockClock
from txmonitor.application.services.rebroadcast import (
    NonceIndexCache,
    RebroadcastReconciler,
    classify_rebroadcast,
)
from txmonitor.domain.models import ExternalTx, TransactionLike, TxRebroadcastStatus


INDEX = {
    1: ExternalTx(nonce=1, hash="0xmine", call_data="0xdata"),
    2: ExternalTx(nonce=2, hash="0xfaster", call_data="0xdata"),
    3: ExternalTx(nonce=3, hash="0xzero", call_data="0x"),
}


@pytest.mark.parametrize(
    "nonce,expected",
    [
        (1, ("0xmine", TxRebroadcastStatus.UNCHANGED)),
        (2, ("0xfaster", TxRebroadcastStatus.SPEEDUP)),
        (3, ("0xzero", TxRebroadcastStatus.CANCEL)),
        (4, ("0xmine", TxRebroadcastStatus.LOST)),
    ],
)
def test_classify_rebroadcast(nonce, expected):
    assert classify_rebroadcast(nonce, "0xmine", "0xdata", INDEX) == expected


@pytest.mark.anyio
async def test_concurrent_lookups_share_one_query():
    explorer = FakeExplorer([ExternalTx(nonce=1, hash="0xa", call_data="0x")])
    explorer.gate = asyncio.Event()
    cache = NonceIndexCache(explorer)

    first = asyncio.create_task(cache.get("0xAcc", 10))
    second = asyncio.create_task(cache.get("0xacc", 10))
    await asyncio.sleep(0)
    explorer.gate.set()
    a, b = await asyncio.gather(first, second)

    assert a == b == {1: ExternalTx(nonce=1, hash="0xa", call_data="0x")}
    assert len(explorer.calls) == 1
    assert cache.refreshes == 1


@pytest.mark.anyio
async def test_index_refreshes_only_for_newer_blocks():
    explorer = FakeExplorer()
    cache = NonceIndexCache(explorer)

    await cache.get("0xacc", 10)
    await cache.get("0xacc", 10)
    await cache.get("0xacc", 9)
    await cache.get("0xacc", 11)

    # history is always queried from the first block seen for the account
    assert explorer.calls == [("0xacc", 10), ("0xacc", 10)]


@pytest.mark.anyio
async def test_explorer_failure_yields_empty_index():
    cache = NonceIndexCache(FakeExplorer(fail=True))

    assert await cache.get("0xacc", 5) == {}


@pytest.mark.anyio
async def test_later_entries_win_for_duplicate_nonces():
    explorer = FakeExplorer(
        [
            ExternalTx(nonce=1, hash="0xnew", call_data="0x"),
            ExternalTx(nonce=1, hash="0xold", call_data="0x"),
        ]
    )
    cache = NonceIndexCache(explorer)

    index = await cache.get("0xacc", 1)

    assert index[1].hash == "0xold"


@pytest.mark.anyio
async def test_reconciler_without_explorer_keeps_local_hash():
    clock = BlockClock()
    reconciler = RebroadcastReconciler(None, clock)
    tx = TransactionLike(hash="0xabc", nonce=1, input="0x")

    assert await reconciler.resolve("0xacc", tx, "0xabc") == ("0xabc", None)


@pytest.mark.anyio
async def test_reconciler_uses_current_block():
    explorer = FakeExplorer([ExternalTx(nonce=1, hash="0xdef", call_data="0x")])
    clock = BlockClock()
    await clock.publish(42)
    reconciler = RebroadcastReconciler(NonceIndexCache(explorer), clock)
    tx = TransactionLike(hash="0xabc", nonce=1, input="0x")

    result = await reconciler.resolve("0xacc", tx, "0xabc")

    assert result == ("0xdef", TxRebroadcastStatus.SPEEDUP)
    assert explorer.calls == [("0xacc", 42)]
