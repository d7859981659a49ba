import pytest

from fakes import FakeChain
from txmonitor.application.services.receipt_poller import ObservationKind, ReceiptPoller
from txmonitor.domain.errors import ChainReadError
from txmonitor.domain.models import TxRebroadcastStatus


async def collect(poller, tx_hash, resolve=None, limit=50):
    seen = []
    async for obs in poller.observe(tx_hash, resolve=resolve):
        seen.append(obs)
        if len(seen) >= limit:
            break
    return seen


@pytest.mark.anyio
async def test_receipt_ends_observation():
    chain = FakeChain()
    chain.add_transaction("0xabc")
    chain.mine("0xabc", block_number=100)
    poller = ReceiptPoller(chain, interval_seconds=0.01, ceiling_seconds=1)

    seen = await collect(poller, "0xabc")

    assert [o.kind for o in seen] == [ObservationKind.RECEIPT]
    assert seen[0].receipt.block_number == 100


@pytest.mark.anyio
async def test_receipt_without_block_is_still_pending():
    chain = FakeChain()
    chain.add_transaction("0xabc")
    chain.mine("0xabc", block_number=None)
    poller = ReceiptPoller(chain, interval_seconds=0.01, ceiling_seconds=1)

    seen = await collect(poller, "0xabc", limit=3)

    assert [o.kind for o in seen] == [ObservationKind.PENDING] * 3


@pytest.mark.anyio
async def test_transaction_lookup_stops_once_visible():
    chain = FakeChain()
    chain.add_transaction("0xabc")
    poller = ReceiptPoller(chain, interval_seconds=0.01, ceiling_seconds=1)

    await collect(poller, "0xabc", limit=4)

    assert chain.tx_calls == 1
    assert chain.receipt_calls == 4


@pytest.mark.anyio
async def test_ceiling_ends_without_receipt():
    chain = FakeChain()
    poller = ReceiptPoller(chain, interval_seconds=0.01, ceiling_seconds=0.05)

    seen = await collect(poller, "0xmissing")

    assert seen
    assert all(o.kind is ObservationKind.NOT_VISIBLE for o in seen)
    assert chain.receipt_calls == 0


@pytest.mark.anyio
async def test_resolver_redirects_receipt_poll():
    chain = FakeChain()
    chain.add_transaction("0xabc")
    chain.mine("0xdef", block_number=9)
    poller = ReceiptPoller(chain, interval_seconds=0.01, ceiling_seconds=1)

    async def resolve(tx):
        return "0xdef", TxRebroadcastStatus.SPEEDUP

    seen = await collect(poller, "0xabc", resolve=resolve)

    assert seen[-1].kind is ObservationKind.RECEIPT
    assert seen[-1].tx_hash == "0xdef"
    assert seen[-1].rebroadcast is TxRebroadcastStatus.SPEEDUP


@pytest.mark.anyio
async def test_read_failures_raise_chain_read_error():
    chain = FakeChain()
    chain.fail_with = TimeoutError("slow node")
    poller = ReceiptPoller(chain, interval_seconds=0.01, ceiling_seconds=1)

    with pytest.raises(ChainReadError, match="slow node"):
        await collect(poller, "0xabc")
