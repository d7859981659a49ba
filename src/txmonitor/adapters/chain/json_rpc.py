import asyncio
import itertools
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from loguru import logger

from ...domain.errors import ChainReadError
from ...domain.models.chain import ReceiptLike, TransactionLike
from ...ports.chain import BlockFeedPort, ChainReaderPort


def _quantity(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    return int(value, 16)


class JsonRpcChainAdapter(ChainReaderPort):
    """
    Chain reads over an Ethereum-style JSON-RPC endpoint.

    - eth_getTransactionByHash -> TransactionLike (None while unknown)
    - eth_getTransactionReceipt -> ReceiptLike (None while unmined)
    - eth_blockNumber -> int
    """

    def __init__(self, rpc_url: str, timeout: float = 10.0, session: Optional[httpx.AsyncClient] = None):
        self.rpc_url = rpc_url
        self._client = session or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_transaction(self, tx_hash: str) -> Optional[TransactionLike]:
        raw = await self._call("eth_getTransactionByHash", [tx_hash])
        if raw is None:
            return None
        return TransactionLike(
            hash=raw["hash"],
            nonce=_quantity(raw["nonce"]),
            input=raw.get("input", "0x"),
            block_hash=raw.get("blockHash"),
            block_number=_quantity(raw.get("blockNumber")),
        )

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[ReceiptLike]:
        raw = await self._call("eth_getTransactionReceipt", [tx_hash])
        if raw is None:
            return None
        return ReceiptLike(
            transaction_hash=raw["transactionHash"],
            status=raw.get("status") == "0x1",
            block_number=_quantity(raw.get("blockNumber")),
            block_hash=raw.get("blockHash"),
            gas_used=_quantity(raw.get("gasUsed")),
            raw=raw,
        )

    async def get_block_number(self) -> int:
        return _quantity(await self._call("eth_blockNumber", []))

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #
    async def _call(self, method: str, params: List[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = await self._client.post(self.rpc_url, json=body)
            resp.raise_for_status()
            data: Dict[str, Any] = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ChainReadError(f"{method} failed: {exc}") from exc

        if data.get("error"):
            err = data["error"]
            message = err.get("message") if isinstance(err, dict) else err
            raise ChainReadError(f"{method} returned an error: {message}")
        return data.get("result")


class JsonRpcBlockFeed(BlockFeedPort):
    """Polls eth_blockNumber and yields each new head once."""

    def __init__(self, adapter: JsonRpcChainAdapter, interval_seconds: float = 4.0):
        self.adapter = adapter
        self.interval_seconds = interval_seconds
        self._closed = False

    async def stream(self) -> AsyncIterator[int]:
        last: Optional[int] = None
        while not self._closed:
            try:
                block_number = await self.adapter.get_block_number()
            except ChainReadError as exc:
                logger.warning(f"[BlockFeed] Head query failed: {exc}")
            else:
                if last is None or block_number > last:
                    last = block_number
                    yield block_number
            await asyncio.sleep(self.interval_seconds)

    async def close(self) -> None:
        self._closed = True
