import asyncio
import random
import time
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from ...domain.errors import ExplorerError
from ...domain.models.chain import ExternalTx
from ...ports.explorer import ExplorerPort

NO_TRANSACTIONS = "No transactions found"


class EtherscanExplorerAdapter(ExplorerPort):
    """
    Account history through an Etherscan-compatible ``txlist`` endpoint.

    Requests are spaced by ``min_interval_seconds`` and back off on HTTP 429 or
    the explorer's own rate-limit notice.
    """

    def __init__(
        self,
        api_url: str = "https://api.etherscan.io/api",
        api_key: str = "",
        session: Optional[httpx.AsyncClient] = None,
        min_interval_seconds: float = 0.25,
        backoff_base_seconds: float = 1.0,
        max_attempts: int = 3,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self._client = session or httpx.AsyncClient(timeout=10)
        self._min_interval = max(0.0, float(min_interval_seconds))
        self._backoff_base = max(0.0, float(backoff_base_seconds))
        self._max_attempts = max(1, int(max_attempts))
        self._rate_lock = asyncio.Lock()
        self._last_request_ts = 0.0

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_account_transactions(self, account: str, since_block: int) -> List[ExternalTx]:
        params = {
            "module": "account",
            "action": "txlist",
            "address": account,
            "startblock": since_block,
            "sort": "desc",
        }
        if self.api_key:
            params["apikey"] = self.api_key
        data = await self._request(params)

        if str(data.get("status")) != "1":
            if data.get("message") == NO_TRANSACTIONS or data.get("result") == []:
                return []
            raise ExplorerError(f"txlist for {account} failed: {data.get('message')} {data.get('result')}")

        return [
            ExternalTx(nonce=int(row["nonce"]), hash=row["hash"], call_data=row.get("input", "0x"))
            for row in data.get("result") or []
        ]

    async def _request(self, params: Dict[str, Any]) -> Dict[str, Any]:
        for attempt in range(self._max_attempts):
            async with self._rate_lock:
                delta = time.monotonic() - self._last_request_ts
                if delta < self._min_interval:
                    await asyncio.sleep(self._min_interval - delta)
                try:
                    resp = await self._client.get(self.api_url, params=params)
                except httpx.HTTPError as exc:
                    raise ExplorerError(f"Explorer request failed: {exc}") from exc
                finally:
                    self._last_request_ts = time.monotonic()

            if resp.status_code == 429 or "rate limit" in resp.text.lower():
                retry_after = resp.headers.get("Retry-After")
                delay = float(retry_after) if retry_after else self._backoff_base * (2 ** attempt)
                delay += random.uniform(0, 0.5) if self._backoff_base else 0.0
                logger.warning(f"[Etherscan] Rate limit hit; backing off {delay:.1f}s")
                await asyncio.sleep(delay)
                continue
            try:
                resp.raise_for_status()
                return resp.json()
            except (httpx.HTTPError, ValueError) as exc:
                raise ExplorerError(f"Explorer returned an unusable response: {exc}") from exc
        raise ExplorerError(f"Explorer still rate limited after {self._max_attempts} attempts")
