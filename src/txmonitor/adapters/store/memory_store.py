from typing import Dict, Optional

from ...ports.store import KeyValueStorePort


class InMemoryStore(KeyValueStorePort):
    """Process-local store for tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})
        self.writes = 0

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, blob: str) -> None:
        self.data[key] = blob
        self.writes += 1
