from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStorePort(ABC):
    """Durable key-value persistence."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, blob: str) -> None:
        ...
