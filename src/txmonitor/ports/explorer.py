from abc import ABC, abstractmethod
from typing import List

from ..domain.models.chain import ExternalTx


class ExplorerPort(ABC):
    """Explorer-style account history."""

    @abstractmethod
    async def get_account_transactions(self, account: str, since_block: int) -> List[ExternalTx]:
        ...
