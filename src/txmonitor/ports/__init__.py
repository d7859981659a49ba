from .chain import ChainReaderPort, BlockFeedPort, SendCallable
from .explorer import ExplorerPort
from .store import KeyValueStorePort

__all__ = [
    "ChainReaderPort",
    "BlockFeedPort",
    "SendCallable",
    "ExplorerPort",
    "KeyValueStorePort",
]
