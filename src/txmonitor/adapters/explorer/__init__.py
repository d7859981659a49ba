from .etherscan import EtherscanExplorerAdapter

__all__ = ["EtherscanExplorerAdapter"]
