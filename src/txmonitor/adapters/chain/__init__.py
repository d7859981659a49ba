from .json_rpc import JsonRpcChainAdapter, JsonRpcBlockFeed

__all__ = ["JsonRpcChainAdapter", "JsonRpcBlockFeed"]
