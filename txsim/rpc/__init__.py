"""RPC access for fetching transactions to replay."""

from txsim.rpc.fallback_client import FallbackRPCClient, RPCConfig

__all__ = ["FallbackRPCClient", "RPCConfig"]
