"""Transaction broadcast."""

from tss_signer.broadcast.base import Broadcaster
from tss_signer.broadcast.jsonrpc import JsonRpcBroadcaster

__all__ = ["Broadcaster", "JsonRpcBroadcaster"]
