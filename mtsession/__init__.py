"""
mtsession: call-dispatch and session layer for an MTProto-style RPC client.

Builds, routes, chunks and queues outgoing method/object calls per datacenter
and resends them from stored state when delivery is in doubt.
"""

from mtsession.config import SessionSettings, get_settings
from mtsession.network import (
    CallCancelledError,
    CallOptions,
    DatacenterDirectory,
    DatacenterSession,
    ResendLimitExceeded,
    RoutingError,
    WriteAck,
)
from mtsession.protocol import ChunkSplitError, MethodRegistry, ServerConfig

__version__ = "0.1.0"
__all__ = [
    "SessionSettings",
    "get_settings",
    "CallCancelledError",
    "CallOptions",
    "DatacenterDirectory",
    "DatacenterSession",
    "ResendLimitExceeded",
    "RoutingError",
    "WriteAck",
    "ChunkSplitError",
    "MethodRegistry",
    "ServerConfig",
]
