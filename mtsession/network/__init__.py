"""Call dispatch, recall and session ownership per datacenter."""

from mtsession.network.directory import DatacenterDirectory, RoutingError
from mtsession.network.dispatcher import CallCancelledError, CallDispatcher, join_responses
from mtsession.network.message import CallOptions, DeferredParameters, MessageKind, OutgoingMessage, WriteAck
from mtsession.network.message_ids import MessageIdGenerator
from mtsession.network.recall import RecallEngine
from mtsession.network.session import DatacenterSession, ResendLimitExceeded
from mtsession.network.signals import ResumeSignal
from mtsession.network.store import OutgoingMessageStore
from mtsession.network.transport import BaseConnection, DummyConnection

__all__ = [
    "DatacenterDirectory",
    "RoutingError",
    "CallCancelledError",
    "CallDispatcher",
    "join_responses",
    "CallOptions",
    "DeferredParameters",
    "MessageKind",
    "OutgoingMessage",
    "WriteAck",
    "MessageIdGenerator",
    "RecallEngine",
    "DatacenterSession",
    "ResendLimitExceeded",
    "ResumeSignal",
    "OutgoingMessageStore",
    "BaseConnection",
    "DummyConnection",
]
