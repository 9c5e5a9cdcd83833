"""Connection implementations for the session layer."""

from .base import BaseConnection
from .dummy import DummyConnection

__all__ = ["BaseConnection", "DummyConnection"]
