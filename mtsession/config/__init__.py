"""Configuration primitives for the session layer."""

from .settings import SessionSettings, configure_logging, get_settings

__all__ = ["SessionSettings", "configure_logging", "get_settings"]
