"""Server-advertised limits and the providers that supply them."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt

LOGGER = logging.getLogger(__name__)


class ServerConfig(BaseModel):
    """Subset of the server config the dispatcher depends on."""

    model_config = ConfigDict(extra="allow")

    message_length_max: PositiveInt = Field(default=4096)
    expires: Optional[int] = None


class ConfigProvider(ABC):
    @abstractmethod
    async def current(self) -> ServerConfig:
        ...


class StaticConfigProvider(ConfigProvider):
    """Always returns the same config."""

    def __init__(self, config: Optional[ServerConfig] = None) -> None:
        self._config = config or ServerConfig()

    async def current(self) -> ServerConfig:
        return self._config


class CachedConfigProvider(ConfigProvider):
    """Fetches the config lazily and reuses it for ``ttl`` seconds.

    Concurrent callers share one in-flight fetch.
    """

    def __init__(self, fetch: Callable[[], Awaitable[ServerConfig]], *, ttl: float = 3600.0) -> None:
        self._fetch = fetch
        self._ttl = ttl
        self._config: Optional[ServerConfig] = None
        self._fetched_at: float = 0.0
        self._lock = asyncio.Lock()

    def invalidate(self) -> None:
        self._config = None

    async def current(self) -> ServerConfig:
        loop = asyncio.get_running_loop()
        async with self._lock:
            if self._config is not None and loop.time() - self._fetched_at < self._ttl:
                return self._config
            LOGGER.debug("Fetching server config")
            self._config = await self._fetch()
            self._fetched_at = loop.time()
            return self._config
