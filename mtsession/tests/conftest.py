from typing import Any, Optional

import pytest

from mtsession.config import SessionSettings
from mtsession.network.directory import DatacenterDirectory
from mtsession.network.session import DatacenterSession
from mtsession.network.transport.dummy import DummyConnection
from mtsession.protocol.methods import MethodRegistry
from mtsession.protocol.server_config import ServerConfig, StaticConfigProvider

SCHEMA = {
    "methods": [
        {"method": "ping", "type": "Pong", "params": [{"name": "ping_id", "type": "long"}]},
        {"method": "req_pq_multi", "type": "ResPQ", "params": [{"name": "nonce", "type": "int128"}]},
        {"method": "help.getConfig", "type": "Config", "params": []},
        {"method": "messages.sendMessage", "type": "Updates", "params": [{"name": "message", "type": "string"}]},
        {"method": "messages.sendEncrypted", "type": "messages.SentEncryptedMessage", "params": []},
        {"method": "messages.editInlineBotMessage", "type": "Bool", "params": []},
        {"method": "upload.saveFilePart", "type": "Bool", "params": []},
        {"method": "users.getUsers", "type": "Vector<User>", "params": []},
        {"method": "auth.exportAuthorization", "type": "auth.ExportedAuthorization", "params": []},
    ]
}


@pytest.fixture
def registry() -> MethodRegistry:
    return MethodRegistry.from_schema(SCHEMA)


@pytest.fixture
def directory() -> DatacenterDirectory:
    return DatacenterDirectory()


@pytest.fixture
def make_session(registry):
    def _make(
        datacenter: int = 2,
        *,
        directory: Optional[DatacenterDirectory] = None,
        limit: int = 4096,
        settings: Optional[SessionSettings] = None,
        **kwargs: Any,
    ) -> DatacenterSession:
        name = f"dc{datacenter}{'_media' if kwargs.get('is_media') else ''}"
        kwargs.setdefault("connection", DummyConnection(name))
        return DatacenterSession(
            datacenter=datacenter,
            methods=registry,
            config=StaticConfigProvider(ServerConfig(message_length_max=limit)),
            settings=settings or SessionSettings(),
            directory=directory,
            **kwargs,
        )

    return _make
