import asyncio
import json

import pytest
from pydantic import ValidationError

from mtsession.config import SessionSettings, get_settings
from mtsession.protocol.methods import (
    MethodRegistry,
    UnknownMethodError,
    content_related,
    is_secret_chat_method,
    is_user_related,
    may_send_unencrypted,
)
from mtsession.protocol.server_config import CachedConfigProvider, ServerConfig


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("MTSESSION_CONFIG_FILE", "MTSESSION_RESEND_MAX_ATTEMPTS", "MTSESSION_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


def test_yaml_file_seeds_settings(isolated_env, monkeypatch):
    config_file = isolated_env / "session.yaml"
    config_file.write_text("resend_timeout_seconds: 2.5\nresend_max_attempts: 3\nlog_level: debug\n")
    monkeypatch.setenv("MTSESSION_CONFIG_FILE", str(config_file))
    monkeypatch.setenv("MTSESSION_RESEND_MAX_ATTEMPTS", "9")

    settings = SessionSettings()

    assert settings.resend_timeout_seconds == 2.5
    assert settings.resend_max_attempts == 3
    assert settings.log_level == "DEBUG"
    assert settings.config_path == config_file


def test_default_location_is_picked_up(isolated_env):
    (isolated_env / "config").mkdir()
    (isolated_env / "config" / "session.yml").write_text("media_suffix: _cdn\n")

    assert SessionSettings().media_suffix == "_cdn"


def test_json_config_file(isolated_env, monkeypatch):
    config_file = isolated_env / "session.json"
    config_file.write_text(json.dumps({"check_interval_seconds": 0.5}))
    monkeypatch.setenv("MTSESSION_CONFIG_FILE", str(config_file))

    assert SessionSettings().check_interval_seconds == 0.5


def test_environment_overrides_defaults(isolated_env, monkeypatch):
    monkeypatch.setenv("MTSESSION_RESEND_MAX_ATTEMPTS", "9")

    assert SessionSettings().resend_max_attempts == 9
    assert SessionSettings(resend_max_attempts=1).resend_max_attempts == 1


def test_invalid_yaml_is_reported(isolated_env, monkeypatch):
    config_file = isolated_env / "session.yaml"
    config_file.write_text("resend_timeout_seconds: [1\n")
    monkeypatch.setenv("MTSESSION_CONFIG_FILE", str(config_file))

    with pytest.raises(ValueError):
        SessionSettings()


def test_non_mapping_config_is_rejected(isolated_env, monkeypatch):
    config_file = isolated_env / "session.yaml"
    config_file.write_text("- just\n- a list\n")
    monkeypatch.setenv("MTSESSION_CONFIG_FILE", str(config_file))

    with pytest.raises(ValueError):
        SessionSettings()


@pytest.mark.parametrize(
    "field, value",
    [("resend_timeout_seconds", 0), ("resend_max_attempts", -1), ("log_level", "chatty")],
)
def test_invalid_values_fail_validation(isolated_env, field, value):
    with pytest.raises(ValidationError):
        SessionSettings(**{field: value})


def test_get_settings_is_memoized(isolated_env):
    assert get_settings() is get_settings()


@pytest.mark.asyncio
async def test_cached_config_provider_shares_fetches():
    calls = 0

    async def fetch() -> ServerConfig:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return ServerConfig(message_length_max=100, expires=60)

    provider = CachedConfigProvider(fetch, ttl=60.0)

    first, second = await asyncio.gather(provider.current(), provider.current())
    assert first is second
    assert first.message_length_max == 100
    assert calls == 1

    provider.invalidate()
    await provider.current()
    assert calls == 2


@pytest.mark.asyncio
async def test_cached_config_provider_expires():
    calls = 0

    async def fetch() -> ServerConfig:
        nonlocal calls
        calls += 1
        return ServerConfig()

    provider = CachedConfigProvider(fetch, ttl=0.01)
    await provider.current()
    await asyncio.sleep(0.02)
    await provider.current()

    assert calls == 2


def test_server_config_keeps_unknown_fields():
    config = ServerConfig.model_validate({"message_length_max": 10, "dc_options": []})

    assert config.message_length_max == 10
    assert config.model_extra == {"dc_options": []}


def test_registry_lookup(registry, tmp_path):
    assert registry.lookup("messages.sendMessage").type == "Updates"
    assert registry.lookup("ping").params[0].name == "ping_id"
    assert "help.getConfig" in registry

    with pytest.raises(UnknownMethodError):
        registry.lookup("messages.unknown")
    with pytest.raises(KeyError):
        registry.lookup("messages.unknown")

    schema_file = tmp_path / "schema.json"
    schema_file.write_text(json.dumps({"methods": [{"method": "help.getNearestDc", "type": "NearestDc"}]}))
    loaded = MethodRegistry.from_file(schema_file)
    assert len(loaded) == 1
    assert loaded.lookup("help.getNearestDc").params == []


def test_call_classification():
    assert content_related("messages.sendMessage")
    assert not content_related("msgs_ack")
    assert is_secret_chat_method("messages.sendEncryptedFile")
    assert not is_secret_chat_method("messages.sendMessage")
    assert is_user_related("users.getUsers", {"id": [{"_": "inputUserSelf"}]})
    assert not is_user_related("users.getUsers", {"id": [{"_": "inputUser", "user_id": 1}]})
    assert is_user_related("updates.getDifference", {})
    assert may_send_unencrypted("req_pq_multi", has_key=False)
    assert not may_send_unencrypted("help.getConfig", has_key=False)
    assert not may_send_unencrypted("req_pq_multi", has_key=True)
    assert may_send_unencrypted("msgs_ack", has_key=False, method=False)
