"""Session layer configuration loading and validation."""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Literal

import yaml
from pydantic import Field, PositiveFloat, PositiveInt
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("/etc/mtsession/session.yaml"),
    Path("/etc/mtsession/session.yml"),
    Path("./config/session.yaml"),
    Path("./config/session.yml"),
)


class SessionSettings(BaseSettings):
    """Validated settings for the call-dispatch/session layer."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="MTSESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Resend / consistency checking
    resend_timeout_seconds: PositiveFloat = Field(
        default=10.0,
        description="Seconds without ack or response before a message is recalled.",
    )
    resend_max_attempts: PositiveInt = Field(
        default=5,
        description="Maximum resends of one logical message before its caller is failed.",
    )
    check_interval_seconds: PositiveFloat = Field(
        default=1.0,
        description="Upper bound on how long the check loop sleeps between schedule evaluations.",
    )

    # Routing
    media_suffix: str = Field(
        default="_media",
        description="Directory key suffix that marks the media variant of a datacenter.",
    )

    # Server limits
    message_length_max_default: PositiveInt = Field(
        default=4096,
        description="Maximum message text length assumed until the server advertises one.",
    )
    config_cache_seconds: PositiveFloat = Field(
        default=3600.0,
        description="Seconds a fetched server config is reused before fetching again.",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level for the session layer.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    config_path: Path | None = Field(
        default=None,
        description="Resolved path to the on-disk config that seeded the settings.",
        exclude=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[SessionSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            cls._yaml_settings_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @staticmethod
    def _yaml_settings_source(settings_cls: type[SessionSettings] | None = None) -> Dict[str, Any]:
        for path in SessionSettings._resolve_candidate_paths():
            data = SessionSettings._load_file(path)
            if data is not None:
                data.setdefault("config_path", path)
                return data
        return {}

    @staticmethod
    def _resolve_candidate_paths() -> Iterable[Path]:
        explicit = os.getenv("MTSESSION_CONFIG_FILE")
        if explicit:
            yield Path(explicit).expanduser()
        yield from DEFAULT_CONFIG_LOCATIONS

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any] | None:
        if not path.is_file():
            return None
        suffix = path.suffix.lower()
        try:
            with path.open("r", encoding="utf-8") as handle:
                if suffix in {".yaml", ".yml"}:
                    raw = yaml.safe_load(handle)
                elif suffix == ".json":
                    raw = json.load(handle)
                else:
                    return None
        except OSError as exc:
            raise RuntimeError(f"Failed to read session config file {path}") from exc
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Invalid session config file {path}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"Session config file {path} must contain a mapping at top level.")
        return raw


@lru_cache()
def get_settings() -> SessionSettings:
    """Return memoized session settings."""

    return SessionSettings()


def configure_logging(settings: SessionSettings) -> None:
    """Apply the configured log level with the standard record format."""

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
