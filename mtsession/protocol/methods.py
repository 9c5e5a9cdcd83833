"""Method metadata lookup and static call classification tables."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

LOGGER = logging.getLogger(__name__)

SECRET_CHAT_METHODS: frozenset[str] = frozenset(
    {
        "messages.setEncryptedTyping",
        "messages.readEncryptedHistory",
        "messages.sendEncrypted",
        "messages.sendEncryptedFile",
        "messages.sendEncryptedService",
        "messages.receivedQueue",
    }
)

# Service constructors that do not take part in ack/seqno accounting.
NOT_CONTENT_RELATED: frozenset[str] = frozenset(
    {
        "rpc_result",
        "rpc_error",
        "rpc_drop_answer",
        "rpc_answer_unknown",
        "rpc_answer_dropped_running",
        "rpc_answer_dropped",
        "get_future_salts",
        "future_salt",
        "future_salts",
        "ping",
        "pong",
        "ping_delay_disconnect",
        "destroy_session",
        "destroy_session_ok",
        "destroy_session_none",
        "new_session_created",
        "msg_container",
        "msg_copy",
        "gzip_packed",
        "http_wait",
        "msgs_ack",
        "bad_msg_notification",
        "bad_server_salt",
        "msgs_state_req",
        "msgs_state_info",
        "msgs_all_info",
        "msg_detailed_info",
        "msg_new_detailed_info",
        "msg_resend_req",
        "msg_resend_ans_req",
    }
)

SELF_LOOKUP_ARGS: dict[str, Any] = {"id": [{"_": "inputUserSelf"}]}
USER_RELATED_METHODS: frozenset[str] = frozenset({"auth.exportAuthorization", "updates.getDifference"})


class UnknownMethodError(KeyError):
    """Raised when the registry has no entry for a method name."""


class MethodParam(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    type: str


class MethodInfo(BaseModel):
    """Schema entry for one remote method."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    method: str
    type: str = Field(description="Constructor type the method responds with.")
    params: list[MethodParam] = Field(default_factory=list)
    id: Optional[str] = None


class MethodRegistry:
    """In-memory method name -> metadata index."""

    def __init__(self, methods: Iterable[MethodInfo] = ()) -> None:
        self._methods: dict[str, MethodInfo] = {}
        for info in methods:
            self.add(info)

    @classmethod
    def from_schema(cls, schema: Mapping[str, Any]) -> "MethodRegistry":
        """Build a registry from a JSON TL schema (``{"methods": [...]}``)."""

        entries = schema.get("methods") or []
        return cls(MethodInfo.model_validate(entry) for entry in entries)

    @classmethod
    def from_file(cls, path: Path) -> "MethodRegistry":
        with path.open("r", encoding="utf-8") as handle:
            return cls.from_schema(json.load(handle))

    def add(self, info: MethodInfo) -> None:
        if info.method in self._methods:
            LOGGER.debug("Replacing schema entry for %s", info.method)
        self._methods[info.method] = info

    def lookup(self, name: str) -> MethodInfo:
        try:
            return self._methods[name]
        except KeyError:
            raise UnknownMethodError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._methods

    def __len__(self) -> int:
        return len(self._methods)


def content_related(name: str) -> bool:
    return name not in NOT_CONTENT_RELATED


def is_secret_chat_method(name: str) -> bool:
    return name in SECRET_CHAT_METHODS


def is_user_related(name: str, args: Any) -> bool:
    """Identity-sensitive calls that downstream bookkeeping treats specially."""

    if name == "users.getUsers":
        return args == SELF_LOOKUP_ARGS
    return name in USER_RELATED_METHODS


def may_send_unencrypted(name: str, *, has_key: bool, method: bool = True) -> bool:
    """Only unqualified bootstrap methods may leave before a session key exists."""

    if has_key:
        return False
    if method:
        return "." not in name
    return True
