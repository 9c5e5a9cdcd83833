from .chunking import (
    ChunkSplitError,
    HtmlNormalizer,
    IdentityNormalizer,
    TextNormalizer,
    split_to_chunks,
    text_length,
)
from .methods import (
    MethodInfo,
    MethodRegistry,
    UnknownMethodError,
    content_related,
    is_secret_chat_method,
    is_user_related,
    may_send_unencrypted,
)
from .packing import pack_signed_long, unpack_signed_long
from .server_config import CachedConfigProvider, ConfigProvider, ServerConfig, StaticConfigProvider

__all__ = [
    "ChunkSplitError",
    "HtmlNormalizer",
    "IdentityNormalizer",
    "TextNormalizer",
    "split_to_chunks",
    "text_length",
    "MethodInfo",
    "MethodRegistry",
    "UnknownMethodError",
    "content_related",
    "is_secret_chat_method",
    "is_user_related",
    "may_send_unencrypted",
    "pack_signed_long",
    "unpack_signed_long",
    "CachedConfigProvider",
    "ConfigProvider",
    "ServerConfig",
    "StaticConfigProvider",
]
