"""Message text normalization and splitting of oversized text into chunks."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from html.parser import HTMLParser
from typing import Any, Mapping, Optional

LOGGER = logging.getLogger(__name__)

TEXT_FIELD = "message"

_HTML_ENTITY_TAGS: dict[str, str] = {
    "b": "messageEntityBold",
    "strong": "messageEntityBold",
    "i": "messageEntityItalic",
    "em": "messageEntityItalic",
    "u": "messageEntityUnderline",
    "s": "messageEntityStrike",
    "del": "messageEntityStrike",
    "code": "messageEntityCode",
    "pre": "messageEntityPre",
    "a": "messageEntityTextUrl",
}


class ChunkSplitError(ValueError):
    """Raised when oversized text cannot be split into chunks within the limit."""


def utf16_len(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


class TextNormalizer(ABC):
    """Turns caller-facing arguments (markup, parse modes) into wire arguments."""

    @abstractmethod
    async def normalize(self, args: Mapping[str, Any]) -> dict[str, Any]:
        ...


class IdentityNormalizer(TextNormalizer):
    async def normalize(self, args: Mapping[str, Any]) -> dict[str, Any]:
        return dict(args)


class _EntityParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.text: list[str] = []
        self.entities: list[dict[str, Any]] = []
        self._open: list[tuple[str, int, dict[str, Any]]] = []
        self._offset = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        if tag == "br":
            self.handle_data("\n")
            return
        if tag not in _HTML_ENTITY_TAGS:
            return
        extra: dict[str, Any] = {}
        if tag == "a":
            extra["url"] = dict(attrs).get("href") or ""
        if tag == "pre":
            extra["language"] = ""
        self._open.append((tag, self._offset, extra))

    def handle_endtag(self, tag: str) -> None:
        for index in range(len(self._open) - 1, -1, -1):
            if self._open[index][0] != tag:
                continue
            _, start, extra = self._open.pop(index)
            length = self._offset - start
            if length > 0:
                self.entities.append({"_": _HTML_ENTITY_TAGS[tag], "offset": start, "length": length, **extra})
            return

    def handle_data(self, data: str) -> None:
        self.text.append(data)
        self._offset += utf16_len(data)


class HtmlNormalizer(TextNormalizer):
    """Converts ``parse_mode="html"`` text into plain text plus message entities."""

    async def normalize(self, args: Mapping[str, Any]) -> dict[str, Any]:
        result = dict(args)
        parse_mode = result.pop("parse_mode", None)
        text = result.get(TEXT_FIELD)
        if not isinstance(text, str) or str(parse_mode or "").lower() != "html":
            return result
        parser = _EntityParser()
        parser.feed(text)
        parser.close()
        result[TEXT_FIELD] = "".join(parser.text)
        entities = list(result.get("entities") or [])
        entities.extend(sorted(parser.entities, key=lambda entity: entity["offset"]))
        if entities:
            result["entities"] = entities
        return result


def text_length(args: Any) -> Optional[int]:
    """Length of the text field in code points, or None when there is none."""

    if not isinstance(args, Mapping):
        return None
    text = args.get(TEXT_FIELD)
    if not isinstance(text, str):
        return None
    return len(text)


def _clip_entities(entities: list[dict[str, Any]], start: int, end: int) -> list[dict[str, Any]]:
    clipped = []
    for entity in entities:
        first = max(entity["offset"], start)
        last = min(entity["offset"] + entity["length"], end)
        if last <= first:
            continue
        clipped.append({**entity, "offset": first - start, "length": last - first})
    return clipped


async def split_to_chunks(args: Mapping[str, Any], limit: int) -> list[dict[str, Any]]:
    """Split the text field of ``args`` into ordered argument sets of at most ``limit`` code points.

    Text is cut at exactly ``limit`` code points, so ``n`` code points always
    give ``ceil(n / limit)`` chunks.

    Every chunk carries a copy of the remaining arguments; entities are rebased
    onto the chunk they fall in and clipped at chunk boundaries.
    """

    if limit <= 0:
        raise ChunkSplitError(f"Invalid message length limit {limit}")
    text = args.get(TEXT_FIELD)
    if not isinstance(text, str):
        raise ChunkSplitError("Arguments carry no text to split")
    entities = list(args.get("entities") or [])

    chunks: list[dict[str, Any]] = []
    start = 0
    utf16_start = 0
    while start < len(text):
        end = min(start + limit, len(text))
        piece = text[start:end]
        utf16_end = utf16_start + utf16_len(piece)
        chunk = dict(args)
        chunk[TEXT_FIELD] = piece
        if entities:
            chunk["entities"] = _clip_entities(entities, utf16_start, utf16_end)
        else:
            chunk.pop("entities", None)
        chunks.append(chunk)
        start = end
        utf16_start = utf16_end
    LOGGER.debug("Split %s code points into %s chunks (limit %s)", len(text), len(chunks), limit)
    return chunks
