import pytest

from mtsession.protocol.chunking import (
    ChunkSplitError,
    HtmlNormalizer,
    IdentityNormalizer,
    split_to_chunks,
    text_length,
    utf16_len,
)
from mtsession.protocol.packing import pack_signed_long, unpack_signed_long


@pytest.mark.asyncio
async def test_split_cuts_at_limit_regardless_of_whitespace():
    chunks = await split_to_chunks({"peer": "me", "message": "aaaaaa aaaaaa aaaaaa aaaa"}, 10)

    assert [chunk["message"] for chunk in chunks] == ["aaaaaa aaa", "aaa aaaaaa", " aaaa"]
    assert all(chunk["peer"] == "me" for chunk in chunks)


@pytest.mark.asyncio
async def test_split_keeps_newlines_inside_chunks():
    chunks = await split_to_chunks({"message": "line one\nline two"}, 12)

    assert [chunk["message"] for chunk in chunks] == ["line one\nlin", "e two"]
    assert "".join(chunk["message"] for chunk in chunks) == "line one\nline two"


@pytest.mark.asyncio
async def test_split_without_separators_cuts_at_limit():
    chunks = await split_to_chunks({"message": "x" * 25}, 10)

    assert [len(chunk["message"]) for chunk in chunks] == [10, 10, 5]


@pytest.mark.asyncio
async def test_entities_are_rebased_and_clipped():
    entity = {"_": "messageEntityBold", "offset": 8, "length": 4}
    chunks = await split_to_chunks({"message": "a" * 10 + "b" * 5, "entities": [entity]}, 10)

    assert chunks[0]["entities"] == [{"_": "messageEntityBold", "offset": 8, "length": 2}]
    assert chunks[1]["entities"] == [{"_": "messageEntityBold", "offset": 0, "length": 2}]


@pytest.mark.asyncio
async def test_entities_outside_a_chunk_are_dropped():
    entity = {"_": "messageEntityItalic", "offset": 0, "length": 3}
    chunks = await split_to_chunks({"message": "abcdefghij" * 2, "entities": [entity]}, 10)

    assert chunks[0]["entities"] == [entity]
    assert chunks[1]["entities"] == []


@pytest.mark.asyncio
@pytest.mark.parametrize("args, limit", [({"message": "text"}, 0), ({"peer": "me"}, 10)])
async def test_split_rejects_unsplittable_arguments(args, limit):
    with pytest.raises(ChunkSplitError):
        await split_to_chunks(args, limit)


@pytest.mark.asyncio
async def test_html_normalizer_produces_utf16_entities():
    normalized = await HtmlNormalizer().normalize(
        {"message": "<b>hi</b> \U0001F600 <i>yo</i>", "parse_mode": "HTML"}
    )

    assert normalized["message"] == "hi \U0001F600 yo"
    assert "parse_mode" not in normalized
    assert normalized["entities"] == [
        {"_": "messageEntityBold", "offset": 0, "length": 2},
        {"_": "messageEntityItalic", "offset": 6, "length": 2},
    ]


@pytest.mark.asyncio
async def test_html_normalizer_links_and_plain_text():
    normalizer = HtmlNormalizer()

    linked = await normalizer.normalize({"message": '<a href="https://t.me">here</a>', "parse_mode": "html"})
    plain = await normalizer.normalize({"message": "<b>left alone</b>"})

    assert linked["entities"] == [
        {"_": "messageEntityTextUrl", "offset": 0, "length": 4, "url": "https://t.me"}
    ]
    assert plain == {"message": "<b>left alone</b>"}


@pytest.mark.asyncio
async def test_identity_normalizer_copies_arguments():
    args = {"message": "hi"}

    normalized = await IdentityNormalizer().normalize(args)

    assert normalized == args
    assert normalized is not args


def test_text_length_counts_code_points():
    assert text_length({"message": "\U0001F600ab"}) == 3
    assert utf16_len("\U0001F600ab") == 4
    assert text_length({"peer": "me"}) is None
    assert text_length(["message"]) is None


def test_signed_long_packing():
    assert pack_signed_long(-1) == b"\xff" * 8
    assert unpack_signed_long(pack_signed_long(1234567890123)) == 1234567890123
