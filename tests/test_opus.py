import pytest

from opustags.base64codec import encode_base64
from opustags.errors import OpusTagsError, Status
from opustags.opus import (
    OpusTags,
    Picture,
    detect_mime_type,
    extract_cover,
    make_cover,
    parse_tags,
    render_tags,
)

STANDARD_OPUS_TAGS = (
    b"OpusTags"
    b"\x14\x00\x00\x00" b"opustags test packet"
    b"\x02\x00\x00\x00"
    b"\x09\x00\x00\x00" b"TITLE=Foo"
    b"\x0a\x00\x00\x00" b"ARTIST=Bar"
)

PICTURE_BLOCK = (
    b"\x00\x00\x00\x03"
    b"\x00\x00\x00\x09" b"image/foo"
    b"\x00\x00\x00\x00" b""
    b"\x00\x00\x00\x00"
    b"\x00\x00\x00\x00"
    b"\x00\x00\x00\x00"
    b"\x00\x00\x00\x00"
    b"\x00\x00\x00\x0C" b"Picture data"
)


def _code(packet):
    with pytest.raises(OpusTagsError) as info:
        parse_tags(bytes(packet))
    return info.value.code


def test_parse_standard():
    tags = parse_tags(STANDARD_OPUS_TAGS)
    assert tags.vendor == b"opustags test packet"
    assert tags.comments == [b"TITLE=Foo", b"ARTIST=Bar"]
    assert tags.extra_data == b""


def test_parse_corrupted():
    packet = bytearray(STANDARD_OPUS_TAGS + b"\0")
    size = len(packet)
    vendor_length = 8
    vendor_string = vendor_length + 4
    comment_count = vendor_string + packet[vendor_length]
    first_comment_length = comment_count + 4
    first_comment_data = first_comment_length + 4
    end = size

    assert _code(packet[:7]) == Status.CUT_MAGIC_NUMBER
    assert _code(packet[:11]) == Status.CUT_VENDOR_LENGTH

    packet[0] = ord("o")
    assert _code(packet) == Status.BAD_MAGIC_NUMBER
    packet[0] = ord("O")

    packet[vendor_length] = end - vendor_string + 1
    assert _code(packet) == Status.CUT_VENDOR_DATA
    packet[vendor_length] = end - vendor_string - 3
    assert _code(packet) == Status.CUT_COMMENT_COUNT
    packet[vendor_length] = comment_count - vendor_string

    packet[comment_count] += 1
    assert _code(packet) == Status.CUT_COMMENT_LENGTH
    packet[first_comment_length] = end - first_comment_data + 1
    assert _code(packet) == Status.CUT_COMMENT_DATA


def test_recode_standard():
    assert render_tags(parse_tags(STANDARD_OPUS_TAGS)) == STANDARD_OPUS_TAGS


def test_recode_padding():
    padded = STANDARD_OPUS_TAGS + b"\0" + b"hello"
    tags = parse_tags(padded)
    assert tags.extra_data == b"\0hello"
    assert render_tags(tags) == padded


def test_render_built_tags_round_trip():
    tags = OpusTags(vendor=b"v", comments=[b"A=1", b"B=\xff"], extra_data=b"\x01")
    assert parse_tags(render_tags(tags)) == tags


def test_extract_cover():
    tags = OpusTags(comments=[b"METADATA_BLOCK_PICTURE=" + encode_base64(PICTURE_BLOCK)])
    cover = extract_cover(tags)
    assert cover.mime_type == b"image/foo"
    assert cover.picture_data == b"Picture data"


def test_extract_truncated_cover():
    tags = OpusTags(
        comments=[b"METADATA_BLOCK_PICTURE=" + encode_base64(PICTURE_BLOCK[:-1])]
    )
    with pytest.raises(OpusTagsError) as info:
        extract_cover(tags)
    assert info.value.code == Status.INVALID_SIZE


def test_extract_cover_absent():
    assert extract_cover(OpusTags(comments=[b"TITLE=Foo"])) is None


def test_extract_multiple_covers_warns(capsys):
    comment = b"METADATA_BLOCK_PICTURE=" + encode_base64(PICTURE_BLOCK)
    cover = extract_cover(OpusTags(comments=[comment, comment]))
    assert cover.picture_data == b"Picture data"
    assert "Found multiple covers" in capsys.readouterr().err


def test_make_cover():
    picture_block = (
        b"\x00\x00\x00\x03"
        b"\x00\x00\x00\x09" b"image/png"
        b"\x00\x00\x00\x00" b""
        b"\x00\x00\x00\x00"
        b"\x00\x00\x00\x00"
        b"\x00\x00\x00\x00"
        b"\x00\x00\x00\x00"
        b"\x00\x00\x00\x11" b"\x89PNG Picture data"
    )
    expected = b"METADATA_BLOCK_PICTURE=" + encode_base64(picture_block)
    assert make_cover(b"\x89PNG Picture data") == expected


def test_picture_round_trip():
    picture = Picture(mime_type=b"image/gif", picture_data=b"GIF89a data")
    assert Picture.from_block(picture.serialize()) == picture


def test_detect_mime_type(capsys):
    assert detect_mime_type(b"\xff\xd8\xff\xe0rest") == b"image/jpeg"
    assert detect_mime_type(b"\x89PNG\r\n") == b"image/png"
    assert detect_mime_type(b"GIF89a") == b"image/gif"
    assert capsys.readouterr().err == ""
    assert detect_mime_type(b"unknown") == b"application/octet-stream"
    assert "Could not identify the MIME type" in capsys.readouterr().err