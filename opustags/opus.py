"""The OpusTags comment header and the cover art pictures it may embed."""

from __future__ import annotations

import struct
import sys
from dataclasses import dataclass, field

from opustags.base64codec import decode_base64, encode_base64
from opustags.errors import OpusTagsError, Status

_MAGIC = b"OpusTags"
_PICTURE_PREFIX = b"METADATA_BLOCK_PICTURE="
_FRONT_COVER = 3
_MAGIC_NUMBERS = (
    (b"\xff\xd8\xff", b"image/jpeg"),
    (b"\x89PNG", b"image/png"),
    (b"GIF8", b"image/gif"),
)


@dataclass
class OpusTags:
    """All the data of an OpusTags packet, kept as raw bytes."""

    vendor: bytes = b""
    comments: list[bytes] = field(default_factory=list)
    extra_data: bytes = b""


def parse_tags(packet: bytes) -> OpusTags:
    """Parse an OpusTags packet."""
    data = bytes(packet)
    size = len(data)

    if size < 8:
        raise OpusTagsError(
            Status.CUT_MAGIC_NUMBER, "Comment header too short for the magic number"
        )
    if data[:8] != _MAGIC:
        raise OpusTagsError(
            Status.BAD_MAGIC_NUMBER, "Comment header did not start with OpusTags"
        )

    pos = 8
    if pos + 4 > size:
        raise OpusTagsError(
            Status.CUT_VENDOR_LENGTH, "Vendor string length did not fit the comment header"
        )
    (vendor_length,) = struct.unpack_from("<I", data, pos)
    if pos + 4 + vendor_length > size:
        raise OpusTagsError(
            Status.CUT_VENDOR_DATA, "Vendor string did not fit the comment header"
        )
    vendor = data[pos + 4:pos + 4 + vendor_length]
    pos += 4 + vendor_length

    if pos + 4 > size:
        raise OpusTagsError(
            Status.CUT_COMMENT_COUNT, "Comment count did not fit the comment header"
        )
    (count,) = struct.unpack_from("<I", data, pos)
    pos += 4

    comments = []
    for _ in range(count):
        if pos + 4 > size:
            raise OpusTagsError(
                Status.CUT_COMMENT_LENGTH, "Comment length did not fit the comment header"
            )
        (comment_length,) = struct.unpack_from("<I", data, pos)
        if pos + 4 + comment_length > size:
            raise OpusTagsError(
                Status.CUT_COMMENT_DATA, "Comment string did not fit the comment header"
            )
        comments.append(data[pos + 4:pos + 4 + comment_length])
        pos += 4 + comment_length

    return OpusTags(vendor=vendor, comments=comments, extra_data=data[pos:])


def render_tags(tags: OpusTags) -> bytes:
    """Serialize tags into an OpusTags packet."""
    parts = [_MAGIC, struct.pack("<I", len(tags.vendor)), bytes(tags.vendor)]
    parts.append(struct.pack("<I", len(tags.comments)))
    for comment in tags.comments:
        parts.append(struct.pack("<I", len(comment)))
        parts.append(bytes(comment))
    parts.append(bytes(tags.extra_data))
    return b"".join(parts)


@dataclass
class Picture:
    """A METADATA_BLOCK_PICTURE: only the MIME type and the data are kept."""

    mime_type: bytes = b""
    picture_data: bytes = b""

    @classmethod
    def from_block(cls, block: bytes) -> Picture:
        """Parse a binary picture block (big-endian fields)."""
        block = bytes(block)
        size = len(block)
        mime_offset = 4
        if size < mime_offset + 4:
            raise OpusTagsError(Status.INVALID_SIZE, "missing MIME type in picture block")
        (mime_size,) = struct.unpack_from(">I", block, mime_offset)

        desc_offset = mime_offset + 4 + mime_size
        if size < desc_offset + 4:
            raise OpusTagsError(Status.INVALID_SIZE, "missing description in picture block")
        (desc_size,) = struct.unpack_from(">I", block, desc_offset)

        pic_offset = desc_offset + 4 + desc_size + 16
        if size < pic_offset + 4:
            raise OpusTagsError(Status.INVALID_SIZE, "missing picture data in picture block")
        (pic_size,) = struct.unpack_from(">I", block, pic_offset)

        if size != pic_offset + 4 + pic_size:
            raise OpusTagsError(Status.INVALID_SIZE, "invalid picture block size")

        return cls(
            mime_type=block[mime_offset + 4:mime_offset + 4 + mime_size],
            picture_data=block[pic_offset + 4:],
        )

    def serialize(self) -> bytes:
        """Encode as a front cover block with empty description and attributes."""
        return b"".join(
            (
                struct.pack(">II", _FRONT_COVER, len(self.mime_type)),
                bytes(self.mime_type),
                struct.pack(">I", 0),
                bytes(16),
                struct.pack(">I", len(self.picture_data)),
                bytes(self.picture_data),
            )
        )


def extract_cover(tags: OpusTags) -> Picture | None:
    """Return the first picture embedded in the tags, or None."""
    covers = [comment for comment in tags.comments if comment.startswith(_PICTURE_PREFIX)]
    if not covers:
        return None
    if len(covers) > 1:
        print(
            "warning: Found multiple covers; only the first will be extracted."
            " Please report your use case if you need a finer selection.",
            file=sys.stderr,
        )
    return Picture.from_block(decode_base64(covers[0][len(_PICTURE_PREFIX):]))


def detect_mime_type(data: bytes) -> bytes:
    """Guess the MIME type of an image from its first bytes."""
    for magic, mime in _MAGIC_NUMBERS:
        if data.startswith(magic):
            return mime
    print(
        "warning: Could not identify the MIME type of the picture; "
        "defaulting to application/octet-stream.",
        file=sys.stderr,
    )
    return b"application/octet-stream"


def make_cover(picture_data: bytes) -> bytes:
    """Build a METADATA_BLOCK_PICTURE comment holding picture_data as front cover."""
    picture_data = bytes(picture_data)
    picture = Picture(mime_type=detect_mime_type(picture_data), picture_data=picture_data)
    return _PICTURE_PREFIX + encode_base64(picture.serialize())