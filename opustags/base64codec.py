"""Base64 encoding and decoding (RFC 4648) for embedded cover arts."""

from __future__ import annotations

import base64
import binascii

from opustags.errors import OpusTagsError, Status

_ALPHABET = frozenset(
    b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
)


def encode_base64(src: bytes) -> bytes:
    """Encode bytes into padded base64, without line feeds."""
    return base64.b64encode(bytes(src))


def decode_base64(src: bytes | str) -> bytes:
    """Decode base64 data; padding is optional, any other character is rejected."""
    if isinstance(src, str):
        try:
            src = src.encode("ascii")
        except UnicodeEncodeError:
            raise OpusTagsError(Status.ERROR, "invalid base64 character") from None
    data = bytes(src).rstrip(b"=")

    if len(data) % 4 == 1:
        raise OpusTagsError(Status.ERROR, "invalid base64 block size")
    if any(byte not in _ALPHABET for byte in data):
        raise OpusTagsError(Status.ERROR, "invalid base64 character")

    padding = b"=" * (-len(data) % 4)
    try:
        return base64.b64decode(data + padding, validate=True)
    except binascii.Error as exc:
        raise OpusTagsError(Status.ERROR, f"invalid base64 data: {exc}") from exc