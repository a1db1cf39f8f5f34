"""Reading and writing of Ogg pages, specialised for Opus header handling."""

from __future__ import annotations

import struct
import sys
from dataclasses import dataclass
from typing import BinaryIO

from opustags.errors import OpusTagsError, Status

_CAPTURE_PATTERN = b"OggS"
_HEADER_SIZE = 27
_FLAG_CONTINUED = 0x01
_FLAG_BOS = 0x02
_FLAG_EOS = 0x04
_READ_SIZE = 65536
_MAX_SEGMENTS = 255
_HEADER_FORMAT = "<4sBBqIIIB"


def _make_crc_table() -> tuple[int, ...]:
    table = []
    for index in range(256):
        value = index << 24
        for _ in range(8):
            if value & 0x80000000:
                value = ((value << 1) ^ 0x04C11DB7) & 0xFFFFFFFF
            else:
                value = (value << 1) & 0xFFFFFFFF
        table.append(value)
    return tuple(table)


_CRC_TABLE = _make_crc_table()


def ogg_crc(data: bytes) -> int:
    """Compute the Ogg page checksum of data (polynomial 0x04C11DB7, no reflection)."""
    crc = 0
    for byte in data:
        crc = ((crc << 8) & 0xFFFFFFFF) ^ _CRC_TABLE[(crc >> 24) ^ byte]
    return crc


@dataclass
class OggPage:
    """An Ogg page, split into its header (with segment table) and its body."""

    header: bytearray
    body: bytes

    def __post_init__(self) -> None:
        self.header = bytearray(self.header)
        self.body = bytes(self.body)

    def serialno(self) -> int:
        """Serial number of the logical stream the page belongs to."""
        return struct.unpack_from("<I", self.header, 14)[0]

    def pageno(self) -> int:
        """Sequence number of the page in its logical stream."""
        return struct.unpack_from("<I", self.header, 18)[0]

    def bos(self) -> bool:
        """Whether the page begins a logical stream."""
        return bool(self.header[5] & _FLAG_BOS)

    def eos(self) -> bool:
        """Whether the page ends a logical stream."""
        return bool(self.header[5] & _FLAG_EOS)

    def continued(self) -> bool:
        """Whether the page starts with the continuation of a previous packet."""
        return bool(self.header[5] & _FLAG_CONTINUED)

    def _lacing(self) -> bytes:
        count = self.header[26]
        return bytes(self.header[_HEADER_SIZE:_HEADER_SIZE + count])

    def packet_count(self) -> int:
        """Number of packets that complete on this page."""
        return sum(1 for value in self._lacing() if value < 255)

    def to_bytes(self) -> bytes:
        """The page as it is stored in a file."""
        return bytes(self.header) + self.body


def _update_checksum(page: OggPage) -> None:
    page.header[22:26] = b"\0\0\0\0"
    struct.pack_into("<I", page.header, 22, ogg_crc(bytes(page.header) + page.body))


def _build_page(
    flags: int, granule: int, serialno: int, pageno: int, lacing: list[int], body: bytes
) -> OggPage:
    header = bytearray(
        struct.pack(
            _HEADER_FORMAT,
            _CAPTURE_PATTERN,
            0,
            flags,
            granule,
            serialno & 0xFFFFFFFF,
            pageno & 0xFFFFFFFF,
            0,
            len(lacing),
        )
    )
    header += bytes(lacing)
    page = OggPage(header, body)
    _update_checksum(page)
    return page


def is_opus_stream(page: OggPage) -> bool:
    """Tell whether an identification header page starts an Opus stream."""
    if not page.bos():
        return False
    return len(page.body) >= 8 and page.body[:8] == b"OpusHead"


def renumber_page(page: OggPage, new_pageno: int) -> None:
    """Change the page number of page in place, updating its checksum."""
    if page.pageno() == new_pageno:
        return
    struct.pack_into("<I", page.header, 18, new_pageno & 0xFFFFFFFF)
    _update_checksum(page)


class OggReader:
    """Read Ogg pages one after another from a binary stream."""

    def __init__(self, file: BinaryIO) -> None:
        self.file = file
        self.page: OggPage | None = None
        self.absolute_page_no = -1
        self._buffer = bytearray()
        self._eof = False

    def _lose_sync(self) -> None:
        message = (
            "Input is not a valid Ogg file."
            if self.absolute_page_no == -1
            else "Unsynced data in stream."
        )
        raise OpusTagsError(Status.BAD_STREAM, message)

    def _pageout(self) -> OggPage | None:
        buf = self._buffer
        if len(buf) < _HEADER_SIZE:
            return None
        if buf[:4] != _CAPTURE_PATTERN:
            self._lose_sync()
        header_len = _HEADER_SIZE + buf[26]
        if len(buf) < header_len:
            return None
        total = header_len + sum(buf[_HEADER_SIZE:header_len])
        if len(buf) < total:
            return None
        header = bytearray(buf[:header_len])
        body = bytes(buf[header_len:total])
        stored = struct.unpack_from("<I", header, 22)[0]
        header[22:26] = b"\0\0\0\0"
        if ogg_crc(bytes(header) + body) != stored:
            self._lose_sync()
        struct.pack_into("<I", header, 22, stored)
        del buf[:total]
        return OggPage(header, body)

    def next_page(self) -> bool:
        """Read the next page into self.page; return False at the end of the stream."""
        while True:
            page = self._pageout()
            if page is not None:
                break
            if self._eof:
                if self._buffer:
                    raise OpusTagsError(Status.BAD_STREAM, "Unsynced data at end of stream.")
                return False
            try:
                chunk = self.file.read(_READ_SIZE)
            except OSError as exc:
                raise OpusTagsError(
                    Status.STANDARD_ERROR, f"fread error: {exc.strerror}"
                ) from exc
            if chunk:
                self._buffer += chunk
            else:
                self._eof = True
        self.page = page
        self.absolute_page_no += 1
        return True

    def read_header_packet(self) -> bytes:
        """Return the single packet that starts on the current header page.

        Further pages are read when the packet spans several of them.
        """
        page = self.page
        if page is None:
            raise OpusTagsError(Status.ERROR, "No page has been read.")
        if page.continued():
            raise OpusTagsError(Status.ERROR, "Unexpected continued header page.")
        serialno = page.serialno()
        expected_pageno = page.pageno()
        parts: list[bytes] = []
        first = True
        while True:
            if not first:
                if page.serialno() != serialno:
                    raise OpusTagsError(Status.LIBOGG_ERROR, "ogg_stream_pagein failed.")
                if page.pageno() != expected_pageno or not page.continued():
                    raise OpusTagsError(Status.LIBOGG_ERROR, "ogg_stream_packetout failed.")
            first = False
            lacing = page._lacing()
            offset = 0
            for index, value in enumerate(lacing):
                parts.append(page.body[offset:offset + value])
                offset += value
                if value < 255:
                    if index != len(lacing) - 1:
                        raise OpusTagsError(
                            Status.ERROR, "Header page contains more than a single packet."
                        )
                    return b"".join(parts)
            if not self.next_page():
                raise OpusTagsError(Status.ERROR, "Unterminated header packet.")
            page = self.page
            expected_pageno += 1


class OggWriter:
    """Write Ogg pages to a binary stream, and header packets as whole pages."""

    def __init__(self, file: BinaryIO, path: str | None = None) -> None:
        self.file = file
        self.path = path
        self.next_page_no = 0

    def write_page(self, page: OggPage) -> None:
        """Write a whole page, warning when its number is not the expected one."""
        pageno = page.pageno()
        if pageno != self.next_page_no:
            print(
                f"Output page number mismatch: expected {self.next_page_no}, got {pageno}.",
                file=sys.stderr,
            )
        self.next_page_no = pageno + 1
        try:
            self.file.write(bytes(page.header))
            self.file.write(page.body)
        except OSError as exc:
            raise OpusTagsError(Status.STANDARD_ERROR, f"fwrite error: {exc.strerror}") from exc

    def write_header_packet(self, serialno: int, pageno: int, packet: bytes) -> None:
        """Write packet alone on as many pages as it needs, starting at pageno."""
        packet = bytes(packet)
        lacing = [255] * (len(packet) // 255) + [len(packet) % 255]
        offset = 0
        for index, start in enumerate(range(0, len(lacing), _MAX_SEGMENTS)):
            values = lacing[start:start + _MAX_SEGMENTS]
            size = sum(values)
            body = packet[offset:offset + size]
            offset += size
            flags = 0
            if index > 0:
                flags |= _FLAG_CONTINUED
            initial = pageno == 0 and index == 0
            if initial:
                flags |= _FLAG_BOS
            finished = values[-1] < 255
            granule = 0 if (initial or finished) else -1
            self.write_page(_build_page(flags, granule, serialno, pageno + index, values, body))