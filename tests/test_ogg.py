import io
import struct

import pytest

from opustags.errors import OpusTagsError, Status
from opustags.ogg import (
    OggPage,
    OggReader,
    OggWriter,
    is_opus_stream,
    ogg_crc,
    renumber_page,
)


def _stream(*packets, serialno=1234):
    out = io.BytesIO()
    writer = OggWriter(out)
    for packet in packets:
        writer.write_header_packet(serialno, writer.next_page_no, packet)
    return out.getvalue()


def _raw_page(lacing, body, flags=0x02, serialno=7, pageno=0):
    header = bytearray(
        b"OggS" + struct.pack("<BBqIIIB", 0, flags, 0, serialno, pageno, 0, len(lacing))
    )
    header += bytes(lacing)
    struct.pack_into("<I", header, 22, ogg_crc(bytes(header) + body))
    return bytes(header) + body


def test_memory_ogg_round_trip():
    data = _stream(b"First", b"Second")
    assert len(data) == 67
    reader = OggReader(io.BytesIO(data))
    assert reader.next_page() is True
    assert reader.read_header_packet() == b"First"
    assert reader.next_page() is True
    assert reader.read_header_packet() == b"Second"
    assert reader.next_page() is False


def test_written_pages_accessors():
    reader = OggReader(io.BytesIO(_stream(b"First", b"Second")))
    reader.next_page()
    first = reader.page
    assert first.serialno() == 1234
    assert first.pageno() == 0
    assert first.bos() and not first.eos() and not first.continued()
    assert first.packet_count() == 1
    reader.next_page()
    assert reader.page.pageno() == 1
    assert not reader.page.bos()
    assert reader.absolute_page_no == 1


def test_bad_stream():
    data = b"did not detect the stream is not an ogg stream"[:20]
    reader = OggReader(io.BytesIO(data))
    with pytest.raises(OpusTagsError) as info:
        reader.next_page()
    assert info.value.code == Status.BAD_STREAM


def test_garbage_before_first_page():
    reader = OggReader(io.BytesIO(b"x" * 40 + _stream(b"First")))
    with pytest.raises(OpusTagsError) as info:
        reader.next_page()
    assert info.value.code == Status.BAD_STREAM
    assert info.value.message == "Input is not a valid Ogg file."


def test_garbage_after_pages():
    reader = OggReader(io.BytesIO(_stream(b"First") + b"y" * 40))
    assert reader.next_page() is True
    with pytest.raises(OpusTagsError) as info:
        reader.next_page()
    assert info.value.message == "Unsynced data in stream."


def test_truncated_page_at_end():
    data = _stream(b"First", b"Second")
    reader = OggReader(io.BytesIO(data[:-2]))
    assert reader.next_page() is True
    with pytest.raises(OpusTagsError) as info:
        reader.next_page()
    assert info.value.message == "Unsynced data at end of stream."


def test_corrupted_checksum_is_rejected():
    data = bytearray(_stream(b"First"))
    data[-1] ^= 0xFF
    reader = OggReader(io.BytesIO(bytes(data)))
    with pytest.raises(OpusTagsError) as info:
        reader.next_page()
    assert info.value.code == Status.BAD_STREAM


def test_identification():
    good_header = (
        b"\x4f\x67\x67\x53\x00\x02\x00\x00\x00\x00\x00\x00\x00\x00\x42\xf2"
        b"\xe6\xc7\x00\x00\x00\x00\x7e\xc3\x57\x2b\x01\x13"
    )
    page = OggPage(good_header, b"OpusHeadABCD")
    assert is_opus_stream(page)

    page.body = b"OpusHea"
    assert not is_opus_stream(page)
    page.body = b"Not_OpusHead"
    assert not is_opus_stream(page)

    no_bos = (
        b"\x4f\x67\x67\x53\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x42\xf2"
        b"\xe6\xc7\x00\x00\x00\x00\x7e\xc3\x57\x2b\x01\x13"
    )
    assert not is_opus_stream(OggPage(no_bos, b"OpusHeadABCD"))


def test_renumber_page_keeps_a_valid_page():
    reader = OggReader(io.BytesIO(_stream(b"First")))
    reader.next_page()
    page = reader.page
    renumber_page(page, 1234)
    assert page.pageno() == 1234
    reread = OggReader(io.BytesIO(page.to_bytes()))
    assert reread.next_page() is True
    assert reread.page.pageno() == 1234
    assert reread.read_header_packet() == b"First"


def test_renumber_page_same_number_is_unchanged():
    reader = OggReader(io.BytesIO(_stream(b"First")))
    reader.next_page()
    before = reader.page.to_bytes()
    renumber_page(reader.page, 0)
    assert reader.page.to_bytes() == before


def test_ogg_crc_values():
    assert ogg_crc(b"") == 0
    assert ogg_crc(b"123456789") == 0x89A1897F


def test_multi_page_header_packet():
    packet = bytes(range(256)) * 274
    data = _stream(packet, serialno=5)
    reader = OggReader(io.BytesIO(data))
    assert reader.next_page() is True
    assert reader.page.bos()
    assert reader.page.packet_count() == 0
    assert reader.read_header_packet() == packet
    assert reader.page.continued()
    assert reader.page.packet_count() == 1
    assert reader.absolute_page_no == 1
    assert reader.next_page() is False


def test_continued_header_page_is_rejected():
    data = _stream(b"z" * 70000)
    reader = OggReader(io.BytesIO(data))
    reader.next_page()
    reader.next_page()
    with pytest.raises(OpusTagsError) as info:
        reader.read_header_packet()
    assert info.value.message == "Unexpected continued header page."


def test_unterminated_header_packet():
    data = _stream(b"z" * 70000)
    reader = OggReader(io.BytesIO(data))
    reader.next_page()
    first_page = reader.page.to_bytes()
    reader = OggReader(io.BytesIO(first_page))
    reader.next_page()
    with pytest.raises(OpusTagsError) as info:
        reader.read_header_packet()
    assert info.value.message == "Unterminated header packet."


def test_header_page_with_two_packets():
    reader = OggReader(io.BytesIO(_raw_page([3, 3], b"abcdef")))
    assert reader.next_page() is True
    assert reader.page.packet_count() == 2
    with pytest.raises(OpusTagsError) as info:
        reader.read_header_packet()
    assert info.value.message == "Header page contains more than a single packet."


def test_write_page_number_mismatch(capsys):
    reader = OggReader(io.BytesIO(_raw_page([3], b"abc", pageno=5)))
    reader.next_page()
    out = io.BytesIO()
    writer = OggWriter(out)
    writer.write_page(reader.page)
    assert writer.next_page_no == 6
    assert out.getvalue() == reader.page.to_bytes()
    assert "Output page number mismatch: expected 0, got 5." in capsys.readouterr().err