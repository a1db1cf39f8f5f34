import io

from opustags.ogg import OggWriter
from opustags.oggdump import dump, main


def _write_stream(path, *packets, serialno=1234):
    out = io.BytesIO()
    writer = OggWriter(out)
    for packet in packets:
        writer.write_header_packet(serialno, writer.next_page_no, packet)
    path.write_bytes(out.getvalue())
    return path


def test_dump_lists_pages(tmp_path):
    path = _write_stream(tmp_path / "a.ogg", b"First", b"Second")
    output = io.StringIO()
    dump(str(path), output)
    assert output.getvalue().splitlines() == [
        "Stream 1234, page #0, 1 packet(s), BoS",
        "Stream 1234, page #1, 1 packet(s)",
    ]


def test_dump_continued_pages(tmp_path):
    path = _write_stream(tmp_path / "b.ogg", b"x" * 70000, serialno=5)
    output = io.StringIO()
    dump(str(path), output)
    assert output.getvalue().splitlines() == [
        "Stream 5, page #0, 0 packet(s), BoS",
        "Stream 5, page #1, 1 packet(s), continued",
    ]


def test_main_prints_to_stdout(tmp_path, capsys):
    path = _write_stream(tmp_path / "c.ogg", b"First")
    assert main([str(path)]) == 0
    assert capsys.readouterr().out == "Stream 1234, page #0, 1 packet(s), BoS\n"


def test_main_usage(capsys):
    assert main([]) == 1
    assert "Usage: oggdump FILE" in capsys.readouterr().err


def test_main_missing_file(tmp_path, capsys):
    missing = tmp_path / "missing.ogg"
    assert main([str(missing)]) == 1
    assert f"Error opening '{missing}'" in capsys.readouterr().err


def test_main_bad_stream(tmp_path, capsys):
    path = tmp_path / "bad.ogg"
    path.write_bytes(b"this is not an ogg stream at all, really")
    assert main([str(path)]) == 1
    assert capsys.readouterr().err.startswith("error: ")