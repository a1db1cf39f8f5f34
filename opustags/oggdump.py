"""Print a short description of every page of an Ogg file."""

from __future__ import annotations

import sys
from typing import TextIO

from opustags.errors import OpusTagsError
from opustags.ogg import OggReader


def dump(path: str, output: TextIO) -> None:
    """Write one line per page of the Ogg file at path to output."""
    with open(path, "rb") as f:
        reader = OggReader(f)
        while reader.next_page():
            page = reader.page
            line = (
                f"Stream {page.serialno()}, page #{page.pageno()}, "
                f"{page.packet_count()} packet(s)"
            )
            if page.bos():
                line += ", BoS"
            if page.eos():
                line += ", EoS"
            if page.continued():
                line += ", continued"
            output.write(line + "\n")


def main(argv: list[str] | None = None) -> int:
    """Dump the pages of the single file given as argument."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1:
        print("Usage: oggdump FILE", file=sys.stderr)
        return 1
    path = args[0]
    try:
        dump(path, sys.stdout)
    except OSError as exc:
        print(f"Error opening '{path}': {exc.strerror}", file=sys.stderr)
        return 1
    except OpusTagsError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1
    return 0