"""Command-line interface: option parsing, tag editing and the main loop."""

from __future__ import annotations

import contextlib
import locale
import os
import stat
import sys
import tempfile
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator

from opustags.errors import OpusTagsError, Status
from opustags.ogg import OggReader, OggWriter, is_opus_stream, renumber_page
from opustags.opus import OpusTags, extract_cover, make_cover, parse_tags, render_tags
from opustags.system import (
    PartialFile,
    decode_utf8,
    encode_utf8,
    get_file_timestamp,
    run_editor,
    slurp_binary_file,
)

_VERSION = "1.10.1"

HELP_MESSAGE = f"""opustags version {_VERSION}

Usage: opustags --help
       opustags [OPTIONS] FILE
       opustags OPTIONS -i FILE...
       opustags OPTIONS FILE -o FILE

Options:
  -h, --help                    print this help
  -o, --output FILE             specify the output file
  -i, --in-place                overwrite the input files
  -y, --overwrite               overwrite the output file if it already exists
  -a, --add FIELD=VALUE         add a comment
  -d, --delete FIELD[=VALUE]    delete previously existing comments
  -D, --delete-all              delete all the previously existing comments
  -s, --set FIELD=VALUE         replace a comment
  -S, --set-all                 import comments from standard input
  -e, --edit                    edit tags interactively in VISUAL/EDITOR
  --output-cover FILE           extract and save the cover art, if any
  --set-cover FILE              sets the cover art
  --vendor                      print the vendor string
  --set-vendor VALUE            set the vendor string
  --raw                         disable encoding conversion
  -z                            delimit tags with NUL

See the man page for extensive documentation.
"""

_NO_ARG, _REQUIRED_ARG, _OPTIONAL_ARG = range(3)

# Short options and whether they take a value.
_SHORT_OPTIONS = {
    "h": False, "o": True, "i": False, "y": False, "d": True, "a": True,
    "s": True, "D": False, "S": False, "e": False, "z": False,
}

# Long options, the key they map to, and their kind of argument.
_LONG_OPTIONS = {
    "help": ("h", _NO_ARG),
    "output": ("o", _REQUIRED_ARG),
    "in-place": ("i", _OPTIONAL_ARG),
    "overwrite": ("y", _NO_ARG),
    "delete": ("d", _REQUIRED_ARG),
    "add": ("a", _REQUIRED_ARG),
    "set": ("s", _REQUIRED_ARG),
    "delete-all": ("D", _NO_ARG),
    "set-all": ("S", _NO_ARG),
    "edit": ("e", _NO_ARG),
    "output-cover": ("c", _REQUIRED_ARG),
    "set-cover": ("C", _REQUIRED_ARG),
    "vendor": ("v", _NO_ARG),
    "set-vendor": ("V", _REQUIRED_ARG),
    "raw": ("r", _NO_ARG),
}

_PICTURE_FIELD = b"METADATA_BLOCK_PICTURE"


@dataclass
class Options:
    """Structured form of the command-line arguments."""

    print_help: bool = False
    paths_in: list[str] = field(default_factory=list)
    path_out: str | None = None
    overwrite: bool = False
    in_place: bool = False
    edit_interactively: bool = False
    to_delete: list[bytes] = field(default_factory=list)
    delete_all: bool = False
    to_add: list[bytes] = field(default_factory=list)
    cover_out: str | None = None
    print_vendor: bool = False
    set_vendor: bytes | None = None
    raw: bool = False
    tag_delimiter: bytes = b"\n"


def _bad_arguments(message: str) -> OpusTagsError:
    return OpusTagsError(Status.BAD_ARGUMENTS, message)


def _unrecognized(name: str) -> OpusTagsError:
    return _bad_arguments(f"Unrecognized option '{name}'.")


def _missing(token: str) -> OpusTagsError:
    return _bad_arguments(f"Missing value for option '{token}'.")


def _getopt(args: list[str], operands: list[str]) -> Iterator[tuple[str, str | None]]:
    """Yield (key, value) for each option; non-options are appended to operands."""
    index = 0
    while index < len(args):
        arg = args[index]
        index += 1
        if arg == "--":
            operands.extend(args[index:])
            return
        if arg.startswith("--"):
            name, eq, value = arg[2:].partition("=")
            if name in _LONG_OPTIONS:
                matches = [name]
            else:
                matches = [option for option in _LONG_OPTIONS if option.startswith(name)]
            if len(matches) != 1:
                raise _unrecognized(arg)
            key, kind = _LONG_OPTIONS[matches[0]]
            if kind == _NO_ARG:
                if eq:
                    raise _unrecognized("-" + key)
                yield key, None
            elif kind == _REQUIRED_ARG:
                if not eq:
                    if index >= len(args):
                        raise _missing(arg)
                    value = args[index]
                    index += 1
                yield key, value
            else:
                yield key, value if eq else None
        elif arg.startswith("-") and arg != "-":
            pos = 1
            while pos < len(arg):
                char = arg[pos]
                pos += 1
                if char not in _SHORT_OPTIONS:
                    raise _unrecognized("-" + char)
                if not _SHORT_OPTIONS[char]:
                    yield char, None
                    continue
                if pos < len(arg):
                    value = arg[pos:]
                elif index < len(args):
                    value = args[index]
                    index += 1
                else:
                    raise _missing(arg)
                yield char, value
                break
        else:
            operands.append(arg)


def _as_raw_bytes(value: str | bytes) -> bytes:
    return bytes(value) if isinstance(value, (bytes, bytearray)) else os.fsencode(value)


def parse_options(args: list[str], comments_input: BinaryIO | None = None) -> Options:
    """Parse command-line arguments (without the program name) and check their consistency.

    Comments are read from comments_input, or standard input, when --set-all is given.
    """
    args = list(args)
    opt = Options()
    local_to_add: list[str] = []
    local_to_delete: list[str] = []
    set_all = False
    set_cover: str | None = None
    set_vendor: str | None = None
    if not args:
        raise _bad_arguments("No arguments specified. Use -h for help.")

    operands: list[str] = []
    for key, value in _getopt(args, operands):
        match key:
            case "h":
                opt.print_help = True
            case "o":
                if opt.path_out is not None:
                    raise _bad_arguments("Cannot specify --output more than once.")
                opt.path_out = value
            case "i":
                opt.in_place = True
                opt.overwrite = True
            case "y":
                opt.overwrite = True
            case "d":
                local_to_delete.append(value)
            case "a" | "s":
                name, equal, _ = value.partition("=")
                if not equal:
                    raise _bad_arguments(f"Comment does not contain an equal sign: {value}.")
                if key == "s":
                    local_to_delete.append(name)
                local_to_add.append(value)
            case "S":
                opt.delete_all = True
                set_all = True
            case "D":
                opt.delete_all = True
            case "e":
                opt.edit_interactively = True
            case "c":
                if opt.cover_out is not None:
                    raise _bad_arguments("Cannot specify --output-cover more than once.")
                opt.cover_out = value
            case "C":
                if set_cover is not None:
                    raise _bad_arguments("Cannot specify --set-cover more than once.")
                set_cover = value
            case "v":
                opt.print_vendor = True
            case "V":
                if set_vendor is not None:
                    raise _bad_arguments("Cannot specify --set-vendor more than once.")
                set_vendor = value
            case "r":
                opt.raw = True
            case "z":
                opt.tag_delimiter = b"\0"
    if opt.print_help:
        return opt

    opt.paths_in = operands
    stdin_uses = operands.count("-")
    stdin_as_input = stdin_uses > 0
    if set_cover == "-":
        stdin_uses += 1
    if set_all:
        stdin_uses += 1
    if stdin_uses > 1:
        raise _bad_arguments("Cannot use standard input more than once.")

    if opt.raw:
        convert = _as_raw_bytes
    else:
        convert = encode_utf8
    try:
        opt.to_add = [convert(value) for value in local_to_add]
        opt.to_delete = [convert(value) for value in local_to_delete]
        if set_vendor is not None:
            opt.set_vendor = convert(set_vendor)
    except OpusTagsError as exc:
        raise _bad_arguments(f"Could not encode argument into UTF-8: {exc.message}") from exc

    read_only = not opt.in_place and opt.path_out is None

    if opt.in_place and opt.path_out is not None:
        raise _bad_arguments("Cannot combine --in-place and --output.")
    if opt.in_place and stdin_as_input:
        raise _bad_arguments("Cannot modify standard input in place.")
    if (not opt.in_place or opt.edit_interactively) and len(opt.paths_in) != 1:
        raise _bad_arguments("Exactly one input file must be specified.")
    if opt.edit_interactively and (
        stdin_as_input or opt.path_out == "-" or opt.cover_out == "-"
    ):
        raise _bad_arguments(
            "Cannot edit interactively when standard input or standard output are already used."
        )
    if opt.edit_interactively and read_only:
        raise _bad_arguments("Cannot edit interactively when no output is specified.")
    if opt.edit_interactively and (opt.delete_all or opt.to_add or opt.to_delete):
        raise _bad_arguments("Cannot mix --edit with -adDsS.")
    if opt.cover_out == "-" and opt.path_out == "-":
        raise _bad_arguments(
            "Cannot specify standard output for both --output and --output-cover."
        )
    if opt.cover_out is not None and len(opt.paths_in) > 1:
        raise _bad_arguments("Cannot use --output-cover with multiple input files.")
    if opt.print_vendor and not read_only:
        raise _bad_arguments("--vendor is only supported in read-only mode.")

    if set_cover is not None:
        picture_data = slurp_binary_file(set_cover)
        opt.to_delete.append(_PICTURE_FIELD)
        opt.to_add.append(make_cover(picture_data))

    if set_all:
        source = comments_input if comments_input is not None else sys.stdin.buffer
        opt.to_add = read_comments(source, opt) + opt.to_add
    return opt


def _format_value(source: bytes, opt: Options) -> bytes:
    """Mark continuation lines of multiline values with a leading tab."""
    delimiter = opt.tag_delimiter
    return source.replace(delimiter, delimiter + b"\t")


def _puts(data: bytes, output: BinaryIO, opt: Options) -> None:
    """Write data, converted to the locale's encoding unless raw, then a delimiter."""
    if opt.raw:
        output.write(data)
    else:
        try:
            text = decode_utf8(data)
        except OpusTagsError as exc:
            raise OpusTagsError(exc.code, exc.message + " See --raw.") from exc
        try:
            local = text.encode(locale.getpreferredencoding(False))
        except UnicodeEncodeError as exc:
            raise OpusTagsError(
                Status.BADLY_ENCODED,
                "Some characters could not be converted into the target encoding. See --raw.",
            ) from exc
        output.write(local)
    output.write(opt.tag_delimiter)


def print_comments(comments: list[bytes], output: BinaryIO, opt: Options) -> None:
    """Print comments in a form that read_comments can read back."""
    has_control = any(
        byte < 0x20 and byte != 0x0A for comment in comments for byte in comment
    )
    for comment in comments:
        _puts(_format_value(comment, opt), output, opt)
    if has_control:
        print("warning: Some tags contain control characters.", file=sys.stderr)


def _show(raw: bytes) -> str:
    return raw.decode("utf-8", "replace")


def read_comments(input_stream: BinaryIO, opt: Options) -> list[bytes]:
    """Parse comments as printed by print_comments, returning them as UTF-8 bytes."""
    delimiter = opt.tag_delimiter
    lines = input_stream.read().split(delimiter)
    if lines and lines[-1] == b"":
        lines.pop()

    comments: list[bytes] = []
    previous: int | None = None
    for source_line in lines:
        if opt.raw:
            line = source_line
        else:
            try:
                line = encode_utf8(source_line)
            except OpusTagsError as exc:
                raise OpusTagsError(
                    Status.BADLY_ENCODED, f"UTF-8 conversion error: {exc.message}"
                ) from exc

        if not line or line.startswith(b"#"):
            previous = None
        elif line.startswith(b"\t"):
            if previous is None:
                raise OpusTagsError(
                    Status.ERROR, f"Unexpected continuation line: {_show(source_line)}"
                )
            comments[previous] += delimiter + line[1:]
        elif b"=" not in line:
            raise OpusTagsError(Status.ERROR, f"Malformed tag: {_show(source_line)}")
        else:
            comments.append(line)
            previous = len(comments) - 1
    return comments


def delete_comments(comments: list[bytes], selector: bytes) -> None:
    """Remove, in place, the comments matching a NAME or NAME=VALUE selector.

    Field names are compared case-insensitively.
    """
    name, equal, value = selector.partition(b"=")
    name_len = len(name)
    lowered_name = name.lower()

    def matches(comment: bytes) -> bool:
        name_match = (
            len(comment) > name_len + 1
            and comment[name_len:name_len + 1] == b"="
            and comment[:name_len].lower() == lowered_name
        )
        if not name_match:
            return False
        if not equal:
            return True
        return len(comment) == len(selector) and comment[name_len + 1:] == value

    comments[:] = [comment for comment in comments if not matches(comment)]


def edit_tags(tags: OpusTags, opt: Options) -> None:
    """Apply the vendor, deletion and addition requests of opt to tags."""
    if opt.set_vendor is not None:
        tags.vendor = opt.set_vendor
    if opt.delete_all:
        tags.comments.clear()
    else:
        for selector in opt.to_delete:
            delete_comments(tags.comments, selector)
    tags.comments.extend(opt.to_add)


def _remove_quietly(path: str) -> None:
    with contextlib.suppress(OSError):
        os.remove(path)


def _edit_tags_interactively(tags: OpusTags, base_path: str | None, opt: Options) -> None:
    """Let the user's editor rewrite the comments through a temporary file."""
    editor = os.environ.get("VISUAL") if "TERM" in os.environ else None
    if editor is None:
        editor = os.environ.get("EDITOR")
    if editor is None:
        raise OpusTagsError(
            Status.ERROR, "No editor specified in environment variable VISUAL or EDITOR."
        )

    base = base_path if base_path is not None else "tags"
    directory, prefix = os.path.split(base)
    try:
        fd, tags_path = tempfile.mkstemp(
            prefix=prefix + ".", suffix=".opustags", dir=directory or os.curdir
        )
    except OSError as exc:
        raise OpusTagsError(
            Status.STANDARD_ERROR,
            f"Could not open '{base}.XXXXXX.opustags': {exc.strerror}",
        ) from exc
    with os.fdopen(fd, "wb") as tags_file:
        print_comments(tags.comments, tags_file, opt)

    before = get_file_timestamp(tags_path)
    editor_error: OpusTagsError | None = None
    try:
        run_editor(editor, tags_path)
    except OpusTagsError as exc:
        editor_error = exc
    after = get_file_timestamp(tags_path)
    modified = before != after
    if editor_error is not None:
        if modified:
            print(f"warning: Leaving {tags_path} on the disk.", file=sys.stderr)
        else:
            _remove_quietly(tags_path)
        raise editor_error
    if not modified:
        _remove_quietly(tags_path)
        print("Cancelling edition because the tags file was not modified.", file=sys.stderr)
        raise OpusTagsError(Status.CANCEL, "")

    try:
        tags_file = open(tags_path, "rb")
    except OSError as exc:
        raise OpusTagsError(
            Status.STANDARD_ERROR, f"Error opening {tags_path}: {exc.strerror}"
        ) from exc
    with tags_file:
        try:
            tags.comments = read_comments(tags_file, opt)
        except OpusTagsError:
            print(f"warning: Leaving {tags_path} on the disk.", file=sys.stderr)
            raise
    # The edited file holds user data, so it is only removed on success.
    _remove_quietly(tags_path)


def _output_cover(tags: OpusTags, opt: Options) -> None:
    cover = extract_cover(tags)
    if cover is None:
        print("warning: No cover found.", file=sys.stderr)
        return

    path = opt.cover_out
    if path == "-":
        output = sys.stdout.buffer
        output.write(cover.picture_data)
        output.flush()
        return

    try:
        info = os.stat(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        raise OpusTagsError(
            Status.ERROR, f"Could not identify '{path}': {exc.strerror}"
        ) from exc
    else:
        if stat.S_ISREG(info.st_mode) and not opt.overwrite:
            raise OpusTagsError(
                Status.ERROR, f"'{path}' already exists. Use -y to overwrite."
            )
    try:
        output_file = open(path, "wb")
    except OSError as exc:
        raise OpusTagsError(
            Status.STANDARD_ERROR, f"Could not open '{path}' for writing: {exc.strerror}"
        ) from exc
    with output_file:
        try:
            output_file.write(cover.picture_data)
        except OSError as exc:
            raise OpusTagsError(
                Status.STANDARD_ERROR, f"fwrite error: {exc.strerror}"
            ) from exc


def _process(reader: OggReader, writer: OggWriter | None, opt: Options) -> None:
    """Copy pages from reader to writer, transforming the OpusTags packet.

    Without a writer, the tags are printed instead.
    """
    focused_serialno: int | None = None
    # Shift for the pages after the tags when their page count changes.
    pageno_offset = 0

    while reader.next_page():
        page = reader.page
        serialno = page.serialno()
        pageno = page.pageno()
        if focused_serialno is None:
            focused_serialno = serialno
        elif serialno != focused_serialno:
            raise OpusTagsError(Status.ERROR, "Muxed streams are not supported yet.")

        if reader.absolute_page_no == 0:
            if not is_opus_stream(page):
                raise OpusTagsError(Status.ERROR, "Not an Opus stream.")
            if writer is not None:
                writer.write_page(page)
        elif reader.absolute_page_no == 1:
            tags = parse_tags(reader.read_header_packet())
            if opt.cover_out is not None:
                _output_cover(tags, opt)
            edit_tags(tags, opt)
            if writer is not None:
                if opt.edit_interactively:
                    writer.file.flush()
                    _edit_tags_interactively(tags, writer.path, opt)
                writer.write_header_packet(serialno, pageno, render_tags(tags))
                pageno_offset = writer.next_page_no - 1 - reader.absolute_page_no
            else:
                if opt.cover_out != "-":
                    stdout = sys.stdout.buffer
                    if opt.print_vendor:
                        _puts(tags.vendor, stdout, opt)
                    else:
                        print_comments(tags.comments, stdout, opt)
                    stdout.flush()
                break
        elif writer is not None:
            renumber_page(page, pageno + pageno_offset)
            writer.write_page(page)

    if reader.absolute_page_no < 1:
        raise OpusTagsError(Status.ERROR, "Expected at least 2 Ogg pages.")


def _run_single(opt: Options, path_in: str, path_out: str | None) -> None:
    with contextlib.ExitStack() as stack:
        input_file: BinaryIO
        if path_in == "-":
            input_file = sys.stdin.buffer
        else:
            try:
                input_file = open(path_in, "rb")
            except OSError as exc:
                raise OpusTagsError(
                    Status.STANDARD_ERROR,
                    f"Could not open '{path_in}' for reading: {exc.strerror}",
                ) from exc
            stack.enter_context(input_file)
        reader = OggReader(input_file)

        if path_out is None:
            _process(reader, None, opt)
            return

        # Regular files are written through a temporary file moved in place at the end.
        temporary = stack.enter_context(PartialFile())
        if path_out == "-":
            output = sys.stdout.buffer
        else:
            try:
                info = os.stat(path_out)
            except FileNotFoundError:
                info = None
            except OSError as exc:
                raise OpusTagsError(
                    Status.ERROR, f"Could not identify '{path_out}': {exc.strerror}"
                ) from exc
            if info is None:
                output = temporary.open(path_out)
            elif not stat.S_ISREG(info.st_mode):
                try:
                    output = stack.enter_context(open(path_out, "wb"))
                except OSError as exc:
                    raise OpusTagsError(
                        Status.STANDARD_ERROR,
                        f"Could not open '{path_out}' for writing: {exc.strerror}",
                    ) from exc
            elif opt.overwrite:
                output = temporary.open(path_out)
            else:
                raise OpusTagsError(
                    Status.ERROR, f"'{path_out}' already exists. Use -y to overwrite."
                )

        writer = OggWriter(output, path_out)
        _process(reader, writer, opt)
        output.flush()

        # Some file systems require the input to be closed before it is replaced.
        if input_file is not sys.stdin.buffer:
            input_file.close()
        temporary.commit()


def run(opt: Options) -> None:
    """Process every input file as the command line asks."""
    if opt.print_help:
        sys.stdout.write(HELP_MESSAGE)
        sys.stdout.flush()
        return

    failed = False
    for path_in in opt.paths_in:
        try:
            _run_single(opt, path_in, path_in if opt.in_place else opt.path_out)
        except OpusTagsError as exc:
            failed = True
            if exc.message:
                print(f"{path_in}: error: {exc.message}", file=sys.stderr)
    if failed:
        raise OpusTagsError(Status.ERROR, "")


def main(argv: list[str] | None = None) -> int:
    """Run the opustags command and return its exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        with contextlib.suppress(locale.Error):
            locale.setlocale(locale.LC_ALL, "")
        opt = parse_options(args, None)
        run(opt)
        return 0
    except OpusTagsError as exc:
        if exc.message:
            print(f"error: {exc.message}", file=sys.stderr)
        return 2 if exc.code is Status.BAD_ARGUMENTS else 1