# opustags

View and edit the comments (tags) of Ogg Opus files without touching the
audio. The audio pages are copied verbatim; only the OpusTags header packet
is rewritten, and the following pages are renumbered when the new header
takes a different number of pages.

## Installation

    pip install .

## Usage

    opustags --help
    opustags [OPTIONS] FILE
    opustags OPTIONS -i FILE...
    opustags OPTIONS FILE -o FILE

Print the tags of a file:

    opustags song.opus

Add, replace and delete tags, writing the result to a new file:

    opustags song.opus -o out.opus -a ARTIST=Someone -s TITLE=Something -d COMMENT

Edit files in place:

    opustags -i -s GENRE=Jazz a.opus b.opus

Replace all tags with those read from standard input, one `NAME=value` per
line. Continuation lines of multi-line values start with a tab; empty lines
and lines starting with `#` are ignored:

    opustags -i -S song.opus < tags.txt

Edit the tags in `$VISUAL` (when `TERM` is set) or `$EDITOR`. The tags are
written to a temporary file next to the output; if the editor leaves it
unmodified, the edit is cancelled:

    opustags -i -e song.opus

Extract or set the cover art:

    opustags song.opus --output-cover cover.jpg
    opustags -i song.opus --set-cover cover.png

The MIME type of a new cover is detected from its first bytes (JPEG, PNG or
GIF), and defaults to `application/octet-stream`.

Output files are written to a temporary `.part` file next to the destination
and moved into place once complete. An existing regular output file is only
replaced with `-y` or `-i`.

### Options

| Option | Meaning |
| --- | --- |
| `-h`, `--help` | print the help |
| `-o`, `--output FILE` | output file (`-` for standard output) |
| `-i`, `--in-place` | overwrite the input files |
| `-y`, `--overwrite` | overwrite the output file if it exists |
| `-a`, `--add FIELD=VALUE` | add a comment |
| `-d`, `--delete FIELD[=VALUE]` | delete matching comments (name is case-insensitive) |
| `-D`, `--delete-all` | delete all existing comments |
| `-s`, `--set FIELD=VALUE` | replace a comment |
| `-S`, `--set-all` | read all comments from standard input |
| `-e`, `--edit` | edit tags interactively |
| `--output-cover FILE` | save the cover art (`-` for standard output) |
| `--set-cover FILE` | set the cover art (`-` for standard input) |
| `--vendor` | print the vendor string (read-only mode only) |
| `--set-vendor VALUE` | set the vendor string |
| `--raw` | disable encoding conversion |
| `-z` | delimit tags with NUL instead of line feeds |

The exit status is 0 on success, 2 on bad arguments and 1 on other errors.

## Inspecting Ogg pages

`oggdump` prints one line per Ogg page, with its stream serial number, page
number, packet count and flags (`BoS`, `EoS`, `continued`):

    oggdump song.opus

## Library use

The modules can be used directly:

- `opustags.ogg`: `OggReader`, `OggWriter`, `OggPage`, `is_opus_stream`,
  `renumber_page`, `ogg_crc`
- `opustags.opus`: `parse_tags`, `render_tags`, `OpusTags`, `Picture`,
  `extract_cover`, `make_cover`, `detect_mime_type`
- `opustags.base64codec`: `encode_base64`, `decode_base64`
- `opustags.system`: `PartialFile`, `slurp_binary_file`, `encode_utf8`,
  `decode_utf8`, `shell_escape`, `run_editor`, `get_file_timestamp`
- `opustags.cli`: `Options`, `parse_options`, `run`, `main`,
  `read_comments`, `print_comments`, `delete_comments`, `edit_tags`
- `opustags.oggdump`: `dump`, `main`

Errors are raised as `opustags.errors.OpusTagsError`, whose `code` is a
`Status` member and whose `message` is meant for the user.

## Limitations

- Only files holding a single logical stream are handled; multiplexed Ogg
  streams are rejected.
- Only the first cover art is extracted, whatever its picture type; new
  covers are always stored as front covers with an empty description.