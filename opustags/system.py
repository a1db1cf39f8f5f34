"""Interaction with the system: files, encodings and child processes."""

from __future__ import annotations

import locale
import os
import secrets
import string
import subprocess
import sys
from typing import BinaryIO

from opustags.errors import OpusTagsError, Status

_NAME_CHARS = string.ascii_letters + string.digits


def _random_token(length: int = 6) -> str:
    return "".join(secrets.choice(_NAME_CHARS) for _ in range(length))


def _get_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def _copy_permissions(source: str, dest: str) -> None:
    """Give dest the permissions of source, or the default ones if source is missing."""
    try:
        target_mode = os.stat(source).st_mode & 0o777
    except FileNotFoundError:
        target_mode = 0o666 & ~_get_umask()
    except OSError as exc:
        print(f"warning: Could not read mode of {source}: {exc.strerror}", file=sys.stderr)
        return
    try:
        os.chmod(dest, target_mode)
    except OSError as exc:
        print(f"warning: Could not set mode of {dest}: {exc.strerror}", file=sys.stderr)


class PartialFile:
    """A temporary file that is moved to its destination once complete.

    Leaving the context without committing deletes the temporary file.
    """

    def __init__(self) -> None:
        self._temporary_name = ""
        self._final_name = ""
        self._file: BinaryIO | None = None

    @property
    def file(self) -> BinaryIO | None:
        """The open handle of the temporary file, if any."""
        return self._file

    def open(self, destination: str) -> BinaryIO:
        """Create a temporary file next to destination and return its handle."""
        self.abort()
        self._final_name = os.fspath(destination)
        for _ in range(100):
            candidate = f"{self._final_name}.{_random_token()}.part"
            try:
                fd = os.open(candidate, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            except FileExistsError:
                continue
            except OSError as exc:
                raise OpusTagsError(
                    Status.STANDARD_ERROR,
                    f"Could not create a partial file for '{self._final_name}': {exc.strerror}",
                ) from exc
            break
        else:
            raise OpusTagsError(
                Status.STANDARD_ERROR,
                f"Could not create a partial file for '{self._final_name}': "
                "File exists",
            )
        self._temporary_name = candidate
        try:
            self._file = os.fdopen(fd, "wb")
        except OSError as exc:
            os.close(fd)
            raise OpusTagsError(
                Status.STANDARD_ERROR,
                f"Could not get the partial file handle to '{candidate}': {exc.strerror}",
            ) from exc
        return self._file

    def commit(self) -> None:
        """Close the temporary file and move it to its final location."""
        if self._file is None:
            return
        self._file.close()
        self._file = None
        _copy_permissions(self._final_name, self._temporary_name)
        try:
            os.replace(self._temporary_name, self._final_name)
        except OSError as exc:
            raise OpusTagsError(
                Status.STANDARD_ERROR,
                f"Could not move the result file '{self._temporary_name}' to "
                f"'{self._final_name}': {exc.strerror}.",
            ) from exc

    def abort(self) -> None:
        """Close and delete the temporary file."""
        if self._file is None:
            return
        self._file.close()
        self._file = None
        try:
            os.remove(self._temporary_name)
        except OSError:
            pass

    def name(self) -> str | None:
        """Name of the temporary file while it is open."""
        return self._temporary_name if self._file is not None else None

    def __enter__(self) -> PartialFile:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.abort()


def slurp_binary_file(filename: str) -> bytes:
    """Read a whole file into memory; "-" reads standard input."""
    if filename == "-":
        try:
            return sys.stdin.buffer.read()
        except OSError as exc:
            raise OpusTagsError(
                Status.STANDARD_ERROR, f"Could not read '{filename}': {exc.strerror}."
            ) from exc
    try:
        with open(filename, "rb") as f:
            return f.read()
    except OSError as exc:
        raise OpusTagsError(
            Status.STANDARD_ERROR, f"Could not open '{filename}': {exc.strerror}."
        ) from exc


def encode_utf8(data: str | bytes) -> bytes:
    """Convert text from the system representation to UTF-8 bytes.

    Bytes are decoded with the locale's encoding first.
    """
    try:
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode(locale.getpreferredencoding(False))
        return data.encode("utf-8")
    except UnicodeError as exc:
        raise OpusTagsError(Status.BADLY_ENCODED, f"{exc.reason}.") from exc


def decode_utf8(data: bytes) -> str:
    """Convert UTF-8 bytes to text."""
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise OpusTagsError(Status.BADLY_ENCODED, f"{exc.reason}.") from exc


def shell_escape(word: str) -> str:
    """Quote a word so that a POSIX shell reads it as a single argument."""
    escaped = word.replace("'", "'\\''").replace("!", "'\\!'")
    return f"'{escaped}'"


def run_editor(editor: str, path: str) -> None:
    """Run the editor command through the shell on path and wait for it to finish."""
    command = f"{editor} {shell_escape(os.fspath(path))}"
    try:
        completed = subprocess.run(command, shell=True)
    except OSError as exc:
        raise OpusTagsError(Status.STANDARD_ERROR, f"waitpid error: {exc.strerror}") from exc
    if completed.returncode < 0:
        raise OpusTagsError(
            Status.CHILD_PROCESS_FAILED,
            f"Child process did not terminate normally: signal {-completed.returncode}",
        )
    if completed.returncode != 0:
        raise OpusTagsError(
            Status.CHILD_PROCESS_FAILED,
            f"Child process exited with {completed.returncode}",
        )


def get_file_timestamp(path: str) -> int:
    """Return the modification time of path, in nanoseconds."""
    try:
        return os.stat(path).st_mtime_ns
    except OSError as exc:
        raise OpusTagsError(
            Status.STANDARD_ERROR, f"{path}: stat error: {exc.strerror}"
        ) from exc