"""Status codes and the exception raised throughout the package."""

from __future__ import annotations

import enum


class Status(enum.Enum):
    """Kinds of failure that the package reports."""

    # Generic
    OK = enum.auto()
    ERROR = enum.auto()
    STANDARD_ERROR = enum.auto()
    INT_OVERFLOW = enum.auto()
    CANCEL = enum.auto()
    # System
    BADLY_ENCODED = enum.auto()
    CHILD_PROCESS_FAILED = enum.auto()
    # Ogg
    BAD_STREAM = enum.auto()
    LIBOGG_ERROR = enum.auto()
    # Opus
    BAD_MAGIC_NUMBER = enum.auto()
    CUT_MAGIC_NUMBER = enum.auto()
    CUT_VENDOR_LENGTH = enum.auto()
    CUT_VENDOR_DATA = enum.auto()
    CUT_COMMENT_COUNT = enum.auto()
    CUT_COMMENT_LENGTH = enum.auto()
    CUT_COMMENT_DATA = enum.auto()
    INVALID_SIZE = enum.auto()
    # Command line
    BAD_ARGUMENTS = enum.auto()


class OpusTagsError(Exception):
    """An error carrying a status code and a message meant for the user."""

    def __init__(self, code: Status = Status.ERROR, message: str = "") -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"OpusTagsError({self.code!r}, {self.message!r})"