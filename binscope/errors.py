"""
Exception classes for binscope.

Parsing is a total function: only SearchInputError ever reaches a
caller. The other classes are raised inside the parsers and absorbed
at the level that owns the damaged structure.
"""


class BinscopeError(Exception):
    """Base exception for all binscope errors."""

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)


class StructuralError(BinscopeError):
    """
    Bad magic or signature at the start of a structure.

    Aborts that structure's parse; sibling regions collected so far
    are kept.
    """


class TruncationError(BinscopeError):
    """
    A read or a declared length/count runs past the end of the buffer.

    Raised by ByteReader. Walkers catch it and clamp or stop; it is
    fatal only where nothing can be read at all (header too small).
    """

    def __init__(self, message: str = "", offset: int = 0, size: int = 0):
        self.offset = offset
        self.size = size
        super().__init__(message)


class UnsupportedVariant(BinscopeError):
    """
    Unrecognized enum value, type code or file magic.

    Never fatal: codes are rendered as raw hex, and an unknown file
    magic falls back to the PE parser.
    """


class SearchInputError(BinscopeError):
    """
    Search query cannot be run as given.

    Raised for malformed hex, an invalid regular expression, regex over
    a buffer larger than the configured limit, regex in unicode mode,
    or an unknown search mode.
    """
