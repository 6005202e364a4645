"""
Exception Types for RawAnalyzer

Structural problems with a raw file (bad magic, missing header fields,
truncated body, compressed data) are fatal and always propagate.
NumericDomainError marks a degenerate numeric input for a single parameter;
the analysis layer absorbs it and records a diagnostic instead.
"""

from typing import Optional


class RawFileError(ValueError):
    """Base class for errors raised while decoding a raw file."""


class FormatError(RawFileError):
    """The byte stream is not a raw file or its header is malformed."""


class UnsupportedFormatError(FormatError):
    """The raw file is recognized but uses a variant that cannot be decoded."""


class TruncatedFileError(RawFileError):
    """
    The binary body holds fewer bytes than the header promises.

    Attributes:
        row: Row index at which the short read occurred
        column: Column index at which the short read occurred
        expected_bytes: Body size implied by the header
        available_bytes: Body bytes actually present
    """

    def __init__(self, row: int, column: int,
                 expected_bytes: Optional[int] = None,
                 available_bytes: Optional[int] = None):
        self.row = row
        self.column = column
        self.expected_bytes = expected_bytes
        self.available_bytes = available_bytes
        message = f"Unexpected end of binary data at row {row}, column {column}"
        if expected_bytes is not None and available_bytes is not None:
            message += f" (expected {expected_bytes} bytes, found {available_bytes})"
        super().__init__(message)


class NumericDomainError(ValueError):
    """A statistic cannot be computed for the given input (e.g. one run, zero sigma)."""
