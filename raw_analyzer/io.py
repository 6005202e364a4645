"""
Raw File I/O for RawAnalyzer

This module decodes LTspice raw files: a text header followed by a binary
body of time-series samples. Two header encodings exist in the wild:

- ASCII (LTspice IV): one byte per character
- UTF-16LE (LTspice XVII): two bytes per character, little-endian

The body stores one row per point. Each row holds the time as an 8-byte
little-endian double followed by the remaining variables as 4-byte singles,
or as 8-byte doubles when the header carries the "double" flag.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple, Union, BinaryIO

import numpy as np

from .exceptions import FormatError, UnsupportedFormatError, TruncatedFileError


class HeaderVariant(Enum):
    """Text encoding of the raw file header."""

    ASCII = ('ascii', 1)
    UTF16LE = ('utf-16-le', 2)

    def __init__(self, codec: str, unit_width: int):
        self.codec = codec
        self.unit_width = unit_width

    @property
    def newline(self) -> bytes:
        return '\n'.encode(self.codec)


class SampleWidth(Enum):
    """Width of the non-time samples in the binary body."""

    SINGLE = 4
    DOUBLE = 8

    @property
    def dtype(self) -> np.dtype:
        return np.dtype('<f4') if self is SampleWidth.SINGLE else np.dtype('<f8')


# Width of the time column, independent of the "double" flag
TIME_WIDTH = 8


@dataclass(frozen=True)
class RawHeader:
    """
    Decoded raw file header.

    Attributes:
        variant: Header text encoding
        sample_width: Width of columns 1..N-1 in the binary body
        column_count: Number of variables (column 0 is time)
        point_count: Number of rows in the binary body
        variable_names: Variable names in column order
        body_offset: Byte offset of the first binary row
        compressed: Compressed flag (never True on a returned header)
        metadata: Other "Key: value" header lines (Title, Date, Plotname, ...)
    """
    variant: HeaderVariant
    sample_width: SampleWidth
    column_count: int
    point_count: int
    variable_names: Tuple[str, ...]
    body_offset: int
    compressed: bool = False
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def row_size(self) -> int:
        """Size of one binary row in bytes."""
        return TIME_WIDTH + (self.column_count - 1) * self.sample_width.value

    @property
    def body_size(self) -> int:
        """Size of the binary body promised by the header."""
        return self.point_count * self.row_size


class Matrix:
    """
    Column-major matrix of decoded raw file samples.

    Column 0 holds time, columns 1..N-1 hold the simulated variables. The
    underlying array is read-only.

    Example:
        >>> matrix, header = load_raw('rc.raw')
        >>> vout = matrix.column('V(out)')
        >>> print(matrix.column_count, matrix.point_count)
    """

    def __init__(self, values: np.ndarray, names):
        values = np.array(values, dtype=np.float64)
        if values.ndim != 2:
            raise ValueError(f"Matrix values must be 2-D, got shape {values.shape}")
        names = tuple(names)
        if len(names) != values.shape[0]:
            raise ValueError(
                f"Number of names ({len(names)}) does not match "
                f"number of columns ({values.shape[0]})"
            )
        values.setflags(write=False)
        self._values = values
        self._names = names

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def names(self) -> Tuple[str, ...]:
        return self._names

    @property
    def column_count(self) -> int:
        return self._values.shape[0]

    @property
    def point_count(self) -> int:
        return self._values.shape[1]

    @property
    def time(self) -> np.ndarray:
        return self._values[0]

    def index_of(self, name: str) -> int:
        """
        Return the column index of the first variable with the given name.

        Raises:
            KeyError: If no column carries that name
        """
        try:
            return self._names.index(name)
        except ValueError:
            raise KeyError(f"No variable named '{name}'") from None

    def column(self, key: Union[int, str]) -> np.ndarray:
        """Return one column by index or by variable name."""
        if isinstance(key, str):
            key = self.index_of(key)
        if not 0 <= key < self.column_count:
            raise IndexError(f"Column {key} out of range (0..{self.column_count - 1})")
        return self._values[key]

    def __getitem__(self, key: Union[int, str]) -> np.ndarray:
        return self.column(key)

    def __len__(self) -> int:
        return self.column_count

    def __repr__(self) -> str:
        return f"Matrix(columns={self.column_count}, points={self.point_count})"


def detect_variant(data: bytes) -> HeaderVariant:
    """
    Identify the header encoding from the first two bytes.

    Raises:
        FormatError: If the data does not start like a raw file
    """
    if len(data) < 2 or data[0] != ord('T'):
        raise FormatError("Not an LTspice raw file")
    return HeaderVariant.UTF16LE if data[1] == 0 else HeaderVariant.ASCII


def _split_header_lines(data: bytes, variant: HeaderVariant) -> Tuple[List[str], int]:
    """
    Split the header into text lines up to the "Binary:" line.

    Returns:
        Tuple of (lines, body_offset), lines keep their trailing newline
    """
    newline = variant.newline
    width = variant.unit_width
    lines = []
    start = 0
    search = 0

    while True:
        end = data.find(newline, search)
        if end < 0:
            raise FormatError("Premature end of header: no 'Binary:' line found")
        # Newlines must sit on a code-unit boundary
        if (end - start) % width:
            search = end + 1
            continue

        stop = end + len(newline)
        line = data[start:stop].decode(variant.codec, errors='replace')
        if line.rstrip('\r\n') == 'Binary:':
            return lines, stop

        lines.append(line)
        start = search = stop


def _parse_count(line: str, prefix: str) -> int:
    text = line[len(prefix):].strip()
    try:
        value = int(text)
    except ValueError:
        raise FormatError(f"Invalid value for '{prefix}' header field: '{text}'") from None
    if value < 0:
        raise FormatError(f"'{prefix}' must not be negative, got {value}")
    return value


def read_raw_header(data: bytes) -> RawHeader:
    """
    Decode the text header of a raw file.

    Args:
        data: Complete raw file contents

    Returns:
        RawHeader with the binary body offset

    Raises:
        FormatError: If the magic bytes, counts or variable lines are invalid
        UnsupportedFormatError: If the file is compressed
    """
    variant = detect_variant(data)
    lines, body_offset = _split_header_lines(data, variant)

    sample_width = SampleWidth.SINGLE
    column_count = None
    point_count = None
    names = []
    metadata = {}

    i = 0
    while i < len(lines):
        line = lines[i].rstrip('\r\n')

        if line.startswith('Flags:'):
            for flag in line[len('Flags:'):].split():
                if flag == 'double':
                    sample_width = SampleWidth.DOUBLE
                elif flag == 'compressed':
                    raise UnsupportedFormatError("Compressed raw files are not supported")
            metadata['Flags'] = line[len('Flags:'):].strip()

        elif line.startswith('No. Variables:'):
            column_count = _parse_count(line, 'No. Variables:')

        elif line.startswith('No. Points:'):
            point_count = _parse_count(line, 'No. Points:')

        elif line.startswith('Variables:'):
            if column_count is None:
                raise FormatError("'Variables:' section precedes 'No. Variables:'")
            if i + column_count >= len(lines):
                raise FormatError(
                    f"Expected {column_count} variable lines, "
                    f"found {len(lines) - i - 1}"
                )
            for j in range(column_count):
                i += 1
                fields = lines[i].rstrip('\r\n').split('\t')
                if len(fields) < 3:
                    raise FormatError(f"Malformed variable line: '{lines[i].strip()}'")
                names.append(fields[2])

        elif ':' in line:
            key, _, value = line.partition(':')
            metadata[key.strip()] = value.strip()

        i += 1

    if column_count is None:
        raise FormatError("Header is missing 'No. Variables:'")
    if point_count is None:
        raise FormatError("Header is missing 'No. Points:'")
    if column_count < 1:
        raise FormatError("Raw file declares no variables")
    if len(names) != column_count:
        raise FormatError(f"Expected {column_count} variable names, found {len(names)}")

    return RawHeader(
        variant=variant,
        sample_width=sample_width,
        column_count=column_count,
        point_count=point_count,
        variable_names=tuple(names),
        body_offset=body_offset,
        metadata=metadata,
    )


def _row_dtype(header: RawHeader) -> np.dtype:
    fields = [('time', '<f8')]
    if header.column_count > 1:
        fields.append(('samples', header.sample_width.dtype, (header.column_count - 1,)))
    return np.dtype(fields)


def decode_body(data: bytes, header: RawHeader) -> Matrix:
    """
    Decode the binary body described by a header into a Matrix.

    Args:
        data: Complete raw file contents
        header: Header returned by read_raw_header()

    Returns:
        Matrix with header.column_count columns of header.point_count samples

    Raises:
        TruncatedFileError: If the body is shorter than the header promises
    """
    available = len(data) - header.body_offset
    expected = header.body_size

    if available < expected:
        row_size = header.row_size
        row, remainder = divmod(available, row_size)
        if remainder < TIME_WIDTH:
            column = 0
        else:
            column = 1 + (remainder - TIME_WIDTH) // header.sample_width.value
        raise TruncatedFileError(row, column, expected, available)

    values = np.empty((header.column_count, header.point_count), dtype=np.float64)
    if header.point_count > 0:
        rows = np.frombuffer(data, dtype=_row_dtype(header),
                             count=header.point_count, offset=header.body_offset)
        values[0] = rows['time']
        if header.column_count > 1:
            # float32 -> float64 widening is exact
            values[1:] = rows['samples'].T

    return Matrix(values, header.variable_names)


def _read_source(source: Union[str, os.PathLike, bytes, BinaryIO]) -> bytes:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)
    if isinstance(source, (str, os.PathLike)):
        if not os.path.exists(source):
            raise FileNotFoundError(f"Raw file not found: {source}")
        with open(source, 'rb') as f:
            return f.read()
    return source.read()


def load_raw(source: Union[str, os.PathLike, bytes, BinaryIO]) -> Tuple[Matrix, RawHeader]:
    """
    Load and decode a complete raw file.

    Args:
        source: File path, raw bytes, or a binary file object (e.g. sys.stdin.buffer)

    Returns:
        Tuple of (matrix, header)

    Raises:
        FileNotFoundError: If a path is given and does not exist
        FormatError: If the header is invalid
        UnsupportedFormatError: If the file is compressed
        TruncatedFileError: If the binary body is incomplete

    Example:
        >>> matrix, header = load_raw('sim.raw')
        >>> header.variable_names
        ('time', 'V(out)', 'I(R1)')
    """
    data = _read_source(source)
    header = read_raw_header(data)
    return decode_body(data, header), header
