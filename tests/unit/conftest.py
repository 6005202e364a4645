"""
Shared fixtures for RawAnalyzer unit tests.

Raw files are synthesized in memory: a text header in ASCII or UTF-16LE
followed by the binary rows.
"""

import os
import struct
import sys

import numpy as np
import pytest

# Add parent directories to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))


def build_raw(names, columns, double=False, utf16=False, flags=None,
              point_count=None, header_lines=None):
    """
    Encode a raw file.

    Args:
        names: Variable names, names[0] is time
        columns: Sequence of 1-D arrays, one per variable
        double: Write columns 1..N-1 as 8-byte doubles
        utf16: Encode the header as UTF-16LE
        flags: Explicit "Flags:" value (default derived from double)
        point_count: Explicit "No. Points:" value (default from the data)
        header_lines: Replace the generated header lines entirely

    Returns:
        Raw file bytes
    """
    columns = [np.asarray(c, dtype=np.float64) for c in columns]
    rows = len(columns[0]) if columns else 0
    if point_count is None:
        point_count = rows
    if flags is None:
        flags = 'real forward double' if double else 'real forward'

    if header_lines is None:
        header_lines = [
            'Title: * synthetic test circuit',
            'Date: Mon Oct 19 10:00:00 2026',
            'Plotname: Transient Analysis',
            f'Flags: {flags}',
            f'No. Variables: {len(names)}',
            f'No. Points: {point_count}',
            'Offset:   0.0000000000000000e+000',
            'Command: Linear Technology Corporation LTspice',
            'Variables:',
        ]
        header_lines += [
            f'\t{i}\t{name}\t{"time" if i == 0 else "voltage"}'
            for i, name in enumerate(names)
        ]
    text = ''.join(line + '\n' for line in header_lines) + 'Binary:\n'
    header = text.encode('utf-16-le' if utf16 else 'ascii')

    sample_format = '<d' if double else '<f'
    body = bytearray()
    for i in range(rows):
        body += struct.pack('<d', columns[0][i])
        for column in columns[1:]:
            body += struct.pack(sample_format, column[i])

    return header + bytes(body)


@pytest.fixture
def raw_builder():
    """Factory fixture returning build_raw()."""
    return build_raw


@pytest.fixture
def montecarlo_raw():
    """
    Ten-run file with a measurement and constant limit columns.

    Each run holds 5 points; V(out) is 5.0 plus a per-run offset, the limit
    columns hold 4.5 and 5.5.
    """
    offsets = np.linspace(-0.1, 0.1, 10)
    time = np.tile(np.arange(5) * 1e-3, 10)
    vout = np.repeat(5.0 + offsets, 5)
    vmin = np.full(time.size, 4.5)
    vmax = np.full(time.size, 5.5)
    names = ['time', 'V(out)', 'V(out_min)', 'V(out_max)']
    return build_raw(names, [time, vout, vmin, vmax], double=True)
