#!/usr/bin/env python3
"""
Raw File to CSV Converter

Dumps the decoded matrix of an LTspice raw file as CSV on standard output,
one row per point, or prints per-variable summary statistics.

Usage:
    python scripts/raw_to_csv.py <raw_file> [-t] [--no-names]

Example:
    python scripts/raw_to_csv.py transient.raw > transient.csv
    python scripts/raw_to_csv.py transient.raw -t
"""

import argparse
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from raw_analyzer import load_raw
from raw_analyzer.utils import write_matrix_csv, column_summary_lines


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description='Convert an LTspice raw file to CSV'
    )
    parser.add_argument('input_file', help="Raw file path ('-' reads standard input)")
    parser.add_argument('-t', '--summary', action='store_true',
                        help='Print mean, sdev and sdev/mean per variable instead of the data')
    parser.add_argument('--no-names', action='store_true',
                        help='Omit the variable name row')
    args = parser.parse_args()

    try:
        source = sys.stdin.buffer if args.input_file == '-' else args.input_file
        matrix, _ = load_raw(source)

        if args.summary:
            for line in column_summary_lines(matrix):
                print(line)
            return

        write_matrix_csv(matrix, sys.stdout, header=not args.no_names)

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
