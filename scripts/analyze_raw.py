#!/usr/bin/env python3
"""
RawAnalyzer Command Line Interface

A command-line tool for computing parameter statistics from LTspice raw files.

Usage:
    python scripts/analyze_raw.py <raw_file> [options]

Example:
    python scripts/analyze_raw.py montecarlo.raw -v
    python scripts/analyze_raw.py montecarlo.raw --csv -v > parameters.csv
    python scripts/analyze_raw.py pwm.raw -d 3 --min 0.45 --max 0.55
    python scripts/analyze_raw.py montecarlo.raw --hist 2 --output-dir results/
"""

import argparse
import math
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from raw_analyzer import RawAnalyzer, load_raw, NumericDomainError
from raw_analyzer.utils import format_parameter_table


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='RawAnalyzer - LTspice Raw File Statistics Tool',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Parameter table with header line
  python scripts/analyze_raw.py montecarlo.raw -v

  # Duty cycle of column 3, rated against 45%..55%
  python scripts/analyze_raw.py pwm.raw -d 3 --min 0.45 --max 0.55

  # Per-run RMS of column 2
  python scripts/analyze_raw.py montecarlo.raw --rms 2

  # Histogram image of column 2
  python scripts/analyze_raw.py montecarlo.raw --hist 2 --output-dir results/
        """
    )

    parser.add_argument('input_file', help="Raw file path ('-' reads standard input)")

    parser.add_argument('-v', '--header', action='store_true',
                        help='Print a header line above the parameter table')
    parser.add_argument('--csv', action='store_true',
                        help='Print the parameter table as CSV')
    parser.add_argument('-d', '--duty', type=int, default=0, metavar='COL',
                        help='Calculate the duty cycle of the specified column')
    parser.add_argument('--rms', type=int, default=0, metavar='COL',
                        help='Calculate the per-run RMS value of the specified column')
    parser.add_argument('--data', action='store_true',
                        help='With --rms, print the samples of the first run instead of the summary')
    parser.add_argument('--hist', type=int, default=0, metavar='COL',
                        help='Save a histogram image of the specified column')
    parser.add_argument('--min', type=float, default=math.nan, dest='spec_min',
                        help='Lower limit for the duty cycle (with -d)')
    parser.add_argument('--max', type=float, default=math.nan, dest='spec_max',
                        help='Upper limit for the duty cycle (with -d)')
    parser.add_argument('--no-bias-correction', action='store_true',
                        help='Report plain sample standard deviations (no c4 correction)')
    parser.add_argument('--json', action='store_true',
                        help='Save raw_metrics.json to the output directory')
    parser.add_argument('--output-dir', default='.',
                        help='Output directory for results (default: current directory)')
    parser.add_argument('-q', '--quiet', action='store_true',
                        help='Suppress progress messages')

    return parser


def print_duty_cycle(analyzer: RawAnalyzer, column: int, spec_min: float,
                     spec_max: float) -> None:
    result = analyzer.duty_cycle(column)
    print(f"\nDuty cycle of '{analyzer.parameter(column).name}' "
          f"(threshold {result.threshold:g}):")
    print(f"  mean {result.mean:f}, sd {result.std_dev:f}, "
          f"min {result.min:f}, max {result.max:f}")
    print(f"  samples {result.sample_count}, retained {result.retained_count}")

    if math.isnan(spec_min) and math.isnan(spec_max):
        return

    try:
        capability = analyzer.duty_cycle_capability(result, spec_min, spec_max)
    except NumericDomainError as e:
        print(f"  Warning: capability skipped: {e}")
        return

    print("mean, min, max, sdev, cpk, ok, ppm")
    print(f"{result.mean:f}, {spec_min:f}, {spec_max:f}, {result.std_dev:f}, "
          f"{capability.cpk:f}, {capability.yield_fraction * 100.0:f}, {capability.ppm:f}")


def print_rms(analyzer: RawAnalyzer, matrix, column: int, data: bool) -> None:
    summary = analyzer.rms(column)
    if data:
        for value in matrix.column(column)[:summary.samples_per_run]:
            print(f"{value:g}")
        return

    print(analyzer.parameter(column).name)
    print(f" - runs: {summary.run_count}")
    print(f" - samples: {matrix.point_count}")
    print(f" - samples/run: {summary.samples_per_run}")
    print(f"mean {summary.mean:f}, sd {summary.std_dev:f}, min {summary.min:f}, "
          f"max {summary.max:f} tol +{summary.tol_pos:f}-{summary.tol_neg:f} "
          f"tol {summary.tolerance_pct:f}%")


def main():
    """Main entry point for the CLI."""
    args = build_parser().parse_args()

    if args.input_file != '-' and not os.path.exists(args.input_file):
        print(f"Error: Input file not found: {args.input_file}")
        sys.exit(1)

    # Data-only output modes stay free of progress lines
    verbose = not (args.quiet or args.csv or args.data)

    try:
        source = sys.stdin.buffer if args.input_file == '-' else args.input_file
        matrix, header = load_raw(source)
        if verbose:
            print(f"  Loaded {matrix.column_count} variables x {matrix.point_count} points "
                  f"({header.variant.name}, {header.sample_width.name.lower()} precision)")

        analyzer = RawAnalyzer(bias_correction=not args.no_bias_correction, verbose=verbose)
        parameters = analyzer.analyze(matrix)

        if args.hist:
            analyzer.save_results(args.output_dir, histogram_columns=(args.hist,))
            return
        if args.rms:
            print_rms(analyzer, matrix, args.rms, args.data)
            return
        if args.duty:
            print_duty_cycle(analyzer, args.duty, args.spec_min, args.spec_max)
            return

        for line in format_parameter_table(parameters, csv_format=args.csv,
                                           header=args.header):
            print(line)

        if args.json:
            analyzer.save_results(args.output_dir)

    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
