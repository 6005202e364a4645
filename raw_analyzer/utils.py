"""
Utility Functions for RawAnalyzer

This module provides the bias-correction factor, argument validation and
file output helpers (text tables, CSV, JSON and histogram plots).
"""

import csv
import json
import math
import os
from datetime import datetime, timezone
from typing import Dict, Any, List, Sequence

import numpy as np
import matplotlib.pyplot as plt
from scipy.special import gammaln

from .exceptions import NumericDomainError

# Above this run count c4(n) switches to its asymptotic form
C4_ASYMPTOTIC_THRESHOLD = 100


def c4(n: int, asymptotic_threshold: int = C4_ASYMPTOTIC_THRESHOLD) -> float:
    """
    Bias-correction factor for the sample standard deviation.

    Dividing a sample standard deviation by c4(n) gives an unbiased estimate
    of sigma for normally distributed data:

    c4(n) = sqrt(2 / (n-1)) * Gamma(n/2) / Gamma((n-1)/2)

    For n above the threshold the gamma ratio is replaced by the asymptotic
    approximation c4(n) ~ 4(n-1) / (4n-3).

    Args:
        n: Number of independent runs
        asymptotic_threshold: Largest n evaluated with the gamma ratio

    Returns:
        Correction factor in (0, 1)

    Raises:
        NumericDomainError: If n < 2

    Examples:
        >>> round(c4(2), 4)
        0.7979
    """
    if n < 2:
        raise NumericDomainError(
            f"Bias correction needs at least 2 runs, got {n}"
        )

    if n > asymptotic_threshold:
        return 4.0 * (n - 1) / (4.0 * n - 3.0)

    # Gamma ratio through log-gamma to avoid overflow
    log_ratio = gammaln(n / 2.0) - gammaln((n - 1) / 2.0)
    return math.sqrt(2.0 / (n - 1)) * math.exp(log_ratio)


def validate_bins(bins: int, name: str = "bins") -> None:
    """
    Validate histogram bin count.

    Raises:
        ValueError: If bins is invalid
    """
    if bins <= 0:
        raise ValueError(f"{name} must be positive, got {bins}")
    if bins > 10000:
        raise ValueError(f"{name} is too large (> 10000), got {bins}")


def validate_column_index(index: int, column_count: int) -> None:
    """
    Validate a column index selected for per-column analysis.

    Args:
        index: Column index
        column_count: Number of columns in the matrix

    Raises:
        ValueError: If the index is out of range
    """
    # Column 0 is time and never a per-column analysis target
    if not 1 <= index < column_count:
        raise ValueError(
            f"Column index must be in [1, {column_count - 1}], got {index}"
        )


def create_output_directory(output_dir: str) -> None:
    if not os.path.exists(output_dir):
        os.makedirs(output_dir, exist_ok=True)


def _ensure_parent(filepath: str) -> None:
    output_dir = os.path.dirname(filepath)
    if output_dir:
        create_output_directory(output_dir)


def _json_safe(value):
    """Convert NaN/inf and numpy scalars into JSON-compatible values."""
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, np.ndarray):
        return [_json_safe(v) for v in value.tolist()]
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def save_metrics_json(metrics: Dict[str, Any], filepath: str) -> None:
    """
    Save analysis metrics to a JSON file.

    NaN values (unset spec limits, skipped capability) are written as null.

    Args:
        metrics: Dictionary containing analysis metrics
        filepath: Path to the output JSON file
    """
    output_data = {
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "metrics": _json_safe(metrics)
    }

    _ensure_parent(filepath)

    with open(filepath, 'w') as f:
        json.dump(output_data, f, indent=2)


# ============================================================================
# Parameter table output
# ============================================================================

PARAMETER_COLUMNS = ['parameter', 'mean', 'sdev(unbiased)', 'min(found)', 'max(found)',
                     'min', 'max', 'cpk', '%ok', 'ppm', 'Nmax', 'Nmin']


def _parameter_row(p) -> List[Any]:
    return [f"'{p.name}'", p.mean, p.std_dev, p.observed_min, p.observed_max,
            p.spec_min, p.spec_max, p.cpk, p.yield_fraction * 100.0, p.ppm,
            p.above_spec_count, p.below_spec_count]


def format_parameter_table(parameters: Sequence, csv_format: bool = False,
                           header: bool = False) -> List[str]:
    """
    Format parameters as text table or CSV lines.

    Column 0 (time) is skipped.

    Args:
        parameters: Parameter records from RawAnalyzer.analyze()
        csv_format: Produce comma-separated lines instead of aligned columns
        header: Prepend a header line

    Returns:
        List of output lines
    """
    lines = []
    if header:
        if csv_format:
            lines.append(', '.join(PARAMETER_COLUMNS))
        else:
            lines.append(
                f"{'':3} {PARAMETER_COLUMNS[0]:<20}"
                + ''.join(f" {c:>16}" for c in PARAMETER_COLUMNS[1:9])
                + ''.join(f" {c:>10}" for c in PARAMETER_COLUMNS[9:])
            )

    for p in parameters:
        if p.index == 0:
            continue
        row = _parameter_row(p)
        if csv_format:
            lines.append(
                "{}, {:g}, {:g}, {:g}, {:g}, {:g}, {:g}, {:g}, {:.6f}, {:.1f}, {:d}, {:d}".format(*row)
            )
        else:
            lines.append(
                "{:3d} {:<20} {:16g} {:16g} {:16g} {:16g} {:16g} {:16g} {:16g} {:16.6f} "
                "{:10.1f} {:10d} {:10d}".format(p.index, *row)
            )
    return lines


def save_parameters_csv(parameters: Sequence, filepath: str) -> None:
    """
    Save parameter statistics to a CSV file.

    Output format:
    index,parameter,mean,std_dev,observed_min,observed_max,spec_min,spec_max,
    cpk,yield_fraction,ppm,above_spec_count,below_spec_count
    """
    _ensure_parent(filepath)

    with open(filepath, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(['index', 'parameter', 'mean', 'std_dev', 'observed_min',
                         'observed_max', 'spec_min', 'spec_max', 'cpk',
                         'yield_fraction', 'ppm', 'above_spec_count', 'below_spec_count'])
        for p in parameters:
            writer.writerow([p.index, p.name, p.mean, p.std_dev, p.observed_min,
                             p.observed_max, p.spec_min, p.spec_max, p.cpk,
                             p.yield_fraction, p.ppm, p.above_spec_count,
                             p.below_spec_count])


def save_matrix_csv(matrix, filepath: str, header: bool = True) -> None:
    """
    Dump a decoded matrix row by row to a CSV file.

    Args:
        matrix: Matrix from load_raw()
        filepath: Output CSV file path
        header: Write variable names as the first row
    """
    _ensure_parent(filepath)

    with open(filepath, 'w', newline='') as f:
        write_matrix_csv(matrix, f, header=header)


def write_matrix_csv(matrix, stream, header: bool = True) -> None:
    writer = csv.writer(stream)
    if header:
        writer.writerow(matrix.names)
    for row in matrix.values.T:
        writer.writerow([f'{v:g}' for v in row])


def column_summary_lines(matrix) -> List[str]:
    """
    Per-column mean, sample standard deviation and coefficient of variation.

    Column 0 (time) is skipped.
    """
    lines = []
    for j in range(1, matrix.column_count):
        values = matrix.column(j)
        mean = float(np.mean(values)) if values.size else float('nan')
        sdev = float(np.std(values, ddof=1)) if values.size > 1 else float('nan')
        cv = sdev / mean if mean != 0 else float('nan')
        lines.append(f"{repr(matrix.names[j]):<20} {mean:30g} {sdev:30g} {cv:30g}")
    return lines


# ============================================================================
# Plot output
# ============================================================================

def save_histogram_plot(histogram, filepath: str, title: str = '',
                        dpi: int = 150) -> None:
    """
    Plot a normalized histogram as a bar chart and save it.

    Spec limits, when present on the histogram, are drawn as vertical lines.

    Args:
        histogram: Histogram from build_histogram()
        filepath: Output image path (format taken from the extension)
        title: Plot title, usually the variable name
        dpi: Image resolution
    """
    _ensure_parent(filepath)

    fig, ax = plt.subplots(figsize=(8, 6))

    widths = np.diff(histogram.edges)
    ax.bar(histogram.edges[:-1], histogram.normalized, width=widths, align='edge',
           color='#ADD8E6', edgecolor='#999999', linewidth=1)

    if not math.isnan(histogram.spec_min):
        ax.axvline(histogram.spec_min, color='red', linestyle='--', label='min (spec)')
    if not math.isnan(histogram.spec_max):
        ax.axvline(histogram.spec_max, color='red', linestyle='--', label='max (spec)')

    ax.set_xlabel(f"min={histogram.lower:f}, max={histogram.upper:f}")
    ax.set_ylabel('Relative count')
    ax.set_ylim(0, 1.05)
    if title:
        ax.set_title(title)
    if ax.get_legend_handles_labels()[0]:
        ax.legend()

    plt.tight_layout()
    plt.savefig(filepath, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
