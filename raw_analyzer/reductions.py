"""
Per-Run RMS and Histogram Reductions for RawAnalyzer
"""

import math
from dataclasses import dataclass

import numpy as np

from .utils import validate_bins

NAN = float('nan')

# Number of histogram bars
DEFAULT_HIST_BINS = 50


@dataclass(frozen=True)
class RmsSummary:
    """
    RMS statistics across runs.

    Attributes:
        block_rms: RMS value of each run block
        samples_per_run: Block length used for every run
        mean: Mean of the block RMS values
        std_dev: Sample standard deviation of the block RMS values
        min: Smallest block RMS
        max: Largest block RMS
        tol_pos: Relative positive tolerance (max - mean) / mean
        tol_neg: Relative negative tolerance (mean - min) / mean
        tolerance_pct: Symmetric tolerance (max - min) / mean / 2 in percent
    """
    block_rms: np.ndarray
    samples_per_run: int
    mean: float
    std_dev: float
    min: float
    max: float
    tol_pos: float
    tol_neg: float
    tolerance_pct: float

    @property
    def run_count(self) -> int:
        return int(self.block_rms.size)


def compute_rms(values: np.ndarray, run_count: int) -> RmsSummary:
    """
    RMS of one column per run, with a summary across runs.

    The column is cut into run_count equal contiguous blocks of
    len(values) // run_count samples; remainder samples are dropped.

    Args:
        values: Column samples
        run_count: Number of runs in the file

    Returns:
        RmsSummary

    Raises:
        ValueError: If run_count < 1 or there are fewer samples than runs
    """
    if run_count < 1:
        raise ValueError(f"run_count must be at least 1, got {run_count}")

    values = np.asarray(values, dtype=np.float64)
    samples_per_run = values.size // run_count
    if samples_per_run == 0:
        raise ValueError(
            f"Not enough samples ({values.size}) for {run_count} runs"
        )

    blocks = values[:samples_per_run * run_count].reshape(run_count, samples_per_run)
    block_rms = np.sqrt(np.mean(blocks ** 2, axis=1))

    mean = float(np.mean(block_rms))
    std = float(np.std(block_rms, ddof=1)) if run_count > 1 else NAN
    lo = float(np.min(block_rms))
    hi = float(np.max(block_rms))

    if mean != 0:
        tol_pos = (hi - mean) / mean
        tol_neg = (mean - lo) / mean
        tolerance_pct = (hi - lo) / mean / 2 * 100
    else:
        tol_pos = tol_neg = tolerance_pct = NAN

    return RmsSummary(
        block_rms=block_rms,
        samples_per_run=samples_per_run,
        mean=mean,
        std_dev=std,
        min=lo,
        max=hi,
        tol_pos=tol_pos,
        tol_neg=tol_neg,
        tolerance_pct=tolerance_pct,
    )


@dataclass(frozen=True)
class Histogram:
    """
    Linear histogram of one column.

    Attributes:
        counts: Samples per bin
        normalized: Counts divided by the tallest bin
        edges: Bin edges (len(counts) + 1)
        lower: Lower bound of the binned range
        upper: Upper bound of the binned range
        spec_min: Lower spec limit used to widen the range (NaN if absent)
        spec_max: Upper spec limit used to widen the range (NaN if absent)
    """
    counts: np.ndarray
    normalized: np.ndarray
    edges: np.ndarray
    lower: float
    upper: float
    spec_min: float = NAN
    spec_max: float = NAN

    @property
    def bins(self) -> int:
        return int(self.counts.size)


def build_histogram(values: np.ndarray, spec_min: float = NAN, spec_max: float = NAN,
                    bins: int = DEFAULT_HIST_BINS) -> Histogram:
    """
    Build a fixed-bin histogram spanning the observed range and the spec limits.

    Each defined spec limit widens the range when it falls outside the
    observed values. A sample at the upper bound lands in the last bin.

    Args:
        values: Column samples
        spec_min: Lower spec limit, NaN if absent
        spec_max: Upper spec limit, NaN if absent
        bins: Number of bins (default: 50)

    Returns:
        Histogram

    Raises:
        ValueError: If values is empty or bins is invalid
    """
    validate_bins(bins)
    values = np.asarray(values, dtype=np.float64)
    if values.size == 0:
        raise ValueError("Cannot build a histogram of an empty column")

    lower = float(np.min(values))
    upper = float(np.max(values))
    if not math.isnan(spec_min):
        lower = min(lower, spec_min)
    if not math.isnan(spec_max):
        upper = max(upper, spec_max)

    # numpy widens a zero-width range by 0.5 on each side
    counts, edges = np.histogram(values, bins=bins, range=(lower, upper))
    lower, upper = float(edges[0]), float(edges[-1])
    tallest = counts.max()
    normalized = counts / tallest if tallest > 0 else counts.astype(np.float64)

    return Histogram(
        counts=counts,
        normalized=normalized,
        edges=edges,
        lower=lower,
        upper=upper,
        spec_min=spec_min,
        spec_max=spec_max,
    )
