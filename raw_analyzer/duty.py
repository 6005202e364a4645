"""
Duty Cycle Module for RawAnalyzer

This module provides threshold-crossing edge detection and duty-cycle
extraction over the runs of a raw file.

Duty-cycle samples are computed per run from pairs of adjacent intervals
between transitions, pooled over all runs, and cleaned with a single
one-sigma clipping pass before the final mean and standard deviation are
reported.
"""

from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Tuple, Union

import numpy as np

from .runs import RunSet, segment_runs

NAN = float('nan')


class Transition(NamedTuple):
    """Threshold crossing at a row; rising is True for Low->High."""
    row: int
    rising: bool


class EdgeDetector:
    """
    Two-state (Low/High) threshold-crossing detector.

    The initial state is High when the first sample exceeds the threshold,
    Low otherwise. Low->High needs a sample strictly above the threshold and
    High->Low a sample strictly below it, so samples equal to the threshold
    never cause a transition.

    Example:
        >>> detector = EdgeDetector(threshold=0.5)
        >>> detector.detect(np.array([0.0, 1.0, 1.0, 0.0]))
        [Transition(row=1, rising=True), Transition(row=3, rising=False)]
    """

    def __init__(self, threshold: float):
        self.threshold = threshold

    def detect(self, values: np.ndarray) -> List[Transition]:
        values = np.asarray(values, dtype=np.float64)
        if values.size == 0:
            return []

        above = values > self.threshold
        below = values < self.threshold

        transitions = []
        high = bool(above[0])
        for row in range(1, values.size):
            if not high and above[row]:
                high = True
                transitions.append(Transition(row, True))
            elif high and below[row]:
                high = False
                transitions.append(Transition(row, False))

        return transitions


def _mean_std(samples: np.ndarray) -> Tuple[float, float]:
    if samples.size == 0:
        return NAN, NAN
    mean = float(np.mean(samples))
    std = float(np.std(samples, ddof=1)) if samples.size > 1 else NAN
    return mean, std


@dataclass(frozen=True)
class DutyCycleResult:
    """
    Duty-cycle statistics for one column.

    Attributes:
        mean: Mean duty cycle of the retained samples
        std_dev: Sample standard deviation of the retained samples
        min: Smallest retained sample
        max: Largest retained sample
        threshold: Threshold used for edge detection
        samples: All duty-cycle samples before clipping
        retained: Samples kept by the one-sigma clipping
        run_sample_counts: Number of samples contributed by each run
    """
    mean: float
    std_dev: float
    min: float
    max: float
    threshold: float
    samples: np.ndarray
    retained: np.ndarray
    run_sample_counts: Tuple[int, ...]

    @property
    def sample_count(self) -> int:
        return int(self.samples.size)

    @property
    def retained_count(self) -> int:
        return int(self.retained.size)


class DutyCycleAnalyzer:
    """
    Duty-cycle extraction over all runs of one column.

    Example:
        >>> analyzer = DutyCycleAnalyzer()
        >>> result = analyzer.analyze(matrix, 'V(clk)', runs)
        >>> print(f"Duty cycle: {result.mean:.3f} +/- {result.std_dev:.3f}")
    """

    def __init__(self, clip_sigma: float = 1.0):
        if clip_sigma <= 0:
            raise ValueError(f"clip_sigma must be positive, got {clip_sigma}")
        self.clip_sigma = clip_sigma

    @staticmethod
    def midpoint_threshold(values: np.ndarray) -> float:
        """Threshold halfway between the column's minimum and maximum."""
        lo = float(np.min(values))
        hi = float(np.max(values))
        return lo + (hi - lo) / 2

    def run_samples(self, time_array: np.ndarray, values: np.ndarray,
                    threshold: float) -> np.ndarray:
        """
        Duty-cycle samples for a single run.

        The first transition anchors the time origin and the interval ending
        at the second transition is discarded. From the fourth transition on,
        every other transition closes a full period made of the two preceding
        intervals; the high part of that period is the interval that ended
        with a falling edge.

        Args:
            time_array: Time values of the run
            values: Signal values of the run
            threshold: Detection threshold

        Returns:
            Array of duty-cycle fractions (empty for too few transitions)
        """
        transitions = EdgeDetector(threshold).detect(values)
        if len(transitions) < 4:
            return np.empty(0)

        times = np.asarray(time_array, dtype=np.float64)
        edge_times = times[[t.row for t in transitions]]

        samples = []
        for j in range(3, len(transitions), 2):
            current = edge_times[j] - edge_times[j - 1]
            previous = edge_times[j - 1] - edge_times[j - 2]
            period = current + previous
            if period <= 0:
                continue
            high = previous if transitions[j].rising else current
            samples.append(high / period)

        return np.asarray(samples, dtype=np.float64)

    def clip(self, samples: np.ndarray) -> np.ndarray:
        """Drop samples outside [mean - k*sigma, mean + k*sigma] (single pass)."""
        if samples.size < 2:
            return samples
        mean, std = _mean_std(samples)
        lo = mean - self.clip_sigma * std
        hi = mean + self.clip_sigma * std
        return samples[(samples >= lo) & (samples <= hi)]

    def analyze(self, matrix, column: Union[int, str], runs: Optional[RunSet] = None,
                threshold: Optional[float] = None) -> DutyCycleResult:
        """
        Extract duty-cycle statistics for one column over all runs.

        Args:
            matrix: Matrix from load_raw()
            column: Column index or variable name
            runs: Run segmentation, computed from the time column if omitted
            threshold: Detection threshold, defaults to the column's
                min/max midpoint shared by all runs

        Returns:
            DutyCycleResult
        """
        values = matrix.column(column)
        time_array = matrix.time
        if runs is None:
            runs = segment_runs(time_array)
        if threshold is None:
            threshold = self.midpoint_threshold(values) if values.size else NAN

        per_run = []
        for run in runs.slices():
            per_run.append(self.run_samples(time_array[run], values[run], threshold))

        samples = np.concatenate(per_run) if per_run else np.empty(0)
        retained = self.clip(samples)
        mean, std = _mean_std(retained)

        return DutyCycleResult(
            mean=mean,
            std_dev=std,
            min=float(np.min(retained)) if retained.size else NAN,
            max=float(np.max(retained)) if retained.size else NAN,
            threshold=float(threshold),
            samples=samples,
            retained=retained,
            run_sample_counts=tuple(int(s.size) for s in per_run),
        )
