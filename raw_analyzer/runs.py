"""
Run Segmentation for RawAnalyzer

Stepped and Monte-Carlo simulations are written to a single raw file, one
pass after the other, each restarting its time axis at zero. This module
splits the matrix rows back into those runs.
"""

from typing import Iterator, Tuple

import numpy as np


class RunSet:
    """
    Ordered, contiguous, half-open row intervals, one per simulation run.

    Example:
        >>> runs = segment_runs(np.array([0.0, 1.0, 2.0, 0.0, 1.0]))
        >>> runs.intervals
        ((0, 3), (3, 5))
        >>> runs.run_count
        2
    """

    def __init__(self, intervals):
        self._intervals = tuple((int(start), int(end)) for start, end in intervals)
        if not self._intervals:
            raise ValueError("A RunSet needs at least one interval")

    @property
    def intervals(self) -> Tuple[Tuple[int, int], ...]:
        return self._intervals

    @property
    def run_count(self) -> int:
        return len(self._intervals)

    @property
    def point_count(self) -> int:
        return self._intervals[-1][1]

    def slices(self) -> Iterator[slice]:
        """Yield one slice per run, for indexing matrix columns."""
        for start, end in self._intervals:
            yield slice(start, end)

    def __len__(self) -> int:
        return len(self._intervals)

    def __iter__(self):
        return iter(self._intervals)

    def __getitem__(self, index: int) -> Tuple[int, int]:
        return self._intervals[index]

    def __repr__(self) -> str:
        return f"RunSet(run_count={self.run_count}, points={self.point_count})"


def segment_runs(time_array: np.ndarray) -> RunSet:
    """
    Partition rows into runs at every time reset to zero.

    A new run starts at each row i > 0 whose time is exactly 0.0; that row
    belongs to the new run. Without any interior reset the whole file is a
    single run. An empty time axis yields one empty run, so run_count is
    never zero.

    Args:
        time_array: Column 0 of a Matrix

    Returns:
        RunSet covering every row exactly once
    """
    time_array = np.asarray(time_array, dtype=np.float64)
    n = len(time_array)

    starts = np.flatnonzero(time_array[1:] == 0.0) + 1
    bounds = [0] + starts.tolist() + [n]

    return RunSet(zip(bounds[:-1], bounds[1:]))
