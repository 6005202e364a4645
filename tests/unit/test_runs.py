"""
Unit tests for run segmentation.
"""

import numpy as np
import pytest

from raw_analyzer.runs import RunSet, segment_runs


class TestSegmentRuns:
    """Test segment_runs()."""

    def test_single_run(self):
        runs = segment_runs(np.array([0.0, 1.0, 2.0, 3.0]))

        assert runs.run_count == 1
        assert runs.intervals == ((0, 4),)

    def test_reset_starts_new_run(self):
        runs = segment_runs(np.array([0.0, 1.0, 2.0, 0.0, 1.0, 0.0]))

        assert runs.run_count == 3
        assert runs.intervals == ((0, 3), (3, 5), (5, 6))

    def test_first_row_nonzero(self):
        runs = segment_runs(np.array([0.5, 1.0, 0.0, 1.0]))
        assert runs.intervals == ((0, 2), (2, 4))

    def test_empty(self):
        runs = segment_runs(np.array([]))

        assert runs.run_count == 1
        assert runs.intervals == ((0, 0),)

    def test_coverage_property(self):
        rng = np.random.default_rng(7)
        for _ in range(50):
            n = int(rng.integers(1, 200))
            time_array = rng.random(n)
            time_array[rng.random(n) < 0.1] = 0.0

            runs = segment_runs(time_array)

            assert runs.run_count >= 1
            covered = np.concatenate([np.arange(start, end) for start, end in runs])
            np.testing.assert_array_equal(covered, np.arange(n))
            for start, end in runs.intervals[1:]:
                assert time_array[start] == 0.0

    def test_slices(self):
        runs = segment_runs(np.array([0.0, 1.0, 0.0, 1.0]))
        values = np.array([10.0, 11.0, 20.0, 21.0])

        blocks = [values[s].tolist() for s in runs.slices()]
        assert blocks == [[10.0, 11.0], [20.0, 21.0]]

    def test_empty_runset_rejected(self):
        with pytest.raises(ValueError):
            RunSet([])
