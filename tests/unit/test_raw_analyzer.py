"""
Unit Tests for RawAnalyzer

This module contains unit tests for parameter statistics, bias correction,
spec-limit pairing, process capability and result output.
"""

import json
import math
import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from raw_analyzer import RawAnalyzer, Matrix, analyze_raw, load_raw, NumericDomainError
from raw_analyzer.capability import CapabilityAnalyzer
from raw_analyzer.core import ParameterTableBuilder
from raw_analyzer.utils import (
    c4, validate_bins, validate_column_index, save_metrics_json,
    format_parameter_table, save_matrix_csv, column_summary_lines
)


def _runs_matrix(names, per_run_columns, runs=10, points=5):
    """Matrix of `runs` concatenated runs, one constant value per run and column."""
    time = np.tile(np.arange(points, dtype=np.float64), runs)
    columns = [time] + [np.repeat(np.asarray(c, dtype=np.float64), points)
                        for c in per_run_columns]
    return Matrix(np.vstack(columns), names)


class TestBiasCorrection:
    """Test the c4(n) correction factor."""

    def test_c4_two(self):
        assert c4(2) == pytest.approx(0.7979, abs=1e-4)

    def test_c4_known_values(self):
        assert c4(3) == pytest.approx(0.8862, abs=1e-4)
        assert c4(10) == pytest.approx(0.9727, abs=1e-4)

    def test_c4_continuity_at_switchover(self):
        asymptotic = c4(101)
        gamma_ratio = c4(101, asymptotic_threshold=1000)

        assert asymptotic == 4 * 100 / (4 * 101 - 3)
        assert abs(asymptotic - gamma_ratio) < 1e-3

    def test_c4_large_n_gamma_ratio_is_finite(self):
        assert math.isfinite(c4(5000, asymptotic_threshold=10000))

    def test_c4_single_run_rejected(self):
        with pytest.raises(NumericDomainError):
            c4(1)
        with pytest.raises(NumericDomainError):
            c4(0)


class TestStatistics:
    """Test per-column statistics."""

    def test_mean_and_range(self):
        matrix = _runs_matrix(['time', 'V(a)'], [np.arange(10)])
        analyzer = RawAnalyzer(verbose=False)
        parameters = analyzer.analyze(matrix)

        p = parameters[1]
        assert p.name == 'V(a)'
        assert p.mean == pytest.approx(4.5)
        assert p.observed_min == 0.0
        assert p.observed_max == 9.0

    def test_bias_corrected_std(self):
        matrix = _runs_matrix(['time', 'V(a)'], [np.arange(10)])
        parameters = RawAnalyzer(verbose=False).analyze(matrix)

        expected = np.std(matrix.column(1), ddof=1) / c4(10)
        assert parameters[1].std_dev == pytest.approx(expected)

    def test_bias_correction_disabled(self):
        matrix = _runs_matrix(['time', 'V(a)'], [np.arange(10)])
        parameters = RawAnalyzer(bias_correction=False, verbose=False).analyze(matrix)

        assert parameters[1].std_dev == pytest.approx(np.std(matrix.column(1), ddof=1))

    def test_single_run_leaves_std_unset(self):
        matrix = Matrix([[0.0, 1.0, 2.0], [1.0, 2.0, 3.0]], ['time', 'V(a)'])
        parameters = RawAnalyzer(verbose=False).analyze(matrix)

        assert math.isnan(parameters[1].std_dev)
        assert parameters[1].mean == pytest.approx(2.0)
        assert any('2 runs' in d for d in parameters[1].diagnostics)

    def test_time_column_included(self):
        matrix = _runs_matrix(['time', 'V(a)'], [np.arange(10)])
        parameters = RawAnalyzer(verbose=False).analyze(matrix)

        assert parameters[0].index == 0
        assert parameters[0].name == 'time'
        assert len(parameters) == matrix.column_count

    def test_progress_printed(self, capsys):
        matrix = _runs_matrix(['time', 'V(a)'], [np.arange(10)])
        RawAnalyzer().analyze(matrix)

        out = capsys.readouterr().out
        assert 'Runs: 10' in out


class TestSpecLimitPairing:
    """Test pairing of _min/_max variables with their measurement."""

    def test_pairing(self):
        names = ['time', 'V(out)', 'V(out_min)', 'V(out_max)']
        matrix = _runs_matrix(names, [np.linspace(4.9, 5.1, 10),
                                      np.full(10, 4.5), np.full(10, 5.5)])
        parameters = RawAnalyzer(verbose=False).analyze(matrix)

        vout = parameters[1]
        assert vout.spec_min == 4.5
        assert vout.spec_max == 5.5
        assert vout.has_spec_limits
        assert not parameters[2].has_spec_limits

    def test_only_max_limit(self):
        names = ['time', 'I(R1)', 'I(R1_max)']
        matrix = _runs_matrix(names, [np.linspace(0.9, 1.1, 10), np.full(10, 2.0)])
        p = RawAnalyzer(verbose=False).analyze(matrix)[1]

        assert math.isnan(p.spec_min)
        assert p.spec_max == 2.0
        assert p.cpk == pytest.approx((2.0 - p.mean) / (3 * p.std_dev))

    def test_missing_base_is_reported(self):
        names = ['time', 'V(a)', 'V(b_min)']
        matrix = _runs_matrix(names, [np.linspace(0, 1, 10), np.full(10, 0.5)])
        parameters = RawAnalyzer(verbose=False).analyze(matrix)

        assert not parameters[1].has_spec_limits
        assert any("V(b)" in d for d in parameters[2].diagnostics)

    def test_last_limit_wins(self):
        names = ['time', 'V(out)', 'V(out_min)', 'V(out_min)']
        matrix = _runs_matrix(names, [np.linspace(4.9, 5.1, 10),
                                      np.full(10, 4.5), np.full(10, 4.0)])
        parameters = RawAnalyzer(verbose=False).analyze(matrix)

        assert parameters[1].spec_min == 4.0
        assert any('redefined' in d for d in parameters[1].diagnostics)

    def test_names_without_parenthesis_ignored(self):
        names = ['time', 'out', 'out_min']
        matrix = _runs_matrix(names, [np.linspace(0, 1, 10), np.full(10, 0.5)])
        parameters = RawAnalyzer(verbose=False).analyze(matrix)

        assert not parameters[1].has_spec_limits
        assert parameters[2].diagnostics == ()


class TestCapability:
    """Test CapabilityAnalyzer and the capability pass."""

    def test_two_sided(self):
        result = CapabilityAnalyzer().evaluate(5.0, 0.1, spec_min=4.5, spec_max=5.5)

        assert result.cpk == pytest.approx(5.0 / 3.0)
        assert result.ppm == pytest.approx(0.5733, rel=1e-3)
        assert result.yield_fraction == pytest.approx(1.0 - result.ppm / 1e6)

    def test_cpk_uses_nearer_limit(self):
        result = CapabilityAnalyzer().evaluate(5.2, 0.1, spec_min=4.5, spec_max=5.5)

        assert result.cpk == pytest.approx(1.0)
        assert result.cpk_upper == pytest.approx(1.0)
        assert result.cpk_lower == pytest.approx(7.0 / 3.0)

    def test_one_sided_lower(self):
        result = CapabilityAnalyzer().evaluate(1.0, 0.5, spec_min=0.0)

        assert result.cpk == pytest.approx(2.0 / 3.0)
        assert math.isnan(result.cpk_upper)
        assert result.prob_above == 0.0
        assert result.prob_below == pytest.approx(0.02275, rel=1e-3)

    def test_empirical_counts(self):
        samples = np.array([4.0, 4.6, 5.0, 5.4, 5.6, 5.7])
        result = CapabilityAnalyzer().evaluate(5.0, 0.5, spec_min=4.5, spec_max=5.5,
                                               samples=samples)

        assert result.above_spec_count == 2
        assert result.below_spec_count == 1

    def test_boundary_samples_not_counted(self):
        samples = np.array([4.5, 5.5])
        result = CapabilityAnalyzer().evaluate(5.0, 0.5, spec_min=4.5, spec_max=5.5,
                                               samples=samples)

        assert result.above_spec_count == 0
        assert result.below_spec_count == 0

    def test_zero_std_rejected(self):
        with pytest.raises(NumericDomainError):
            CapabilityAnalyzer().evaluate(5.0, 0.0, spec_max=5.5)

    def test_nan_std_rejected(self):
        with pytest.raises(NumericDomainError):
            CapabilityAnalyzer().evaluate(5.0, float('nan'), spec_max=5.5)

    def test_no_limits_rejected(self):
        with pytest.raises(NumericDomainError):
            CapabilityAnalyzer().evaluate(5.0, 0.1)

    def test_idempotent(self):
        names = ['time', 'V(out)', 'V(out_min)', 'V(out_max)']
        matrix = _runs_matrix(names, [np.linspace(4.9, 5.1, 10),
                                      np.full(10, 4.5), np.full(10, 5.5)])
        p = RawAnalyzer(verbose=False).analyze(matrix)[1]

        analyzer = CapabilityAnalyzer()
        first = analyzer.evaluate_parameter(p, matrix.column(1))
        second = analyzer.evaluate_parameter(p, matrix.column(1))

        assert first == second
        assert first.cpk == p.cpk
        assert first.ppm == p.ppm

    def test_degenerate_parameter_does_not_stop_others(self):
        names = ['time', 'V(flat)', 'V(flat_max)', 'V(out)', 'V(out_max)']
        matrix = _runs_matrix(names, [np.full(10, 1.0), np.full(10, 2.0),
                                      np.linspace(0.9, 1.1, 10), np.full(10, 2.0)])
        parameters = RawAnalyzer(verbose=False).analyze(matrix)

        flat = parameters[1]
        assert math.isnan(flat.cpk)
        assert math.isnan(flat.ppm)
        assert any('Capability skipped' in d for d in flat.diagnostics)

        out = parameters[3]
        assert math.isfinite(out.cpk)
        assert out.ppm >= 0.0

    def test_builder_passes(self):
        names = ['time', 'V(out)', 'V(out_max)']
        matrix = _runs_matrix(names, [np.linspace(4.9, 5.1, 10), np.full(10, 5.05)])

        builder = ParameterTableBuilder(matrix, run_count=10, verbose=False)
        builder.compute_statistics()
        builder.pair_spec_limits()
        builder.apply_capability()
        p = builder.build()[1]

        assert p.spec_max == pytest.approx(5.05)
        # Runs at 5.0556, 5.0778 and 5.1 exceed the limit, 5 points each
        assert p.above_spec_count == 15
        assert p.below_spec_count == 0


class TestRawAnalyzerConfig:
    """Test RawAnalyzer configuration validation."""

    def test_invalid_bins(self):
        with pytest.raises(ValueError):
            RawAnalyzer(hist_bins=0)

    def test_invalid_image_format(self):
        with pytest.raises(ValueError):
            RawAnalyzer(output_image_format='bmp')

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            RawAnalyzer(asymptotic_threshold=1)

    def test_validate_column_index(self):
        validate_column_index(1, 3)
        with pytest.raises(ValueError):
            validate_column_index(0, 3)
        with pytest.raises(ValueError):
            validate_column_index(3, 3)

    def test_validate_bins(self):
        validate_bins(50)
        with pytest.raises(ValueError):
            validate_bins(-1)

    def test_requires_analyze(self):
        with pytest.raises(ValueError):
            RawAnalyzer(verbose=False).rms(1)


class TestAnalyzeRaw:
    """Test the analyze_raw() convenience function."""

    def test_end_to_end(self, montecarlo_raw, tmp_path):
        raw_file = tmp_path / "mc.raw"
        raw_file.write_bytes(montecarlo_raw)

        result = analyze_raw(str(raw_file), verbose=False)

        assert result['runs'].run_count == 10
        vout = result['parameters'][1]
        assert vout.name == 'V(out)'
        assert vout.mean == pytest.approx(5.0)
        assert vout.spec_min == 4.5
        assert vout.spec_max == 5.5
        assert vout.cpk > 1.0
        assert vout.ppm < 1.0
        assert vout.above_spec_count == 0

    def test_from_bytes(self, montecarlo_raw):
        result = analyze_raw(montecarlo_raw, verbose=False)
        assert result['header'].column_count == 4


class TestOutput:
    """Test result output helpers."""

    def test_save_metrics_json(self, tmp_path):
        output_path = tmp_path / "metrics.json"
        save_metrics_json({'cpk': float('nan'), 'mean': 1.5}, str(output_path))

        with open(output_path) as f:
            data = json.load(f)

        assert 'version' in data
        assert 'timestamp' in data
        assert data['metrics']['cpk'] is None
        assert data['metrics']['mean'] == 1.5

    def test_parameter_table(self, montecarlo_raw):
        parameters = analyze_raw(montecarlo_raw, verbose=False)['parameters']

        lines = format_parameter_table(parameters, header=True)
        assert len(lines) == 1 + 3
        assert 'cpk' in lines[0]
        assert "'V(out)'" in lines[1]

        csv_lines = format_parameter_table(parameters, csv_format=True)
        assert len(csv_lines) == 3
        assert csv_lines[0].startswith("'V(out)', 5")
        assert len(csv_lines[0].split(', ')) == 12

    def test_save_results(self, montecarlo_raw, tmp_path):
        matrix, _ = load_raw(montecarlo_raw)
        analyzer = RawAnalyzer(save_csv_data=True, verbose=False)
        analyzer.analyze(matrix)

        written = analyzer.save_results(str(tmp_path), histogram_columns=('V(out)',))

        names = sorted(os.path.basename(p) for p in written)
        assert names == ['histogram_1.png', 'matrix.csv', 'parameters.csv', 'raw_metrics.json']
        for path in written:
            assert os.path.getsize(path) > 0

        with open(tmp_path / 'raw_metrics.json') as f:
            data = json.load(f)
        assert data['metrics']['run_count'] == 10
        assert data['metrics']['parameters'][1]['spec_max'] == 5.5

    def test_save_matrix_csv(self, tmp_path):
        matrix = Matrix([[0.0, 1.0], [2.5, 3.5]], ['time', 'V(a)'])
        path = tmp_path / "matrix.csv"
        save_matrix_csv(matrix, str(path))

        lines = path.read_text().splitlines()
        assert lines == ['time,V(a)', '0,2.5', '1,3.5']

    def test_column_summary(self):
        matrix = Matrix([[0.0, 1.0, 2.0], [1.0, 2.0, 3.0]], ['time', 'V(a)'])
        lines = column_summary_lines(matrix)

        assert len(lines) == 1
        assert "'V(a)'" in lines[0]
        fields = lines[0].split()
        assert float(fields[1]) == pytest.approx(2.0)
        assert float(fields[2]) == pytest.approx(1.0)
        assert float(fields[3]) == pytest.approx(0.5)
