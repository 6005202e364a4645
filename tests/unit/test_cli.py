"""
Unit tests for the command line scripts.
"""

import importlib.util
import json
import os
import sys

import numpy as np
import pytest

SCRIPTS_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))), 'scripts'
)


def _load_script(name):
    spec = importlib.util.spec_from_file_location(name, os.path.join(SCRIPTS_DIR, f'{name}.py'))
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def raw_file(tmp_path, montecarlo_raw):
    path = tmp_path / "montecarlo.raw"
    path.write_bytes(montecarlo_raw)
    return str(path)


def _run(module, monkeypatch, *argv):
    monkeypatch.setattr(sys, 'argv', [module.__name__, *argv])
    module.main()


class TestAnalyzeRawCli:
    """Test scripts/analyze_raw.py."""

    @pytest.fixture
    def cli(self):
        return _load_script('analyze_raw')

    def test_parameter_table(self, cli, raw_file, monkeypatch, capsys):
        _run(cli, monkeypatch, raw_file, '-v', '-q')
        out = capsys.readouterr().out.splitlines()

        assert out[0].split()[0] == 'parameter'
        assert out[1].split()[:2] == ['1', "'V(out)'"]
        # Time is not part of the table
        assert not any("'time'" in line for line in out)

    def test_csv_table(self, cli, raw_file, monkeypatch, capsys):
        _run(cli, monkeypatch, raw_file, '--csv')
        lines = capsys.readouterr().out.splitlines()

        assert len(lines) == 3
        assert lines[0].startswith("'V(out)', 5, ")

    def test_rms_summary(self, cli, raw_file, monkeypatch, capsys):
        _run(cli, monkeypatch, raw_file, '--rms', '1', '-q')
        out = capsys.readouterr().out.splitlines()

        assert out[:4] == ['V(out)', ' - runs: 10', ' - samples: 50', ' - samples/run: 5']
        assert out[4].startswith('mean 5.000000, ')

    def test_rms_data_prints_first_run(self, cli, raw_file, monkeypatch, capsys):
        _run(cli, monkeypatch, raw_file, '--rms', '1', '--data', '-q')
        values = [float(v) for v in capsys.readouterr().out.split()]

        # First run of V(out) holds 5 points at 4.9
        np.testing.assert_allclose(values, [4.9] * 5)

    def test_rms_data_has_no_progress_lines(self, cli, raw_file, monkeypatch, capsys):
        _run(cli, monkeypatch, raw_file, '--rms', '1', '--data')
        lines = capsys.readouterr().out.splitlines()

        assert len(lines) == 5
        for line in lines:
            float(line)

    def test_json_output(self, cli, raw_file, tmp_path, monkeypatch, capsys):
        out_dir = tmp_path / "results"
        _run(cli, monkeypatch, raw_file, '--json', '-q', '--output-dir', str(out_dir))

        with open(out_dir / 'raw_metrics.json') as f:
            metrics = json.load(f)
        assert metrics['metrics']['run_count'] == 10

    def test_missing_file(self, cli, monkeypatch):
        with pytest.raises(SystemExit) as excinfo:
            _run(cli, monkeypatch, 'nonexistent.raw')
        assert excinfo.value.code == 1

    def test_truncated_file(self, cli, tmp_path, montecarlo_raw, monkeypatch, capsys):
        path = tmp_path / "short.raw"
        path.write_bytes(montecarlo_raw[:-3])

        with pytest.raises(SystemExit):
            _run(cli, monkeypatch, str(path), '-q')
        assert 'unexpected end' in capsys.readouterr().err.lower()


class TestRawToCsvCli:
    """Test scripts/raw_to_csv.py."""

    @pytest.fixture
    def cli(self):
        return _load_script('raw_to_csv')

    def test_matrix_dump(self, cli, raw_file, monkeypatch, capsys):
        _run(cli, monkeypatch, raw_file)
        lines = capsys.readouterr().out.splitlines()

        assert lines[0] == 'time,V(out),V(out_min),V(out_max)'
        assert len(lines) == 1 + 50

    def test_no_names(self, cli, raw_file, monkeypatch, capsys):
        _run(cli, monkeypatch, raw_file, '--no-names')
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 50

    def test_summary(self, cli, raw_file, monkeypatch, capsys):
        _run(cli, monkeypatch, raw_file, '-t')
        out = capsys.readouterr().out
        assert 'V(out_max)' in out
