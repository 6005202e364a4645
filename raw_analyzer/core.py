"""
Core Analysis Module for RawAnalyzer

This module provides the RawAnalyzer class, which derives per-variable
statistics from a decoded raw file:

- Mean, observed min/max and bias-corrected standard deviation
- Spec-limit pairing from "<name>_min)" / "<name>_max)" variables
- Process capability (Cpk, ppm, yield) against the paired limits
- Duty cycle, per-run RMS and histograms for a selected column
"""

import math
import os
from dataclasses import dataclass, asdict
from typing import Dict, Any, List, Optional, Tuple, Union

import numpy as np

from .capability import CapabilityAnalyzer, CapabilityResult, count_outside
from .duty import DutyCycleAnalyzer, DutyCycleResult
from .exceptions import NumericDomainError
from .io import Matrix, load_raw
from .reductions import RmsSummary, Histogram, compute_rms, build_histogram, DEFAULT_HIST_BINS
from .runs import RunSet, segment_runs
from .utils import (
    c4, C4_ASYMPTOTIC_THRESHOLD, validate_bins, validate_column_index,
    create_output_directory, save_metrics_json, save_parameters_csv,
    save_matrix_csv, save_histogram_plot
)

NAN = float('nan')

# Suffixes of variables carrying spec limits, mapped to the Parameter field they set
LIMIT_SUFFIXES = (('_min)', 'spec_min'), ('_max)', 'spec_max'))


@dataclass(frozen=True)
class Parameter:
    """
    Statistics of one matrix column.

    NaN marks a value that is absent (no spec limit) or could not be
    computed; the reason is listed in diagnostics.
    """
    index: int
    name: str
    mean: float = NAN
    std_dev: float = NAN
    observed_min: float = NAN
    observed_max: float = NAN
    spec_min: float = NAN
    spec_max: float = NAN
    cpk: float = NAN
    ppm: float = NAN
    yield_fraction: float = NAN
    above_spec_count: int = 0
    below_spec_count: int = 0
    diagnostics: Tuple[str, ...] = ()

    @property
    def has_spec_limits(self) -> bool:
        return not (math.isnan(self.spec_min) and math.isnan(self.spec_max))


class ParameterTableBuilder:
    """
    Builds the Parameter table of a matrix in three passes.

    The builder owns one mutable row per column; build() freezes the rows
    into Parameter records.

    Example:
        >>> builder = ParameterTableBuilder(matrix, run_count=10)
        >>> builder.compute_statistics()
        >>> builder.pair_spec_limits()
        >>> builder.apply_capability()
        >>> parameters = builder.build()
    """

    def __init__(self, matrix: Matrix, run_count: int, bias_correction: bool = True,
                 asymptotic_threshold: int = C4_ASYMPTOTIC_THRESHOLD,
                 capability_analyzer: Optional[CapabilityAnalyzer] = None,
                 verbose: bool = True):
        self.matrix = matrix
        self.run_count = run_count
        self.bias_correction = bias_correction
        self.asymptotic_threshold = asymptotic_threshold
        self.capability_analyzer = capability_analyzer or CapabilityAnalyzer()
        self.verbose = verbose

        self._rows = [
            {'index': i, 'name': name, 'diagnostics': []}
            for i, name in enumerate(matrix.names)
        ]

    def _diagnose(self, index: int, message: str) -> None:
        self._rows[index]['diagnostics'].append(message)
        if self.verbose:
            print(f"  Warning: '{self._rows[index]['name']}': {message}")

    def _find_column(self, name: str) -> Optional[int]:
        for j in range(1, self.matrix.column_count):
            if self.matrix.names[j] == name:
                return j
        return None

    def compute_statistics(self) -> None:
        """Pass 1: mean, observed min/max and bias-corrected standard deviation."""
        correction = 1.0
        correction_error = None
        if self.bias_correction:
            try:
                correction = c4(self.run_count, self.asymptotic_threshold)
            except NumericDomainError as e:
                correction_error = str(e)

        for row in self._rows:
            values = self.matrix.column(row['index'])
            if values.size == 0:
                row['diagnostics'].append("No samples")
                continue

            row['mean'] = float(np.mean(values))
            row['observed_min'] = float(np.min(values))
            row['observed_max'] = float(np.max(values))

            if values.size < 2:
                row['diagnostics'].append("Standard deviation needs at least 2 samples")
            elif correction_error is not None:
                row['diagnostics'].append(correction_error)
            else:
                # ddof=1 applies Bessel's correction before the c4 factor
                row['std_dev'] = float(np.std(values, ddof=1)) / correction

        if correction_error is not None and self.verbose:
            print(f"  Warning: {correction_error}; standard deviations left unset")

    def pair_spec_limits(self) -> None:
        """Pass 2: copy the means of "_min)"/"_max)" columns onto their measurement column."""
        names = self.matrix.names
        for i in range(1, self.matrix.column_count):
            name = names[i]
            for suffix, field in LIMIT_SUFFIXES:
                if not name.endswith(suffix):
                    continue

                base = name[:-len(suffix)] + ')'
                j = self._find_column(base)
                if j is None:
                    self._diagnose(i, f"No variable '{base}' to attach this limit to")
                    continue

                target = self._rows[j]
                if not math.isnan(target.get(field, NAN)):
                    self._diagnose(j, f"{field} redefined by '{name}'")
                target[field] = self._rows[i].get('mean', NAN)

                if self.verbose:
                    print(f"  {field} of '{base}' = {target[field]:g} (from '{name}')")

    def apply_capability(self) -> None:
        """Pass 3: capability figures for every column with a spec limit."""
        for row in self._rows[1:]:
            spec_min = row.get('spec_min', NAN)
            spec_max = row.get('spec_max', NAN)
            if math.isnan(spec_min) and math.isnan(spec_max):
                continue

            samples = self.matrix.column(row['index'])
            try:
                result = self.capability_analyzer.evaluate(
                    row.get('mean', NAN), row.get('std_dev', NAN),
                    spec_min, spec_max, samples
                )
            except NumericDomainError as e:
                self._diagnose(row['index'], f"Capability skipped: {e}")
                row['above_spec_count'], row['below_spec_count'] = count_outside(
                    samples, spec_min, spec_max
                )
                continue

            row['cpk'] = result.cpk
            row['ppm'] = result.ppm
            row['yield_fraction'] = result.yield_fraction
            row['above_spec_count'] = result.above_spec_count
            row['below_spec_count'] = result.below_spec_count

    def build(self) -> Tuple[Parameter, ...]:
        return tuple(
            Parameter(**{**row, 'diagnostics': tuple(row['diagnostics'])})
            for row in self._rows
        )


class RawAnalyzer:
    """
    Statistics analyzer for decoded raw files.

    Example:
        >>> matrix, header = load_raw('montecarlo.raw')
        >>> analyzer = RawAnalyzer()
        >>> parameters = analyzer.analyze(matrix)
        >>> analyzer.save_results('results/')
    """

    def __init__(self, bias_correction: bool = True,
                 asymptotic_threshold: int = C4_ASYMPTOTIC_THRESHOLD,
                 hist_bins: int = DEFAULT_HIST_BINS,
                 clip_sigma: float = 1.0,
                 save_csv_data: bool = False,
                 output_image_format: str = 'png',
                 output_image_dpi: int = 150,
                 verbose: bool = True):
        """
        Initialize the RawAnalyzer.

        Args:
            bias_correction: Divide standard deviations by c4(run_count)
                (default: True)
            asymptotic_threshold: Largest run count for which c4 uses the
                gamma ratio (default: 100)
            hist_bins: Number of histogram bins (default: 50)
            clip_sigma: Outlier clipping width for duty-cycle samples, in
                standard deviations (default: 1.0)
            save_csv_data: Also write parameter and matrix CSV files in
                save_results() (default: False)
            output_image_format: Histogram image format ('png', 'svg', 'pdf')
            output_image_dpi: Histogram image resolution (default: 150)
            verbose: Print progress and warnings (default: True)

        Raises:
            ValueError: If parameters are invalid
        """
        validate_bins(hist_bins, "hist_bins")
        if asymptotic_threshold < 2:
            raise ValueError(f"asymptotic_threshold must be at least 2, got {asymptotic_threshold}")

        valid_formats = ['png', 'svg', 'pdf']
        if output_image_format not in valid_formats:
            raise ValueError(f"Invalid output_image_format '{output_image_format}'. Valid options: {valid_formats}")

        self.bias_correction = bias_correction
        self.asymptotic_threshold = asymptotic_threshold
        self.hist_bins = hist_bins
        self.save_csv_data = save_csv_data
        self.output_image_format = output_image_format
        self.output_image_dpi = output_image_dpi
        self.verbose = verbose

        self._capability = CapabilityAnalyzer()
        self._duty = DutyCycleAnalyzer(clip_sigma)

        self._matrix = None
        self._runs = None
        self._parameters = ()
        self._source = ''

    @property
    def runs(self) -> Optional[RunSet]:
        return self._runs

    @property
    def parameters(self) -> Tuple[Parameter, ...]:
        return self._parameters

    def _log(self, message: str) -> None:
        if self.verbose:
            print(message)

    def _require_matrix(self) -> Matrix:
        if self._matrix is None:
            raise ValueError("No matrix analyzed yet, call analyze() first")
        return self._matrix

    def _column_index(self, column: Union[int, str]) -> int:
        matrix = self._require_matrix()
        index = matrix.index_of(column) if isinstance(column, str) else column
        validate_column_index(index, matrix.column_count)
        return index

    def analyze(self, matrix: Matrix, runs: Optional[RunSet] = None) -> Tuple[Parameter, ...]:
        """
        Compute statistics, spec-limit pairing and capability for every column.

        Args:
            matrix: Matrix from load_raw()
            runs: Run segmentation, computed from the time column if omitted

        Returns:
            Tuple of Parameter records, one per column (index 0 is time)
        """
        if runs is None:
            runs = segment_runs(matrix.time)

        self._matrix = matrix
        self._runs = runs

        self._log(f"  Processing {matrix.column_count} variables x {matrix.point_count} points...")
        self._log(f"  Runs: {runs.run_count}")

        builder = ParameterTableBuilder(
            matrix, runs.run_count,
            bias_correction=self.bias_correction,
            asymptotic_threshold=self.asymptotic_threshold,
            capability_analyzer=self._capability,
            verbose=self.verbose,
        )
        builder.compute_statistics()
        builder.pair_spec_limits()
        builder.apply_capability()

        self._parameters = builder.build()

        limited = sum(1 for p in self._parameters if p.has_spec_limits)
        self._log(f"  Parameters with spec limits: {limited}")

        return self._parameters

    def parameter(self, column: Union[int, str]) -> Parameter:
        """Return the analyzed Parameter of a column, by index or name."""
        return self._parameters[self._column_index(column)]

    def duty_cycle(self, column: Union[int, str],
                   threshold: Optional[float] = None) -> DutyCycleResult:
        """
        Duty cycle of a column over all runs.

        Args:
            column: Column index or variable name
            threshold: Detection threshold, defaults to the column's min/max midpoint

        Returns:
            DutyCycleResult
        """
        index = self._column_index(column)
        result = self._duty.analyze(self._matrix, index, self._runs, threshold)

        self._log(f"  Duty cycle of '{self._matrix.names[index]}': "
                  f"{result.retained_count}/{result.sample_count} samples retained")
        return result

    def duty_cycle_capability(self, result: DutyCycleResult, spec_min: float = NAN,
                              spec_max: float = NAN) -> CapabilityResult:
        """
        Rate a duty-cycle result against user-supplied limits.

        The standard deviation of the retained samples is bias-corrected with
        the run count like any other parameter.

        Raises:
            NumericDomainError: If the spread is degenerate or no limit is given
        """
        std_dev = result.std_dev
        if self.bias_correction:
            std_dev = std_dev / c4(self._runs.run_count, self.asymptotic_threshold)
        return self._capability.evaluate(result.mean, std_dev, spec_min, spec_max,
                                         result.retained)

    def rms(self, column: Union[int, str]) -> RmsSummary:
        """RMS of a column per run, summarized across runs."""
        index = self._column_index(column)
        summary = compute_rms(self._matrix.column(index), self._runs.run_count)

        self._log(f"  RMS of '{self._matrix.names[index]}': {summary.run_count} runs, "
                  f"{summary.samples_per_run} samples/run")
        return summary

    def histogram(self, column: Union[int, str]) -> Histogram:
        """Histogram of a column, widened to the column's spec limits."""
        index = self._column_index(column)
        parameter = self._parameters[index]
        return build_histogram(self._matrix.column(index), parameter.spec_min,
                               parameter.spec_max, bins=self.hist_bins)

    def to_metrics(self) -> Dict[str, Any]:
        """Analysis results as a JSON-ready dictionary."""
        matrix = self._require_matrix()
        return {
            'source': self._source,
            'columns': matrix.column_count,
            'points': matrix.point_count,
            'run_count': self._runs.run_count,
            'bias_correction': self.bias_correction,
            'parameters': [asdict(p) for p in self._parameters],
        }

    def save_results(self, output_dir: str = '.',
                     histogram_columns: Tuple[Union[int, str], ...] = ()) -> List[str]:
        """
        Save analysis results to files.

        Writes raw_metrics.json, and with save_csv_data also parameters.csv
        and matrix.csv. One histogram image is written per requested column.

        Args:
            output_dir: Output directory path
            histogram_columns: Columns to plot as histograms

        Returns:
            List of written file paths
        """
        matrix = self._require_matrix()
        create_output_directory(output_dir)
        written = []

        metrics_path = os.path.join(output_dir, 'raw_metrics.json')
        save_metrics_json(self.to_metrics(), metrics_path)
        written.append(metrics_path)

        if self.save_csv_data:
            parameters_path = os.path.join(output_dir, 'parameters.csv')
            save_parameters_csv(self._parameters, parameters_path)
            written.append(parameters_path)

            matrix_path = os.path.join(output_dir, 'matrix.csv')
            save_matrix_csv(matrix, matrix_path)
            written.append(matrix_path)

        for column in histogram_columns:
            index = self._column_index(column)
            image_path = os.path.join(output_dir, f'histogram_{index}.{self.output_image_format}')
            save_histogram_plot(self.histogram(index), image_path,
                                title=matrix.names[index], dpi=self.output_image_dpi)
            written.append(image_path)

        for path in written:
            self._log(f"  Saved: {path}")
        return written


# ============================================================================
# Convenience function
# ============================================================================

def analyze_raw(source, **kwargs) -> Dict[str, Any]:
    """
    Load a raw file and analyze every variable.

    Args:
        source: File path, raw bytes, or a binary file object
        **kwargs: Additional arguments passed to RawAnalyzer:
            - bias_correction: Apply c4(n) correction (default: True)
            - asymptotic_threshold: c4 gamma/asymptotic switchover (default: 100)
            - hist_bins: Histogram bins (default: 50)
            - clip_sigma: Duty-cycle clipping width (default: 1.0)
            - verbose: Print progress (default: True)

    Returns:
        Dictionary with 'header', 'matrix', 'runs', 'parameters' and 'analyzer'

    Example:
        >>> result = analyze_raw('montecarlo.raw', verbose=False)
        >>> for p in result['parameters'][1:]:
        ...     print(p.name, p.mean, p.cpk)
    """
    matrix, header = load_raw(source)

    analyzer = RawAnalyzer(**kwargs)
    if isinstance(source, (str, os.PathLike)):
        analyzer._source = os.fspath(source)

    parameters = analyzer.analyze(matrix)

    return {
        'header': header,
        'matrix': matrix,
        'runs': analyzer.runs,
        'parameters': parameters,
        'analyzer': analyzer,
    }
