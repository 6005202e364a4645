"""
Process Capability Module for RawAnalyzer

This module provides the CapabilityAnalyzer class, which rates a measured
parameter against its spec limits under a normal model:

- Cpk: distance from the mean to the nearer spec limit, in units of 3 sigma
- Probability above/below spec from the normal CDF
- Ppm defect rate and yield fraction
- Empirical counts of samples outside the limits
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.stats import norm

from .exceptions import NumericDomainError

NAN = float('nan')


@dataclass(frozen=True)
class CapabilityResult:
    """
    Capability figures for one parameter.

    Fields whose spec limit is absent are NaN (probabilities are 0.0).
    """
    cpk: float = NAN
    cpk_upper: float = NAN
    cpk_lower: float = NAN
    prob_above: float = 0.0
    prob_below: float = 0.0
    ppm: float = NAN
    yield_fraction: float = NAN
    above_spec_count: int = 0
    below_spec_count: int = 0


def count_outside(samples: Optional[np.ndarray], spec_min: float = NAN,
                  spec_max: float = NAN):
    """
    Count samples strictly above spec_max and strictly below spec_min.

    Returns:
        Tuple of (above_count, below_count)
    """
    if samples is None:
        return 0, 0
    samples = np.asarray(samples, dtype=np.float64)
    above = int(np.count_nonzero(samples > spec_max)) if not math.isnan(spec_max) else 0
    below = int(np.count_nonzero(samples < spec_min)) if not math.isnan(spec_min) else 0
    return above, below


class CapabilityAnalyzer:
    """
    Normal-model process capability analysis.

    The analyzer holds no state between calls: evaluating the same inputs
    twice yields identical results.

    Example:
        >>> analyzer = CapabilityAnalyzer()
        >>> result = analyzer.evaluate(mean=5.0, std_dev=0.1, spec_min=4.5, spec_max=5.5)
        >>> print(f"Cpk: {result.cpk:.3f}, ppm: {result.ppm:.3f}")
        Cpk: 1.667, ppm: 0.573
    """

    def evaluate(self, mean: float, std_dev: float, spec_min: float = NAN,
                 spec_max: float = NAN,
                 samples: Optional[np.ndarray] = None) -> CapabilityResult:
        """
        Compute capability figures against the defined spec limits.

        Args:
            mean: Parameter mean
            std_dev: Parameter standard deviation (bias-corrected)
            spec_min: Lower spec limit, NaN if absent
            spec_max: Upper spec limit, NaN if absent
            samples: Observed samples for the empirical out-of-spec counts

        Returns:
            CapabilityResult

        Raises:
            NumericDomainError: If std_dev is not a positive finite number,
                or mean is not finite
        """
        if math.isnan(spec_min) and math.isnan(spec_max):
            raise NumericDomainError("No spec limits defined")
        if not math.isfinite(mean):
            raise NumericDomainError(f"Mean must be finite, got {mean}")
        if not math.isfinite(std_dev) or std_dev <= 0:
            raise NumericDomainError(
                f"Standard deviation must be positive for a normal model, got {std_dev}"
            )

        cpk_upper = NAN
        cpk_lower = NAN
        prob_above = 0.0
        prob_below = 0.0

        if not math.isnan(spec_max):
            cpk_upper = (spec_max - mean) / (3.0 * std_dev)
            prob_above = float(norm.sf((spec_max - mean) / std_dev))

        if not math.isnan(spec_min):
            cpk_lower = (mean - spec_min) / (3.0 * std_dev)
            prob_below = float(norm.cdf((spec_min - mean) / std_dev))

        # An absent bound does not take part in the minimum
        cpk = min(v for v in (cpk_upper, cpk_lower) if not math.isnan(v))
        bad = prob_above + prob_below
        above, below = count_outside(samples, spec_min, spec_max)

        return CapabilityResult(
            cpk=float(cpk),
            cpk_upper=float(cpk_upper),
            cpk_lower=float(cpk_lower),
            prob_above=prob_above,
            prob_below=prob_below,
            ppm=bad * 1e6,
            yield_fraction=1.0 - bad,
            above_spec_count=above,
            below_spec_count=below,
        )

    def evaluate_parameter(self, parameter,
                           samples: Optional[np.ndarray] = None) -> CapabilityResult:
        """Evaluate a Parameter record (see core.Parameter)."""
        return self.evaluate(parameter.mean, parameter.std_dev,
                             parameter.spec_min, parameter.spec_max, samples)
