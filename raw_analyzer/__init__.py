"""
RawAnalyzer - LTspice Raw File Statistics Tool

A Python tool for decoding LTspice raw files and validating simulated circuit
parameters against spec limits. Supports ASCII and UTF-16 headers, single and
double precision bodies, multi-run (stepped / Monte-Carlo) files, process
capability, duty cycle, per-run RMS and histograms.

Version: 1.0.0
"""

from .core import RawAnalyzer, Parameter, analyze_raw
from .io import load_raw, read_raw_header, decode_body, Matrix, RawHeader
from .runs import RunSet, segment_runs
from .capability import CapabilityAnalyzer
from .duty import DutyCycleAnalyzer, EdgeDetector
from .reductions import compute_rms, build_histogram
from .exceptions import (
    RawFileError, FormatError, UnsupportedFormatError, TruncatedFileError,
    NumericDomainError
)

__version__ = "1.0.0"
__all__ = [
    "RawAnalyzer", "Parameter", "analyze_raw",
    "load_raw", "read_raw_header", "decode_body", "Matrix", "RawHeader",
    "RunSet", "segment_runs",
    "CapabilityAnalyzer", "DutyCycleAnalyzer", "EdgeDetector",
    "compute_rms", "build_histogram",
    "RawFileError", "FormatError", "UnsupportedFormatError", "TruncatedFileError",
    "NumericDomainError",
]
