#!/usr/bin/env python3
"""
RawAnalyzer Demo Script

This script demonstrates how to use the RawAnalyzer module.
It writes a synthetic Monte Carlo raw file and performs analysis.
"""

import numpy as np
import sys
import os

# Add current directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from raw_analyzer import analyze_raw, NumericDomainError
from raw_analyzer.utils import format_parameter_table

def generate_test_data(num_runs=20, points_per_run=400, seed=42):
    """
    Generate a synthetic Monte Carlo raw file.

    Each run holds a regulator output with a per-run offset, a PWM clock
    with a per-run duty cycle, and two constant spec-limit variables.

    Args:
        num_runs: Number of Monte Carlo runs
        points_per_run: Points per run
        seed: Random seed

    Returns:
        Raw file bytes (UTF-16LE header, double precision body)
    """
    rng = np.random.default_rng(seed)
    names = ['time', 'V(out)', 'V(out_min)', 'V(out_max)', 'V(pwm)']

    period = 40
    k = np.arange(points_per_run)
    columns = [[] for _ in names]
    for _ in range(num_runs):
        high = int(round(period * rng.normal(0.5, 0.05)))
        columns[0].append(k * 1e-7)
        columns[1].append(3.3 + rng.normal(0, 0.02) + rng.normal(0, 0.002, points_per_run))
        columns[2].append(np.full(points_per_run, 3.2))
        columns[3].append(np.full(points_per_run, 3.4))
        columns[4].append(np.where(k % period < high, 3.3, 0.0))
    columns = [np.concatenate(c) for c in columns]

    header = [
        'Title: * demo regulator',
        'Plotname: Transient Analysis',
        'Flags: real forward double stepped',
        f'No. Variables: {len(names)}',
        f'No. Points: {columns[0].size}',
        'Variables:',
    ]
    header += [f'\t{i}\t{name}\t{"time" if i == 0 else "voltage"}'
               for i, name in enumerate(names)]
    text = ''.join(line + '\n' for line in header) + 'Binary:\n'

    body = np.column_stack(columns).astype('<f8').tobytes()
    return text.encode('utf-16-le') + body

def main():
    """Main demo function."""
    print("="*60)
    print("RawAnalyzer Demo")
    print("="*60)

    # Parameters
    num_runs = 20
    points_per_run = 400

    print(f"\nGenerating test data:")
    print(f"  Runs: {num_runs}")
    print(f"  Points per run: {points_per_run}")

    output_dir = 'demo_results'
    os.makedirs(output_dir, exist_ok=True)
    raw_path = os.path.join(output_dir, 'montecarlo.raw')
    with open(raw_path, 'wb') as f:
        f.write(generate_test_data(num_runs, points_per_run))

    # Perform analysis
    print(f"\nAnalyzing '{raw_path}'...")
    result = analyze_raw(raw_path, save_csv_data=True)
    analyzer = result['analyzer']

    print(f"\nParameter table:")
    for line in format_parameter_table(result['parameters'], header=True):
        print(line)

    print(f"\nDuty cycle:")
    duty = analyzer.duty_cycle('V(pwm)')
    try:
        duty_cpk = analyzer.duty_cycle_capability(duty, 0.45, 0.55).cpk
    except NumericDomainError as e:
        print(f"  Warning: {e}")
        duty_cpk = float("nan")

    # Save results
    print(f"\nSaving results to '{output_dir}/'...")
    analyzer.save_results(output_dir, histogram_columns=('V(out)',))

    # Print summary
    vout = analyzer.parameter('V(out)')
    print("\n" + "="*60)
    print("Summary")
    print("="*60)
    print(f"V(out): mean {vout.mean:.4f} V, sdev {vout.std_dev:.4f} V, "
          f"Cpk {vout.cpk:.3f}, ppm {vout.ppm:.1f}")
    print(f"Duty cycle: {duty.mean:.3f} +/- {duty.std_dev:.3f}, "
          f"Cpk {duty_cpk:.3f}")
    print(f"\nResults saved to: {output_dir}/")
    print("="*60)

if __name__ == "__main__":
    main()
