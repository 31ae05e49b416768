"""Demo script for the noise filter with synthetic data.

This script writes a synthetic CZMIL point/waveform file pair with
realistic return pulses, injects digitizer noise spikes into some
channels and raises the start amplitude of others, then runs the
filter twice to show that the second run invalidates nothing more.

Usage:
    python examples/demo_noise_filter.py
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.common.czmil_io import PairedRecordStore, write_point_file, write_waveform_file
from src.common.records import FILTERABLE_CHANNELS, PACKET_SIZE, Channel
from src.noise_filter.config import FilterConfig
from src.noise_filter.driver import FilterDriver


def create_synthetic_dataset(
    output_dir: Path,
    n_records: int = 2000,
    noise_fraction: float = 0.02,
    hot_start_fraction: float = 0.01,
    seed: int = 42,
) -> Path:
    """Write a synthetic .cpf/.cwf pair.

    Every record gets a waveform on every channel: a flat baseline with
    one or two Gaussian return pulses.  A fraction of the channels get a
    single-sample digitizer spike, and a fraction start well above the
    baseline.

    Parameters
    ----------
    output_dir : Path
        Directory to write the files to.
    n_records : int
        Number of records.
    noise_fraction : float
        Fraction of channels with a digitizer spike.
    hot_start_fraction : float
        Fraction of channels whose first sample is raised.
    seed : int
        Random seed.

    Returns
    -------
    Path
        Path of the .cpf file.
    """
    print("Creating synthetic CZMIL dataset...")
    rng = np.random.default_rng(seed)
    t = np.arange(2 * PACKET_SIZE)

    point_rows = []
    wave_rows = []
    n_spikes = 0
    n_hot = 0
    for record in range(n_records):
        for channel in Channel:
            n_returns = int(rng.integers(1, 3))
            wave = rng.normal(30, 1.5, len(t))
            for k in range(n_returns):
                centre = 30 + 40 * k + rng.uniform(-5, 5)
                wave += rng.uniform(200, 600) * np.exp(-0.5 * ((t - centre) / 6.0) ** 2)
                point_rows.append({
                    "record": record,
                    "channel": int(channel),
                    "return_index": k,
                    "status": 0x01 if rng.random() < 0.05 else 0,
                    "filter_reason": 0,
                    "elevation": -float(rng.uniform(0, 30)),
                })

            if rng.random() < noise_fraction:
                wave[int(rng.integers(5, len(t) - 5))] += 300
                n_spikes += 1
            if rng.random() < hot_start_fraction:
                wave[0] = 900
                n_hot += 1
            wave_rows.append({"record": record, "channel": int(channel), "samples": wave.astype(np.int16)})

    cpf_path = write_point_file(output_dir / "synthetic.cpf", pd.DataFrame(point_rows))
    write_waveform_file(output_dir / "synthetic.cwf", pd.DataFrame(wave_rows))

    print(f"✓ Created {n_records:,} records, {len(point_rows):,} returns")
    print(f"  - Channels with digitizer spikes: {n_spikes}")
    print(f"  - Channels with raised start amplitude: {n_hot}")
    return cpf_path


def main():
    """Run demo filter."""
    print("=" * 70)
    print("CZMIL Noise Filter - Demo")
    print("=" * 70)
    print()

    output_dir = Path("output/demo_noise_filter")
    output_dir.mkdir(parents=True, exist_ok=True)

    cpf_path = create_synthetic_dataset(output_dir)
    config = FilterConfig(
        channels=FILTERABLE_CHANNELS,
        noise_threshold=120,
        shallow_ceiling=600,
        deep_ceiling=600,
    )

    print()
    for run in (1, 2):
        with PairedRecordStore.open(cpf_path) as store:
            summary = FilterDriver().run(store, config)
        print(f"Run {run}: {summary.invalidated} invalidated, "
              f"{summary.records_updated} records updated, {summary.reset} noise flags re-evaluated")
        for reason, count in summary.by_reason.items():
            print(f"  - {reason.name}: {count}")

    print()
    print("=" * 70)
    print("Demo Complete!")
    print("=" * 70)
    print(f"  • Point file: {cpf_path}")
    print(f"  • Waveform file: {cpf_path.with_suffix('.cwf')}")
    print()
    print("Run the command line tool on the same files:")
    print(f"  python -m src.noise_filter.cli -1 -2 -3 -4 -5 -6 -7 -9 -a 120 -s 600 -d 600 {cpf_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
