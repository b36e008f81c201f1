#!/usr/bin/env python3
"""Run the tick population model from a YAML configuration.

Loads the configuration and weather series, runs every tick and writes
the per-cell and per-habitat CSV time series to the output directory.

Usage:
    python scripts/run_tick_model.py
    python scripts/run_tick_model.py --config configs/default.yaml \
        --weather input/weather/weather_2015.csv --output results/2015
    python scripts/run_tick_model.py --scenario scenarios/dry.yaml --seed 7
"""

import argparse
import logging
import sys
from pathlib import Path

# ── Project imports ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from iris_ticks.config import load_config
from iris_ticks.environment import load_weather_csv
from iris_ticks.model import TickModel
from iris_ticks.recording import CsvTimeSeriesWriter, HabitatSummaryWriter


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Run the IRIS-Ticks population model",
    )
    parser.add_argument(
        "-c", "--config", type=Path,
        default=PROJECT_ROOT / "configs" / "default.yaml",
        help="Base YAML configuration (default: configs/default.yaml)",
    )
    parser.add_argument(
        "--scenario", type=Path, default=None,
        help="Optional scenario YAML merged over the base configuration",
    )
    parser.add_argument(
        "-w", "--weather", type=Path, default=None,
        help="Weather CSV (default: simulation.weather_file)",
    )
    parser.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Output directory (default: output.directory)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Override RNG seed")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {'simulation': {'seed': args.seed}} if args.seed is not None else None
    config = load_config(args.config, scenario_path=args.scenario,
                         sweep_overrides=overrides)
    weather = load_weather_csv(args.weather or config.simulation.weather_file)
    out_dir = args.output or Path(config.output.directory)

    writers = []
    if config.output.cell_timeseries:
        writers.append(CsvTimeSeriesWriter(out_dir / "cells.csv"))
    if config.output.habitat_summary:
        writers.append(HabitatSummaryWriter(out_dir / "habitats.csv"))

    try:
        model = TickModel.from_config(weather, config, observers=writers)
        model.run()
    finally:
        for writer in writers:
            writer.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
