"""
Tutorial 3 - Field calculator
A_plot_yield_calculator.py

A small form for the field book: enter the plot geometry, the harvested
grain weight and its moisture, get

  - sowing surface [m^2]
  - harvest surface [m^2] (border rows and plot-end trims removed)
  - raw yield and yield at the crop's commercial moisture

Example:
  python Tutorial_3_Field_Calculator/A_plot_yield_calculator.py \
      --n_rows 8 --row_spacing 0.15 --plot_length 10 --border_rows 2 \
      --end_trim 0.5 --grain_weight 6.1 --moisture 17.5 --crop wheat

With --append the report is added as one row to
  results/tutorial3/tables/plot_yields.csv
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import pandas as pd

CURRENT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = CURRENT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mettools.config import ensure_dir, tables_dir
from mettools.field import STANDARD_MOISTURE, YIELD_UNITS, FieldPlot


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Plot surface and yield calculator.")
    parser.add_argument("--plot_id", type=str, default="plot", help="Label stored with the report.")
    parser.add_argument("--n_rows", type=int, required=True, help="Sown rows per plot.")
    parser.add_argument("--row_spacing", type=float, required=True, help="Distance between rows [m].")
    parser.add_argument("--plot_length", type=float, required=True, help="Plot length [m].")
    parser.add_argument("--border_rows", type=int, default=0, help="Border rows not harvested (total).")
    parser.add_argument("--end_trim", type=float, default=0.0, help="Length trimmed at each plot end [m].")
    parser.add_argument("--grain_weight", type=float, required=True, help="Harvested grain weight [kg].")
    parser.add_argument("--moisture", type=float, required=True, help="Grain moisture at weighing [%%].")
    parser.add_argument("--crop", type=str.lower, default="wheat", choices=sorted(STANDARD_MOISTURE))
    parser.add_argument("--standard_moisture", type=float, default=None, help="Override the crop reference [%%].")
    parser.add_argument("--unit", type=str, default="t/ha", choices=sorted(YIELD_UNITS))
    parser.add_argument("--append", action="store_true", help="Append the report to the yields CSV.")
    return parser


def main(argv=None) -> dict:
    args = build_parser().parse_args(argv)

    plot = FieldPlot(
        n_rows=args.n_rows,
        row_spacing=args.row_spacing,
        plot_length=args.plot_length,
        grain_weight=args.grain_weight,
        moisture=args.moisture,
        border_rows=args.border_rows,
        end_trim=args.end_trim,
        crop=args.crop,
        standard_moisture=args.standard_moisture,
    )
    report = {"plot_id": args.plot_id, **plot.summary(args.unit)}

    width = max(len(k) for k in report)
    for key, value in report.items():
        if isinstance(value, float):
            print(f"{key:<{width}} : {value:.3f}")
        else:
            print(f"{key:<{width}} : {value}")

    if args.append:
        out_csv = ensure_dir(tables_dir("tutorial3")) / "plot_yields.csv"
        pd.DataFrame([report]).to_csv(out_csv, mode="a", header=not out_csv.exists(), index=False)
        print(f"Appended to {out_csv}")

    return report


if __name__ == "__main__":
    main()
