"""
Tutorial 1 - Two-stage analysis
B_stage_one_blues.py

Stage 1: analyse every environment on its own with the RCBD model

    y ~ genotype + block

and keep the genotype adjusted means (BLUEs) and their standard errors.
The residual variance differs from site to site, which is the first hint
that a single pooled error variance is a poor assumption.

Inputs:
  results/tutorial1/tables/met_data.csv        (A_generate_met_data.py)
Outputs:
  results/tutorial1/tables/stage_one_means.csv
  results/tutorial1/tables/stage_one_residual_variances.csv
  results/tutorial1/figures/stage_one_means_matrix.png
  results/tutorial1/figures/stage_one_se_matrix.png
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import matplotlib.pyplot as plt

CURRENT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = CURRENT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mettools.config import (
    configure_logging,
    default_config,
    ensure_dir,
    figures_dir,
    met_data_file,
    stage_one_file,
    tables_dir,
)
from mettools.datasets import read_met_csv
from mettools.plot_utils import plot_matrix
from mettools.stage_one import fit_stage_one


def _save_matrix(mat, title: str, out_png: Path, cmap: str = "viridis") -> None:
    ax = plot_matrix(mat, title=title, cmap=cmap)
    ax.figure.tight_layout()
    ax.figure.savefig(out_png, dpi=200)
    plt.close(ax.figure)
    print(f"Saved figure: {out_png}")


def main() -> None:
    cfg = default_config()

    parser = argparse.ArgumentParser()
    parser.add_argument("--data", type=str, default=str(met_data_file()), help="MET table (CSV).")
    parser.add_argument("--log_level", type=str, default="INFO")
    args = parser.parse_args()

    configure_logging(args.log_level)

    df = read_met_csv(args.data, cfg.columns)
    stage1 = fit_stage_one(df, cfg.columns)

    out_tabs = ensure_dir(tables_dir("tutorial1"))
    out_figs = ensure_dir(figures_dir("tutorial1"))

    stage1.means.to_csv(stage_one_file(), index=False)
    stage1.residual_variances.to_csv(out_tabs / "stage_one_residual_variances.csv")
    print(f"Saved stage-1 means: {stage_one_file()}")

    print("\nResidual variance per environment (stage 1):")
    print(stage1.residual_variances.round(3).to_string())
    ratio = stage1.residual_variances.max() / stage1.residual_variances.min()
    print(f"Largest / smallest residual variance: {ratio:.1f}")

    # In a balanced RCBD every genotype gets the same SE within an environment
    print("\nMean SE of the adjusted means per environment:")
    print(stage1.means.groupby("environment")["se"].mean().round(3).to_string())

    _save_matrix(
        stage1.means_matrix(),
        "Stage 1 adjusted means [t/ha]",
        out_figs / "stage_one_means_matrix.png",
    )
    se_matrix = stage1.means.pivot(index="genotype", columns="environment", values="se")
    _save_matrix(se_matrix, "Stage 1 standard errors", out_figs / "stage_one_se_matrix.png", cmap="magma")


if __name__ == "__main__":
    main()
