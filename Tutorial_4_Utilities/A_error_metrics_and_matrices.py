"""
Tutorial 4 - Utilities
A_error_metrics_and_matrices.py

Walks through the small helpers:

  - error metrics between observed plot yields and the one-stage fitted values,
    per environment (MBE, MAE, RMSE, RRMSE, R2, EF)
  - matrix images: genotype x environment residual means and the correlation
    between environments of the stage-1 means

Inputs:
  results/tutorial1/tables/met_data.csv
Outputs:
  results/tutorial4/tables/fit_errors_by_environment.csv
  results/tutorial4/figures/residual_matrix.png
  results/tutorial4/figures/environment_correlation.png
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd

CURRENT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = CURRENT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mettools.config import configure_logging, default_config, ensure_dir, figures_dir, met_data_file, tables_dir
from mettools.datasets import read_met_csv
from mettools.error_metrics import error_summary
from mettools.one_stage import fit_one_stage
from mettools.plot_utils import plot_matrix
from mettools.stage_one import fit_stage_one


def main() -> None:
    cfg = default_config()
    cols = cfg.columns

    parser = argparse.ArgumentParser()
    parser.add_argument("--data", type=str, default=str(met_data_file()), help="MET table (CSV).")
    parser.add_argument("--log_level", type=str, default="WARNING")
    args = parser.parse_args()

    configure_logging(args.log_level)

    df = read_met_csv(args.data, cols)
    fit = fit_one_stage(df, cols, residual="heteroscedastic")
    df = df.assign(fitted=fit.result.fittedvalues.to_numpy())

    per_env = {
        env: error_summary(sub[cols.response], sub["fitted"])
        for env, sub in df.groupby(cols.environment)
    }
    errors = pd.DataFrame(per_env).T
    errors.index.name = cols.environment

    out_tabs = ensure_dir(tables_dir("tutorial4"))
    out_figs = ensure_dir(figures_dir("tutorial4"))
    errors.to_csv(out_tabs / "fit_errors_by_environment.csv")
    print("Fit errors by environment (heteroscedastic one-stage model):")
    print(errors.round(3).to_string())
    print("\nMBE is ~0 everywhere: least squares fits are unbiased within each block.")

    # GxE left in the residuals of the additive model
    resid = df.assign(resid=df[cols.response] - df["fitted"]).pivot_table(
        index=cols.genotype, columns=cols.environment, values="resid"
    )
    ax = plot_matrix(resid, cmap="RdBu_r", title="Mean residual (genotype x environment)")
    ax.figure.tight_layout()
    ax.figure.savefig(out_figs / "residual_matrix.png", dpi=200)
    plt.close(ax.figure)

    corr = fit_stage_one(df, cols).means_matrix().corr()
    ax = plot_matrix(corr, cmap="coolwarm", annotate=True, title="Correlation of genotype means between environments")
    ax.figure.tight_layout()
    ax.figure.savefig(out_figs / "environment_correlation.png", dpi=200)
    plt.close(ax.figure)
    print(f"Saved figures in {out_figs}")


if __name__ == "__main__":
    main()
