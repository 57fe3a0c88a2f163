"""
Tutorial 2 - One-stage analysis
A_homo_vs_hetero.py

Fits all plots at once with genotype fixed,

    y ~ block(environment) + genotype

under two residual models:
  - homoscedastic   one error variance for the whole trial
  - heteroscedastic one error variance per environment (REML)

and compares them with a likelihood ratio test and AIC / BIC. Both fits share
the same fixed effects, so their REML likelihoods are comparable.

Inputs:
  results/tutorial1/tables/met_data.csv
Outputs:
  results/tutorial2/tables/one_stage_<residual>.csv
  results/tutorial2/tables/one_stage_information_criteria.csv
  results/tutorial2/figures/residual_variances.png
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

CURRENT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = CURRENT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mettools.comparison import information_criteria, likelihood_ratio_test
from mettools.config import configure_logging, default_config, ensure_dir, figures_dir, met_data_file, tables_dir
from mettools.datasets import read_met_csv
from mettools.one_stage import fit_one_stage


def main() -> None:
    cfg = default_config()

    parser = argparse.ArgumentParser()
    parser.add_argument("--data", type=str, default=str(met_data_file()), help="MET table (CSV).")
    parser.add_argument("--max_iter", type=int, default=cfg.max_iter)
    parser.add_argument("--tol", type=float, default=cfg.tol)
    parser.add_argument("--log_level", type=str, default="INFO")
    args = parser.parse_args()

    configure_logging(args.log_level)

    df = read_met_csv(args.data, cfg.columns)

    homo = fit_one_stage(df, cfg.columns, residual="homoscedastic")
    hetero = fit_one_stage(df, cfg.columns, residual="heteroscedastic", max_iter=args.max_iter, tol=args.tol)
    print(f"Heteroscedastic REML converged in {hetero.n_iter} iterations.")

    out_tabs = ensure_dir(tables_dir("tutorial2"))
    out_figs = ensure_dir(figures_dir("tutorial2"))
    homo.genotype_means.to_csv(out_tabs / "one_stage_homoscedastic.csv", index=False)
    hetero.genotype_means.to_csv(out_tabs / "one_stage_heteroscedastic.csv", index=False)

    ic = information_criteria({"homoscedastic": homo, "heteroscedastic": hetero})
    ic.to_csv(out_tabs / "one_stage_information_criteria.csv", index=False)
    print("\nInformation criteria (REML):")
    print(ic.round(2).to_string(index=False))

    lrt = likelihood_ratio_test(homo, hetero)
    print(f"\nLRT homo vs hetero: chi2={lrt['statistic']:.2f}, df={lrt['df']}, p={lrt['p_value']:.3g}")
    if lrt["p_value"] < 0.05:
        print("-> environment-specific error variances are needed.")
    else:
        print("-> a single error variance is good enough for this trial.")

    # SEs change with the residual model even where the means barely move
    merged = homo.genotype_means.merge(hetero.genotype_means, on="genotype", suffixes=("_homo", "_hetero"))
    print("\nGenotype means and SEs under both residual models (top 5, heteroscedastic order):")
    cols_show = ["genotype", "mean_homo", "se_homo", "mean_hetero", "se_hetero"]
    print(merged.sort_values("rank_hetero")[cols_show].head(5).round(3).to_string(index=False))

    envs = hetero.residual_variances.index.tolist()
    x = np.arange(len(envs))
    fig = plt.figure(figsize=(7, 4))
    ax = fig.add_subplot(111)
    ax.bar(x, hetero.residual_variances.to_numpy(), color="tab:blue", label="heteroscedastic")
    ax.axhline(float(homo.residual_variances.iloc[0]), color="tab:red", linestyle="--", label="homoscedastic")
    ax.set_xticks(x)
    ax.set_xticklabels(envs)
    ax.set_ylabel("Residual variance")
    ax.set_title("Residual variance per environment (REML)")
    ax.legend()
    out_png = out_figs / "residual_variances.png"
    fig.tight_layout()
    fig.savefig(out_png, dpi=200)
    plt.close(fig)
    print(f"Saved figure: {out_png}")


if __name__ == "__main__":
    main()
