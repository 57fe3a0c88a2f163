"""
Tutorial 2 - One-stage analysis
C_compare_approaches.py

Puts all approaches side by side on the simulated trial, where the true
genotype effects are known:

  two-stage  unweighted / weighted
  one-stage  homoscedastic / heteroscedastic / mixed (BLUP)

Estimates and true effects are both centred on their own mean before the
error metrics are computed, since only genotype differences matter for
selection.

Outputs:
  results/tutorial2/tables/approach_errors.csv
  results/tutorial2/figures/true_vs_estimated.png
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

from mettools.comparison import rank_agreement
from mettools.config import configure_logging, default_config, ensure_dir, figures_dir, tables_dir
from mettools.datasets import simulate_met_data
from mettools.error_metrics import error_summary
from mettools.one_stage import fit_one_stage, fit_one_stage_mixed
from mettools.plot_utils import plot_observed_vs_predicted
from mettools.stage_one import fit_stage_one
from mettools.stage_two import fit_stage_two


def _centred(tab: pd.DataFrame, value: str) -> pd.Series:
    s = tab.set_index("genotype")[value].astype(float)
    return s - s.mean()


def main() -> None:
    cfg = default_config()

    parser = argparse.ArgumentParser()
    parser.add_argument("--seed", type=int, default=cfg.seed, help="Simulation seed (same as Tutorial_1 A_).")
    parser.add_argument("--log_level", type=str, default="WARNING")
    args = parser.parse_args()

    configure_logging(args.log_level)

    df = simulate_met_data(
        n_genotypes=cfg.n_genotypes,
        n_environments=cfg.n_environments,
        n_blocks=cfg.n_blocks,
        genotype_sd=cfg.genotype_sd,
        gxe_sd=cfg.gxe_sd,
        environment_sd=cfg.environment_sd,
        block_sd=cfg.block_sd,
        error_sd=cfg.error_sd,
        grand_mean=cfg.grand_mean,
        seed=args.seed,
        columns=cfg.columns,
    )
    truth = pd.Series(df.attrs["truth"]["genotype"], dtype=float)
    truth = truth - truth.mean()

    stage1 = fit_stage_one(df, cfg.columns)
    estimates = {
        "two_stage_unweighted": _centred(fit_stage_two(stage1.means, "none").genotype_means, "mean"),
        "two_stage_weighted": _centred(fit_stage_two(stage1.means, "inverse_variance").genotype_means, "mean"),
        "one_stage_homoscedastic": _centred(fit_one_stage(df, cfg.columns, "homoscedastic").genotype_means, "mean"),
        "one_stage_heteroscedastic": _centred(fit_one_stage(df, cfg.columns, "heteroscedastic").genotype_means, "mean"),
        "one_stage_mixed_blup": _centred(fit_one_stage_mixed(df, cfg.columns).blups, "predicted"),
    }

    rows = {}
    truth_tab = truth.rename("mean").rename_axis("genotype").reset_index()
    for name, est in estimates.items():
        est = est.reindex(truth.index)
        summary = error_summary(truth.to_numpy(), est.to_numpy())
        agree = rank_agreement(truth_tab, est.rename("mean").rename_axis("genotype").reset_index(), top_k=cfg.top_k)
        summary["spearman"] = agree["spearman"]
        summary["top_k_overlap"] = agree["top_k_overlap"]
        rows[name] = summary
    errors = pd.DataFrame(rows).T

    out_tabs = ensure_dir(tables_dir("tutorial2"))
    out_figs = ensure_dir(figures_dir("tutorial2"))
    errors.to_csv(out_tabs / "approach_errors.csv")
    print("Recovery of the true genotype effects:")
    print(errors[["rmse", "mbe", "r2", "spearman", "top_k_overlap"]].round(3).to_string())

    fig = plt.figure(figsize=(10, 5))
    for k, name in enumerate(["two_stage_weighted", "one_stage_mixed_blup"]):
        ax = fig.add_subplot(1, 2, k + 1)
        plot_observed_vs_predicted(truth.to_numpy(), estimates[name].reindex(truth.index).to_numpy(), ax=ax)
        ax.set_title(name.replace("_", " "))
        ax.set_xlabel("True genotype effect")
        ax.set_ylabel("Estimated (centred)")
    out_png = out_figs / "true_vs_estimated.png"
    fig.tight_layout()
    fig.savefig(out_png, dpi=200)
    plt.close(fig)
    print(f"Saved figure: {out_png}")


if __name__ == "__main__":
    main()
