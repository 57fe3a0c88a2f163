"""
Tutorial 1 - Two-stage analysis
C_stage_two.py

Stage 2: combine the stage-1 means across environments.

  1. unweighted   mean ~ environment + genotype           (homoscedastic)
  2. weighted     same model, weights = 1 / se^2          (heteroscedastic)
  3. random       genotype random -> variance components, BLUPs, H2

Inputs:
  results/tutorial1/tables/stage_one_means.csv  (B_stage_one_blues.py)
Outputs:
  results/tutorial1/tables/stage_two_<model>.csv
  results/tutorial1/figures/gxe_interaction.png
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
from mettools.config import configure_logging, default_config, ensure_dir, figures_dir, stage_one_file, tables_dir
from mettools.plot_utils import plot_gxe_interaction
from mettools.stage_two import fit_stage_two, fit_stage_two_mixed


def main() -> None:
    cfg = default_config()

    parser = argparse.ArgumentParser()
    parser.add_argument("--means", type=str, default=str(stage_one_file()), help="Stage-1 means (CSV).")
    parser.add_argument("--top_k", type=int, default=cfg.top_k, help="Selected genotypes to compare.")
    parser.add_argument("--log_level", type=str, default="INFO")
    args = parser.parse_args()

    configure_logging(args.log_level)

    means_path = Path(args.means)
    if not means_path.exists():
        raise FileNotFoundError(f"Missing stage-1 means: {means_path}. Run B_stage_one_blues.py first.")
    means = pd.read_csv(means_path, dtype={"environment": str, "genotype": str})

    unweighted = fit_stage_two(means, weighting="none")
    weighted = fit_stage_two(means, weighting="inverse_variance")
    mixed = fit_stage_two_mixed(means)

    out_tabs = ensure_dir(tables_dir("tutorial1"))
    out_figs = ensure_dir(figures_dir("tutorial1"))
    unweighted.genotype_means.to_csv(out_tabs / "stage_two_unweighted.csv", index=False)
    weighted.genotype_means.to_csv(out_tabs / "stage_two_weighted.csv", index=False)
    mixed.blups.to_csv(out_tabs / "stage_two_random_genotype.csv", index=False)

    print("Top genotypes, unweighted stage 2:")
    print(unweighted.genotype_means.head(args.top_k).round(3).to_string(index=False))
    print("\nTop genotypes, inverse-variance weighted stage 2:")
    print(weighted.genotype_means.head(args.top_k).round(3).to_string(index=False))

    agree = rank_agreement(unweighted.genotype_means, weighted.genotype_means, top_k=args.top_k)
    print(
        f"\nUnweighted vs weighted: Spearman={agree['spearman']:.3f}, "
        f"top-{agree['top_k']} overlap={agree['top_k_overlap']:.0%}"
    )

    print("\nRandom-genotype stage 2:")
    print(mixed.variance_components.round(4).to_string())
    print(f"Entry-mean heritability: {mixed.heritability:.3f}")

    blups = mixed.blups.rename(columns={"predicted": "mean"})
    agree_blup = rank_agreement(weighted.genotype_means, blups, top_k=args.top_k)
    print(f"Weighted BLUEs vs BLUPs: Spearman={agree_blup['spearman']:.3f}")

    top = weighted.genotype_means["genotype"].head(3).tolist()
    ax = plot_gxe_interaction(means, highlight=top)
    ax.set_title("Stage 1 means across environments (top 3 highlighted)")
    out_png = out_figs / "gxe_interaction.png"
    ax.figure.tight_layout()
    ax.figure.savefig(out_png, dpi=200)
    plt.close(ax.figure)
    print(f"Saved figure: {out_png}")


if __name__ == "__main__":
    main()
