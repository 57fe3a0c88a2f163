"""
Tutorial 1 - Two-stage analysis
A_generate_met_data.py

Simulates the MET trial used by every tutorial: an RCBD repeated in several
environments, with environment-specific residual SDs so that the
heteroscedastic models have something to find.

Outputs:
  results/tutorial1/tables/met_data.csv
  results/tutorial1/figures/raw_means_matrix.png
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import matplotlib.pyplot as plt

# ---------------------------------------------------------------------
# Robust imports (project root on path)
# ---------------------------------------------------------------------
CURRENT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = CURRENT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mettools.config import default_config, ensure_dir, figures_dir, met_data_file
from mettools.datasets import simulate_met_data, write_met_csv
from mettools.plot_utils import plot_matrix


def main() -> None:
    cfg = default_config()
    cols = cfg.columns

    parser = argparse.ArgumentParser()
    parser.add_argument("--seed", type=int, default=cfg.seed, help="Simulation seed.")
    parser.add_argument("--n_genotypes", type=int, default=cfg.n_genotypes)
    parser.add_argument("--n_environments", type=int, default=cfg.n_environments)
    parser.add_argument("--n_blocks", type=int, default=cfg.n_blocks)
    parser.add_argument("--missing_fraction", type=float, default=0.0, help="Share of lost plots (0-1).")
    args = parser.parse_args()

    error_sd = cfg.error_sd if args.n_environments == cfg.n_environments else None

    df = simulate_met_data(
        n_genotypes=args.n_genotypes,
        n_environments=args.n_environments,
        n_blocks=args.n_blocks,
        genotype_sd=cfg.genotype_sd,
        gxe_sd=cfg.gxe_sd,
        environment_sd=cfg.environment_sd,
        block_sd=cfg.block_sd,
        error_sd=error_sd,
        grand_mean=cfg.grand_mean,
        missing_fraction=args.missing_fraction,
        seed=args.seed,
        columns=cols,
    )

    out_csv = write_met_csv(df, met_data_file())
    print(f"Saved MET data: {out_csv}  ({len(df)} plots)")

    print("\nTrue residual SD per environment:")
    for env, sd in df.attrs["truth"]["error_sd"].items():
        print(f"  {env}: {sd:.2f}")

    print("\nRaw environment means:")
    print(df.groupby(cols.environment)[cols.response].agg(["mean", "std", "count"]).round(2))

    # Raw genotype x environment means (no block adjustment yet)
    raw = df.pivot_table(index=cols.genotype, columns=cols.environment, values=cols.response)
    out_figs = ensure_dir(figures_dir("tutorial1"))
    ax = plot_matrix(raw, title="Raw genotype x environment means [t/ha]")
    out_png = out_figs / "raw_means_matrix.png"
    ax.figure.tight_layout()
    ax.figure.savefig(out_png, dpi=200)
    plt.close(ax.figure)
    print(f"Saved figure: {out_png}")


if __name__ == "__main__":
    main()
