"""
Configuration + data contracts for the MET tutorials.

Long-format MET table (one row per plot)
----------------------------------------
Required columns (names configurable through ``MetColumns``):
  - environment : str  trial location / year
  - block       : str  replicate within environment
  - genotype    : str  entry name
  - yield       : float response (t/ha by default)

Result folders
--------------
  results/<tutorial>/tables/*.csv
  results/<tutorial>/figures/*.png
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

import structlog


def get_project_root() -> Path:
    here = Path(__file__).resolve()
    return here.parents[1]


def results_dir(tutorial: str) -> Path:
    return get_project_root() / "results" / tutorial


def tables_dir(tutorial: str) -> Path:
    return results_dir(tutorial) / "tables"


def figures_dir(tutorial: str) -> Path:
    return results_dir(tutorial) / "figures"


def met_data_file() -> Path:
    """Simulated trial shared by all tutorials (written by Tutorial_1 A_)."""
    return tables_dir("tutorial1") / "met_data.csv"


def stage_one_file() -> Path:
    return tables_dir("tutorial1") / "stage_one_means.csv"


def ensure_dir(path: Path) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def configure_logging(level: str = "INFO") -> None:
    """Filter structlog output below ``level`` (e.g. "DEBUG", "WARNING")."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        )
    )


@dataclass(frozen=True)
class MetColumns:
    environment: str = "environment"
    block: str = "block"
    genotype: str = "genotype"
    response: str = "yield"

    @property
    def factors(self) -> Tuple[str, str, str]:
        return (self.environment, self.block, self.genotype)

    @property
    def all(self) -> Tuple[str, str, str, str]:
        return (self.environment, self.block, self.genotype, self.response)


@dataclass(frozen=True)
class MetConfig:
    # --- Simulated trial layout ---
    n_genotypes: int = 20
    n_environments: int = 6
    n_blocks: int = 3

    # --- Simulation SDs (t/ha) ---
    genotype_sd: float = 1.0
    gxe_sd: float = 0.6
    environment_sd: float = 2.0
    block_sd: float = 0.3
    grand_mean: float = 8.0

    # --- Per-environment error SDs; None -> drawn in simulate_met_data ---
    error_sd: Tuple[float, ...] = None

    seed: int = 2024

    # --- Fitting ---
    max_iter: int = 100
    tol: float = 1e-8
    top_k: int = 5

    columns: MetColumns = None

    def __post_init__(self):
        if self.columns is None:
            object.__setattr__(self, "columns", MetColumns())
        if self.error_sd is None:
            # Two noisy and four clean sites, enough for the LRT to pick it up
            base = (0.5, 0.6, 0.5, 1.4, 0.7, 1.2)
            object.__setattr__(
                self, "error_sd", tuple(base[k % len(base)] for k in range(self.n_environments))
            )


def default_config() -> MetConfig:
    return MetConfig()
