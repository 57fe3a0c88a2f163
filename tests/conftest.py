"""Shared fixtures: small simulated MET trials."""

from __future__ import annotations

import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from mettools.config import MetColumns
from mettools.datasets import simulate_met_data


@pytest.fixture
def columns() -> MetColumns:
    return MetColumns()


@pytest.fixture
def met_data() -> pd.DataFrame:
    """8 genotypes x 4 environments x 3 blocks, two clean and two noisy sites."""
    return simulate_met_data(
        n_genotypes=8,
        n_environments=4,
        n_blocks=3,
        genotype_sd=1.5,
        gxe_sd=0.4,
        error_sd=[0.3, 0.3, 1.5, 1.5],
        seed=11,
    )


@pytest.fixture
def homoscedastic_data() -> pd.DataFrame:
    return simulate_met_data(
        n_genotypes=10,
        n_environments=4,
        n_blocks=3,
        genotype_sd=2.0,
        gxe_sd=0.5,
        error_sd=0.5,
        seed=3,
    )
