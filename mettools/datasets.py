"""
MET data: simulation, validation and CSV I/O.

The simulated trial is a randomized complete block design (RCBD) repeated
in every environment:

    y_ijk = mu + E_i + B_k(i) + G_j + GE_ij + e_ijk,   e_ijk ~ N(0, sigma_i^2)

The residual SD ``sigma_i`` may differ between environments, which is what
the heteroscedastic models in ``one_stage`` and ``stage_two`` pick up.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
import structlog

from .config import MetColumns

logger = structlog.get_logger(__name__)

# joins environment and block into one nested block label
LABEL_SEP = ":"


def _labels(prefix: str, n: int):
    width = len(str(n))
    return [f"{prefix}{i + 1:0{width}d}" for i in range(n)]


def simulate_met_data(
    n_genotypes: int = 20,
    n_environments: int = 6,
    n_blocks: int = 3,
    genotype_sd: float = 1.0,
    gxe_sd: float = 0.6,
    environment_sd: float = 2.0,
    block_sd: float = 0.3,
    error_sd: Optional[Union[float, Sequence[float]]] = None,
    grand_mean: float = 8.0,
    missing_fraction: float = 0.0,
    seed: Optional[int] = 2024,
    columns: Optional[MetColumns] = None,
) -> pd.DataFrame:
    """
    Simulate a long-format MET table.

    Parameters
    ----------
    error_sd
        Residual SD. A scalar gives a homoscedastic trial, a sequence gives
        one SD per environment. None draws per-environment SDs uniformly in
        [0.4, 1.4].
    missing_fraction
        Fraction of plots whose response is set to NaN (lost plots).

    Returns
    -------
    DataFrame with columns environment, block, genotype, response. The true
    effects are kept in ``df.attrs["truth"]``.
    """
    cols = columns or MetColumns()
    if n_genotypes < 2 or n_environments < 1 or n_blocks < 2:
        raise ValueError("Need at least 2 genotypes, 1 environment and 2 blocks.")
    if not 0.0 <= missing_fraction < 1.0:
        raise ValueError(f"missing_fraction must be in [0, 1). Got {missing_fraction}")

    rng = np.random.default_rng(seed)

    genotypes = _labels("G", n_genotypes)
    environments = _labels("E", n_environments)
    blocks = _labels("B", n_blocks)

    if error_sd is None:
        sigma = rng.uniform(0.4, 1.4, size=n_environments)
    else:
        sigma = np.broadcast_to(np.asarray(error_sd, dtype=float), (n_environments,)).copy()
    if np.any(sigma <= 0):
        raise ValueError("error_sd must be > 0.")

    g_eff = rng.normal(0.0, genotype_sd, size=n_genotypes)
    e_eff = rng.normal(0.0, environment_sd, size=n_environments)
    ge_eff = rng.normal(0.0, gxe_sd, size=(n_environments, n_genotypes))
    b_eff = rng.normal(0.0, block_sd, size=(n_environments, n_blocks))

    rows = []
    for i, env in enumerate(environments):
        for k, blk in enumerate(blocks):
            # randomized plot order within each block
            for j in rng.permutation(n_genotypes):
                y = (
                    grand_mean
                    + e_eff[i]
                    + b_eff[i, k]
                    + g_eff[j]
                    + ge_eff[i, j]
                    + rng.normal(0.0, sigma[i])
                )
                rows.append((env, blk, genotypes[j], y))

    df = pd.DataFrame(rows, columns=list(cols.all))

    if missing_fraction > 0.0:
        lost = rng.random(len(df)) < missing_fraction
        df.loc[lost, cols.response] = np.nan

    df.attrs["truth"] = {
        "grand_mean": grand_mean,
        "genotype": dict(zip(genotypes, g_eff)),
        "environment": dict(zip(environments, e_eff)),
        "error_sd": dict(zip(environments, sigma)),
        "gxe": {env: dict(zip(genotypes, ge_eff[i])) for i, env in enumerate(environments)},
    }
    return df


def validate_met_data(df: pd.DataFrame, columns: Optional[MetColumns] = None) -> pd.DataFrame:
    """
    Check and normalise a MET table.

    - required columns present
    - factor columns complete, cast to str and free of ":"
    - response numeric; rows with a missing response are dropped
    - at least 2 genotypes, at least 2 blocks in every environment
    """
    cols = columns or MetColumns()
    missing = [c for c in cols.all if c not in df.columns]
    if missing:
        raise ValueError(f"MET data is missing columns {missing}. Columns: {list(df.columns)}")

    out = df.loc[:, list(cols.all)].copy()
    out.attrs = {}

    for c in cols.factors:
        if out[c].isna().any():
            raise ValueError(f"Column '{c}' has missing labels.")
        out[c] = out[c].astype(str)
        clash = sorted(out.loc[out[c].str.contains(LABEL_SEP, regex=False), c].unique())
        if clash:
            raise ValueError(f"Column '{c}' labels must not contain '{LABEL_SEP}': {clash}")

    try:
        out[cols.response] = pd.to_numeric(out[cols.response])
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Response column '{cols.response}' must be numeric.") from exc

    n_missing = int(out[cols.response].isna().sum())
    if n_missing:
        logger.info("Dropping plots with missing response", n_dropped=n_missing)
        out = out.dropna(subset=[cols.response])

    if out[cols.genotype].nunique() < 2:
        raise ValueError("MET data needs at least 2 genotypes.")

    blocks_per_env = out.groupby(cols.environment)[cols.block].nunique()
    thin = blocks_per_env[blocks_per_env < 2]
    if len(thin):
        raise ValueError(f"Environments with fewer than 2 blocks: {list(thin.index)}")

    return out.reset_index(drop=True)


def to_model_frame(df: pd.DataFrame, columns: Optional[MetColumns] = None) -> pd.DataFrame:
    """
    Rename a validated MET table to the short names used in model formulas:
    ``y``, ``env``, ``blk``, ``gen``. Blocks are made unique per environment
    (``E1:B1``) so block-within-environment terms never cross sites.
    """
    cols = columns or MetColumns()
    frame = pd.DataFrame(
        {
            "y": df[cols.response].to_numpy(dtype=float),
            "env": df[cols.environment].astype(str).to_numpy(),
            "blk": (df[cols.environment].astype(str) + LABEL_SEP + df[cols.block].astype(str)).to_numpy(),
            "gen": df[cols.genotype].astype(str).to_numpy(),
        }
    )
    return frame


def read_met_csv(path: Union[str, Path], columns: Optional[MetColumns] = None) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"MET file not found: {path}. "
            "Run Tutorial_1_Two_Stage/A_generate_met_data.py first."
        )
    return validate_met_data(pd.read_csv(path), columns)


def write_met_csv(df: pd.DataFrame, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    logger.debug("Wrote MET table", path=str(path), n_rows=len(df))
    return path
