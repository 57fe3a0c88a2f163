"""
Two-stage MET analysis, stage 1: one RCBD fit per environment.

For every environment we fit

    y ~ C(gen) + C(blk)

by ordinary least squares and compute genotype adjusted means (least-squares
means averaged over blocks, a.k.a. BLUEs) together with their standard
errors. The means and their precision (weight = 1 / se^2) are what stage 2
works on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np
import pandas as pd
import patsy
import statsmodels.api as sm
import structlog

from .config import MetColumns
from .datasets import to_model_frame, validate_met_data

logger = structlog.get_logger(__name__)


@dataclass
class EnvironmentFit:
    environment: str
    means: pd.DataFrame          # genotype, mean, se
    sigma2: float                # residual variance
    df_resid: float
    n_obs: int
    result: object = field(repr=False, default=None)


@dataclass
class StageOneResult:
    means: pd.DataFrame                  # environment, genotype, mean, se, weight
    residual_variances: pd.Series        # indexed by environment
    fits: Dict[str, EnvironmentFit] = field(repr=False, default_factory=dict)

    def means_matrix(self) -> pd.DataFrame:
        """Genotype x environment table of adjusted means."""
        return self.means.pivot(index="genotype", columns="environment", values="mean")


def fit_formula(formula: str, frame: pd.DataFrame, weights=None, cov_type: str = "nonrobust"):
    """
    OLS (WLS when ``weights`` is given) of a patsy formula on ``frame``.

    Returns ``(result, design_info)``; ``design_info`` rebuilds the design
    for new rows (see ``adjusted_means``).
    """
    y, X = patsy.dmatrices(formula, frame, return_type="dataframe")
    if weights is None:
        model = sm.OLS(y.iloc[:, 0], X)
    else:
        model = sm.WLS(y.iloc[:, 0], X, weights=np.asarray(weights, dtype=float))
    return model.fit(cov_type=cov_type), X.design_info


def adjusted_means(
    result,
    design_info,
    frame: pd.DataFrame,
    by: str,
    over: str,
    within: Optional[str] = None,
) -> pd.DataFrame:
    """
    Least-squares means of factor ``by`` averaged over the levels of ``over``.

    The fitted design is evaluated on the full ``by`` x ``over`` grid; the
    rows belonging to each ``by`` level are averaged into a contrast vector L,
    giving mean = L b and se = sqrt(L V L').

    With ``within`` set, ``over`` is nested in it (blocks within
    environments): rows are averaged over ``over`` inside each ``within``
    level first, then over the ``within`` levels with equal weight.
    """
    by_levels = sorted(frame[by].unique())
    if within is None:
        cells = pd.DataFrame({over: sorted(frame[over].unique())})
        cell_w = np.full(len(cells), 1.0 / len(cells))
    else:
        cells = (
            frame[[within, over]]
            .drop_duplicates()
            .sort_values([within, over])
            .reset_index(drop=True)
        )
        per_group = cells.groupby(within)[over].transform("size").to_numpy(dtype=float)
        cell_w = 1.0 / (per_group * cells[within].nunique())

    grid = pd.DataFrame({by: by_levels}).merge(cells, how="cross")
    X = np.asarray(patsy.build_design_matrices([design_info], grid)[0], dtype=float)
    L = np.einsum("gcp,c->gp", X.reshape(len(by_levels), len(cells), X.shape[1]), cell_w)

    params = np.asarray(result.params, dtype=float)
    cov = np.asarray(result.cov_params(), dtype=float)
    est = L @ params
    se = np.sqrt(np.einsum("ij,jk,ik->i", L, cov, L))

    return pd.DataFrame({"genotype": by_levels, "mean": est, "se": se})


def fit_environment(
    data: pd.DataFrame,
    environment: str,
    columns: Optional[MetColumns] = None,
) -> EnvironmentFit:
    cols = columns or MetColumns()
    sub = data[data[cols.environment].astype(str) == str(environment)]
    if sub.empty:
        raise KeyError(f"Environment '{environment}' not found in the data.")

    frame = to_model_frame(sub, cols)
    result, design_info = fit_formula("y ~ C(gen) + C(blk)", frame)

    if result.df_resid <= 0:
        raise ValueError(
            f"Environment '{environment}' has no residual degrees of freedom "
            f"(n={len(frame)}, parameters={len(result.params)})."
        )

    means = adjusted_means(result, design_info, frame, by="gen", over="blk")
    logger.debug(
        "Fitted environment",
        environment=str(environment),
        n_obs=int(result.nobs),
        sigma2=float(result.scale),
    )
    return EnvironmentFit(
        environment=str(environment),
        means=means,
        sigma2=float(result.scale),
        df_resid=float(result.df_resid),
        n_obs=int(result.nobs),
        result=result,
    )


def fit_stage_one(data: pd.DataFrame, columns: Optional[MetColumns] = None) -> StageOneResult:
    """Fit every environment and stack the adjusted means into one long table."""
    cols = columns or MetColumns()
    data = validate_met_data(data, cols)

    fits: Dict[str, EnvironmentFit] = {}
    tables = []
    for env in sorted(data[cols.environment].unique()):
        fit = fit_environment(data, env, cols)
        fits[fit.environment] = fit
        tab = fit.means.copy()
        tab.insert(0, "environment", fit.environment)
        tables.append(tab)

    means = pd.concat(tables, ignore_index=True)
    means["weight"] = 1.0 / means["se"] ** 2

    residual_variances = pd.Series(
        {env: f.sigma2 for env, f in fits.items()}, name="sigma2"
    )
    residual_variances.index.name = "environment"

    logger.info(
        "Stage 1 done",
        n_environments=len(fits),
        n_means=len(means),
    )
    return StageOneResult(means=means, residual_variances=residual_variances, fits=fits)
