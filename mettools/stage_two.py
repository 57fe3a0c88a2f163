"""
Two-stage MET analysis, stage 2: model the environment means.

Input is the long table produced by ``fit_stage_one`` (environment,
genotype, mean, se, weight). Two error models are offered:

    weighting="none"              OLS, every mean counts the same
                                  (homoscedastic stage 2)
    weighting="inverse_variance"  WLS with weights 1 / se^2, so means from
                                  noisy environments count less
                                  (heteroscedastic stage 2)

``fit_stage_two_mixed`` treats genotypes as random instead and returns
variance components and BLUPs.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
import structlog
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from .comparison import broad_sense_heritability
from .stage_one import adjusted_means, fit_formula

logger = structlog.get_logger(__name__)

WEIGHTINGS = ("none", "inverse_variance")


@dataclass
class StageTwoResult:
    genotype_means: pd.DataFrame     # genotype, mean, se, rank
    weighting: str
    result: object = field(repr=False, default=None)


@dataclass
class MixedStageTwoResult:
    variance_components: pd.Series   # genotype, residual
    blups: pd.DataFrame              # genotype, blup, predicted, rank
    heritability: float
    loglik: float
    result: object = field(repr=False, default=None)


def fit_mixedlm(model, reml: bool = True):
    """Fit a statsmodels MixedLM, logging convergence warnings instead of printing them."""
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConvergenceWarning)
        result = model.fit(reml=reml)
    for w in caught:
        if issubclass(w.category, ConvergenceWarning):
            logger.warning("MixedLM convergence warning", message=str(w.message))
        else:
            warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)
    return result


def _stage_two_frame(means: pd.DataFrame) -> pd.DataFrame:
    required = ["environment", "genotype", "mean", "se"]
    missing = [c for c in required if c not in means.columns]
    if missing:
        raise ValueError(f"Stage-1 means are missing columns {missing}.")
    if (means["se"] <= 0).any():
        raise ValueError("Stage-1 standard errors must be > 0.")
    return pd.DataFrame(
        {
            "y": means["mean"].to_numpy(dtype=float),
            "env": means["environment"].astype(str).to_numpy(),
            "gen": means["genotype"].astype(str).to_numpy(),
            "w": 1.0 / means["se"].to_numpy(dtype=float) ** 2,
        }
    )


def _ranked(tab: pd.DataFrame, column: str) -> pd.DataFrame:
    tab = tab.copy()
    tab["rank"] = tab[column].rank(ascending=False, method="min").astype(int)
    return tab.sort_values("rank").reset_index(drop=True)


def fit_stage_two(means: pd.DataFrame, weighting: str = "none") -> StageTwoResult:
    """Fixed genotype + environment model on the stage-1 means."""
    if weighting not in WEIGHTINGS:
        raise ValueError(f"Unknown weighting '{weighting}'. Use one of {WEIGHTINGS}")

    frame = _stage_two_frame(means)
    formula = "y ~ C(env) + C(gen)"
    weights = None if weighting == "none" else frame["w"]
    result, design_info = fit_formula(formula, frame, weights=weights)

    genotype_means = adjusted_means(result, design_info, frame, by="gen", over="env")
    logger.info(
        "Stage 2 done",
        weighting=weighting,
        n_genotypes=len(genotype_means),
        scale=float(result.scale),
    )
    return StageTwoResult(
        genotype_means=_ranked(genotype_means, "mean"),
        weighting=weighting,
        result=result,
    )


def fit_stage_two_mixed(means: pd.DataFrame, reml: bool = True) -> MixedStageTwoResult:
    """
    Random-genotype stage 2:  y_ij = mu + E_i + g_j + e_ij,  g_j ~ N(0, s2_g).

    The residual here lumps GxE with the stage-1 estimation error.
    """
    frame = _stage_two_frame(means)
    model = smf.mixedlm("y ~ C(env)", data=frame, groups=frame["gen"])
    result = fit_mixedlm(model, reml=reml)

    var_g = float(np.asarray(result.cov_re)[0, 0])
    var_res = float(result.scale)

    env_levels = sorted(frame["env"].unique())
    # fixed part averaged over environments (one design row per environment)
    first_rows = frame.drop_duplicates("env").index.to_numpy()
    X_env = np.asarray(result.model.exog, dtype=float)[first_rows]
    base = float(np.mean(X_env @ np.asarray(result.fe_params, dtype=float)))

    genotypes = sorted(result.random_effects)
    blup = np.array([float(np.asarray(result.random_effects[g])[0]) for g in genotypes])
    blups = pd.DataFrame({"genotype": genotypes, "blup": blup, "predicted": base + blup})

    h2 = broad_sense_heritability(var_g, var_res, 0.0, n_env=len(env_levels), n_rep=1)
    logger.info("Stage 2 (random genotype) done", var_g=var_g, var_res=var_res, h2=h2)

    return MixedStageTwoResult(
        variance_components=pd.Series({"genotype": var_g, "residual": var_res}),
        blups=_ranked(blups, "predicted"),
        heritability=h2,
        loglik=float(result.llf),
        result=result,
    )
