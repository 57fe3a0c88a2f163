"""
One-stage MET analysis: all plots in a single model.

Fixed-genotype model (blocks are coded per environment, so C(blk) also
carries the environment main effect):

    y ~ C(blk) + C(gen)

Residual models
    "homoscedastic"    e ~ N(0, s2 I)                      OLS
    "heteroscedastic"  e ~ N(0, diag(s2_env))              GLS, one variance
                                                           per environment
                                                           (nlme varIdent(~1|env))

The heteroscedastic variances are estimated by REML. With a diagonal
residual covariance the REML score equations reduce to the fixed point

    s2_k = r_k' r_k / (n_k - sum_{i in k} h_ii)

where h_ii are the leverages of the weighted hat matrix, iterated until the
variances stop moving.

``fit_one_stage_mixed`` treats genotype and genotype x environment as random
(statsmodels MixedLM, REML).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
import structlog

from .comparison import broad_sense_heritability
from .config import MetColumns
from .datasets import LABEL_SEP, to_model_frame, validate_met_data
from .stage_one import adjusted_means, fit_formula
from .stage_two import fit_mixedlm

logger = structlog.get_logger(__name__)

RESIDUAL_MODELS = ("homoscedastic", "heteroscedastic")
FIXED_FORMULA = "y ~ C(blk) + C(gen)"


@dataclass
class OneStageResult:
    genotype_means: pd.DataFrame        # genotype, mean, se, rank
    residual_variances: pd.Series       # per environment
    residual: str
    loglik: float                       # REML
    n_fixed: int
    n_variance_params: int
    nobs: int
    n_iter: int = 0
    result: object = field(repr=False, default=None)

    @property
    def aic(self) -> float:
        k = self.n_fixed + self.n_variance_params
        return -2.0 * self.loglik + 2.0 * k

    @property
    def bic(self) -> float:
        # REML: effective sample size is n - p
        k = self.n_fixed + self.n_variance_params
        return -2.0 * self.loglik + k * np.log(self.nobs - self.n_fixed)


@dataclass
class MixedOneStageResult:
    variance_components: pd.Series      # genotype, gxe, residual
    blups: pd.DataFrame                 # genotype, blup, predicted, rank
    heritability: float
    loglik: float
    result: object = field(repr=False, default=None)


def reml_loglik(y, X, variances) -> float:
    """
    Restricted log-likelihood of y ~ N(X b, diag(variances)):

        -1/2 [ (n-p) log(2 pi) + log|V| + log|X' V^-1 X| + r' V^-1 r ]

    with r the GLS residuals.
    """
    y = np.asarray(y, dtype=float).reshape(-1)
    X = np.asarray(X, dtype=float)
    v = np.asarray(variances, dtype=float).reshape(-1)
    if v.size != y.size or X.shape[0] != y.size:
        raise ValueError(f"Shape mismatch: y={y.shape}, X={X.shape}, variances={v.shape}")
    if np.any(v <= 0):
        raise ValueError("variances must be > 0.")

    n, p = X.shape
    w = 1.0 / v
    XtWX = X.T @ (X * w[:, None])
    beta = np.linalg.solve(XtWX, X.T @ (w * y))
    r = y - X @ beta

    sign, logdet_xwx = np.linalg.slogdet(XtWX)
    if sign <= 0:
        raise np.linalg.LinAlgError("X' V^-1 X is not positive definite (rank-deficient design).")

    return float(
        -0.5 * ((n - p) * np.log(2.0 * np.pi) + np.sum(np.log(v)) + logdet_xwx + np.sum(w * r * r))
    )


def _leverages(X: np.ndarray, w: np.ndarray) -> np.ndarray:
    Xw = X * np.sqrt(w)[:, None]
    inv = np.linalg.inv(Xw.T @ Xw)
    return np.einsum("ij,jk,ik->i", Xw, inv, Xw)


def _reml_env_variances(y, X, env_codes, n_env, max_iter, tol):
    """Fixed-point REML for one residual variance per environment."""
    n_k = np.bincount(env_codes, minlength=n_env).astype(float)

    # start from the homoscedastic REML variance
    w = np.ones_like(y)
    s2 = None
    for it in range(1, max_iter + 1):
        h = _leverages(X, w)
        beta = np.linalg.solve(X.T @ (X * w[:, None]), X.T @ (w * y))
        r = y - X @ beta

        rss_k = np.bincount(env_codes, weights=r * r, minlength=n_env)
        dof_k = n_k - np.bincount(env_codes, weights=h, minlength=n_env)
        if np.any(dof_k <= 0):
            raise ValueError("An environment has no residual degrees of freedom left.")

        if s2 is None:
            s2_new = np.full(n_env, rss_k.sum() / dof_k.sum())
        else:
            s2_new = rss_k / dof_k
        s2_new = np.maximum(s2_new, 1e-12)

        if s2 is not None and np.max(np.abs(s2_new - s2) / s2) < tol:
            return s2_new, it
        s2 = s2_new
        w = 1.0 / s2[env_codes]

    raise RuntimeError(f"Heteroscedastic REML did not converge in {max_iter} iterations.")


def fit_one_stage(
    data: pd.DataFrame,
    columns: Optional[MetColumns] = None,
    residual: str = "homoscedastic",
    max_iter: int = 100,
    tol: float = 1e-8,
) -> OneStageResult:
    if residual not in RESIDUAL_MODELS:
        raise ValueError(f"Unknown residual model '{residual}'. Use one of {RESIDUAL_MODELS}")

    cols = columns or MetColumns()
    data = validate_met_data(data, cols)
    frame = to_model_frame(data, cols)

    env_levels = sorted(frame["env"].unique())
    env_codes = pd.Categorical(frame["env"], categories=env_levels).codes.astype(int)

    ols, design_info = fit_formula(FIXED_FORMULA, frame)
    y = np.asarray(ols.model.endog, dtype=float)
    X = np.asarray(ols.model.exog, dtype=float)
    n_fixed = int(np.linalg.matrix_rank(X))
    if n_fixed < X.shape[1]:
        raise ValueError("The fixed-effects design is rank deficient (empty genotype x block cells?).")

    if residual == "homoscedastic":
        s2 = np.full(len(env_levels), float(ols.scale))
        result = ols
        n_iter = 0
        n_var = 1
    else:
        s2, n_iter = _reml_env_variances(y, X, env_codes, len(env_levels), max_iter, tol)
        w = 1.0 / s2[env_codes]
        # variances are known up to REML, so keep the scale at 1
        result, _ = fit_formula(FIXED_FORMULA, frame, weights=w, cov_type="fixed scale")
        n_var = len(env_levels)

    loglik = reml_loglik(y, X, s2[env_codes])
    # blocks within each environment first, then environments with equal weight
    means = adjusted_means(result, design_info, frame, by="gen", over="blk", within="env")
    means["rank"] = means["mean"].rank(ascending=False, method="min").astype(int)
    means = means.sort_values("rank").reset_index(drop=True)

    residual_variances = pd.Series(s2, index=pd.Index(env_levels, name="environment"), name="sigma2")

    logger.info(
        "One-stage fit done",
        residual=residual,
        loglik=loglik,
        n_iter=n_iter,
    )
    return OneStageResult(
        genotype_means=means,
        residual_variances=residual_variances,
        residual=residual,
        loglik=loglik,
        n_fixed=n_fixed,
        n_variance_params=n_var,
        nobs=int(y.size),
        n_iter=n_iter,
        result=result,
    )


def fit_one_stage_mixed(
    data: pd.DataFrame,
    columns: Optional[MetColumns] = None,
    reml: bool = True,
) -> MixedOneStageResult:
    """
    y ~ C(blk) fixed, genotype and genotype x environment random:

        y = X b + Z_g g + Z_ge u + e,   g ~ N(0, s2_g), u ~ N(0, s2_ge), e ~ N(0, s2_e)

    Crossed random effects are expressed as variance components of a single
    group. Genotype BLUPs are s2_g Z_g' V^-1 (y - X b).
    """
    cols = columns or MetColumns()
    data = validate_met_data(data, cols)
    frame = to_model_frame(data, cols).assign(group=1)

    vc_formula = {"gen": "0 + C(gen)", "gxe": "0 + C(gen):C(env)"}
    model = smf.mixedlm("y ~ C(blk)", data=frame, groups="group", vc_formula=vc_formula)
    result = fit_mixedlm(model, reml=reml)

    vcomp = dict(zip(result.model.exog_vc.names, np.asarray(result.vcomp, dtype=float)))
    var_g = max(vcomp["gen"], 0.0)
    var_ge = max(vcomp["gxe"], 0.0)
    var_e = float(result.scale)
    var_int = float(np.asarray(result.cov_re)[0, 0]) if np.asarray(result.cov_re).size else 0.0

    y = np.asarray(result.model.endog, dtype=float)
    X = np.asarray(result.model.exog, dtype=float)
    beta = np.asarray(result.fe_params, dtype=float)

    Z_g = pd.get_dummies(frame["gen"]).astype(float)
    Z_ge = pd.get_dummies(frame["gen"] + LABEL_SEP + frame["env"]).to_numpy(dtype=float)
    V = (
        var_g * (Z_g.to_numpy() @ Z_g.to_numpy().T)
        + var_ge * (Z_ge @ Z_ge.T)
        + var_int
        + var_e * np.eye(y.size)
    )
    blup = var_g * (Z_g.to_numpy().T @ np.linalg.solve(V, y - X @ beta))

    # fixed part averaged over blocks within environment, then over environments
    first_rows = frame.drop_duplicates("blk").index.to_numpy()
    block_fit = pd.Series(X[first_rows] @ beta, index=frame.loc[first_rows, "env"].to_numpy())
    base = float(block_fit.groupby(level=0).mean().mean())

    blups = pd.DataFrame({"genotype": list(Z_g.columns), "blup": blup, "predicted": base + blup})
    blups["rank"] = blups["predicted"].rank(ascending=False, method="min").astype(int)
    blups = blups.sort_values("rank").reset_index(drop=True)

    n_env = frame["env"].nunique()
    n_rep = float(frame.groupby("env")["blk"].nunique().mean())
    h2 = broad_sense_heritability(var_g, var_ge, var_e, n_env=n_env, n_rep=n_rep)

    logger.info(
        "One-stage mixed fit done",
        var_g=var_g,
        var_gxe=var_ge,
        var_e=var_e,
        h2=h2,
    )
    return MixedOneStageResult(
        variance_components=pd.Series({"genotype": var_g, "gxe": var_ge, "residual": var_e}),
        blups=blups,
        heritability=h2,
        loglik=float(result.llf),
        result=result,
    )
