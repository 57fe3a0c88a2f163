"""
Comparing fitted MET models.

- likelihood_ratio_test : homoscedastic vs heteroscedastic residuals (REML,
                          same fixed effects)
- information_criteria  : AIC / BIC table
- rank_agreement        : do two approaches select the same genotypes?
- broad_sense_heritability : entry-mean heritability across environments
"""

from __future__ import annotations

from typing import Dict, Mapping

import pandas as pd
from scipy import stats


def likelihood_ratio_test(reduced, full) -> Dict[str, float]:
    """
    LRT between two nested REML fits.

    Both fits must expose ``loglik``, ``n_variance_params`` and ``n_fixed``.
    REML likelihoods are only comparable when the fixed effects are the
    same, hence the ``n_fixed`` check.
    """
    if reduced.n_fixed != full.n_fixed:
        raise ValueError(
            "REML likelihoods need identical fixed effects: "
            f"n_fixed={reduced.n_fixed} vs {full.n_fixed}"
        )
    df = int(full.n_variance_params - reduced.n_variance_params)
    if df <= 0:
        raise ValueError(f"'full' must have more variance parameters than 'reduced' (df={df}).")

    statistic = max(2.0 * (full.loglik - reduced.loglik), 0.0)
    p_value = float(stats.chi2.sf(statistic, df))
    return {"statistic": float(statistic), "df": df, "p_value": p_value}


def information_criteria(fits: Mapping[str, object]) -> pd.DataFrame:
    """AIC / BIC of several fits, best (lowest AIC) first."""
    rows = []
    for name, fit in fits.items():
        rows.append(
            {
                "model": name,
                "loglik": float(fit.loglik),
                "n_params": int(fit.n_fixed + fit.n_variance_params),
                "aic": float(fit.aic),
                "bic": float(fit.bic),
            }
        )
    if not rows:
        raise ValueError("No fits to compare.")
    return pd.DataFrame(rows).sort_values("aic").reset_index(drop=True)


def rank_agreement(a: pd.DataFrame, b: pd.DataFrame, value: str = "mean", top_k: int = 5) -> Dict[str, float]:
    """
    Spearman correlation of genotype values between two tables, plus the
    share of the top ``top_k`` genotypes both approaches select.

    Both tables need a ``genotype`` column and a ``value`` column; rename
    BLUP tables ("predicted") before comparing them with adjusted means.
    """
    merged = pd.merge(
        a[["genotype", value]], b[["genotype", value]],
        on="genotype", suffixes=("_a", "_b"),
    )
    if len(merged) < 2:
        raise ValueError("Need at least 2 genotypes in common to compare rankings.")

    rho, _ = stats.spearmanr(merged[f"{value}_a"], merged[f"{value}_b"])

    k = min(top_k, len(merged))
    top_a = set(merged.nlargest(k, f"{value}_a")["genotype"])
    top_b = set(merged.nlargest(k, f"{value}_b")["genotype"])

    return {
        "spearman": float(rho),
        "top_k": k,
        "top_k_overlap": len(top_a & top_b) / k,
        "n_common": int(len(merged)),
    }


def broad_sense_heritability(var_g: float, var_ge: float, var_e: float, n_env: int, n_rep: int) -> float:
    """H2 = s2_g / (s2_g + s2_ge / e + s2_e / (e r))."""
    if n_env < 1 or n_rep < 1:
        raise ValueError("n_env and n_rep must be >= 1.")
    var_g, var_ge, var_e = (max(float(v), 0.0) for v in (var_g, var_ge, var_e))
    denom = var_g + var_ge / n_env + var_e / (n_env * n_rep)
    if denom == 0.0:
        return float("nan")
    return var_g / denom
