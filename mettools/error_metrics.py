"""
Agreement metrics between observed and predicted values.

Every function accepts 1D array-likes (lists, numpy arrays, pandas Series).
Pairs where either side is NaN are dropped first, so a model that could not
predict a plot does not poison the whole summary.

Sign convention: errors are ``pred - obs``, hence a positive mean bias error
means the model over-predicts.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
import pandas as pd


def _paired(obs, pred) -> Tuple[np.ndarray, np.ndarray]:
    obs = np.asarray(obs, dtype=float).reshape(-1)
    pred = np.asarray(pred, dtype=float).reshape(-1)
    if obs.size != pred.size:
        raise ValueError(f"obs and pred must have the same length. Got {obs.size} and {pred.size}")

    keep = ~(np.isnan(obs) | np.isnan(pred))
    if not np.any(keep):
        raise ValueError("No complete (obs, pred) pairs left after dropping NaNs.")
    return obs[keep], pred[keep]


def mean_bias_error(obs, pred) -> float:
    """MBE = mean(pred - obs)."""
    o, p = _paired(obs, pred)
    return float(np.mean(p - o))


def mean_absolute_error(obs, pred) -> float:
    o, p = _paired(obs, pred)
    return float(np.mean(np.abs(p - o)))


def root_mean_squared_error(obs, pred) -> float:
    o, p = _paired(obs, pred)
    return float(np.sqrt(np.mean((p - o) ** 2)))


def relative_rmse(obs, pred) -> float:
    """RMSE as a percentage of the observed mean."""
    o, p = _paired(obs, pred)
    mean_obs = float(np.mean(o))
    if mean_obs == 0.0:
        raise ValueError("relative_rmse is undefined when the observed mean is 0.")
    return 100.0 * float(np.sqrt(np.mean((p - o) ** 2))) / mean_obs


def r_squared(obs, pred) -> float:
    """Squared Pearson correlation between obs and pred."""
    o, p = _paired(obs, pred)
    if o.size < 2 or np.std(o) == 0.0 or np.std(p) == 0.0:
        return float("nan")
    r = np.corrcoef(o, p)[0, 1]
    return float(r * r)


def modelling_efficiency(obs, pred) -> float:
    """
    Nash-Sutcliffe modelling efficiency, EF = 1 - SSE / SS_tot.

    EF = 1 is a perfect fit, EF = 0 means the model does no better than the
    observed mean, negative values mean it does worse.
    """
    o, p = _paired(obs, pred)
    ss_tot = float(np.sum((o - np.mean(o)) ** 2))
    if ss_tot == 0.0:
        return float("nan")
    sse = float(np.sum((p - o) ** 2))
    return 1.0 - sse / ss_tot


def error_summary(obs, pred) -> pd.Series:
    """All metrics of this module in one Series (handy for ``pd.concat``)."""
    o, p = _paired(obs, pred)
    return pd.Series(
        {
            "n": int(o.size),
            "mbe": mean_bias_error(o, p),
            "mae": mean_absolute_error(o, p),
            "rmse": root_mean_squared_error(o, p),
            "rrmse_pct": relative_rmse(o, p) if np.mean(o) != 0.0 else float("nan"),
            "r2": r_squared(o, p),
            "ef": modelling_efficiency(o, p),
        },
        dtype=float,
    )
