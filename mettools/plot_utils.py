"""
Plotting helpers reused across the tutorials.

- plot_matrix                : image of a matrix (row 1 on top) with labels
- plot_observed_vs_predicted : scatter + 1:1 line, MBE / RMSE in the legend
- plot_gxe_interaction       : genotype profiles across environments
"""

from __future__ import annotations

from typing import Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .error_metrics import mean_bias_error, root_mean_squared_error


def plot_matrix(
    mat,
    ax=None,
    row_labels: Optional[Sequence[str]] = None,
    col_labels: Optional[Sequence[str]] = None,
    cmap: str = "viridis",
    annotate: bool = False,
    fmt: str = "{:.2f}",
    colorbar: bool = True,
    title: Optional[str] = None,
):
    """
    Draw a matrix as an image, keeping matrix orientation (row 1 at the top).

    Parameters
    ----------
    mat
        2D array-like or DataFrame. DataFrame index / columns are used as
        labels unless ``row_labels`` / ``col_labels`` are given.
    annotate
        Write each cell value with ``fmt``. NaN cells stay blank.

    Returns
    -------
    ax
        The :class:`matplotlib.axes.Axes` instance with the image.
    """
    if isinstance(mat, pd.DataFrame):
        if row_labels is None:
            row_labels = [str(i) for i in mat.index]
        if col_labels is None:
            col_labels = [str(c) for c in mat.columns]
        values = mat.to_numpy(dtype=float)
    else:
        values = np.asarray(mat, dtype=float)

    if values.ndim != 2:
        raise ValueError(f"mat must be 2D. Got shape {values.shape}")
    n_rows, n_cols = values.shape
    if row_labels is not None and len(row_labels) != n_rows:
        raise ValueError(f"Expected {n_rows} row labels, got {len(row_labels)}")
    if col_labels is not None and len(col_labels) != n_cols:
        raise ValueError(f"Expected {n_cols} column labels, got {len(col_labels)}")

    if ax is None:
        fig = plt.figure(figsize=(max(4, 0.5 * n_cols + 2), max(3, 0.4 * n_rows + 1)))
        ax = fig.add_subplot(111)

    masked = np.ma.masked_invalid(values)
    im = ax.imshow(masked, cmap=cmap, aspect="auto", origin="upper", interpolation="nearest")

    ax.set_xticks(np.arange(n_cols))
    ax.set_yticks(np.arange(n_rows))
    if col_labels is not None:
        ax.set_xticklabels(col_labels, rotation=45, ha="right")
    if row_labels is not None:
        ax.set_yticklabels(row_labels)

    if annotate:
        finite = values[np.isfinite(values)]
        mid = 0.5 * (finite.min() + finite.max()) if finite.size else 0.0
        for i in range(n_rows):
            for j in range(n_cols):
                v = values[i, j]
                if np.isnan(v):
                    continue
                ax.text(
                    j, i, fmt.format(v),
                    ha="center", va="center", fontsize=8,
                    color="white" if v < mid else "black",
                )

    if colorbar:
        ax.figure.colorbar(im, ax=ax)
    if title is not None:
        ax.set_title(title)

    return ax


def plot_observed_vs_predicted(obs, pred, ax=None, label: Optional[str] = None):
    obs = np.asarray(obs, dtype=float).reshape(-1)
    pred = np.asarray(pred, dtype=float).reshape(-1)

    if ax is None:
        fig = plt.figure(figsize=(5, 5))
        ax = fig.add_subplot(111)

    mbe = mean_bias_error(obs, pred)
    rmse = root_mean_squared_error(obs, pred)
    text = f"MBE={mbe:.3f}, RMSE={rmse:.3f}"
    ax.plot(obs, pred, "o", alpha=0.7, label=f"{label}: {text}" if label else text)

    finite = np.concatenate([obs[np.isfinite(obs)], pred[np.isfinite(pred)]])
    lo, hi = float(finite.min()), float(finite.max())
    ax.plot([lo, hi], [lo, hi], "--", color="grey", label="1:1")

    ax.set_xlabel("Observed")
    ax.set_ylabel("Predicted")
    ax.legend()
    return ax


def plot_gxe_interaction(
    means: pd.DataFrame,
    ax=None,
    environment: str = "environment",
    genotype: str = "genotype",
    value: str = "mean",
    highlight: Optional[Sequence[str]] = None,
):
    """
    One line per genotype across environments, environments sorted by their
    mean (environmental index), so crossing lines show rank changes.
    """
    for c in (environment, genotype, value):
        if c not in means.columns:
            raise ValueError(f"Column '{c}' not in means table. Columns: {list(means.columns)}")

    table = means.pivot_table(index=genotype, columns=environment, values=value)
    order = table.mean(axis=0).sort_values().index
    table = table[order]

    if ax is None:
        fig = plt.figure(figsize=(8, 5))
        ax = fig.add_subplot(111)

    x = np.arange(len(order))
    highlight = set(highlight or [])
    for g, row in table.iterrows():
        if g in highlight:
            ax.plot(x, row.to_numpy(), "-o", linewidth=2.0, label=str(g))
        else:
            ax.plot(x, row.to_numpy(), "-", color="grey", alpha=0.4, linewidth=0.8)

    ax.set_xticks(x)
    ax.set_xticklabels([str(e) for e in order])
    ax.set_xlabel("Environment (sorted by mean)")
    ax.set_ylabel(value)
    if highlight:
        ax.legend(fontsize=8)
    return ax
