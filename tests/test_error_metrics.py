import numpy as np
import pandas as pd
import pytest

from mettools.error_metrics import (
    error_summary,
    mean_absolute_error,
    mean_bias_error,
    modelling_efficiency,
    r_squared,
    relative_rmse,
    root_mean_squared_error,
)


@pytest.fixture
def obs() -> np.ndarray:
    return np.array([2.0, 4.0, 6.0, 8.0])


def test_perfect_predictions(obs: np.ndarray):
    """Predictions equal to observations give zero errors and EF = R2 = 1."""
    # Act
    summary = error_summary(obs, obs)

    # Assert
    assert summary["mbe"] == 0.0
    assert summary["rmse"] == 0.0
    assert summary["ef"] == pytest.approx(1.0)
    assert summary["r2"] == pytest.approx(1.0)


def test_mean_bias_error_sign_is_pred_minus_obs(obs: np.ndarray):
    """Over-prediction gives a positive MBE."""
    # Arrange
    pred = obs + np.array([1.0, 1.0, 1.0, 3.0])

    # Act
    mbe = mean_bias_error(obs, pred)

    # Assert
    assert mbe == pytest.approx(1.5)
    assert mean_bias_error(pred, obs) == pytest.approx(-1.5)


def test_absolute_and_squared_errors(obs: np.ndarray):
    # Arrange
    pred = obs + np.array([1.0, -1.0, 1.0, -1.0])

    # Act / Assert
    assert mean_bias_error(obs, pred) == pytest.approx(0.0)
    assert mean_absolute_error(obs, pred) == pytest.approx(1.0)
    assert root_mean_squared_error(obs, pred) == pytest.approx(1.0)
    # mean(obs) = 5 -> RRMSE = 20 %
    assert relative_rmse(obs, pred) == pytest.approx(20.0)


def test_modelling_efficiency_of_the_mean_is_zero(obs: np.ndarray):
    """Predicting the observed mean everywhere is exactly EF = 0."""
    pred = np.full_like(obs, obs.mean())
    assert modelling_efficiency(obs, pred) == pytest.approx(0.0)


def test_r_squared_ignores_offset(obs: np.ndarray):
    """R2 measures association only; a constant shift keeps it at 1."""
    assert r_squared(obs, obs + 10.0) == pytest.approx(1.0)


def test_nan_pairs_are_dropped():
    # Arrange
    obs = pd.Series([1.0, np.nan, 3.0, 4.0])
    pred = [2.0, 5.0, np.nan, 5.0]

    # Act
    summary = error_summary(obs, pred)

    # Assert — only pairs (1, 2) and (4, 5) remain
    assert summary["n"] == 2
    assert summary["mbe"] == pytest.approx(1.0)


def test_length_mismatch_raises():
    with pytest.raises(ValueError, match="same length"):
        mean_bias_error([1.0, 2.0], [1.0])


def test_all_nan_raises():
    with pytest.raises(ValueError, match="No complete"):
        root_mean_squared_error([np.nan, 1.0], [1.0, np.nan])


def test_relative_rmse_zero_mean_raises():
    with pytest.raises(ValueError, match="observed mean is 0"):
        relative_rmse([-1.0, 1.0], [0.0, 0.0])
