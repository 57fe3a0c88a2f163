import warnings

import numpy as np
import pandas as pd
import pytest
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from structlog.testing import capture_logs

from mettools.datasets import simulate_met_data
from mettools.stage_one import fit_stage_one
from mettools.stage_two import fit_mixedlm, fit_stage_two, fit_stage_two_mixed


@pytest.fixture
def stage_one_means(met_data: pd.DataFrame) -> pd.DataFrame:
    return fit_stage_one(met_data).means


def test_unweighted_means_are_row_averages(stage_one_means: pd.DataFrame):
    """Complete genotype x environment table: OLS genotype means = average over environments."""
    # Act
    result = fit_stage_two(stage_one_means, weighting="none")

    # Assert
    expected = stage_one_means.groupby("genotype")["mean"].mean()
    got = result.genotype_means.set_index("genotype")["mean"]
    np.testing.assert_allclose(got.loc[expected.index], expected, rtol=1e-10)


def test_ranks_follow_means(stage_one_means: pd.DataFrame):
    tab = fit_stage_two(stage_one_means, weighting="inverse_variance").genotype_means
    assert tab["rank"].tolist() == list(range(1, len(tab) + 1))
    assert tab["mean"].is_monotonic_decreasing


def test_weighting_changes_the_estimates(stage_one_means: pd.DataFrame):
    """Noisy environments are down-weighted, so the weighted means differ."""
    unweighted = fit_stage_two(stage_one_means, "none").genotype_means.set_index("genotype")
    weighted = fit_stage_two(stage_one_means, "inverse_variance").genotype_means.set_index("genotype")
    diff = (unweighted["mean"] - weighted.loc[unweighted.index, "mean"]).abs()
    assert diff.max() > 1e-6


def test_equal_weights_match_unweighted(stage_one_means: pd.DataFrame):
    # Arrange — one common SE everywhere
    means = stage_one_means.assign(se=0.5)

    # Act
    unweighted = fit_stage_two(means, "none").genotype_means
    weighted = fit_stage_two(means, "inverse_variance").genotype_means

    # Assert
    pd.testing.assert_frame_equal(unweighted, weighted)


def test_unknown_weighting(stage_one_means: pd.DataFrame):
    with pytest.raises(ValueError, match="Unknown weighting"):
        fit_stage_two(stage_one_means, weighting="robust")


def test_missing_stage_one_columns(stage_one_means: pd.DataFrame):
    with pytest.raises(ValueError, match="missing columns"):
        fit_stage_two(stage_one_means.drop(columns=["se"]))


def test_random_genotype_stage_two(stage_one_means: pd.DataFrame):
    # Act
    mixed = fit_stage_two_mixed(stage_one_means)

    # Assert
    assert mixed.variance_components["genotype"] > 0
    assert mixed.variance_components["residual"] > 0
    assert 0.0 < mixed.heritability < 1.0
    assert len(mixed.blups) == 8
    # BLUPs keep the ranking of the unweighted means (balanced data)
    unweighted = fit_stage_two(stage_one_means, "none").genotype_means
    assert mixed.blups["genotype"].tolist() == unweighted["genotype"].tolist()


class _WarningModel:
    """Stands in for a MixedLM whose optimiser warns."""

    def fit(self, reml=True):
        warnings.warn("MLE may be on the boundary of the parameter space", ConvergenceWarning)
        warnings.warn("unrelated", UserWarning)
        return "fitted"


def test_convergence_warnings_are_logged():
    # Act
    with capture_logs() as logs, pytest.warns(UserWarning, match="unrelated") as record:
        result = fit_mixedlm(_WarningModel())

    # Assert
    assert result == "fitted"
    events = [e for e in logs if e["event"] == "MixedLM convergence warning"]
    assert len(events) == 1
    assert events[0]["log_level"] == "warning"
    assert "boundary" in events[0]["message"]
    # other warnings are passed on, convergence warnings are not
    assert not any(issubclass(w.category, ConvergenceWarning) for w in record)


def test_boundary_trial_logs_instead_of_warning():
    """Genotype variance near zero: optimiser complaints end up in the log."""
    # Arrange
    df = simulate_met_data(n_genotypes=8, n_environments=4, n_blocks=3, genotype_sd=1e-6, seed=7)
    means = fit_stage_one(df).means

    # Act
    with capture_logs() as logs, warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        mixed = fit_stage_two_mixed(means)

    # Assert
    assert not any(issubclass(w.category, ConvergenceWarning) for w in caught)
    warned = [e for e in logs if e["log_level"] == "warning"]
    assert all(e["event"] == "MixedLM convergence warning" for e in warned)
    assert mixed.variance_components["genotype"] >= 0
