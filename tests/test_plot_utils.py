import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from mettools.plot_utils import plot_gxe_interaction, plot_matrix, plot_observed_vs_predicted


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


def test_plot_matrix_keeps_row_one_on_top():
    # Arrange
    mat = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])

    # Act
    ax = plot_matrix(mat)

    # Assert
    image = ax.images[0]
    np.testing.assert_array_equal(image.get_array(), mat)
    assert image.origin == "upper"


def test_plot_matrix_uses_dataframe_labels():
    df = pd.DataFrame([[1.0, 2.0], [3.0, 4.0]], index=["G1", "G2"], columns=["E1", "E2"])
    ax = plot_matrix(df, colorbar=False, title="means")
    assert [t.get_text() for t in ax.get_yticklabels()] == ["G1", "G2"]
    assert [t.get_text() for t in ax.get_xticklabels()] == ["E1", "E2"]
    assert ax.get_title() == "means"


def test_plot_matrix_annotations_skip_nan():
    mat = np.array([[1.0, np.nan], [3.0, 4.0]])
    ax = plot_matrix(mat, annotate=True, fmt="{:.1f}", colorbar=False)
    assert sorted(t.get_text() for t in ax.texts) == ["1.0", "3.0", "4.0"]


def test_plot_matrix_rejects_bad_input():
    with pytest.raises(ValueError, match="2D"):
        plot_matrix([1.0, 2.0])
    with pytest.raises(ValueError, match="row labels"):
        plot_matrix(np.zeros((2, 2)), row_labels=["a"])


def test_plot_observed_vs_predicted_legend_has_metrics():
    ax = plot_observed_vs_predicted([1.0, 2.0, 3.0], [1.5, 2.5, 3.5], label="fit")
    labels = [t.get_text() for t in ax.get_legend().get_texts()]
    assert labels[0] == "fit: MBE=0.500, RMSE=0.500"


def test_plot_gxe_interaction_orders_environments():
    # Arrange
    means = pd.DataFrame(
        {
            "environment": ["E1", "E2", "E1", "E2"],
            "genotype": ["G1", "G1", "G2", "G2"],
            "mean": [9.0, 2.0, 8.0, 3.0],
        }
    )

    # Act
    ax = plot_gxe_interaction(means, highlight=["G1"])

    # Assert — low-yielding E2 first
    assert [t.get_text() for t in ax.get_xticklabels()] == ["E2", "E1"]
    assert len(ax.lines) == 2


def test_plot_gxe_interaction_missing_column():
    with pytest.raises(ValueError, match="Column 'mean'"):
        plot_gxe_interaction(pd.DataFrame({"environment": [], "genotype": []}))
