import importlib.util
from pathlib import Path

import pytest

from mettools.field import (
    FieldPlot,
    harvest_surface,
    moisture_corrected_yield,
    sowing_surface,
    standard_moisture_for,
    yield_per_hectare,
)


def test_sowing_surface():
    # 8 rows x 0.15 m x 10 m
    assert sowing_surface(8, 0.15, 10.0) == pytest.approx(12.0)


def test_harvest_surface_removes_borders_and_ends():
    # 6 rows x 0.15 m x (10 - 2 * 0.5) m
    assert harvest_surface(8, 0.15, 10.0, border_rows=2, end_trim=0.5) == pytest.approx(8.1)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"border_rows": 8},
        {"end_trim": 5.0},
        {"border_rows": -1},
    ],
)
def test_harvest_surface_invalid(kwargs):
    with pytest.raises(ValueError):
        harvest_surface(8, 0.15, 10.0, **kwargs)


def test_surface_requires_positive_dimensions():
    with pytest.raises(ValueError, match="row_spacing"):
        sowing_surface(8, 0.0, 10.0)


@pytest.mark.parametrize("unit, expected", [("t/ha", 5.0), ("q/ha", 50.0), ("kg/ha", 5000.0)])
def test_yield_per_hectare_units(unit, expected):
    # 6 kg on 12 m^2 = 0.5 kg/m^2
    assert yield_per_hectare(6.0, 12.0, unit=unit) == pytest.approx(expected)


def test_yield_per_hectare_unknown_unit():
    with pytest.raises(ValueError, match="Unknown yield unit"):
        yield_per_hectare(6.0, 12.0, unit="bu/ac")


def test_moisture_correction():
    """Wet grain loses weight when brought down to the reference moisture."""
    # 10 t/ha at 20 % brought to 13 %: 10 * 80 / 87
    assert moisture_corrected_yield(10.0, 20.0, 13.0) == pytest.approx(10.0 * 80.0 / 87.0)
    assert moisture_corrected_yield(10.0, 13.0, 13.0) == pytest.approx(10.0)


def test_moisture_out_of_range():
    with pytest.raises(ValueError, match="moisture"):
        moisture_corrected_yield(10.0, 100.0, 13.0)


def test_standard_moisture_lookup_is_case_insensitive():
    assert standard_moisture_for(" Maize ") == 15.5
    with pytest.raises(KeyError, match="Known crops"):
        standard_moisture_for("quinoa")


def test_field_plot_summary():
    # Arrange
    plot = FieldPlot(
        n_rows=8,
        row_spacing=0.15,
        plot_length=10.0,
        grain_weight=4.05,
        moisture=20.0,
        border_rows=2,
        end_trim=0.5,
        crop="wheat",
    )

    # Act
    summary = plot.summary()

    # Assert — 4.05 kg on 8.1 m^2 = 5 t/ha
    assert summary["sowing_surface_m2"] == pytest.approx(12.0)
    assert summary["harvest_surface_m2"] == pytest.approx(8.1)
    assert summary["raw_yield_t/ha"] == pytest.approx(5.0)
    assert summary["corrected_yield_t/ha"] == pytest.approx(5.0 * 80.0 / 87.0)


def test_field_plot_explicit_standard_moisture_wins():
    plot = FieldPlot(n_rows=4, row_spacing=0.75, plot_length=5.0, grain_weight=2.0, moisture=25.0,
                     crop="maize", standard_moisture=14.0)
    assert plot.standard_moisture == 14.0


def test_field_plot_needs_a_reference_moisture():
    with pytest.raises(ValueError, match="crop or standard_moisture"):
        FieldPlot(n_rows=4, row_spacing=0.75, plot_length=5.0, grain_weight=2.0, moisture=25.0, crop=None)


def _load_calculator():
    script = Path(__file__).resolve().parents[1] / "Tutorial_3_Field_Calculator" / "A_plot_yield_calculator.py"
    spec = importlib.util.spec_from_file_location("plot_yield_calculator", script)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_calculator_script_reports_corrected_yield(capsys):
    # Arrange
    module = _load_calculator()

    # Act
    report = module.main([
        "--n_rows", "8", "--row_spacing", "0.15", "--plot_length", "10",
        "--border_rows", "2", "--end_trim", "0.5",
        "--grain_weight", "4.05", "--moisture", "13", "--crop", "wheat",
    ])

    # Assert
    assert report["corrected_yield_t/ha"] == pytest.approx(5.0)
    assert "corrected_yield_t/ha" in capsys.readouterr().out


def test_calculator_script_accepts_any_crop_case():
    """``--crop Maize`` resolves to the maize reference moisture like the library lookup."""
    # Arrange
    module = _load_calculator()

    # Act
    report = module.main([
        "--n_rows", "4", "--row_spacing", "0.75", "--plot_length", "5",
        "--grain_weight", "2.0", "--moisture", "25", "--crop", "Maize",
    ])

    # Assert
    assert report["crop"] == "maize"
    assert report["standard_moisture_pct"] == pytest.approx(15.5)
