"""
Plot-geometry and yield calculators for field trials.

Units:
    lengths   [m]
    surfaces  [m^2]
    weights   [kg]  (plot grain weight as weighed at harvest)
    moisture  [%]   (grain humidity, wet basis)

Yield conversions:
    kg / m^2 -> t/ha   x 10
    kg / m^2 -> q/ha   x 100
    kg / m^2 -> kg/ha  x 10000

Moisture correction (wet basis) to the commercial reference moisture:
    Y_std = Y * (100 - H) / (100 - H_std)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional


# Commercial reference moisture by crop (%, wet basis), as used in the
# grain trade for Italian / EU variety trials.
STANDARD_MOISTURE: Dict[str, float] = {
    "wheat": 13.0,
    "durum wheat": 13.0,
    "barley": 13.0,
    "maize": 15.5,
    "sorghum": 14.0,
    "rice": 14.0,
    "soybean": 13.0,
    "sunflower": 9.0,
    "rapeseed": 9.0,
}

YIELD_UNITS: Dict[str, float] = {
    "t/ha": 10.0,
    "q/ha": 100.0,
    "kg/ha": 10000.0,
}


def _positive(name: str, value: float) -> float:
    value = float(value)
    if not value > 0.0:
        raise ValueError(f"{name} must be > 0. Got {value}")
    return value


def _moisture(name: str, value: float) -> float:
    value = float(value)
    if not 0.0 <= value < 100.0:
        raise ValueError(f"{name} must be in [0, 100). Got {value}")
    return value


def plot_surface(n_rows: float, row_spacing: float, plot_length: float) -> float:
    """Surface of a plot of ``n_rows`` rows ``row_spacing`` apart and ``plot_length`` long."""
    return (
        _positive("n_rows", n_rows)
        * _positive("row_spacing", row_spacing)
        * _positive("plot_length", plot_length)
    )


def sowing_surface(n_rows: float, row_spacing: float, plot_length: float) -> float:
    """The whole sown plot."""
    return plot_surface(n_rows, row_spacing, plot_length)


def harvest_surface(
    n_rows: float,
    row_spacing: float,
    plot_length: float,
    border_rows: float = 0,
    end_trim: float = 0.0,
) -> float:
    """
    Surface actually harvested.

    Parameters
    ----------
    border_rows
        Total number of border rows left standing (both sides together).
    end_trim
        Length removed at *each* end of the plot (alleys, damaged heads).
    """
    if border_rows < 0 or end_trim < 0:
        raise ValueError("border_rows and end_trim must be >= 0.")

    rows = float(n_rows) - float(border_rows)
    length = float(plot_length) - 2.0 * float(end_trim)
    if rows <= 0:
        raise ValueError(f"No rows left to harvest: n_rows={n_rows}, border_rows={border_rows}")
    if length <= 0:
        raise ValueError(f"No length left to harvest: plot_length={plot_length}, end_trim={end_trim}")
    return plot_surface(rows, row_spacing, length)


def yield_per_hectare(grain_weight: float, surface: float, unit: str = "t/ha") -> float:
    """Convert a plot grain weight [kg] over ``surface`` [m^2] to a per-hectare yield."""
    if unit not in YIELD_UNITS:
        raise ValueError(f"Unknown yield unit '{unit}'. Use one of {sorted(YIELD_UNITS)}")
    weight = float(grain_weight)
    if weight < 0:
        raise ValueError(f"grain_weight must be >= 0. Got {weight}")
    return weight / _positive("surface", surface) * YIELD_UNITS[unit]


def moisture_corrected_yield(yield_value: float, moisture: float, standard_moisture: float) -> float:
    """Bring a yield measured at ``moisture`` % to the ``standard_moisture`` % reference."""
    h = _moisture("moisture", moisture)
    h_std = _moisture("standard_moisture", standard_moisture)
    return float(yield_value) * (100.0 - h) / (100.0 - h_std)


def standard_moisture_for(crop: str) -> float:
    key = crop.strip().lower()
    if key not in STANDARD_MOISTURE:
        raise KeyError(f"No standard moisture for crop '{crop}'. Known crops: {sorted(STANDARD_MOISTURE)}")
    return STANDARD_MOISTURE[key]


@dataclass
class FieldPlot:
    """One trial plot, from sowing geometry to moisture-corrected yield."""

    n_rows: int
    row_spacing: float          # [m]
    plot_length: float          # [m]
    grain_weight: float         # [kg] harvested from harvest_surface
    moisture: float             # [%] at weighing
    border_rows: int = 0
    end_trim: float = 0.0       # [m] per plot end
    crop: Optional[str] = "wheat"
    standard_moisture: Optional[float] = None

    def __post_init__(self):
        if self.standard_moisture is None:
            if self.crop is None:
                raise ValueError("Give either crop or standard_moisture.")
            self.standard_moisture = standard_moisture_for(self.crop)
        _moisture("moisture", self.moisture)
        _moisture("standard_moisture", self.standard_moisture)

    @property
    def sowing_surface(self) -> float:
        return sowing_surface(self.n_rows, self.row_spacing, self.plot_length)

    @property
    def harvest_surface(self) -> float:
        return harvest_surface(
            self.n_rows, self.row_spacing, self.plot_length, self.border_rows, self.end_trim
        )

    def raw_yield(self, unit: str = "t/ha") -> float:
        return yield_per_hectare(self.grain_weight, self.harvest_surface, unit=unit)

    def corrected_yield(self, unit: str = "t/ha") -> float:
        return moisture_corrected_yield(self.raw_yield(unit), self.moisture, self.standard_moisture)

    def summary(self, unit: str = "t/ha") -> Dict[str, float]:
        return {
            "crop": self.crop,
            "sowing_surface_m2": self.sowing_surface,
            "harvest_surface_m2": self.harvest_surface,
            "grain_weight_kg": float(self.grain_weight),
            "moisture_pct": float(self.moisture),
            "standard_moisture_pct": float(self.standard_moisture),
            f"raw_yield_{unit}": self.raw_yield(unit),
            f"corrected_yield_{unit}": self.corrected_yield(unit),
        }
