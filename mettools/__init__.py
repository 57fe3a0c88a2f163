"""mettools

Reusable code for the multi-environment trial (MET) tutorials.

Design intent:
- Keep data handling, model fits, metrics, field calculators and plots here.
- Keep Tutorial_*/ scripts thin and focused on the narrative and the figures.

If you want this to be importable from anywhere, install the repo once:
    pip install -e .
"""

__version__ = "0.1.0"

# Public re-exports (keep this lightweight)
from .config import MetColumns, MetConfig, default_config, configure_logging  # noqa: F401
from .datasets import simulate_met_data, validate_met_data, read_met_csv, write_met_csv  # noqa: F401
from .error_metrics import (  # noqa: F401
    mean_bias_error,
    mean_absolute_error,
    root_mean_squared_error,
    relative_rmse,
    r_squared,
    modelling_efficiency,
    error_summary,
)
from .field import FieldPlot, harvest_surface, moisture_corrected_yield, sowing_surface, yield_per_hectare  # noqa: F401
from .stage_one import fit_stage_one  # noqa: F401
from .stage_two import fit_stage_two, fit_stage_two_mixed  # noqa: F401
from .one_stage import fit_one_stage, fit_one_stage_mixed  # noqa: F401
from .comparison import likelihood_ratio_test, information_criteria, rank_agreement  # noqa: F401
