"""FemCare cycle statistics and prediction engine.

The core (``cycle_stats`` and ``predictor``) is pure: it turns an ordered,
newest-first history of cycles into statistics and next-cycle predictions,
with no I/O and no global configuration.  The remaining modules wrap it.

Core modules:
    models        - CycleRecord, CycleStatistics, PredictionSet, failure values
    cycle_stats   - Trailing-window mean / population SD / variability ratio
    predictor     - Next period, ovulation, fertile window, PMS onset
    config_loader - Load/validate prediction_config.yaml

Collaborators:
    store     - CycleStore contract + memory, Postgres, sample and fallback stores
    cache     - Freshness-window cache around a store's read path
    analytics - Display summary, cycle day and status helpers
    service   - PredictionService orchestration
"""

from src.cycles.config_loader import PredictionConfig, load_prediction_config
from src.cycles.cycle_stats import compute_statistics
from src.cycles.models import (
    CycleRecord,
    CycleStatistics,
    InsufficientData,
    InvalidParameter,
    PredictionSet,
)
from src.cycles.predictor import predict

__all__ = [
    "CycleRecord",
    "CycleStatistics",
    "PredictionSet",
    "InsufficientData",
    "InvalidParameter",
    "PredictionConfig",
    "load_prediction_config",
    "compute_statistics",
    "predict",
]
