"""Load and validate the FemCare prediction tuning configuration.

The config lives in ``prediction_config.yaml`` alongside this module.  Unlike a
process-wide singleton, the loaded ``PredictionConfig`` is handed to whoever
needs it: the app lifespan stores it on ``app.state`` and the service passes it
down to the pure engine.  The dataclass defaults are the canonical constants,
so ``PredictionConfig()`` is always a valid configuration on its own.

Usage::

    from src.cycles.config_loader import load_prediction_config

    config = load_prediction_config()
    config.window_size                 # 12
    config.max_period_confidence       # 0.95
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger("femcare.cycles.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "prediction_config.yaml"


# ---------------------------------------------------------------------------
# Typed config
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PredictionConfig:
    """Complete, validated prediction configuration.

    Attributes:
        version:                  Config schema version string.
        window_size:              Newest cycles considered for statistics.
        min_cycles:               Qualifying cycles required for a prediction.
        base_confidence:          Constant term of period confidence.
        regularity_ceiling:       Regularity term is max(0, ceiling - variability).
        per_cycle_weight:         Data-volume term gained per cycle considered.
        max_data_bonus:           Cap on the data-volume term.
        max_period_confidence:    Ceiling on period confidence (never certain).
        ovulation_confidence:     Fixed ovulation confidence.
        default_luteal_phase_days: Luteal length used when the caller gives none.
        fertile_window_days:      Length of the fertile window ending on ovulation.
        pms_offset_days:          Days before the next period that PMS begins.
        min_cycle_days:           Shorter cycles are flagged (not filtered).
        max_cycle_days:           Longer cycles are flagged (not filtered).
    """

    version: str = "1.0"
    window_size: int = 12
    min_cycles: int = 2
    base_confidence: float = 0.5
    regularity_ceiling: float = 0.5
    per_cycle_weight: float = 0.05
    max_data_bonus: float = 0.3
    max_period_confidence: float = 0.95
    ovulation_confidence: float = 0.7
    default_luteal_phase_days: int = 14
    fertile_window_days: int = 6
    pms_offset_days: int = 10
    min_cycle_days: int = 21
    max_cycle_days: int = 45
    _raw: dict = field(default_factory=dict, repr=False, compare=False)


DEFAULT_CONFIG = PredictionConfig()


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when prediction_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    import yaml  # pyyaml

    if not path.exists():
        raise FileNotFoundError(f"Prediction config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> PredictionConfig:
    """Validate the raw YAML dict and construct a PredictionConfig.

    Missing keys fall back to the dataclass defaults.  All problems are
    collected and reported together.

    Raises:
        ConfigValidationError: If any value is of the wrong type or out of range.
    """
    errors: list[str] = []
    defaults = DEFAULT_CONFIG

    def _number(section: dict, key: str, section_name: str, default: Any, cast: type) -> Any:
        if key not in section:
            return default
        value = section[key]
        if isinstance(value, bool):
            errors.append(f"{section_name}.{key} must be a number, got {value!r}")
            return default
        try:
            converted = cast(value)
        except (TypeError, ValueError):
            errors.append(f"{section_name}.{key} must be a number, got {value!r}")
            return default
        if cast is int and converted != value:
            errors.append(f"{section_name}.{key} must be a whole number, got {value!r}")
            return default
        return converted

    def _section(name: str) -> dict:
        value = raw.get(name, {}) or {}
        if not isinstance(value, dict):
            errors.append(f"'{name}' must be a mapping")
            return {}
        return value

    version = str(raw.get("version", defaults.version))

    # ── Statistics window ──
    st_raw = _section("statistics")
    window_size = _number(st_raw, "window_size", "statistics", defaults.window_size, int)
    min_cycles = _number(st_raw, "min_cycles", "statistics", defaults.min_cycles, int)
    if window_size < 1:
        errors.append(f"statistics.window_size = {window_size} must be >= 1")
    if min_cycles < 2:
        errors.append(f"statistics.min_cycles = {min_cycles} must be >= 2")
    if min_cycles > window_size:
        errors.append(
            f"statistics.min_cycles = {min_cycles} exceeds window_size = {window_size}"
        )

    # ── Period confidence ──
    pc_raw = _section("period_confidence")
    base = _number(pc_raw, "base", "period_confidence", defaults.base_confidence, float)
    regularity = _number(
        pc_raw, "regularity_ceiling", "period_confidence", defaults.regularity_ceiling, float
    )
    per_cycle = _number(
        pc_raw, "per_cycle_weight", "period_confidence", defaults.per_cycle_weight, float
    )
    max_bonus = _number(
        pc_raw, "max_data_bonus", "period_confidence", defaults.max_data_bonus, float
    )
    ceiling = _number(
        pc_raw, "ceiling", "period_confidence", defaults.max_period_confidence, float
    )
    for key, value in (
        ("base", base),
        ("regularity_ceiling", regularity),
        ("per_cycle_weight", per_cycle),
        ("max_data_bonus", max_bonus),
        ("ceiling", ceiling),
    ):
        if not (0.0 <= value <= 1.0):
            errors.append(f"period_confidence.{key} = {value} is out of range [0.0, 1.0]")

    if base + regularity + max_bonus < ceiling:
        logger.warning(
            "Period confidence terms sum to %.3f, below the %.2f ceiling. "
            "The ceiling will never be reached.",
            base + regularity + max_bonus,
            ceiling,
        )

    # ── Ovulation / fertile window / PMS ──
    ov_raw = _section("ovulation")
    ovulation_confidence = _number(
        ov_raw, "confidence", "ovulation", defaults.ovulation_confidence, float
    )
    luteal = _number(
        ov_raw, "default_luteal_phase_days", "ovulation", defaults.default_luteal_phase_days, int
    )
    fertile = _number(
        ov_raw, "fertile_window_days", "ovulation", defaults.fertile_window_days, int
    )
    if not (0.0 <= ovulation_confidence <= 1.0):
        errors.append(
            f"ovulation.confidence = {ovulation_confidence} is out of range [0.0, 1.0]"
        )
    if luteal < 1:
        errors.append(f"ovulation.default_luteal_phase_days = {luteal} must be >= 1")
    if fertile < 1:
        errors.append(f"ovulation.fertile_window_days = {fertile} must be >= 1")

    pms_raw = _section("pms")
    pms_offset = _number(pms_raw, "offset_days", "pms", defaults.pms_offset_days, int)
    if pms_offset < 0:
        errors.append(f"pms.offset_days = {pms_offset} must be >= 0")

    # ── Cycle length flags ──
    cl_raw = _section("cycle_length")
    min_days = _number(cl_raw, "min_cycle_days", "cycle_length", defaults.min_cycle_days, int)
    max_days = _number(cl_raw, "max_cycle_days", "cycle_length", defaults.max_cycle_days, int)
    if min_days >= max_days:
        errors.append(
            f"cycle_length.min_cycle_days = {min_days} must be below max_cycle_days = {max_days}"
        )

    if errors:
        raise ConfigValidationError(
            f"prediction_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return PredictionConfig(
        version=version,
        window_size=window_size,
        min_cycles=min_cycles,
        base_confidence=base,
        regularity_ceiling=regularity,
        per_cycle_weight=per_cycle,
        max_data_bonus=max_bonus,
        max_period_confidence=ceiling,
        ovulation_confidence=ovulation_confidence,
        default_luteal_phase_days=luteal,
        fertile_window_days=fertile,
        pms_offset_days=pms_offset,
        min_cycle_days=min_days,
        max_cycle_days=max_days,
        _raw=raw,
    )


def load_prediction_config(path: Path | None = None) -> PredictionConfig:
    """Load and validate the prediction config from disk.

    Args:
        path: Override path to YAML. Uses the bundled prediction_config.yaml by default.

    Returns:
        Validated PredictionConfig instance.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded prediction config v%s from %s", config.version, target)
    return config
