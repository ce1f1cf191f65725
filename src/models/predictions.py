"""Pydantic response schemas for predictions, cycle summaries and status."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import Field

from src.models.base import FemCareBase


class PredictionRead(FemCareBase):
    user_id: str | None = None
    next_period_date: date
    next_period_confidence: float = Field(ge=0.0, le=1.0)
    next_ovulation_date: date
    next_ovulation_confidence: float = Field(ge=0.0, le=1.0)
    fertile_window_start: date
    fertile_window_end: date
    pms_start_date: date
    average_cycle_length_days: float
    cycle_variability_ratio: float
    computed_at: datetime


class CycleSummaryRead(FemCareBase):
    average: int
    shortest: int
    longest: int
    consistency: int = Field(ge=0, le=100)
    total_cycles: int
    warnings: list[str] = Field(default_factory=list)


class CycleStatusRead(FemCareBase):
    status: str
    cycle_day: int | None = None
    days_until_next_period: int | None = None
