"""Pydantic schemas for recorded menstrual cycles."""

from __future__ import annotations

import uuid
from datetime import date

from pydantic import Field

from src.models.base import FemCareBase


class CycleCreate(FemCareBase):
    start_date: date
    actual_length: int | None = Field(default=None, gt=0)
    end_date: date | None = None


class CycleRead(FemCareBase):
    cycle_id: uuid.UUID | None = None
    user_id: str | None = None
    start_date: date
    actual_length: int | None = None
    end_date: date | None = None
