"""Shared FastAPI dependencies injected into route handlers.

The prediction service and its store are built once by the app lifespan and
kept on ``app.state``; handlers receive them through ``Depends`` rather than
importing a module-level instance.
"""

from __future__ import annotations

import logging
from typing import Annotated

import asyncpg
from fastapi import Depends, HTTPException, Request

from src.config import Settings, get_settings
from src.cycles.cache import CachedCycleStore
from src.cycles.service import PredictionService
from src.cycles.store import (
    CycleStore,
    FallbackCycleStore,
    InMemoryCycleStore,
    PostgresCycleStore,
    SampleCycleStore,
)

logger = logging.getLogger("femcare.dependencies")


def build_cycle_store(settings: Settings, pool: asyncpg.Pool | None = None) -> CycleStore:
    """Assemble the store stack described by settings.

    Postgres when a pool is given (in-memory otherwise), optionally backed by
    the sample data source, wrapped in the freshness cache when the TTL is
    positive.
    """
    store: CycleStore = PostgresCycleStore(pool) if pool is not None else InMemoryCycleStore()
    if settings.use_sample_data_fallback and pool is not None:
        store = FallbackCycleStore(store, SampleCycleStore())
    if settings.cycles_cache_ttl_seconds > 0:
        store = CachedCycleStore(store, ttl_seconds=settings.cycles_cache_ttl_seconds)
    logger.info("Cycle store: %s", store.name)
    return store


def get_app_settings(request: Request) -> Settings:
    """Return the settings the app was created with."""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_prediction_service(request: Request) -> PredictionService:
    """Return the service the lifespan attached to ``app.state``."""
    service: PredictionService | None = getattr(request.app.state, "prediction_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Prediction service not initialized")
    return service


# Annotated shortcuts for route signatures
Predictions = Annotated[PredictionService, Depends(get_prediction_service)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
