"""Health check endpoint: public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from src.dependencies import AppSettings, Predictions

router = APIRouter(tags=["system"])
logger = logging.getLogger("femcare.health")


@router.get("/health")
async def health_check(settings: AppSettings, service: Predictions) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also reports which record store the prediction service is using.
    """
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "store": service.store.name,
        "prediction_config": service.config.version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
