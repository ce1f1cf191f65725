"""FemCare API: FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import Settings, get_settings
from src.cycles.config_loader import load_prediction_config
from src.cycles.service import PredictionService
from src.cycles.store import PostgresCycleStore, StoreUnavailableError
from src.dependencies import build_cycle_store
from src.routers import health, predictions
from src.services.database import close_pool, create_pool

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("femcare")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks.

    Builds the prediction service unless one was injected via ``create_app``.
    """
    settings: Settings = app.state.settings
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info(
        "Starting FemCare API v%s [%s]",
        settings.app_version,
        settings.environment,
    )

    pool = None
    if getattr(app.state, "prediction_service", None) is None:
        config_path = Path(settings.prediction_config_path) if settings.prediction_config_path else None
        config = load_prediction_config(config_path)

        if settings.database_url:
            pool = await create_pool(settings)
            try:
                await PostgresCycleStore(pool).ensure_schema()
            except StoreUnavailableError as exc:
                logger.warning("Schema check failed: %s", exc)

        store = build_cycle_store(settings, pool)
        app.state.prediction_service = PredictionService(store, config)

    yield

    await close_pool(pool)
    logger.info("FemCare API shut down")


# ---------- App factory ----------

def create_app(
    settings: Settings | None = None,
    service: PredictionService | None = None,
) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="FemCare API",
        description=(
            "Menstrual cycle statistics and predictions: next period, "
            "ovulation, fertile window and PMS onset with confidence scores."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.prediction_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(predictions.router, prefix=v1_prefix)

    return app


app = create_app()
