"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "FemCare"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Record store ---
    database_url: str = ""  # postgres DSN for asyncpg; empty = in-memory store
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10
    use_sample_data_fallback: bool = True  # serve sample cycles if the store is down
    cycles_cache_ttl_seconds: float = 300.0  # 5 minutes; 0 disables the cache

    # --- Prediction ---
    prediction_config_path: str = ""  # empty = bundled prediction_config.yaml
    period_length_days: int = 5

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "FEMCARE_"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
