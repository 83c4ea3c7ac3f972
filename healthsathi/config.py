"""HealthSathi — Configuration via pydantic-settings."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Local store
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/healthsathi.db"

    # Security
    BCRYPT_ROUNDS: int = 12

    # Stand-in for network delay on service calls
    SIMULATED_LATENCY_MS: int = 0

    # Create a demo doctor and patient on startup
    SEED_DEMO_USERS: bool = False

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
