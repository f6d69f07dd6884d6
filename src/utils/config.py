"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.
"""

from typing import List, Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Storage (DATABASE_URL itself is resolved in src.database.session)
    REDIS_URL: Optional[str] = None  # Run leases in Redis when set, in-process otherwise

    # Engines
    ENGINES: str = "gemini,perplexity,chatgpt"
    SIMULATION_PRESENCE_PROBABILITY: float = 0.7

    # Perplexity (Optional - live adapter replaces the simulation when set)
    PERPLEXITY_API_KEY: Optional[str] = None
    PERPLEXITY_MODEL: str = "sonar"

    # Check orchestration
    ENGINE_TIMEOUT: float = 30.0
    ENGINE_MAX_RETRIES: int = 1
    ENGINE_RETRY_DELAY: float = 0.5
    LEASE_TTL_MULTIPLIER: float = 3.0

    # Analytics windows
    KPI_WINDOW_HOURS: int = 24
    TREND_DAYS: int = 30

    # Recommendation scan caps
    MISSING_SCAN_LIMIT: int = 5
    UNCITED_SCAN_LIMIT: int = 10

    # Application Settings
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False  # Allow both UPPERCASE and lowercase

    @property
    def engine_ids(self) -> List[str]:
        """Configured engine ids, in registration order."""
        return [e.strip().lower() for e in self.ENGINES.split(",") if e.strip()]

    @property
    def lease_ttl(self) -> float:
        """
        Lease expiry in seconds.

        Covers every attempt of the slowest engine plus retry delays, times the
        multiplier, so a crashed orchestrator releases the keyword eventually.
        """
        attempts = self.ENGINE_MAX_RETRIES + 1
        worst_case = self.ENGINE_TIMEOUT * attempts + self.ENGINE_RETRY_DELAY * self.ENGINE_MAX_RETRIES
        return self.LEASE_TTL_MULTIPLIER * worst_case


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
