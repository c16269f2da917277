"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_ENV_PATH = _PROJECT_ROOT / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── Postgres ─────────────────────────────────────────
    postgres_user: str = "lohono"
    postgres_password: str = "lohono_pw"
    postgres_db: str = "lohono_production"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    statement_timeout_ms: int = 10_000

    # ── Time resolution ─────────────────────────────────
    default_timezone: str = "Asia/Kolkata"
    fiscal_year_start_month: int = 4
    week_start: str = "monday"  # monday | sunday

    # ── Funnel ───────────────────────────────────────────
    funnel_rules_path: str = str(_PROJECT_ROOT / "semantic_layer" / "funnel_rules.yml")
    default_vertical: str = "isprava"
    funnel_cache_ttl: float = 60

    # ── Predefined queries ──────────────────────────────
    predefined_catalog_path: str = str(_PROJECT_ROOT / "semantic_layer" / "predefined_queries.csv")
    predefined_match_threshold: float = 0.4
    catalog_cache_ttl: float = 300
    historical_cache_ttl: float = 86_400

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"
    debug_mode: bool = False

    @property
    def database_url(self) -> str:
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    def time_range_config(self):
        """Default TimeRangeConfig built from these settings."""
        from src.timerange.models import FiscalConfig, TimeRangeConfig

        return TimeRangeConfig(
            timezone=self.default_timezone,
            fiscal_config=FiscalConfig(fiscal_year_start_month=self.fiscal_year_start_month),
            week_start=self.week_start,
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
