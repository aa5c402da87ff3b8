"""
Application configuration. Loads from environment variables.
Secrets and sensitive config must never be hardcoded.
"""

import os

from dotenv import load_dotenv

load_dotenv()
from functools import lru_cache


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached settings instance."""
    return Settings()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true")


def _env_list(name: str, default: str = "") -> list[str]:
    raw = os.getenv(name, default).strip()
    return [s.strip().lower() for s in raw.split(",") if s.strip()]


class Settings:
    """Application settings loaded from environment."""

    # App
    app_name: str = "nobetci-ingest"
    debug: bool = False

    # Database (postgresql+psycopg for psycopg3; use postgresql:// for psycopg2)
    database_url: str = "postgresql+psycopg://localhost:5432/nobetci_dev"
    db_connect_timeout: int = 10  # seconds
    db_pool_size: int = 5

    # Fetching
    fetch_timeout_seconds: float = 15.0
    form_fetch_max_districts: int = 120
    related_fetch_max_pages: int = 80

    # Worker
    worker_concurrency: int = 8
    province_slugs: list[str]  # "all" = every province with enabled endpoints
    ingestion_provinces: list[str]  # one-off CLI override
    recurring_interval_minutes: int = 15
    province_timeout_seconds: float = 70.0
    metrics_flush_seconds: int = 60

    # Fallbacks
    allow_static_fallback: bool = False
    allow_fallback_for_secondary: bool = False

    # Parser error alerting
    parser_error_threshold_pct: float = 20.0
    parser_error_min_runs: int = 5

    # Scraped date validation
    strict_scraped_date_validation: bool = False
    strict_scraped_date_keys: list[str]

    def __init__(self) -> None:
        self.app_name = os.getenv("APP_NAME", self.app_name)
        self.debug = _env_flag("DEBUG")

        default_user = os.getenv("PGUSER") or os.getenv("USER") or "postgres"
        default_url = (
            f"postgresql+psycopg://{default_user}:"
            f"{os.getenv('PGPASSWORD', '')}@"
            f"{os.getenv('PGHOST', 'localhost')}:"
            f"{os.getenv('PGPORT', '5432')}/"
            f"{os.getenv('PGDATABASE', 'nobetci_dev')}"
        )
        raw_url = os.getenv("DATABASE_URL", default_url)
        # Ensure psycopg3 driver if URL uses generic postgresql://
        if raw_url.startswith("postgresql://") and not raw_url.startswith("postgresql+psycopg"):
            raw_url = raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
        self.database_url = raw_url
        self.db_connect_timeout = int(os.getenv("DB_CONNECT_TIMEOUT", str(self.db_connect_timeout)))
        self.db_pool_size = int(os.getenv("DB_POOL_SIZE", str(self.db_pool_size)))

        self.fetch_timeout_seconds = float(
            os.getenv("FETCH_TIMEOUT_SECONDS", str(self.fetch_timeout_seconds))
        )
        self.form_fetch_max_districts = int(
            os.getenv("FORM_FETCH_MAX_DISTRICTS", str(self.form_fetch_max_districts))
        )
        self.related_fetch_max_pages = int(
            os.getenv("RELATED_FETCH_MAX_PAGES", str(self.related_fetch_max_pages))
        )

        self.worker_concurrency = max(1, int(os.getenv("WORKER_CONCURRENCY", str(self.worker_concurrency))))
        self.province_slugs = _env_list("PROVINCE_SLUGS", "adana,istanbul")
        self.ingestion_provinces = _env_list("INGESTION_PROVINCES")
        self.recurring_interval_minutes = int(
            os.getenv("RECURRING_INTERVAL_MINUTES", str(self.recurring_interval_minutes))
        )
        # Budget for one fetch+parse cycle per role plus persistence
        default_budget = self.fetch_timeout_seconds * 4 + 10
        self.province_timeout_seconds = float(
            os.getenv("PROVINCE_TIMEOUT_SECONDS", str(default_budget))
        )
        self.metrics_flush_seconds = int(
            os.getenv("METRICS_FLUSH_SECONDS", str(self.metrics_flush_seconds))
        )

        self.allow_static_fallback = _env_flag("ALLOW_STATIC_FALLBACK")
        self.allow_fallback_for_secondary = _env_flag("ALLOW_FALLBACK_FOR_SECONDARY")

        self.parser_error_threshold_pct = float(
            os.getenv("PARSER_ERROR_THRESHOLD_PCT", str(self.parser_error_threshold_pct))
        )
        self.parser_error_min_runs = int(
            os.getenv("PARSER_ERROR_MIN_RUNS", str(self.parser_error_min_runs))
        )

        self.strict_scraped_date_validation = _env_flag("STRICT_SCRAPED_DATE_VALIDATION")
        self.strict_scraped_date_keys = _env_list("STRICT_SCRAPED_DATE_KEYS")
