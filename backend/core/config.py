"""
S&OP Analytics Configuration

Uses pydantic-settings for type-safe environment variable loading. Every
business threshold used by the engines lives here so it can be overridden
per deployment (e.g. SPIKE_RATIO=2.5) instead of being edited in code.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Find .env file: check CWD first, then parent (project root)
_env_file = Path(".env")
if not _env_file.exists():
    _parent_env = Path(__file__).resolve().parent.parent.parent / ".env"
    if _parent_env.exists():
        _env_file = _parent_env


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "SnopAnalytics"
    app_version: str = "1.0.0"
    app_env: str = "local"
    debug: bool = False

    # ── Shelf life ───────────────────────────────────────────────────
    imminent_days: int = 30
    critical_days: int = 60
    # Expiration years at or beyond this value mean "never expires"
    sentinel_expiry_year: int = 9999

    # ── Velocity (ADS) ───────────────────────────────────────────────
    ads_windows: list[int] = [30, 60, 90]
    ads_canonical_days: int = 60

    # ── Fulfillment ──────────────────────────────────────────────────
    critical_delay_days: int = 7
    top_customer_products: int = 10
    top_dashboard_entries: int = 5

    # ── Daily alerts ─────────────────────────────────────────────────
    spike_min_qty: float = 30.0
    spike_ratio: float = 2.0
    spike_lookback_days: int = 7
    spike_sentinel_pct: float = 999.0
    forward_horizon_days: int = 7
    freshness_min_risk_qty: float = 5.0
    dead_stock_max_days: int = 180
    summary_top_n: int = 3

    # ── Planning ─────────────────────────────────────────────────────
    excess_stock_threshold: float = 20000.0
    scenario_safe_coverage_pct: float = 120.0
    scenario_warning_coverage_pct: float = 100.0
    trend_threshold_pct: float = 3.0

    # ── Product rules ────────────────────────────────────────────────
    manufactured_prefixes: list[str] = ["5"]
    no_expiry_prefixes: list[str] = []
    box_unit: str = "BOX"
    base_unit: str = "EA"
    # name keyword → [brand, category]
    brand_keywords: dict[str, list[str]] = {}

    model_config = {
        "env_file": str(_env_file),
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    settings = Settings()
    _enforce_threshold_guardrails(settings)
    return settings


def _enforce_threshold_guardrails(settings: Settings) -> None:
    if settings.imminent_days >= settings.critical_days:
        raise ValueError("Refusing to start with imminent_days >= critical_days")
    if settings.ads_canonical_days <= 0 or any(window <= 0 for window in settings.ads_windows):
        raise ValueError("ADS windows must be positive day counts")
    if settings.spike_ratio <= 0:
        raise ValueError("spike_ratio must be positive")
    if settings.spike_lookback_days <= 0 or settings.forward_horizon_days <= 0:
        raise ValueError("Alert lookback and horizon must be positive day counts")
    if settings.scenario_warning_coverage_pct > settings.scenario_safe_coverage_pct:
        raise ValueError("scenario_warning_coverage_pct cannot exceed scenario_safe_coverage_pct")
