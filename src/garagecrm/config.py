"""
Runtime configuration for Garage CRM.

Values come from environment variables, optionally seeded from a `.env`
file in the project root.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigError
from .models import TechnicianJobCountPolicy

BASE_DIR = Path(__file__).parent.parent.parent
DEFAULT_DB_PATH = BASE_DIR / "data" / "garagecrm.db"


@dataclass
class Settings:
    """Resolved application settings."""

    db_path: Path = DEFAULT_DB_PATH
    log_level: str = "INFO"
    default_commission_rate: float = 30.0  # percent
    high_value_threshold: float = 5000.0
    repeat_customer_jobs: int = 3
    technician_job_policy: TechnicianJobCountPolicy = (
        TechnicianJobCountPolicy.CLOSED_ONLY
    )


def _get_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def _get_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def load_settings(env_file: Path | None = None) -> Settings:
    """Load settings from the environment (and `.env`, if present)."""
    load_dotenv(env_file or BASE_DIR / ".env")

    db_path = os.environ.get("GARAGECRM_DB_PATH")

    policy_raw = os.environ.get("GARAGECRM_TECH_JOB_POLICY", "closed_only")
    try:
        policy = TechnicianJobCountPolicy(policy_raw.strip().lower())
    except ValueError:
        raise ConfigError(
            f"GARAGECRM_TECH_JOB_POLICY must be one of "
            f"{[p.value for p in TechnicianJobCountPolicy]}, got {policy_raw!r}"
        ) from None

    return Settings(
        db_path=Path(db_path) if db_path else DEFAULT_DB_PATH,
        log_level=os.environ.get("GARAGECRM_LOG_LEVEL", "INFO").upper(),
        default_commission_rate=_get_float("GARAGECRM_DEFAULT_COMMISSION_RATE", 30.0),
        high_value_threshold=_get_float("GARAGECRM_HIGH_VALUE_THRESHOLD", 5000.0),
        repeat_customer_jobs=_get_int("GARAGECRM_REPEAT_CUSTOMER_JOBS", 3),
        technician_job_policy=policy,
    )
