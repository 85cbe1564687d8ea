# fantasy_live/settings.py
import os
from pathlib import Path
from dotenv import load_dotenv

# Always load the repo-root .env, regardless of CWD
ROOT_ENV = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ROOT_ENV)


class Settings:
    # ----------------------------------------------------------------------
    # Database
    # ----------------------------------------------------------------------
    PGHOST = os.getenv("PGHOST", "localhost")
    PGPORT = int(os.getenv("PGPORT", "5432"))
    PGUSER = os.getenv("PGUSER", "fl_user")
    PGPASSWORD = os.getenv("PGPASSWORD", "fl_pass")
    PGDATABASE = os.getenv("PGDATABASE", "fl_db")

    ENV = os.getenv("ENV", "local")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # ----------------------------------------------------------------------
    # Provider (SportMonks cricket)
    # ----------------------------------------------------------------------
    SPORTMONKS_API_KEY = os.getenv("SPORTMONKS_API_KEY", "")
    SPORTMONKS_API_URL = os.getenv("SPORTMONKS_API_URL", "https://cricket.sportmonks.com/api/v2.0")
    PROVIDER_RETRIES = int(os.getenv("PROVIDER_RETRIES", "4"))
    PROVIDER_BACKOFF_SEC = float(os.getenv("PROVIDER_BACKOFF_SEC", "1.0"))
    PROVIDER_TIMEOUT_SEC = float(os.getenv("PROVIDER_TIMEOUT_SEC", "20"))
    PROVIDER_CACHE_TTL_SEC = float(os.getenv("PROVIDER_CACHE_TTL_SEC", "10"))

    # ----------------------------------------------------------------------
    # Scheduler timers (seconds unless noted)
    # ----------------------------------------------------------------------
    SCHEDULER_ENABLED = int(os.getenv("SCHEDULER_ENABLED", "1"))
    LIVE_POLL_SEC = float(os.getenv("LIVE_POLL_SEC", "120"))
    PROMOTE_SWEEP_SEC = float(os.getenv("PROMOTE_SWEEP_SEC", "300"))
    COMPLETED_SWEEP_SEC = float(os.getenv("COMPLETED_SWEEP_SEC", "300"))
    LINEUP_SWEEP_SEC = float(os.getenv("LINEUP_SWEEP_SEC", "600"))
    POINTS_SWEEP_SEC = float(os.getenv("POINTS_SWEEP_SEC", "120"))
    LINEUP_LEAD_HOURS = float(os.getenv("LINEUP_LEAD_HOURS", "3"))

    # ----------------------------------------------------------------------
    # Settlement
    # ----------------------------------------------------------------------
    SETTLEMENT_MAX_RETRIES = int(os.getenv("SETTLEMENT_MAX_RETRIES", "3"))
    SETTLEMENT_RETRY_DELAY_SEC = float(os.getenv("SETTLEMENT_RETRY_DELAY_SEC", "1.0"))


settings = Settings()
