"""Application configuration with file-store defaults.

Environment variables override all defaults.
Local development values can live in backend/.env (never committed).
"""

import os
from pathlib import Path

from dotenv import load_dotenv

_BACKEND_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)


class Settings:
    # Flat-file storage: one file per entity type under DATA_DIR
    DATA_DIR: str = os.getenv("DATA_DIR", "data")
    # Highest on-disk record format this build can read and the one it writes
    RECORD_FORMAT_VERSION: int = 2

    # Prescriptions expire this many days after issue
    PRESCRIPTION_VALIDITY_DAYS: int = int(os.getenv("PRESCRIPTION_VALIDITY_DAYS", "30"))

    # Login lockout (per session, see AuthContext)
    MAX_LOGIN_ATTEMPTS: int = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))
    LOCKOUT_DURATION_MINUTES: int = int(os.getenv("LOCKOUT_DURATION_MINUTES", "15"))

    # Display only; amounts are stored without a currency symbol
    CURRENCY: str = os.getenv("CURRENCY", "LE")

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"


settings = Settings()
