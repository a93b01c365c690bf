import os
import logging
from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception as e:
        logging.error(e, exc_info=True)
        return default


# Basic configuration loaded from environment with safe defaults for development
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./lead_crm.db")
# Bounded wait for a pooled connection or a locked SQLite database
DB_TIMEOUT_SECONDS: int = _int_env("DB_TIMEOUT_SECONDS", 10)

# Security / JWT configuration
# SECRET_KEY should be overridden in production via environment
SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES: int = _int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7)

# Single origin allowed by CORS (the dashboard SPA)
FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# Minutes between sweeps for follow-ups whose next date has come due
FOLLOW_UP_REMINDER_INTERVAL: int = _int_env("FOLLOW_UP_REMINDER_INTERVAL", 15)

# Student import tuning
STUDENT_IMPORT_BATCH_SIZE: int = _int_env("STUDENT_IMPORT_BATCH_SIZE", 500)
STUDENT_IMPORT_MAX_CELL_LENGTH: int = _int_env("STUDENT_IMPORT_MAX_CELL_LENGTH", 500)
