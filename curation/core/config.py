"""
Curation pipeline configuration.
All settings come from environment variables (optionally loaded from a .env file).
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Database path configuration
DB_PATH = os.getenv("CURATION_DB_PATH", "./data/curation.db")

# Debug flag is also exposed as a function so tests can flip it at runtime
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Durable store backend
CURATION_STORE = os.getenv("CURATION_STORE", "sqlite")  # sqlite|memory

# Fire-and-forget side effects (validator notification, report dispatch)
DISPATCH_TIMEOUT_SEC = float(os.getenv("CURATION_DISPATCH_TIMEOUT_SEC", "2.0"))
DISPATCH_WORKERS = int(os.getenv("CURATION_DISPATCH_WORKERS", "4"))

# Reporting
REPORT_TOP_N = int(os.getenv("CURATION_REPORT_TOP_N", "10"))

# Version string
VERSION = "1.0.0"


def get_db_path() -> str:
    """Current database path (re-read so tests can point at a temp file)."""
    return os.getenv("CURATION_DB_PATH", DB_PATH)


def get_store_backend() -> str:
    return os.getenv("CURATION_STORE", CURATION_STORE).lower()


def get_dispatch_timeout() -> float:
    return float(os.getenv("CURATION_DISPATCH_TIMEOUT_SEC", str(DISPATCH_TIMEOUT_SEC)))


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or get_db_path()).parent.mkdir(parents=True, exist_ok=True)


def validate_curation_config():
    """Validate curation configuration and return any issues."""
    issues = []

    if get_store_backend() not in ["sqlite", "memory"]:
        issues.append(f"CURATION_STORE must be 'sqlite' or 'memory', got '{get_store_backend()}'")

    try:
        if get_dispatch_timeout() <= 0:
            issues.append("CURATION_DISPATCH_TIMEOUT_SEC must be positive")
    except ValueError:
        issues.append("CURATION_DISPATCH_TIMEOUT_SEC must be a number")

    if DISPATCH_WORKERS < 1:
        issues.append("CURATION_DISPATCH_WORKERS must be >= 1")

    if REPORT_TOP_N < 1:
        issues.append("CURATION_REPORT_TOP_N must be >= 1")

    return issues
