"""Environment-driven settings for the car park booking backend and client.

Values are read once at import time. A ``.env`` file next to this module is
loaded first when present (development fallback); in deployment the
environment is expected to be populated directly.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent

env_path = ROOT_DIR / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _env_flag(name: str, default: bool = True) -> bool:
    """On/off switch from the environment; unset or unknown values keep ``default``."""
    value = os.environ.get(name, "").strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


APP_NAME = "Car Park Booking API"
APP_VERSION = "1.0.0"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Database
DATABASE_URL = os.environ.get("DATABASE_URL")
DATABASE_NAME = os.environ.get("DATABASE_NAME")

# HTTP server / client
PORT = int(os.environ.get("PORT", "5001"))
API_URL = os.environ.get("API_URL", f"http://localhost:{PORT}")
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")
HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "10"))

# Booking lifecycle
SWEEP_INTERVAL_SECONDS = float(os.environ.get("SWEEP_INTERVAL_SECONDS", "60"))
ENABLE_AUTO_EXPIRY: bool = _env_flag("ENABLE_AUTO_EXPIRY", default=True)
MIN_PASSWORD_LENGTH = 6

# Live availability feed
AVAILABILITY_URL = os.environ.get(
    "AVAILABILITY_URL", "https://api.data.gov.sg/v1/transport/carpark-availability"
)
DEFAULT_RADIUS_KM = float(os.environ.get("DEFAULT_RADIUS_KM", "5"))

# Outgoing mail
SMTP_HOST = os.environ.get("SMTP_HOST")
SMTP_PORT = int(os.environ.get("SMTP_PORT", "0") or 0)
SMTP_USER = os.environ.get("SMTP_USER")
SMTP_PASS = os.environ.get("SMTP_PASS")
FROM_EMAIL = os.environ.get("FROM_EMAIL", SMTP_USER or "noreply@example.com")
