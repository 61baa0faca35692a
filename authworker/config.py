"""Worker configuration loaded from environment variables."""

import os
import time
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
DATA_DIR = Path(os.getenv("DATA_DIR", Path(__file__).parent.parent / "data"))
DB_PATH = DATA_DIR / "authworker.db"
LOG_DIR = DATA_DIR / "logs"
DEBUG_CAPTURE_DIR = os.getenv("DEBUG_CAPTURE_DIR", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Coordination backend
COORDINATION_URL = os.getenv("COORDINATION_URL", os.getenv("SUPABASE_URL", "")).rstrip("/")
WORKER_SECRET = os.getenv("WORKER_SECRET", "")
WORKER_ID = os.getenv("WORKER_ID", f"worker-{int(time.time() * 1000)}")
POLL_INTERVAL_MS = int(os.getenv("POLL_INTERVAL_MS", os.getenv("POLL_INTERVAL", "5000")))
COORDINATION_TIMEOUT = float(os.getenv("COORDINATION_TIMEOUT", "30"))

# Status service
STATUS_HOST = os.getenv("STATUS_HOST", "127.0.0.1")
STATUS_PORT = int(os.getenv("STATUS_PORT", "8025"))

# Browser
BROWSER_BACKEND = os.getenv("BROWSER_BACKEND", "cloud").lower()  # cloud | local
GOLOGIN_API_TOKEN = os.getenv("GOLOGIN_API_TOKEN", "")
BROWSER_HEADLESS = os.getenv("BROWSER_HEADLESS", "false").lower() == "true"
BROWSER_TIMEOUT = int(os.getenv("BROWSER_TIMEOUT", "60000"))
CONNECT_TIMEOUT_MS = int(os.getenv("CONNECT_TIMEOUT_MS", "90000"))
CONNECT_MAX_RETRIES = int(os.getenv("CONNECT_MAX_RETRIES", "3"))
CONNECT_BACKOFF_SECONDS = float(os.getenv("CONNECT_BACKOFF_SECONDS", "2"))

# Human-like pacing multiplier (0 disables all artificial delays)
HUMAN_PACE = float(os.getenv("HUMAN_PACE", "1.0"))

# Human channel
OTP_CODE_LENGTH = int(os.getenv("OTP_CODE_LENGTH", "6"))
OTP_TIMEOUT_SECONDS = float(os.getenv("OTP_TIMEOUT_SECONDS", "300"))
OTP_POLL_SECONDS = float(os.getenv("OTP_POLL_SECONDS", "3"))
CAPTCHA_TIMEOUT_SECONDS = float(os.getenv("CAPTCHA_TIMEOUT_SECONDS", "300"))
CAPTCHA_POLL_SECONDS = float(os.getenv("CAPTCHA_POLL_SECONDS", "5"))
CAPTCHA_SCREENSHOT_REFRESH_SECONDS = float(os.getenv("CAPTCHA_SCREENSHOT_REFRESH_SECONDS", "15"))
PUSH_TIMEOUT_SECONDS = float(os.getenv("PUSH_TIMEOUT_SECONDS", "300"))
PUSH_POLL_SECONDS = float(os.getenv("PUSH_POLL_SECONDS", "2.5"))

# Login state machine
MAX_CHALLENGE_ROUNDS = int(os.getenv("MAX_CHALLENGE_ROUNDS", "3"))


def missing_env() -> list[str]:
    """Return the names of required environment variables that are not set."""
    missing = []
    if not COORDINATION_URL:
        missing.append("COORDINATION_URL")
    if not WORKER_SECRET:
        missing.append("WORKER_SECRET")
    if BROWSER_BACKEND == "cloud" and not GOLOGIN_API_TOKEN:
        missing.append("GOLOGIN_API_TOKEN")
    return missing


def ensure_dirs():
    """Create required data directories if they don't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    if DEBUG_CAPTURE_DIR:
        Path(DEBUG_CAPTURE_DIR).mkdir(parents=True, exist_ok=True)
