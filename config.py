import os

from dotenv import load_dotenv

load_dotenv()


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if not url:
        if os.getenv("RENDER") == "true":
            raise RuntimeError("DATABASE_URL missing on Render; refusing to use SQLite.")
        url = "sqlite:///streaks.db"
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


DATABASE_URL = _database_url()
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

SECRET_KEY = os.getenv("SECRET_KEY") or os.getenv("FLASK_SECRET_KEY") or "dev-secret-key-change-me"
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")
RATE_LIMIT_STORAGE_URL = os.getenv("RATE_LIMIT_STORAGE_URL", "memory://")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Storage keys are namespaced by these prefixes plus the normalized wallet.
STREAK_KEY_PREFIX = os.getenv("STREAK_KEY_PREFIX", "streak_data_")
CLAIM_TIMER_PREFIX = os.getenv("CLAIM_TIMER_PREFIX", "claim_timer_")

CLAIM_COOLDOWN_HOURS = int(os.getenv("CLAIM_COOLDOWN_HOURS", "24"))
STREAK_RISK_WARNING_HOURS = int(os.getenv("STREAK_RISK_WARNING_HOURS", "6"))

BACKUP_FORMAT_VERSION = "1.0"
