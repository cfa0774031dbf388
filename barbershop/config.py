import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Falls back to a local SQLite file so the package imports without a .env
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./barbershop.db")

# Subscription scheduling
SUBSCRIPTION_MAX_DURATION_MONTHS = int(os.getenv("SUBSCRIPTION_MAX_DURATION_MONTHS", "6"))
# Window before a candidate start that is searched for bookings of unknown length
CONFLICT_LOOKBACK_MINUTES = int(os.getenv("CONFLICT_LOOKBACK_MINUTES", "120"))
# Used when a booking has no service (or the service has no duration)
DEFAULT_SERVICE_DURATION_MINUTES = int(os.getenv("DEFAULT_SERVICE_DURATION_MINUTES", "60"))
# Number of change-log entries returned with a subscription detail
CHANGE_LOG_DETAIL_LIMIT = int(os.getenv("CHANGE_LOG_DETAIL_LIMIT", "20"))

# Notifications - set to false to skip the default WhatsApp/SMS listener
SUBSCRIPTION_NOTIFICATIONS_ENABLED = (
    os.getenv("SUBSCRIPTION_NOTIFICATIONS_ENABLED", "true").lower() == "true"
)

# Background worker (ARQ)
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")
REDIS_SSL = os.getenv("REDIS_SSL", "false").lower() == "true"
# Hour (UTC) at which the daily completion sweep runs
COMPLETION_SWEEP_HOUR = int(os.getenv("COMPLETION_SWEEP_HOUR", "3"))
