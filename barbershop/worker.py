"""
ARQ Background Worker for Scheduled Jobs
Runs the daily subscription completion sweep
"""

import logging
import os
from urllib.parse import urlparse

from arq import cron
from arq.connections import RedisSettings

# Register every mapped table before the first session opens
from . import models  # noqa: F401 - Client, Barber, Service
from . import models_subscription  # noqa: F401 - Subscription models
from .config import (
    COMPLETION_SWEEP_HOUR,
    REDIS_HOST,
    REDIS_PASSWORD,
    REDIS_PORT,
    REDIS_SSL,
    REDIS_URL,
)
from .database import SessionLocal

logger = logging.getLogger(__name__)


def get_redis_settings() -> RedisSettings:
    """Redis connection for the worker: REDIS_URL wins over the REDIS_* host settings"""
    host, port, password, ssl = REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_SSL
    if REDIS_URL:
        parsed = urlparse(REDIS_URL)
        host = parsed.hostname or "localhost"
        port = parsed.port or 6379
        password = parsed.password
        ssl = parsed.scheme == "rediss"

    return RedisSettings(
        host=host,
        port=port,
        password=password,
        ssl=ssl,
        conn_timeout=15,
        conn_retry_delay=1,
    )


async def subscription_completion_task(ctx):
    """
    Daily cron job to close subscriptions whose last appointment has passed.
    - Subscriptions: ACTIVE → COMPLETED (no open slot left)
    """
    from .services.status_automation import complete_finished_subscriptions

    logger.info("Starting daily subscription completion sweep")

    db = SessionLocal()
    try:
        summary = complete_finished_subscriptions(db)
        logger.info(f"Subscription completion sweep complete: {summary}")
        return summary
    except Exception as e:
        logger.error(f"❌ Subscription completion sweep failed: {str(e)}")
        raise
    finally:
        db.close()


class WorkerSettings:
    """ARQ Worker Settings"""

    functions = [subscription_completion_task]
    cron_jobs = [cron(subscription_completion_task, hour=COMPLETION_SWEEP_HOUR, minute=0)]
    redis_settings = get_redis_settings()

    max_jobs = int(os.getenv("ARQ_MAX_JOBS", "20"))
    job_timeout = int(os.getenv("ARQ_JOB_TIMEOUT", "600"))
    keep_result = int(os.getenv("ARQ_KEEP_RESULT", "3600"))
