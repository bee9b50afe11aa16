from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from celery import Celery
from celery.signals import after_setup_logger, after_setup_task_logger
from villa_api.core.config import settings

# seconds
EXPIRE_CHECKOUTS_EVERY = 60.0
EMAIL_RETRY_EVERY = 120.0


def broker_url(url: str) -> str:
    """rediss:// brokers (managed Redis over TLS) need an explicit ssl_cert_reqs."""
    if not url or urlparse(url).scheme.lower() != "rediss":
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    qs.setdefault("ssl_cert_reqs", ["CERT_NONE"])
    return urlunparse(parsed._replace(query=urlencode(qs, doseq=True)))


celery = Celery(
    "villa_api",
    broker=broker_url(settings.REDIS_URL),
    backend=broker_url(settings.REDIS_URL),
    include=["villa_api.tasks.jobs"],
)

celery.conf.update(
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    beat_schedule={
        "expire-checkout-sessions": {
            "task": "villa_api.tasks.jobs.expire_checkout_sessions",
            "schedule": EXPIRE_CHECKOUTS_EVERY,
        },
        "retry-guest-emails": {
            "task": "villa_api.tasks.jobs.process_email_queue",
            "schedule": EMAIL_RETRY_EVERY,
            "kwargs": {"limit": 50},
        },
    },
)


@after_setup_logger.connect
@after_setup_task_logger.connect
def _apply_log_level(logger, *args, **kwargs):
    logger.setLevel(settings.LOG_LEVEL.upper())
