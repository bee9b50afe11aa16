import logging
import sys

from villa_api.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the API process and the worker."""
    root = logging.getLogger()
    if getattr(root, "_villa_configured", False):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel((level or settings.LOG_LEVEL or "INFO").upper())
    # uvicorn access lines duplicate our request logs at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    root._villa_configured = True
