import logging
import sys
from typing import Optional
from tooltrack.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "openai", "twilio.http_client")

def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure the ``tooltrack`` logger once; module loggers propagate to it."""
    level = (level or get_settings().LOG_LEVEL).upper()
    logger = logging.getLogger("tooltrack")
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    for handler in logger.handlers:
        handler.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
