import logging
import sys


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Send mems3 log records to stdout at `level`."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))

    logger = logging.getLogger("mems3")
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(log_level)
    logger.propagate = False
    return logger
