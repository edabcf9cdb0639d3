import logging
import os

LOG_FORMAT = "%(levelname)s:%(name)s:%(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a module logger; the root level comes from ``SALVO_LOG_LEVEL`` (INFO)."""
    level = os.getenv("SALVO_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
    return logging.getLogger(name)
