import logging
import sys

from ..config import WBN_LOG_LEVEL


def get_logger():
    logger = logging.getLogger("wbn")
    if not logger.handlers:
        h = logging.StreamHandler(sys.stdout)
        fmt = logging.Formatter("[%(asctime)s] %(levelname)s %(message)s")
        h.setFormatter(fmt)
        logger.addHandler(h)
        logger.setLevel(getattr(logging, WBN_LOG_LEVEL, logging.INFO))
    return logger
