import logging
from typing import Optional

DEFAULT_LOG_LEVEL = logging.INFO
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

def get_logger(name: Optional[str] = None, level: Optional[int] = None) -> logging.Logger:
    """Return a logger configured for the tpxcoin project.

    Parameters
    ----------
    name : str, optional
        Name of the logger to retrieve. Defaults to the root package name.
    level : int, optional
        Level used when the root logger is configured here for the first time.
    """
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level or DEFAULT_LOG_LEVEL, format=LOG_FORMAT)
    return logging.getLogger(name if name else "tpxcoin")
