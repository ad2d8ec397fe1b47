# logger.py
import logging
from typing import Optional

LOG_FILE = "/var/log/vimgreet.log"
FALLBACK_LOG_FILE = "/tmp/vimgreet.log"

_FORMAT = logging.Formatter(
    "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)


def setup_logger(log_file: Optional[str] = None, verbose: bool = False) -> logging.Logger:
    """Attach a file handler to the vimgreet logger.

    The terminal belongs to the TUI, so nothing is written to stderr.
    Calling again with an explicit path replaces the previous handler.
    """
    logger = logging.getLogger("vimgreet")
    logger.setLevel(logging.DEBUG)

    if logger.handlers and log_file is None:
        return logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Try to write to the requested/default file; fall back to /tmp
    try:
        fh = logging.FileHandler(log_file or LOG_FILE)
    except OSError:
        fh = logging.FileHandler(FALLBACK_LOG_FILE)
    fh.setLevel(logging.DEBUG if verbose else logging.INFO)
    fh.setFormatter(_FORMAT)
    logger.addHandler(fh)
    return logger

log = setup_logger()
