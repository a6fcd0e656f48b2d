# logfile.py
import os
import gzip
import shutil
import logging
from datetime import datetime

logger = logging.getLogger(__name__)

DEFAULT_LOG_FILE = "hide_disabled_users.log"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def rotate_log(path: str, max_bytes: int = MAX_LOG_BYTES, now=None):
    """
    Rotate `path` when it is larger than max_bytes.

    The file is renamed with a timestamp suffix, gzipped next to itself and the
    uncompressed copy removed. Returns the .gz path, or None if nothing was
    rotated. Failures are logged as a warning.
    """
    try:
        if not os.path.exists(path) or os.path.getsize(path) <= max_bytes:
            return None
        stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
        rotated = f"{path}.{stamp}"
        os.replace(path, rotated)
        with open(rotated, "rb") as src, gzip.open(rotated + ".gz", "wb") as dst:
            shutil.copyfileobj(src, dst)
        os.remove(rotated)
        return rotated + ".gz"
    except OSError as e:
        logger.warning("Log rotation failed for %s: %s", path, e)
        return None


def configure_logging(log_path: str = DEFAULT_LOG_FILE, verbose: bool = False):
    """Attach a file handler (DEBUG) and a console handler (INFO, DEBUG if verbose) to the root logger."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(formatter)
    root.addHandler(console)

    # console first so a rotation warning is visible
    rotated = rotate_log(log_path)

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if rotated:
        logger.info("Rotated previous log to %s", rotated)
    return file_handler
