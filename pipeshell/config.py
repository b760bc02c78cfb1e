import logging
import os
import sys


def _env_int(name, default):
    """Read an integer setting, falling back to the default on garbage"""
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


PROMPT = os.environ.get("PIPESHELL_PROMPT", "$ ")
HISTORY_FILE = os.environ.get("PIPESHELL_HISTFILE") or os.environ.get("HISTFILE") or None
MAX_HISTORY = _env_int("PIPESHELL_HISTSIZE", 0)  # 0 = keep everything
PUMP_BUFFER_SIZE = _env_int("PIPESHELL_PUMP_BUFFER", 8192)
LOG_LEVEL = os.environ.get("PIPESHELL_LOG_LEVEL", "WARNING").upper()
LOG_FILE = os.environ.get("PIPESHELL_LOG_FILE") or None

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s [%(name)s] %(message)s"


def setup_logging(level=None, log_file=None):
    """Configure the pipeshell loggers once"""
    root = logging.getLogger("pipeshell")
    if root.handlers:
        return root

    if log_file or LOG_FILE:
        handler = logging.FileHandler(log_file or LOG_FILE, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root.addHandler(handler)
    root.setLevel(getattr(logging, (level or LOG_LEVEL), logging.WARNING))
    root.propagate = False
    return root
