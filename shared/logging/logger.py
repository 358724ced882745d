import logging
import os
from datetime import datetime
from pathlib import Path

DEFAULT_LOG_DIR = "logs"

_LOGGERS = {}
_LOGFILES = {}


def _log_dir() -> Path | None:
    raw = os.getenv("SESSIONTALLY_LOG_DIR", DEFAULT_LOG_DIR)
    if not raw.strip():
        return None
    path = Path(raw)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _console_level() -> int:
    raw = os.getenv("SESSIONTALLY_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


def get_logger(
    name: str,
    *,
    runtime: str = "sessiontally",
) -> logging.Logger:
    """
    Create or retrieve a named logger.

    Parameters:
    - name: logger namespace (e.g. core.publisher, discord.webhook)
    - runtime: log file prefix

    All loggers of one runtime share a single log file per process run.
    """
    cache_key = f"{runtime}:{name}"
    if cache_key in _LOGGERS:
        return _LOGGERS[cache_key]

    logger = logging.getLogger(cache_key)
    logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    # ------------------------------
    # Console handler (stderr, stdout belongs to the local sink)
    # ------------------------------
    console = logging.StreamHandler()
    console.setLevel(_console_level())
    console.setFormatter(formatter)
    logger.addHandler(console)

    # ------------------------------
    # File handler (one per run)
    # ------------------------------
    log_dir = _log_dir()
    if log_dir is not None:
        logfile = _LOGFILES.get(runtime)
        if logfile is None:
            timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
            logfile = log_dir / f"{runtime}-{timestamp}.log"
            _LOGFILES[runtime] = logfile

        file_handler = logging.FileHandler(logfile, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    _LOGGERS[cache_key] = logger

    return logger
