"""
Logging setup and timing helpers.

Console output is colored by level; with a log directory configured, records
are also written as JSON lines so request URLs and statuses stay searchable.
"""

import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from colorama import Fore, Style

LOG_FILE_NAME = "dvid_mesh.log"
ERROR_LOG_FILE_NAME = "errors.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


class JSONFormatter(logging.Formatter):
    """One JSON object per record, including ``extra`` fields."""

    # Attributes every LogRecord carries; anything else came in via ``extra``
    _RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(
            (key, value) for key, value in vars(record).items() if key not in self._RESERVED
        )

        if record.exc_info:
            error = record.exc_info[1]
            # Transport errors know which call failed
            for attr in ("status", "url", "key"):
                if hasattr(error, attr):
                    entry[f"error_{attr}"] = getattr(error, attr)
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Level names colored with colorama."""

    LEVEL_COLORS = {
        'DEBUG': Fore.CYAN,
        'INFO': Fore.GREEN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.RED + Style.BRIGHT,
    }

    def format(self, record: logging.LogRecord) -> str:
        plain = record.levelname
        color = self.LEVEL_COLORS.get(plain)
        if color:
            record.levelname = f"{color}{plain}{Style.RESET_ALL}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


def _rotating_json_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(log_level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    """
    Configure the root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for rotating JSON log files (created if missing)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(ConsoleFormatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root.addHandler(console)

    if log_dir:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        root.addHandler(_rotating_json_handler(log_dir / LOG_FILE_NAME, logging.INFO))
        root.addHandler(_rotating_json_handler(log_dir / ERROR_LOG_FILE_NAME, logging.ERROR))

    # aiohttp logs every connection at INFO
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={"log_level": log_level, "log_dir": str(log_dir) if log_dir else None}
    )


def get_logger(name: str) -> logging.Logger:
    """Logger for a module (pass ``__name__``)."""
    return logging.getLogger(name)


class PerformanceTimer:
    """
    Times a block and logs the duration at DEBUG.

    Usage:
        with PerformanceTimer("GET leaf", logger) as timer:
            ...
        timer.elapsed_seconds
    """

    def __init__(self, operation: str, logger: Optional[logging.Logger] = None):
        self.operation = operation
        self.logger = logger or get_logger(__name__)
        self._started: Optional[float] = None
        self._stopped: Optional[float] = None

    def __enter__(self) -> "PerformanceTimer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._stopped = time.perf_counter()
        self.logger.debug(
            f"{self.operation} took {self.elapsed_ms:.2f}ms",
            extra={"operation": self.operation, "duration_ms": self.elapsed_ms,
                   "failed": exc_type is not None}
        )

    @property
    def elapsed_seconds(self) -> float:
        if self._started is None:
            return 0.0
        end = self._stopped if self._stopped is not None else time.perf_counter()
        return end - self._started

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_seconds * 1000.0
