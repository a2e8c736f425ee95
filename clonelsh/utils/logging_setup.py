"""Logging helpers for applications embedding the clone index.

Library modules only call ``logging.getLogger``; handlers are attached by
whoever calls ``setup_logging`` (a CLI, a server, the benchmark script).
"""

import json
import logging
import logging.handlers
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

DEFAULT_LOGGER_NAME = "clonelsh"
LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class JSONFormatter(logging.Formatter):
    """One JSON object per record, structured fields merged in."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'function': record.funcName,
            'line': record.lineno,
            'message': record.getMessage(),
        }

        if hasattr(record, 'operation'):
            log_obj['operation'] = record.operation
        if hasattr(record, 'extra_fields'):
            log_obj.update(record.extra_fields)

        if record.exc_info:
            log_obj['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_obj, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored level names when writing to a terminal."""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, fmt: str = LOG_FORMAT, datefmt: str = DATE_FORMAT, use_color: Optional[bool] = None):
        super().__init__(fmt, datefmt=datefmt)
        self.use_color = sys.stderr.isatty() if use_color is None else use_color

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_color or record.levelname not in self.COLORS:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{self.COLORS[original]}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def setup_logging(
    name: str = DEFAULT_LOGGER_NAME,
    level: str = 'INFO',
    log_dir: Optional[Path] = None,
    console: bool = True,
    file: bool = False,
    json_format: bool = True,
) -> logging.Logger:
    """
    Configure a named logger.

    Args:
        name: Logger name
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files (default: ./logs)
        console: Log to stderr
        file: Log to a rotating file
        json_format: Write JSON lines to the file instead of plain text

    Returns:
        Configured logger instance
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)
    logger.handlers.clear()
    logger.propagate = False

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(ConsoleFormatter())
        logger.addHandler(console_handler)

    if file:
        log_dir = Path(log_dir) if log_dir is not None else Path.cwd() / 'logs'
        log_dir.mkdir(parents=True, exist_ok=True)

        date_str = datetime.now().strftime('%Y%m%d')
        suffix = 'jsonl' if json_format else 'log'
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / f'clonelsh_{date_str}.{suffix}',
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        if json_format:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = DEFAULT_LOGGER_NAME, **kwargs) -> logging.Logger:
    """Return ``name`` as-is if it already has handlers, else configure it."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    return setup_logging(name, **kwargs)


def log_operation(logger: logging.Logger, operation: str, level: int = logging.INFO, **context):
    """
    Log a completed operation with structured context.

    Args:
        logger: Logger instance
        operation: Operation name
        level: Log level
        **context: Fields attached as ``extra_fields``
    """
    summary = ", ".join(f"{k}={v}" for k, v in context.items())
    message = f"{operation}: {summary}" if summary else operation
    logger.log(level, message, extra={'operation': operation, 'extra_fields': context})


@contextmanager
def timed(logger: logging.Logger, operation: str, **context) -> Iterator[Dict[str, Any]]:
    """
    Time a block and log it via ``log_operation`` on success.

    The yielded dict can be filled with extra fields while the block runs.
    """
    fields: Dict[str, Any] = dict(context)
    start = time.perf_counter()
    yield fields
    fields['duration_ms'] = round((time.perf_counter() - start) * 1000.0, 3)
    log_operation(logger, operation, **fields)
