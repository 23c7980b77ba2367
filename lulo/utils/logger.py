"""Logging utilities for the orchestrator."""
import json
import logging
import sys
import time
from typing import Optional
from pathlib import Path

from lulo.utils.config import config


CONSOLE_FORMAT = '%(asctime)s | %(name)-15s | %(levelname)-8s | %(message)s'
FILE_FORMAT = '%(asctime)s | %(name)s | %(levelname)s | %(message)s'

# ANSI color per level number
LEVEL_COLORS = {
    logging.DEBUG: '\033[36m',
    logging.INFO: '\033[32m',
    logging.WARNING: '\033[33m',
    logging.ERROR: '\033[31m',
    logging.CRITICAL: '\033[35m',
}
RESET = '\033[0m'


class ConsoleFormatter(logging.Formatter):
    """Terminal formatter with a colored level name; the record itself is left untouched."""

    def format(self, record):
        colored = logging.makeLogRecord(record.__dict__)
        color = LEVEL_COLORS.get(record.levelno)
        if color:
            colored.levelname = f"{color}{record.levelname}{RESET}"
        return super().format(colored)


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record):
        entry = {
            "time": self.formatTime(record, self.datefmt),
            "name": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logger(
    name: str,
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    structured: Optional[bool] = None
) -> logging.Logger:
    """
    Set up a named component logger.

    Args:
        name: Logger name (component name, e.g. "StepDispatcher")
        level: Log level, defaults to config.log_level
        log_file: Optional file path, defaults to config.log_file
        structured: One JSON object per line, defaults to config.structured_logs

    Returns:
        Configured logger
    """
    logger = logging.getLogger(f"lulo.{name}")
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, (level or config.log_level).upper(), logging.INFO))
    logger.propagate = False

    use_json = config.structured_logs if structured is None else structured
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(JsonLineFormatter() if use_json else ConsoleFormatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
    logger.addHandler(console)

    path = log_file or config.log_file
    if path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        to_file = logging.FileHandler(path, encoding="utf-8")
        to_file.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(to_file)

    return logger


class StepLogger:
    """
    Logs one plan step: a start line, then a completion or failure line
    with the elapsed time. Exceptions propagate.

    Usage:
        with StepLogger(logger, "CLICK", "Press buy", 2):
            await handler(step, ctx)
    """

    def __init__(self, logger: logging.Logger, action: str, description: str = "", step_num: int = 0):
        self.logger = logger
        self.action = action
        self.description = description
        self.step_num = step_num
        self._started: Optional[float] = None

    @property
    def label(self) -> str:
        if self.description:
            return f"{self.action} - {self.description[:60]}"
        return self.action

    @property
    def elapsed(self) -> float:
        return 0.0 if self._started is None else time.monotonic() - self._started

    def __enter__(self):
        self._started = time.monotonic()
        self.logger.info(f"[Step {self.step_num}] Starting: {self.label}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        prefix = f"[Step {self.step_num}]"
        if exc_type is None:
            self.logger.info(f"{prefix} Completed: {self.label} ({self.elapsed:.2f}s)")
        else:
            self.logger.error(f"{prefix} Failed: {self.label} ({self.elapsed:.2f}s) - {exc_val}")
        return False
