# breakwatch/utils/logging.py

import inspect
import functools
import logging
import os
import sys
import time
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

from pythonjsonlogger import jsonlogger

from breakwatch.core.market.calendar import IST

PERF_LOGGER = "breakwatch.performance"

# Structured context a call site may pass through `extra=`
CONTEXT_FIELDS = ("symbol", "data_source", "operation", "duration_ms", "outcome")

NOISY_LOGGERS = ("httpx", "httpcore", "redis", "asyncio", "uvicorn.access")


class BreakWatchJsonFormatter(jsonlogger.JsonFormatter):
    """
    One JSON object per line. Carries both UTC and IST timestamps so log
    lines can be matched against NSE session times without conversion.
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_record["ts"] = created.isoformat()
        log_record["ts_ist"] = created.astimezone(IST).strftime("%Y-%m-%d %H:%M:%S")
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["where"] = f"{record.module}.{record.funcName}:{record.lineno}"
        log_record["service"] = "breakwatch"
        log_record["env"] = os.getenv("ENVIRONMENT", "development")
        log_record["pid"] = record.process

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_record[name] = value


class ConsoleFormatter(logging.Formatter):
    """Compact coloured console lines; colour by level only."""

    COLOURS = {
        logging.DEBUG: "\x1b[38;20m",
        logging.INFO: "\x1b[32;20m",
        logging.WARNING: "\x1b[33;20m",
        logging.ERROR: "\x1b[31;20m",
        logging.CRITICAL: "\x1b[31;1m",
    }
    RESET = "\x1b[0m"

    def __init__(self, use_colour: bool = True):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s - %(message)s", datefmt="%H:%M:%S")
        self.use_colour = use_colour

    def format(self, record):
        line = super().format(record)
        symbol = getattr(record, "symbol", None)
        if symbol:
            line = f"{line} [{symbol}]"
        if not self.use_colour:
            return line
        return f"{self.COLOURS.get(record.levelno, '')}{line}{self.RESET}"


def _json_file(path: Path, level: int, formatter: logging.Formatter, daily: bool = False) -> logging.Handler:
    if daily:
        handler = TimedRotatingFileHandler(path, when="midnight", backupCount=14, encoding="utf-8")
    else:
        handler = RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_level: str = "INFO", log_dir: str = "logs") -> logging.Logger:
    """
    Root logging for the API process.

    logs/breakwatch.log         every record, JSON, rotated at midnight
    logs/breakwatch_errors.log  ERROR and above
    logs/breakwatch_perf.log    scan / index refresh timings only
    stdout                      coloured, INFO and above
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root.handlers.clear()

    json_fmt = BreakWatchJsonFormatter("%(message)s")
    root.addHandler(_json_file(log_path / "breakwatch.log", logging.DEBUG, json_fmt, daily=True))
    root.addHandler(_json_file(log_path / "breakwatch_errors.log", logging.ERROR, json_fmt))

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(ConsoleFormatter(use_colour=sys.stdout.isatty()))
    root.addHandler(console)

    # Timings go to their own file and stay out of the main log
    perf = logging.getLogger(PERF_LOGGER)
    perf.setLevel(logging.INFO)
    perf.handlers.clear()
    perf.addHandler(_json_file(log_path / "breakwatch_perf.log", logging.INFO, json_fmt))
    perf.propagate = False

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info(f"Logging initialized at {log_level.upper()} -> {log_path.absolute()}")
    return root


def log_performance(operation: Optional[str] = None, logger_name: str = PERF_LOGGER):
    """
    Times a coroutine (or plain function) and writes one record to the
    performance logger, tagged with the outcome. Exceptions are re-raised.
    """
    def decorator(func):
        op = operation or func.__name__
        perf = logging.getLogger(logger_name)

        def _emit(start: float, outcome: str):
            duration_ms = round((time.perf_counter() - start) * 1000, 1)
            perf.info(
                f"{op} {outcome} in {duration_ms}ms",
                extra={"operation": op, "duration_ms": duration_ms, "outcome": outcome},
            )

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception:
                _emit(start, "failed")
                raise
            _emit(start, "completed")
            return result

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception:
                _emit(start, "failed")
                raise
            _emit(start, "completed")
            return result

        return async_wrapper if inspect.iscoroutinefunction(func) else wrapper
    return decorator
