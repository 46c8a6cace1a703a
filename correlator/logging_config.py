"""Logging setup: readable console lines, JSON files for log shipping."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from pythonjsonlogger import jsonlogger

from correlator.config import settings

# Fields attached by get_logger() that identify what a record is about
CONTEXT_FIELDS = ("owner", "search_asin", "candidate", "marketplace")

# httpx logs every request URL at INFO, and Keepa URLs carry the API key
QUIET_LOGGERS = ("httpx", "httpcore", "openai")


class CorrelationJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['timestamp'] = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['source'] = f"{record.module}.{record.funcName}:{record.lineno}"


class ContextConsoleFormatter(logging.Formatter):
    """Appends any context fields on the record as ``[key=value ...]``."""

    def format(self, record):
        line = super().format(record)
        pairs = [
            f"{name}={getattr(record, name)}"
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        ]
        return f"{line} [{' '.join(pairs)}]" if pairs else line


def _file_handler(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.FileHandler(path)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_dir: str | Path | None = None) -> logging.Logger:
    """
    Install console and JSON file handlers on the root logger.

    ``app.log`` gets every record, ``error.log`` only ERROR and above.
    Defaults to ``settings.log_dir``.
    """
    logs_dir = Path(log_dir or settings.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(
        ContextConsoleFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(console_handler)

    json_formatter = CorrelationJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    root_logger.addHandler(_file_handler(logs_dir / "app.log", logging.DEBUG, json_formatter))
    root_logger.addHandler(_file_handler(logs_dir / "error.log", logging.ERROR, json_formatter))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


class ContextAdapter(logging.LoggerAdapter):
    """Merges its context into each record's extra fields."""

    def process(self, msg, kwargs):
        kwargs['extra'] = {**kwargs.get('extra', {}), **self.extra}
        return msg, kwargs


def get_logger(name: str, **context) -> ContextAdapter:
    """
    Logger that tags every record with ``context``.

    Example:
        get_logger(__name__, owner=owner_id, candidate=asin).warning("availability check failed")
    """
    return ContextAdapter(logging.getLogger(name), context)
