"""Structured logging: readable console output plus JSON-lines files."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from pythonjsonlogger.json import JsonFormatter

from product_scout.config import settings

CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
JSON_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"

# Third-party loggers that flood DEBUG/INFO during a scrape
NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler", "aiosqlite")


class ScoutJsonFormatter(JsonFormatter):
    """One JSON object per record, stamped with UTC time and call site."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_record["timestamp"] = stamp.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["source"] = f"{record.module}.{record.funcName}:{record.lineno}"


def _json_file(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(base_dir: str | Path | None = None) -> logging.Logger:
    """Route the root logger to stdout, ``logs/app.log`` and ``logs/error.log``.

    ``base_dir`` wins over ``settings.log_dir``; with neither set the logs
    folder is created under the working directory.
    """
    logs_dir = Path(base_dir or settings.log_dir or Path.cwd()) / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)

    formatter = ScoutJsonFormatter(JSON_FORMAT)
    root.addHandler(_json_file(logs_dir / "app.log", logging.DEBUG, formatter))
    root.addHandler(_json_file(logs_dir / "error.log", logging.ERROR, formatter))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


class ContextAdapter(logging.LoggerAdapter):
    """Adds fixed fields (region, category, queue id...) to every record."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, **context) -> ContextAdapter:
    """Logger for ``name`` whose JSON records carry ``context`` as extra fields."""
    return ContextAdapter(logging.getLogger(name), context)
