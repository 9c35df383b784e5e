"""Logging setup for PressBox.

Console output goes to stderr so CLI output on stdout stays parseable; a
rotating log file under the configured path keeps history, optionally as
JSON lines. Records emitted while a site operation runs carry the site name
(see ``site_context``).

Error text from subprocesses and downloads can contain database passwords
and absolute home paths; pass it through ``sanitize_error`` before logging.
"""

import logging
import re
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from pressbox.core.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(site_name)s] %(name)s: %(message)s"
NOISY_LOGGERS = ("docker", "urllib3", "httpx", "httpcore")

_SECRET_PATTERNS = (
    # key=value / key: value pairs, including WordPress and MySQL variables
    re.compile(
        r"\b(\w*password|\w*pwd|secret|token|api[_-]?key|auth\w*|\w*_salt|\w*_key)\s*[=:]\s*\S+",
        re.IGNORECASE,
    ),
    re.compile(r"Bearer\s+\S+", re.IGNORECASE),
    re.compile(r"(mysql|mariadb)://[^@\s]+@", re.IGNORECASE),
)
_ABSOLUTE_PATH = re.compile(r"(?:/[^\s/:'\"]+)+/([^\s/:'\"]+)")

_current_site: ContextVar[str | None] = ContextVar("pressbox_site", default=None)


def get_site_name() -> str | None:
    return _current_site.get()


def set_site_name(site_name: str | None) -> None:
    _current_site.set(site_name)


@contextmanager
def site_context(site_name: str) -> Iterator[None]:
    """Tag every log record emitted inside the block with ``site_name``."""
    token = _current_site.set(site_name)
    try:
        yield
    finally:
        _current_site.reset(token)


class SiteContextFilter(logging.Filter):
    """Copies the active site name onto each record (``-`` outside any site)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.site_name = get_site_name()  # type: ignore[attr-defined]
        return True


class _PlainFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, "site_name", None) is None:
            record.site_name = "-"  # type: ignore[attr-defined]
        return super().format(record)


class JsonLineFormatter(JsonFormatter):
    """One JSON object per line with timestamp, level, component and site."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.fromtimestamp(record.created, UTC).isoformat()
        log_record["level"] = record.levelname
        log_record["component"] = record.name
        site_name = getattr(record, "site_name", None)
        if site_name and site_name != "-":
            log_record["site_name"] = site_name
        else:
            log_record.pop("site_name", None)


def _file_handler(settings: Settings, level: int) -> RotatingFileHandler:
    path = Path(settings.log_file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=settings.log_file_max_bytes,
        backupCount=settings.log_file_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(
        JsonLineFormatter("%(message)s") if settings.log_json else _PlainFormatter(LOG_FORMAT)
    )
    return handler


def setup_logging(settings: Settings | None = None) -> None:
    """Install the stderr and rotating-file handlers on the root logger.

    Replaces any handlers already installed, so calling it again (for
    example with different settings) does not duplicate output. A log file
    that cannot be opened downgrades to console-only logging with a warning.
    """
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level)
    site_filter = SiteContextFilter()

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(_PlainFormatter(LOG_FORMAT))
    console.addFilter(site_filter)
    root.addHandler(console)

    try:
        file_handler = _file_handler(settings, level)
    except OSError as e:
        root.warning(f"File logging disabled, cannot open {settings.log_file_path}: {e}")
    else:
        file_handler.addFilter(site_filter)
        root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.debug(
        "Logging configured",
        extra={"level": settings.log_level, "file": settings.log_file_path, "json": settings.log_json},
    )


def sanitize_error(error: BaseException, max_length: int = 500) -> str:
    """Render ``error`` for logs without secrets or full paths.

    Credentials become ``[REDACTED]``, absolute paths keep only their last
    component, and the result is cut to ``max_length`` characters.
    """
    text = str(error)
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub("[REDACTED]", text)
    text = _ABSOLUTE_PATH.sub(r".../\1", text)
    if len(text) > max_length:
        text = text[:max_length] + "...[truncated]"
    return text


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
