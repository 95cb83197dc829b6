"""Logging configuration with JSON formatting and correlation IDs."""

import contextvars
import logging
import sys
import traceback
import uuid
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

# Hey future me, the correlation ID groups every line of ONE unit of work. There are no
# requests here, so the units are a folder scan and a watcher drain pass: each sets a fresh ID,
# and every line it logs (including the catalog store's) carries it. contextvars are asyncio-safe,
# each task gets its own context, so a background poll and a foreground scan don't mix IDs.
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

PACKAGE_NAME = "localshelf"

# Chatty libraries that get pinned to WARNING
NOISY_LOGGERS = ("httpx", "httpcore", "watchdog", "aiosqlite", "asyncio")


def get_correlation_id() -> str:
    """Get the current correlation ID ("" if none is set)."""
    return correlation_id_var.get()


# Listen up, this setter AUTO-GENERATES a short UUID when called without an argument.
# Call it ONCE at the start of a scan/drain, not per file.
def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set correlation ID in context.

    Args:
        correlation_id: Correlation ID to set. If None, generates a new one

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = uuid.uuid4().hex[:12]
    correlation_id_var.set(correlation_id)
    return correlation_id


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


def is_package_frame(filename: str) -> bool:
    """True for frames from localshelf's own modules, wherever it is installed.

    A regular install puts localshelf under site-packages too, so match the package
    directory instead of excluding library paths.
    """
    return f"/{PACKAGE_NAME}/" in filename.replace("\\", "/")


class CompactExceptionFormatter(logging.Formatter):
    """Formatter that prints exception chains root-cause first, with only our own frames.

    Example output:
    12:00:01 │ WARNING │ localshelf.application.services.library_scanner:140 │ Failed to index ...
    ╰─► TagReadError: Cannot read tags from /music/a.mp3: unrecognized audio format
        File "mutagen_reader.py", line 136, in _open
          raise TagReadError(file_path, "unrecognized audio format")
    """

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        correlation_id = getattr(record, "correlation_id", "")
        if correlation_id:
            return f"[{correlation_id}] {message}"
        return message

    def formatException(self, ei: Any) -> str:
        _exc_type, exc_value, _exc_tb = ei
        if exc_value is None:
            return ""

        # Walk the chain, then reverse so the root cause comes first
        chain: list[BaseException] = []
        current: BaseException | None = exc_value
        while current is not None and current not in chain:
            chain.append(current)
            current = current.__cause__ or current.__context__
        chain.reverse()

        lines: list[str] = []
        for exc in chain:
            lines.append(f"╰─► {exc.__class__.__name__}: {exc}")
            if exc.__traceback__ is None:
                continue
            for frame in traceback.extract_tb(exc.__traceback__):
                if not is_package_frame(frame.filename):
                    continue
                lines.append(
                    f'    File "{Path(frame.filename).name}", line {frame.lineno}, in {frame.name}'
                )
                if frame.line:
                    lines.append(f"      {frame.line.strip()}")

        return "\n".join(lines)


class CustomJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined,misc]
    """JSON formatter with level/logger/location and correlation ID fields."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno

        correlation_id = getattr(record, "correlation_id", "")
        if correlation_id:
            log_record["correlation_id"] = correlation_id

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)


# Listen future me, call this ONCE from the host at startup. It owns the root logger: existing
# handlers are removed first (important for tests that call it repeatedly). The library itself
# never calls it, an embedding app may have its own logging setup.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
) -> logging.Handler:
    """Configure logging for localshelf.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Emit JSON lines instead of the compact human format

    Returns:
        The installed stdout handler
    """
    root_logger = logging.getLogger()

    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())

    if json_format:
        formatter: logging.Formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = CompactExceptionFormatter(
            fmt="%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(message)s",
            datefmt="%H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging configured (level={log_level}, json={json_format})"
    )
    return handler
