"""
Structured logging configuration.

Emits both human-readable and JSON logs for debugging.
JSON logs include:
- Timestamp
- Level
- Subsystem
- Session ID
- Timestep
- Event type
- Free-form event fields (action, reward, delta...)
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional, Sequence


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "ts": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if getattr(record, "subsystem", None):
            log_data["subsystem"] = record.subsystem
        if getattr(record, "session_id", None):
            log_data["session_id"] = record.session_id
        if getattr(record, "timestep", None) is not None:
            log_data["timestep"] = record.timestep
        if getattr(record, "event_type", None):
            log_data["event"] = record.event_type
        if getattr(record, "extra_data", None):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanFormatter(logging.Formatter):
    """Human-readable format with colors."""

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        level = record.levelname[:4]

        prefix_parts = [f"{timestamp} {level}"]

        subsystem = getattr(record, "subsystem", "general")
        if subsystem and subsystem != "general":
            prefix_parts.append(f"[{subsystem}]")
        if getattr(record, "session_id", None):
            prefix_parts.append(f"session={record.session_id[:8]}")
        if getattr(record, "timestep", None) is not None:
            prefix_parts.append(f"t={record.timestep}")

        prefix = " ".join(prefix_parts)
        line = f"{prefix}: {record.getMessage()}"

        if self.use_colors and sys.stderr.isatty():
            color = self.COLORS.get(record.levelname, "")
            line = f"{color}{line}{self.RESET}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class StructuredLogger(logging.Logger):
    """Logger with structured logging methods."""

    def _log_structured(
        self,
        level: int,
        msg: str,
        session_id: Optional[str] = None,
        timestep: Optional[int] = None,
        subsystem: str = "general",
        event_type: Optional[str] = None,
        **extra: Any,
    ) -> None:
        if not self.isEnabledFor(level):
            return
        record = self.makeRecord(self.name, level, "", 0, msg, (), None)
        record.session_id = session_id
        record.timestep = timestep
        record.subsystem = subsystem
        record.event_type = event_type
        record.extra_data = extra
        self.handle(record)

    def event(self, event_type: str, msg: str, level: int = logging.INFO, **kwargs: Any) -> None:
        """Log a reasoner event with structured fields."""
        self._log_structured(level, msg, event_type=event_type, **kwargs)


def event(logger: logging.Logger, event_type: str, msg: str, level: int = logging.INFO, **fields: Any) -> None:
    """
    Emit a structured event through any logger.

    Uses StructuredLogger.event when available, otherwise attaches the
    fields through ``extra`` so JSONFormatter still renders them.
    """
    if isinstance(logger, StructuredLogger):
        logger.event(event_type, msg, level=level, **fields)
        return
    extra: Dict[str, Any] = {"event_type": event_type}
    for key in ("session_id", "timestep", "subsystem"):
        if key in fields:
            extra[key] = fields.pop(key)
    extra["extra_data"] = fields
    logger.log(level, msg, extra=extra)


def _rotating_handler(path: str, formatter: logging.Formatter, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[str] = None,
    json_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    quiet: Sequence[str] = ("uvicorn.access",),
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files
        json_file: Path for JSON logs (in log_dir if relative)
        max_bytes: Max size per log file
        backup_count: Number of backup files to keep
        quiet: Loggers capped at WARNING
    """
    logging.setLoggerClass(StructuredLogger)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = []

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(HumanFormatter())
    root_logger.addHandler(console)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    if not log_dir:
        return

    os.makedirs(log_dir, exist_ok=True)
    json_path = json_file or "help_reasoner.json.log"
    if not os.path.isabs(json_path):
        json_path = os.path.join(log_dir, json_path)

    root_logger.addHandler(_rotating_handler(
        os.path.join(log_dir, "help_reasoner.log"),
        HumanFormatter(use_colors=False), max_bytes, backup_count,
    ))
    root_logger.addHandler(_rotating_handler(json_path, JSONFormatter(), max_bytes, backup_count))
