import logging
import sys
import os
import json
from datetime import datetime, timezone
from typing import Any, Dict

# Attributes passed through `extra=` that are promoted to top-level keys
CONTEXT_FIELDS = ("workspace_id", "instance_id", "conversation_id", "provider")

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
RESET = "\033[0m"
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Vendor clients log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine")


def log_context(**fields: Any) -> Dict[str, Any]:
    """Build an `extra=` mapping for the tenant/conversation a log line is about"""
    return {key: value for key, value in fields.items() if key in CONTEXT_FIELDS and value is not None}


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    context = {}
    for field in CONTEXT_FIELDS:
        value = getattr(record, field, None)
        if value is not None:
            context[field] = value
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with the tenant context as top-level keys"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        log_data.update(record_context(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StandardFormatter(logging.Formatter):
    """Text lines with a trailing `[key=value ...]` context block, colored on a terminal"""

    def __init__(self, fmt: str = TEXT_FORMAT, datefmt: str = "%Y-%m-%d %H:%M:%S", colorize: bool = None):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.colorize = sys.stdout.isatty() if colorize is None else colorize

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = record_context(record)
        if context:
            message = f"{message} [{' '.join(f'{key}={value}' for key, value in context.items())}]"
        if self.colorize:
            return f"{LEVEL_COLORS.get(record.levelname, '')}{message}{RESET}"
        return message


def setup_logging(
    level: str = None,
    json_format: bool = None,
    log_file: str = None
):
    """
    Configure the root logger from LOG_LEVEL, LOG_JSON and LOG_FILE.

    The log file, when set, always receives JSON lines.
    """
    level = level or os.getenv("LOG_LEVEL", "INFO")
    json_format = json_format if json_format is not None else os.getenv("LOG_JSON", "false").lower() == "true"
    log_file = log_file or os.getenv("LOG_FILE")
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handlers = [(logging.StreamHandler(sys.stdout), JSONFormatter() if json_format else StandardFormatter())]
    if log_file:
        handlers.append((logging.FileHandler(log_file), JSONFormatter()))

    for handler, formatter in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(numeric_level)
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
