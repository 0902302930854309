"""Centralized logging configuration for the NAP registry."""

import json
import logging
import logging.handlers
import os
from pathlib import Path
from typing import Any, Optional

# LogRecord attributes that are not user-supplied context fields
_RECORD_FIELDS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)

STANDARD_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

# Google client libraries log every discovery/HTTP call at INFO/DEBUG
NOISY_LOGGERS = ("googleapiclient.discovery_cache", "googleapiclient.discovery", "urllib3")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields added via extra={} or LogContext
        for key, value in record.__dict__.items():
            if key not in _RECORD_FIELDS and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class LoggingConfig:
    """
    Configuration for centralized logging.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format type ('standard' or 'json')
        log_file: Path to log file (optional)
        enable_console: Enable console output
        enable_file: Enable file output
        max_file_size: Maximum log file size in bytes (default: 10MB)
        backup_count: Number of backup files to keep (default: 5)
        quiet_google_clients: Raise Google client/urllib3 loggers to WARNING
    """

    VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    VALID_FORMATS = {"standard", "json"}

    def __init__(
        self,
        log_level: str = "INFO",
        log_format: str = "standard",
        log_file: Optional[str] = None,
        enable_console: bool = True,
        enable_file: bool = False,
        max_file_size: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        quiet_google_clients: bool = True,
    ):
        """
        Initialize logging configuration.

        Raises:
            ValueError: If invalid log level or format, or file logging
                is enabled without a file path
        """
        if log_level.upper() not in self.VALID_LEVELS:
            raise ValueError(
                f"Invalid log level: {log_level}. "
                f"Must be one of {', '.join(sorted(self.VALID_LEVELS))}"
            )

        if log_format not in self.VALID_FORMATS:
            raise ValueError(
                f"Invalid log format: {log_format}. "
                f"Must be one of {', '.join(sorted(self.VALID_FORMATS))}"
            )

        if enable_file and not log_file:
            raise ValueError("log_file must be specified when enable_file is True")

        self.log_level = log_level.upper()
        self.log_format = log_format
        self.log_file = log_file
        self.enable_console = enable_console
        self.enable_file = enable_file
        self.max_file_size = max_file_size
        self.backup_count = backup_count
        self.quiet_google_clients = quiet_google_clients

    @classmethod
    def from_env(cls, **overrides: Any) -> "LoggingConfig":
        """
        Create configuration from environment variables.

        Environment Variables:
            LOG_LEVEL: Log level (default: INFO)
            LOG_FORMAT: Log format (default: standard)
            LOG_FILE: Log file path (default: None)
            LOG_CONSOLE: Enable console output (default: true)
            LOG_FILE_ENABLED: Enable file output (default: false)
            LOG_MAX_FILE_SIZE: Max file size in bytes (default: 10485760)
            LOG_BACKUP_COUNT: Backup file count (default: 5)

        Args:
            **overrides: Values taking precedence over the environment

        Returns:
            LoggingConfig instance
        """
        values = {
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "log_format": os.getenv("LOG_FORMAT", "standard"),
            "log_file": os.getenv("LOG_FILE"),
            "enable_console": os.getenv("LOG_CONSOLE", "true").lower() == "true",
            "enable_file": os.getenv("LOG_FILE_ENABLED", "false").lower() == "true",
            "max_file_size": int(os.getenv("LOG_MAX_FILE_SIZE", str(10 * 1024 * 1024))),
            "backup_count": int(os.getenv("LOG_BACKUP_COUNT", "5")),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def configure_logging(config: LoggingConfig) -> None:
    """
    Configure the root logger according to ``config``.

    Existing root handlers are removed first, so calling this twice does not
    duplicate output.

    Args:
        config: LoggingConfig instance
    """
    from src.utils.logging_utils import _ContextFilter

    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    level = getattr(logging, config.log_level)
    root_logger.setLevel(level)

    if config.log_format == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(fmt=STANDARD_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    context_filter = _ContextFilter()
    handlers = []

    if config.enable_console:
        handlers.append(logging.StreamHandler())

    if config.enable_file and config.log_file:
        Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=config.log_file,
                maxBytes=config.max_file_size,
                backupCount=config.backup_count,
            )
        )

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)

    if config.quiet_google_clients:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))


def reset_logging() -> None:
    """
    Remove all root handlers and restore the default WARNING level.

    Useful for testing and cleanup.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(logging.WARNING)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)
