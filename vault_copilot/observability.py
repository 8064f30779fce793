"""
Observability
=============
Structured event logging for model switches, pings, chain builds and
turns, plus optional rotating file logging for the whole package.

Event payloads carry model keys and vendor names, never API keys.
"""

import logging
import json
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional, Dict
from datetime import datetime


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logs."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in (
                "name", "msg", "args", "created", "filename", "funcName",
                "levelname", "levelno", "lineno", "module", "msecs",
                "message", "pathname", "process", "processName",
                "relativeCreated", "thread", "threadName", "exc_info",
                "exc_text", "stack_info", "taskName",
            ):
                log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_file_logging(
    log_dir: str = "./logs",
    log_name: str = "vault_copilot.log",
    max_bytes: int = 10_000_000,  # 10 MB
    backup_count: int = 5,
) -> Path:
    """Attach a rotating file handler to the ``vault_copilot`` logger.

    Args:
        log_dir: Directory to store logs (created if doesn't exist).
        log_name: Name of the log file.
        max_bytes: Max size before rotation (default 10 MB).
        backup_count: Number of backup files to keep (default 5).

    Returns:
        Path to the log file.
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    log_file = log_path / log_name

    handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    package_logger = logging.getLogger("vault_copilot")
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG)

    return log_file


class StructuredLogger:
    """Structured event logging for model and chain orchestration."""

    def __init__(self, name: str = "vault_copilot.events", settings=None):
        """Initialize structured logger.

        Args:
            name: Logger name.
            settings: ``CopilotSettings`` providing log level and format
                (optional).
        """
        log_level = "INFO"
        log_format = "json"

        if settings is not None:
            log_level = settings.log_level
            log_format = settings.log_format

        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, log_level))

        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)

            if log_format == "json":
                handler.setFormatter(JsonFormatter())
            else:
                handler.setFormatter(
                    logging.Formatter(
                        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
                    )
                )

            self.logger.addHandler(handler)
            self.logger.propagate = False

    def log_model_switch(self, model_key: str, vendor: str, cors_required: bool = False):
        """Log a successful model activation."""
        self.logger.info(
            "Model Switch",
            extra={
                "event": "model_switch",
                "model_key": model_key,
                "vendor": vendor,
                "cors_required": cors_required,
            },
        )

    def log_ping(self, model_key: str, enable_cors: bool, ok: bool):
        """Log a single ping attempt."""
        self.logger.info(
            "Ping",
            extra={
                "event": "ping",
                "model_key": model_key,
                "enable_cors": enable_cors,
                "ok": ok,
            },
        )

    def log_chain_build(self, chain_type: str, model_key: Optional[str], latency_ms: float):
        """Log a chain (re)build."""
        self.logger.info(
            "Chain Build",
            extra={
                "event": "chain_build",
                "chain_type": chain_type,
                "model_key": model_key,
                "latency_ms": latency_ms,
            },
        )

    def log_turn(
        self,
        model_key: str,
        chain_type: str,
        streaming: bool,
        cancelled: bool,
        response_chars: int,
        latency_ms: float,
    ):
        """Log a completed (or cancelled) conversational turn."""
        self.logger.info(
            "Turn Complete",
            extra={
                "event": "turn",
                "model_key": model_key,
                "chain_type": chain_type,
                "streaming": streaming,
                "cancelled": cancelled,
                "response_chars": response_chars,
                "latency_ms": latency_ms,
            },
        )

    def log_error(self, error: Exception, context: Optional[Dict] = None):
        """Log an error with context."""
        self.logger.error(
            "Error",
            extra={
                "event": "error",
                "error_type": type(error).__name__,
                "error_message": str(error),
                "context": context or {},
            },
            exc_info=error.__traceback__ is not None,
        )


_logger_instance: Optional[StructuredLogger] = None


def get_logger(settings=None) -> StructuredLogger:
    """Return the global ``StructuredLogger`` singleton.

    Creates one on first call. Passing *settings* on the first call
    configures the logger; subsequent calls ignore *settings* and return
    the cached instance.
    """
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = StructuredLogger("vault_copilot.events", settings)
    return _logger_instance
