"""
Secure Logging Module
=====================

Logging helpers that keep key material out of log output.

Security Features:
- Redaction of PEM blocks, long hex/base64 runs and name=value secrets
  (master key, private keys, published key variables)
- Rotating log files with size limits
- Structured (JSON lines) output for log aggregation

Library modules only call logging.getLogger("registryvault.<area>"); the
application wires handlers once with configure_root_logger().
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Final, Optional, Pattern

if TYPE_CHECKING:
    from registryvault.core.config import LoggingConfig


_SENSITIVE_PATTERNS: Final[list[tuple[str, Pattern[str]]]] = [
    ("pem", re.compile(r"-----BEGIN [A-Z ]+-----.*?(?:-----END [A-Z ]+-----|$)", re.DOTALL)),
    ("master_key", re.compile(r'(?i)(quantum[_-]?master[_-]?key|master[_-]?key)\s*[=:]\s*["\']?[^\s"\',]+["\']?')),
    ("private_key", re.compile(r'(?i)(kyber[_-]?private|rsa[_-]?private(?:[_-]?b64)?|private[_-]?key)\s*[=:]\s*["\']?[^\s"\',]+["\']?')),
    ("public_key", re.compile(r'(?i)(kyber[_-]?public[_-]?key|rsa[_-]?public[_-]?key[_-]?b64)\s*[=:]\s*["\']?[^\s"\',]+["\']?')),
    ("secret", re.compile(r'(?i)(secret|token|password|dek)\s*[=:]\s*["\']?[^\s"\',]+["\']?')),
    # Base64 runs (PEM bodies, distributed RSA keys)
    ("base64_secret", re.compile(r"[A-Za-z0-9+/]{40,}={0,2}")),
    # Hex runs of 32+ characters (keys, DEKs, envelope fields)
    ("hex_secret", re.compile(r"(?i)(?:0x)?[a-f0-9]{32,}")),
]

_REDACTED_TEXT: Final[str] = "[REDACTED]"

DEFAULT_LOG_FILE: Final[str] = "registryvault.log"
_CONSOLE_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_FILE_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"


class SecureLogFilter(logging.Filter):
    """
    Log filter that removes key material from log messages.

    Every record is kept; the message and its string arguments are rewritten
    with matches replaced by [REDACTED].
    """

    def __init__(self, name: str = "", additional_patterns: Optional[list[Pattern[str]]] = None) -> None:
        """
        Args:
            name: Logger name filter (empty string matches all)
            additional_patterns: Additional regex patterns to redact
        """
        super().__init__(name)
        self._additional_patterns = additional_patterns or []

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg and isinstance(record.msg, str):
            record.msg = self.sanitize(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self.sanitize(v) if isinstance(v, str) else v
                               for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self.sanitize(arg) if isinstance(arg, str) else self._sanitize_bytes(arg)
                    for arg in record.args
                )

        return True

    def sanitize(self, text: str) -> str:
        """Return text with sensitive substrings redacted."""
        result = text

        for name, pattern in _SENSITIVE_PATTERNS:
            result = pattern.sub(f"{name}={_REDACTED_TEXT}", result)

        for pattern in self._additional_patterns:
            result = pattern.sub(_REDACTED_TEXT, result)

        return result

    @staticmethod
    def _sanitize_bytes(arg: object) -> object:
        # Raw byte arguments are never rendered.
        if isinstance(arg, (bytes, bytearray, memoryview)):
            return f"<{len(arg)} bytes {_REDACTED_TEXT}>"
        return arg


class StructuredLogFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per record.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class SecureRotatingFileHandler(RotatingFileHandler):
    """
    Rotating file handler that validates its path and creates the log
    directory before opening the file.
    """

    def __init__(
        self,
        filename: str | Path,
        mode: str = "a",
        maxBytes: int = 10 * 1024 * 1024,
        backupCount: int = 5,
        encoding: str = "utf-8",
    ) -> None:
        if ".." in Path(filename).parts:
            raise ValueError("Log path cannot contain path traversal sequences")

        log_path = Path(filename).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        super().__init__(
            str(log_path),
            mode=mode,
            maxBytes=maxBytes,
            backupCount=backupCount,
            encoding=encoding,
        )


def _file_handler(
    log_file: Path,
    max_file_size: int,
    backup_count: int,
    structured: bool,
    secure_filter: SecureLogFilter,
) -> SecureRotatingFileHandler:
    handler = SecureRotatingFileHandler(
        filename=log_file,
        maxBytes=max_file_size,
        backupCount=backup_count,
    )
    handler.setLevel(logging.DEBUG)
    if structured:
        handler.setFormatter(StructuredLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.addFilter(secure_filter)
    return handler


def _console_handler(secure_filter: SecureLogFilter, fmt: str = _CONSOLE_FORMAT) -> logging.StreamHandler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%H:%M:%S"))
    handler.addFilter(secure_filter)
    return handler


def get_secure_logger(
    name: str,
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    enable_console: bool = True,
    enable_file: bool = True,
    enable_json: bool = False,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Create a standalone logger with secret filtering.

    Args:
        name: Logger name
        log_dir: Directory for log files (file output is skipped without one)
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_console: Whether to output to stderr
        enable_file: Whether to output to a rotating file
        enable_json: Whether to use JSON lines for file output
        max_file_size: Maximum log file size before rotation
        backup_count: Number of backup files to keep

    Returns:
        Configured logger; handlers are added only on the first call
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper()))
    secure_filter = SecureLogFilter()

    if enable_console:
        logger.addHandler(_console_handler(secure_filter))

    if enable_file and log_dir:
        log_file = Path(log_dir) / f"{name.replace('.', '_')}.log"
        logger.addHandler(
            _file_handler(log_file, max_file_size, backup_count, enable_json, secure_filter)
        )

    logger.propagate = False

    return logger


def configure_root_logger(
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    enable_console: bool = True,
    enable_file: bool = True,
    structured: bool = False,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the root logger with secure defaults.

    Call once at application startup; every registryvault.* logger
    propagates to it.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    secure_filter = SecureLogFilter()

    if enable_console:
        root_logger.addHandler(_console_handler(secure_filter))

    if enable_file and log_dir:
        root_logger.addHandler(
            _file_handler(
                Path(log_dir) / DEFAULT_LOG_FILE,
                max_file_size, backup_count, structured, secure_filter,
            )
        )

    return root_logger


def configure_from_config(config: "LoggingConfig") -> logging.Logger:
    """Configure the root logger from a LoggingConfig."""
    return configure_root_logger(
        log_dir=config.log_dir,
        level=config.level,
        enable_console=config.enable_console,
        enable_file=config.enable_file,
        structured=config.structured,
        max_file_size=config.max_file_size_bytes,
        backup_count=config.backup_count,
    )
