"""
BlockLedger - Logging System
==============================
Structured JSON logging for audit and debugging.

Features:
- Structured JSON logging
- Automatic rotation
- Multiple handlers (file, console)
- Context enrichment
- Performance tracking
- Audit trail
"""

import logging
import logging.handlers
import json
import sys
import time
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime, timezone
import traceback


ROOT_LOGGER_NAME = "blockledger"


# ============================================================================
# JSON FORMATTER
# ============================================================================

class JSONFormatter(logging.Formatter):
    """
    Formatter for JSON log lines.

    Output structure:
    {
        "timestamp": "2026-01-01T12:00:00.000000Z",
        "level": "INFO",
        "logger": "blockledger.store",
        "message": "Block applied",
        "extra_data": {...},
        "exception": {...}
    }
    """

    def __init__(
        self,
        include_extra: bool = True,
        include_stack: bool = True
    ):
        super().__init__()
        self.include_extra = include_extra
        self.include_stack = include_stack

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
                .strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.thread:
            log_data["thread_id"] = record.thread
            log_data["thread_name"] = record.threadName

        if record.process:
            log_data["process_id"] = record.process

        if self.include_extra and hasattr(record, 'extra_data'):
            log_data["extra_data"] = record.extra_data

        if record.exc_info and self.include_stack:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_data, default=str)


# ============================================================================
# TEXT FORMATTER (Human-Readable)
# ============================================================================

class ColoredTextFormatter(logging.Formatter):
    """
    Colored console formatter.

    Colors:
    - DEBUG: Gray
    - INFO: Green
    - WARNING: Yellow
    - ERROR: Red
    - CRITICAL: Bold Red
    """

    COLORS = {
        'DEBUG': '\033[90m',
        'INFO': '\033[92m',
        'WARNING': '\033[93m',
        'ERROR': '\033[91m',
        'CRITICAL': '\033[1;91m',
        'RESET': '\033[0m'
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"

        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime('%Y-%m-%d %H:%M:%S')

        message = f"{timestamp} [{levelname}] {record.name}: {record.getMessage()}"

        if hasattr(record, 'extra_data'):
            message += f" | {record.extra_data}"

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


# ============================================================================
# LOGGER CLASS
# ============================================================================

class LedgerLogger:
    """
    Logger wrapper with structured extra data.

    Features:
    - Context enrichment
    - Structured logging
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger
        self._context: Dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self._logger.name

    def set_context(self, **kwargs):
        """
        Set context added to every record.

        Example:
            >>> logger.set_context(node="ledger-1")
        """
        self._context.update(kwargs)

    def clear_context(self):
        """Clear context"""
        self._context.clear()

    def _log(
        self,
        level: int,
        message: str,
        extra_data: Optional[Dict[str, Any]] = None,
        exc_info=None
    ):
        merged_extra = {**self._context}
        if extra_data:
            merged_extra.update(extra_data)

        self._logger.log(
            level,
            message,
            exc_info=exc_info,
            extra={'extra_data': merged_extra} if merged_extra else {}
        )

    def debug(self, message: str, extra_data: Optional[Dict] = None):
        self._log(logging.DEBUG, message, extra_data)

    def info(self, message: str, extra_data: Optional[Dict] = None):
        self._log(logging.INFO, message, extra_data)

    def warning(self, message: str, extra_data: Optional[Dict] = None):
        self._log(logging.WARNING, message, extra_data)

    def error(self, message: str, extra_data: Optional[Dict] = None, exc_info=None):
        self._log(logging.ERROR, message, extra_data, exc_info)

    def critical(self, message: str, extra_data: Optional[Dict] = None, exc_info=None):
        self._log(logging.CRITICAL, message, extra_data, exc_info)

    def exception(self, message: str, extra_data: Optional[Dict] = None):
        """Log ERROR with current traceback"""
        self._log(logging.ERROR, message, extra_data, exc_info=sys.exc_info())


# ============================================================================
# SETUP FUNCTION
# ============================================================================

def setup_logging(
    log_level: str = "INFO",
    log_to_file: bool = True,
    log_dir: Path = Path("./logs"),
    log_format: str = "json",
    log_rotation_mb: int = 100,
    log_retention_days: int = 30,
    enable_console: bool = True,
) -> LedgerLogger:
    """
    Configure the blockledger logger tree.

    Args:
        log_level: Level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Write to rotating files
        log_dir: Log files directory
        log_format: File format (json, text)
        log_rotation_mb: MB before rotation
        log_retention_days: Rotated files kept
        enable_console: Also log to stdout

    Returns:
        LedgerLogger: Configured root logger

    Example:
        >>> logger = setup_logging(log_level="DEBUG", log_to_file=False)
        >>> logger.info("Ledger started", extra_data={"port": 3000})
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # ========================================================================
    # FILE HANDLERS (with rotation)
    # ========================================================================

    if log_to_file:
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_dir / "blockledger.log",
            maxBytes=log_rotation_mb * 1024 * 1024,
            backupCount=log_retention_days,
            encoding='utf-8'
        )

        error_handler = logging.handlers.RotatingFileHandler(
            filename=log_dir / "blockledger_errors.log",
            maxBytes=log_rotation_mb * 1024 * 1024,
            backupCount=log_retention_days,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)

        for handler in (file_handler, error_handler):
            if log_format == "json":
                handler.setFormatter(JSONFormatter())
            else:
                handler.setFormatter(
                    logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
                )
            root_logger.addHandler(handler)

    # ========================================================================
    # CONSOLE HANDLER
    # ========================================================================

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(ColoredTextFormatter())
        root_logger.addHandler(console_handler)

    return LedgerLogger(root_logger)


# ============================================================================
# CATEGORY LOGGERS
# ============================================================================

def get_logger(category: str) -> LedgerLogger:
    """
    Get logger for a category.

    Args:
        category: Category (validation, store, rollback, api, ...)

    Example:
        >>> store_logger = get_logger("store")
        >>> store_logger.info("Block applied")
    """
    return LedgerLogger(logging.getLogger(f"{ROOT_LOGGER_NAME}.{category}"))


# ============================================================================
# PERFORMANCE TRACKING
# ============================================================================

class PerformanceLogger:
    """
    Context manager for timing an operation.

    Example:
        >>> logger = get_logger("store")
        >>> with PerformanceLogger(logger, "apply_block"):
        ...     store.apply(block)
        # Logs: "apply_block completed in 1.23ms"
    """

    def __init__(
        self,
        logger: LedgerLogger,
        operation: str,
        threshold_ms: Optional[int] = None
    ):
        self.logger = logger
        self.operation = operation
        self.threshold_ms = threshold_ms
        self.start_time = None
        self.elapsed_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000

        extra = {
            "operation": self.operation,
            "duration_ms": round(self.elapsed_ms, 2),
            "failed": exc_type is not None,
        }

        if self.threshold_ms and self.elapsed_ms > self.threshold_ms:
            self.logger.warning(
                f"{self.operation} took {self.elapsed_ms:.2f}ms (threshold: {self.threshold_ms}ms)",
                extra_data=extra
            )
        else:
            self.logger.debug(
                f"{self.operation} completed in {self.elapsed_ms:.2f}ms",
                extra_data=extra
            )


# ============================================================================
# AUDIT LOGGER
# ============================================================================

class AuditLogger:
    """
    Logger dedicated to the ledger audit trail.

    Records every applied block and every rollback. Writes audit.log
    (never rotated) when a log directory is given.
    """

    def __init__(self, log_dir: Optional[Path] = None):
        self.logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.audit")
        self.logger.setLevel(logging.INFO)
        self._handler: Optional[logging.Handler] = None

        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            self._handler = logging.FileHandler(log_dir / "audit.log", encoding='utf-8')
            self._handler.setFormatter(JSONFormatter(include_extra=True))
            self.logger.addHandler(self._handler)

    def _record(self, message: str, data: Dict[str, Any]) -> None:
        data["timestamp"] = datetime.now(timezone.utc).isoformat()
        self.logger.info(message, extra={'extra_data': data})

    def log_block_applied(self, height: int, block_id: str, tx_count: int):
        """Log block application"""
        self._record(
            "Block applied",
            {
                "action": "block_applied",
                "height": height,
                "block_id": block_id,
                "tx_count": tx_count,
            }
        )

    def log_rollback(self, from_height: int, to_height: int, addresses_restored: int):
        """Log rollback"""
        self._record(
            "Ledger rolled back",
            {
                "action": "rollback",
                "from_height": from_height,
                "to_height": to_height,
                "addresses_restored": addresses_restored,
            }
        )

    def close(self) -> None:
        if self._handler is not None:
            self.logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "ROOT_LOGGER_NAME",
    "setup_logging",
    "get_logger",
    "LedgerLogger",
    "PerformanceLogger",
    "AuditLogger",
    "JSONFormatter",
    "ColoredTextFormatter",
]
