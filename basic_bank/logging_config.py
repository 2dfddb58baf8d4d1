"""
Structured Logging Module

Log records for bank operations as one JSON object per line, or as plain
text for a terminal. Operation context (who, what, on which record) travels
as record attributes set by ``log_action``.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

# Record attributes copied into the JSON object when set
CONTEXT_FIELDS = ("user_id", "action", "resource", "extra")

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON line"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)


def setup_logging(level: str = "INFO", logger_name: str = "basic_bank",
                  log_format: str = "json", log_file: Optional[str] = None) -> logging.Logger:
    """
    Install one handler on the bank's logger

    Calling it again replaces the previous handler, so the CLI and tests can
    reconfigure freely.

    Args:
        level: Level name such as "DEBUG" or "WARNING"
        logger_name: Logger to configure; children inherit it
        log_format: "json" or "text"
        log_file: Append to this file instead of writing to stderr
    """
    logger = logging.getLogger(logger_name)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(TEXT_FORMAT) if log_format == "text" else JSONFormatter())

    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
    return logger


def get_logger(name: str = "basic_bank") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None) -> None:
    """
    Log a bank operation with its context

    Args:
        logger: Logger to write to
        level: "debug", "info", "warning" or "error"
        message: Human-readable summary
        user_id: Acting user, when known
        action: Operation name, e.g. "deposit" or "login"
        resource: Affected record, e.g. "ledger:1234-5678-9012"
        extra: Any other structured data
    """
    levelno = logging.getLevelName(level.upper())
    if not logger.isEnabledFor(levelno):
        return

    context = {"user_id": user_id, "action": action, "resource": resource, "extra": extra}
    logger.log(
        levelno, message,
        extra={key: value for key, value in context.items() if value},
        stacklevel=2
    )
