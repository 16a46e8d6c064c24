"""
Logging setup shared by every adbatch module.

Lines are plain text by default. With ``log.json_format`` enabled each line
is one JSON object, and the batch context passed through ``extra``
(``job_id``, ``target_id``, ``session_id``) becomes top-level keys so
a batch can be followed across modules.
"""

import json
import logging
from typing import Any, Dict, Optional

from adbatch.config import LogConfig, log_config

CONTEXT_FIELDS = ("job_id", "target_id", "session_id")

class BatchJSONFormatter(logging.Formatter):
    """Formats records as single-line JSON with batch context fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)

def build_formatter(config: LogConfig) -> logging.Formatter:
    if config.json_format:
        return BatchJSONFormatter(datefmt=config.date_format)
    return logging.Formatter(fmt=config.format, datefmt=config.date_format)

def setup_logger(name: str, config: Optional[LogConfig] = None) -> logging.Logger:
    """
    Get a module logger with the configured handlers attached once.

    Args:
        name: Logger name, usually ``__name__``
        config: Logging settings, defaults to the application ones

    Returns:
        logging.Logger: Logger writing to the console and, if set, a file
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    config = config or log_config
    formatter = build_formatter(config)
    logger.setLevel(config.level)

    handlers = [logging.StreamHandler()]
    if config.file_path:
        handlers.append(logging.FileHandler(config.file_path))
    for handler in handlers:
        handler.setLevel(config.level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
