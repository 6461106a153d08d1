"""
Centralized Logging Management for the Sync Module.

Progress lines go to stdout and warnings/errors to stderr, as plain text by
default. JSON output can be selected for runs whose logs are collected by a
scheduler.
"""

import logging
import sys
import json
from typing import Optional

TEXT_FORMAT = '%(asctime)s %(levelname)s %(message)s'
TEXT_DATEFMT = '%Y-%m-%d %H:%M:%S'

class JsonFormatter(logging.Formatter):
    """
    Custom formatter to output logs in JSON format.
    """
    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record['exc_info'] = self.formatException(record.exc_info)
        if hasattr(record, 'details'):
            log_record['details'] = record.details
        return json.dumps(log_record, ensure_ascii=False)

class _MaxLevelFilter(logging.Filter):
    """Lets through records strictly below the given level."""
    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record):
        return record.levelno < self.level

class LoggingManager:
    """
    Manages the logging configuration for the whole docsync package.
    """
    _instance = None

    def __new__(cls, *args, **kwargs):
        if not cls._instance:
            cls._instance = super(LoggingManager, cls).__new__(cls)
        return cls._instance

    def __init__(self, log_level: str = "INFO", log_file: Optional[str] = None, log_format: str = "text"):
        if hasattr(self, '_initialized') and self._initialized:
            return

        self.log_level = log_level.upper()
        self.log_file = log_file
        self.log_format = log_format
        self.logger = logging.getLogger("docsync")
        self.logger.setLevel(self.log_level)
        self.logger.propagate = False  # Prevent duplicate logs in parent handlers

        # Remove existing handlers to avoid duplication
        if self.logger.hasHandlers():
            self.logger.handlers.clear()

        formatter = self._build_formatter()

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(self.log_level)
        stdout_handler.addFilter(_MaxLevelFilter(logging.WARNING))
        stdout_handler.setFormatter(formatter)
        self.logger.addHandler(stdout_handler)

        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.WARNING)
        stderr_handler.setFormatter(formatter)
        self.logger.addHandler(stderr_handler)

        # Add file handler if a log file is specified
        if self.log_file:
            file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
            file_handler.setLevel(self.log_level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        self._initialized = True

    def _build_formatter(self) -> logging.Formatter:
        if self.log_format == "json":
            return JsonFormatter()
        return logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT)

    @classmethod
    def reset(cls) -> None:
        """
        Drop the configured handlers so the next LoggingManager() reconfigures.
        """
        logger = logging.getLogger("docsync")
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True
        cls._instance = None

