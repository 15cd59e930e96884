"""
Logging setup and configuration for eptid-sync.

This module provides centralized logging configuration with file rotation,
retention and container-friendly console output. Log messages are scrubbed of
credentials and of targeted identifier values before they are written.
"""

import os
import re
import glob
import logging
import logging.handlers
from typing import Dict, Any, Optional
from datetime import datetime, timedelta

LOG_FILE_NAME = 'eptid-sync.log'


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub credentials and identifier values from log messages."""

    SENSITIVE_KEYWORDS = [
        'password', 'bind_password', 'secret', 'token', 'credential', 'pwd',
    ]

    # NameID content is a pairwise pseudonymous identifier; keep its attributes, hide the value
    NAME_ID_PATTERN = re.compile(r'(<(?:[\w-]+:)?NameID\b[^>]*>)[^<]+(</(?:[\w-]+:)?NameID>)')

    def filter(self, record):
        """Filter out sensitive data from log records."""
        if hasattr(record, 'msg'):
            msg = str(record.msg)

            for keyword in self.SENSITIVE_KEYWORDS:
                # key=value
                msg = re.sub(rf'({keyword}\s*=\s*)[^\s,}}\]]+(\s|,|$)', r'\1****\2', msg, flags=re.IGNORECASE)
                # "key": "value" and key: value (YAML, JSON)
                msg = re.sub(rf'("?{keyword}"?\s*:\s*"?)[^"\s,}}]+("?)', r'\1****\2', msg, flags=re.IGNORECASE)

            msg = self.NAME_ID_PATTERN.sub(r'\1****\2', msg)
            record.msg = msg

        return True


class LoggingManager:
    """
    Configures the root logger once per process.

    Messages go to ``eptid-sync.log`` in the configured directory, rotated at
    midnight unless rotation is ``none``, and optionally to the console. Every
    handler carries the SensitiveDataFilter.
    """

    FILE_FORMAT = '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s'
    CONSOLE_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'

    def __init__(self):
        self.configured = False
        self.log_file = None

    def setup_logging(self, config: Dict[str, Any]) -> None:
        """
        Set up logging based on configuration.

        Args:
            config: The ``logging`` section of the configuration
        """
        if self.configured:
            return

        config = config or {}
        level = _level(config.get('level'), logging.INFO)
        log_dir = self._ensure_log_directory(config.get('log_dir', 'logs'))
        retention_days = config.get('retention_days', 7)
        self.log_file = os.path.join(log_dir, LOG_FILE_NAME)

        sensitive_filter = SensitiveDataFilter()
        handlers = [self._file_handler(config.get('rotation', 'daily'), retention_days, level)]
        if config.get('console_output', True):
            console_handler = logging.StreamHandler()
            console_handler.setLevel(_level(config.get('console_level'), logging.WARNING))
            console_handler.setFormatter(logging.Formatter(self.CONSOLE_FORMAT, datefmt='%H:%M:%S'))
            handlers.append(console_handler)

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()
        for handler in handlers:
            handler.addFilter(sensitive_filter)
            root_logger.addHandler(handler)

        _remove_expired_logs(log_dir, retention_days)
        self.configured = True

        logging.getLogger(__name__).info(
            f"Logging configured: level={logging.getLevelName(level)}, file={self.log_file}, "
            f"retention={retention_days} days, console={len(handlers) > 1}")

    @staticmethod
    def _ensure_log_directory(log_dir: str) -> str:
        """Create the log directory, falling back to the working directory."""
        try:
            os.makedirs(log_dir, exist_ok=True)
        except OSError as e:
            print(f"Warning: Could not create log directory {log_dir}: {e}; logging to current directory")
            return '.'
        return log_dir

    def _file_handler(self, rotation: str, retention_days: int, level: int) -> logging.Handler:
        if rotation.lower() == 'none':
            handler = logging.FileHandler(self.log_file, encoding='utf-8')
        else:
            handler = logging.handlers.TimedRotatingFileHandler(
                filename=self.log_file,
                when='midnight',
                backupCount=retention_days,
                encoding='utf-8'
            )
            handler.suffix = '%Y-%m-%d'
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(self.FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        return handler


def _level(name: Optional[str], default: int) -> int:
    return getattr(logging, str(name).upper(), default) if name else default


def _remove_expired_logs(log_dir: str, retention_days: int) -> None:
    """Delete rotated log files older than the retention period."""
    if retention_days <= 0:
        return

    cutoff = datetime.now() - timedelta(days=retention_days)
    for log_file in glob.glob(os.path.join(log_dir, f'{LOG_FILE_NAME}.*')):
        try:
            if datetime.fromtimestamp(os.path.getmtime(log_file)) < cutoff:
                os.remove(log_file)
        except OSError as e:
            print(f"Warning: Could not remove old log file {log_file}: {e}")


# Global logging manager instance
_logging_manager = LoggingManager()


def setup_logging(config: Dict[str, Any]) -> None:
    """Configure logging for the process from the ``logging`` configuration section."""
    _logging_manager.setup_logging(config)


class AuditLogger:
    """Logger for changes made to user attributes and published metadata."""

    def __init__(self):
        self.logger = logging.getLogger('audit')

    def log_attribute_change(self, user: str, attribute: str, action: str):
        """Log a user attribute write."""
        self.logger.info(f"User attribute {action.upper()}: user={user} attribute={attribute}")

    def log_metadata_update(self, entity_id: str, inserted: int):
        """Log requested attributes added to published metadata."""
        self.logger.info(f"Metadata updated: entity={entity_id} requested_attributes_added={inserted}")


# Global audit logger instance
audit_logger = AuditLogger()
