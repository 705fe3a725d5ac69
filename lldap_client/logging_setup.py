"""
Logging setup for the LLDAP client.

Configures the root logger with a rotating log file, an optional console
handler and a filter that keeps passwords and bearer tokens out of every
emitted record.
"""

import glob
import logging
import logging.handlers
import os
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub sensitive data from log messages."""

    SENSITIVE_KEYWORDS = [
        'password', 'newPassword', 'token', 'refreshToken', 'refresh_token',
        'secret', 'credential', 'authorization',
    ]

    def filter(self, record):
        """Filter out sensitive data from log records."""
        msg = str(record.msg)

        for keyword in self.SENSITIVE_KEYWORDS:
            # key=value
            msg = re.sub(rf'({keyword}\s*=\s*)[^\s,}}\]]+', r'\1****', msg, flags=re.IGNORECASE)
            # "key": "value"
            msg = re.sub(rf'("{keyword}"\s*:\s*")[^"]*(")', r'\1****\2', msg, flags=re.IGNORECASE)
            # 'key': 'value', as printed from a dict
            msg = re.sub(rf"('{keyword}'\s*:\s*')[^']*(')", r'\1****\2', msg, flags=re.IGNORECASE)

        msg = re.sub(r'(Bearer\s+)[^\s,}\]\'"]+', r'\1****', msg, flags=re.IGNORECASE)

        record.msg = msg
        return True


class LoggingManager:
    """
    Manages logging configuration for the LLDAP client.

    Provides file-based logging with rotation and retention, and console
    output for interactive use.
    """

    LOG_FILE_NAME = 'lldap-client.log'

    def __init__(self):
        self.configured = False
        self.log_dir = None
        self.retention_days = 7

    def setup_logging(self, config: Dict[str, Any]) -> None:
        """
        Set up logging based on configuration.

        Args:
            config: Logging configuration dictionary
        """
        if self.configured:
            return

        logging_config = config if config else {}

        log_level = logging_config.get('level', 'INFO').upper()
        self.log_dir = logging_config.get('log_dir', 'logs')
        rotation = logging_config.get('rotation', 'daily')
        self.retention_days = logging_config.get('retention_days', 7)
        console_enabled = logging_config.get('console_output', True)
        console_level = logging_config.get('console_level', 'WARNING').upper()

        self._ensure_log_directory()

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level, logging.INFO))
        root_logger.handlers.clear()

        detailed_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%H:%M:%S'
        )

        sensitive_filter = SensitiveDataFilter()

        file_handler = self._create_file_handler(rotation)
        file_handler.setLevel(getattr(logging, log_level, logging.INFO))
        file_handler.setFormatter(detailed_formatter)
        file_handler.addFilter(sensitive_filter)
        root_logger.addHandler(file_handler)

        if console_enabled:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(getattr(logging, console_level, logging.WARNING))
            console_handler.setFormatter(console_formatter)
            console_handler.addFilter(sensitive_filter)
            root_logger.addHandler(console_handler)

        self._cleanup_old_logs()

        self.configured = True

        logger = logging.getLogger(__name__)
        logger.info(f"Logging configured: level={log_level}, dir={self.log_dir}, "
                    f"retention={self.retention_days} days, console={console_enabled}")

    def _ensure_log_directory(self) -> None:
        if self.log_dir and not os.path.exists(self.log_dir):
            try:
                os.makedirs(self.log_dir, exist_ok=True)
            except OSError as e:
                print(f"Warning: Could not create log directory {self.log_dir}: {e}")
                print("Falling back to current directory for logs")
                self.log_dir = '.'

    def _create_file_handler(self, rotation: str) -> logging.Handler:
        """
        Create the file handler for the given rotation setting.

        Args:
            rotation: 'daily', 'midnight' or 'none'
        """
        log_file = os.path.join(self.log_dir, self.LOG_FILE_NAME)

        if rotation.lower() in ['daily', 'midnight']:
            handler = logging.handlers.TimedRotatingFileHandler(
                filename=log_file,
                when='midnight',
                interval=1,
                backupCount=self.retention_days,
                encoding='utf-8'
            )
            handler.suffix = '%Y-%m-%d'
        else:
            handler = logging.FileHandler(log_file, encoding='utf-8')

        return handler

    def get_log_files(self) -> List[str]:
        if not self.log_dir:
            return []
        return sorted(glob.glob(os.path.join(self.log_dir, f"{self.LOG_FILE_NAME}*")))

    def _cleanup_old_logs(self) -> None:
        """Remove rotated log files older than the retention period."""
        if not self.log_dir or self.retention_days <= 0:
            return

        cutoff_date = datetime.now() - timedelta(days=self.retention_days)

        for log_file in self.get_log_files():
            if log_file.endswith(self.LOG_FILE_NAME):
                continue
            try:
                file_time = datetime.fromtimestamp(os.path.getmtime(log_file))
                if file_time < cutoff_date:
                    os.remove(log_file)
            except (OSError, ValueError) as e:
                print(f"Warning: Could not remove old log file {log_file}: {e}")


# Global logging manager instance
_logging_manager = LoggingManager()


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Convenience function to set up logging.

    Args:
        config: Logging configuration dictionary
    """
    _logging_manager.setup_logging(config)


class SecurityAuditLogger:
    """Special logger for security-related events."""

    def __init__(self):
        self.logger = logging.getLogger('security')

    def log_authentication_attempt(self, system: str, username: str, success: bool):
        """Log authentication attempts."""
        status = "SUCCESS" if success else "FAILURE"
        self.logger.info(f"Authentication {status}: {system} user={username}")

    def log_password_change(self, user_id: str, success: bool):
        """Log password modifications issued with the administrative bind."""
        status = "SUCCESS" if success else "FAILURE"
        self.logger.info(f"Password change {status}: user={user_id}")

    def log_configuration_access(self, config_file: str):
        """Log configuration file access."""
        self.logger.info(f"Configuration loaded: {config_file}")


# Global security logger instance
security_logger = SecurityAuditLogger()
