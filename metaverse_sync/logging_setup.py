"""
Logging setup and configuration for Metaverse Sync.

This module provides centralized logging configuration with file rotation,
retention and optional console output, plus the audit logger recording
provisioning and deletion decisions.
"""

import os
import logging
import logging.handlers
from typing import Any, Dict, List

LOG_FILE_NAME = 'metaverse_sync.log'


class LoggingManager:
    """
    Manages logging configuration for the Metaverse Sync engine.

    The host runtime loads the engine once per process; setup only runs on
    the first call.
    """

    def __init__(self):
        self.configured = False
        self.log_dir = None
        self.retention_days = 7
        self.handlers: List[logging.Handler] = []

    def setup_logging(self, config: Dict[str, Any]) -> None:
        """
        Set up logging based on configuration.

        Args:
            config: Logging configuration dictionary (the 'logging' section)
        """
        if self.configured:
            return

        logging_config = config if config else {}

        log_level = str(logging_config.get('level', 'INFO')).upper()
        self.log_dir = logging_config.get('log_dir', 'logs')
        rotation = logging_config.get('rotation', 'daily')
        self.retention_days = logging_config.get('retention_days', 7)
        console_enabled = logging_config.get('console_output', True)
        console_level = str(logging_config.get('console_level', 'WARNING')).upper()

        self._ensure_log_directory()

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level, logging.INFO))

        detailed_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%H:%M:%S'
        )

        file_handler = self._create_file_handler(rotation)
        file_handler.setLevel(getattr(logging, log_level, logging.INFO))
        file_handler.setFormatter(detailed_formatter)
        self._add_handler(root_logger, file_handler)

        if console_enabled:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(getattr(logging, console_level, logging.WARNING))
            console_handler.setFormatter(console_formatter)
            self._add_handler(root_logger, console_handler)

        self.configured = True

        logger = logging.getLogger(__name__)
        logger.info(f"Logging configured: level={log_level}, dir={self.log_dir}, "
                    f"retention={self.retention_days} days, console={console_enabled}")

    def reset(self) -> None:
        """Remove the handlers installed by setup_logging()."""
        root_logger = logging.getLogger()
        for handler in self.handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self.handlers = []
        self.configured = False

    def _add_handler(self, root_logger: logging.Logger, handler: logging.Handler) -> None:
        root_logger.addHandler(handler)
        self.handlers.append(handler)

    def _ensure_log_directory(self) -> None:
        """Ensure the log directory exists."""
        if self.log_dir and not os.path.exists(self.log_dir):
            try:
                os.makedirs(self.log_dir, exist_ok=True)
            except OSError as e:
                print(f"Warning: Could not create log directory {self.log_dir}: {e}")
                print("Falling back to current directory for logs")
                self.log_dir = '.'

    def _create_file_handler(self, rotation: str) -> logging.Handler:
        """
        Create appropriate file handler based on rotation setting.

        Args:
            rotation: Rotation setting ('daily', 'midnight', or 'none')

        Returns:
            Configured logging handler
        """
        log_file = os.path.join(self.log_dir or '.', LOG_FILE_NAME)

        if str(rotation).lower() in ['daily', 'midnight']:
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


# Global logging manager instance
_logging_manager = LoggingManager()


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Convenience function to set up logging.

    Args:
        config: Logging configuration dictionary
    """
    _logging_manager.setup_logging(config)


def reset_logging() -> None:
    """Undo setup_logging() (used on terminate and in tests)."""
    _logging_manager.reset()


class ProvisioningAuditLogger:
    """Special logger for structural changes to connector spaces."""

    def __init__(self):
        self.logger = logging.getLogger('audit')

    def log_created(self, target: str, dn: str, account_name: str):
        """Log a newly provisioned connector record."""
        self.logger.info(f"Provisioned: target={target} dn={dn} account={account_name}")

    def log_already_present(self, target: str, dn: str):
        """Log a create that lost a race with an external process."""
        self.logger.info(f"Already present: target={target} dn={dn}")

    def log_ambiguous(self, target: str, dn: str, link_count: int):
        """Log a canonical record linked more than once in one connector."""
        self.logger.warning(f"Ambiguous link: target={target} dn={dn} links={link_count}")

    def log_delete_decision(self, connector: str, dn: str, delete: bool):
        """Log a deletion policy decision."""
        decision = "DELETE" if delete else "KEEP"
        self.logger.info(f"Canonical record {decision}: connector={connector} dn={dn}")


# Global audit logger instance
audit_logger = ProvisioningAuditLogger()
