"""
Logging configuration for modmigrate.

All components log through children of the 'modmigrate' logger. The level and
an optional log file are controlled by the 'logging' section of the config.
"""

import logging
import sys
from typing import Dict, Any, Optional
from pathlib import Path

ROOT_LOGGER = 'modmigrate'


class SafeFormatter(logging.Formatter):
    """Formatter that provides a default value for the module context field."""

    def format(self, record):
        if not hasattr(record, 'module_context'):
            record.module_context = '-'
        return super().format(record)


def setup_logging(config: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """
    Setup modmigrate logging based on configuration.

    Args:
        config: Configuration dictionary with an optional 'logging' section

    Returns:
        Configured root logger for modmigrate
    """
    logging_config = (config or {}).get('logging', {})
    log_level = str(logging_config.get('level', 'INFO')).upper()

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Remove any existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(SafeFormatter(
        '%(asctime)s - [%(module_context)s] - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    ))
    logger.addHandler(console_handler)

    log_file = logging_config.get('file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(SafeFormatter(
            '%(asctime)s.%(msecs)03d - %(name)s - [%(module_context)s] - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(file_handler)

    logger.propagate = False

    return logger


class MigrationLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that stamps the migration module name on every record.

    Also provides helpers for the messages the engine emits for each step and
    for the final outcome of a run.
    """

    def __init__(self, logger: logging.Logger, module: str):
        super().__init__(logger, {'module_context': module})

    def process(self, msg, kwargs):
        kwargs.setdefault('extra', {})
        kwargs['extra']['module_context'] = self.extra['module_context']
        return msg, kwargs

    def step(self, unit_name: str, forward: bool) -> None:
        """Log a completed migration step."""
        self.info(f"'{unit_name}' {'migrated' if forward else 'rolled back'}")

    def outcome(self, outcome) -> None:
        """Log the outcome of a migrate/rollback call."""
        if outcome.ok:
            self.info(outcome.reason)
        else:
            self.error(outcome.reason)
