"""
Telemetry and logging utilities for the instrument gateway.

This module provides the logger used throughout the application. Importing it
installs a default JSON console configuration; ``initialize_logging`` replaces
it once settings are known.
"""

from instrument_gateway.app.utilities.logging_config import (
    LoggingConfig,
    LogLevel,
    LogFormat,
    LogDestination,
    configure_logging,
    get_logger as _get_logger,
    set_log_level,
    logging_manager
)


def get_logger(name=None):
    """Get a logger instance - wrapper around the logging manager"""
    return _get_logger(name)


def initialize_logging(config=None):
    """Initialize the logging system with optional configuration"""
    if config is None:
        config = LoggingConfig(
            level=LogLevel.INFO,
            format_type=LogFormat.JSON_COMPACT,
            enable_console=True,
            console_destination=LogDestination.STDOUT
        )

    configure_logging(config)
    return get_logger()


def setup_logging(log_level="INFO", log_format="json_compact", log_file_path=None, enable_console=True):
    """Configure logging from plain settings values"""
    config = LoggingConfig(
        level=log_level,
        format_type=log_format,
        enable_console=enable_console,
        console_destination=LogDestination.STDOUT,
        log_file_path=log_file_path
    )
    return initialize_logging(config)


if not logging_manager.is_configured:
    initialize_logging()

# The main logger object stays the same across reconfiguration
logger = get_logger()


__all__ = [
    'logger',
    'get_logger',
    'initialize_logging',
    'setup_logging',
    'LoggingConfig',
    'LogLevel',
    'LogFormat',
    'LogDestination',
    'configure_logging',
    'set_log_level',
    'logging_manager'
]
