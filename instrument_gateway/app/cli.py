"""
Command-line entry point for the Instrument Gateway.

Usage:
    instrument-gateway --bind 127.0.0.1:5500 --conf config.toml
    instrument-gateway --conf devices.yaml --check
"""

import argparse
import sys
from typing import List, Optional

import uvicorn

from instrument_gateway.app.config import DEFAULT_BIND, ConfigManager, Settings
from instrument_gateway.app.core.gateway_exceptions import ConfigurationError
from instrument_gateway.app.main import create_app
from instrument_gateway.app.utilities.telemetry import logger, setup_logging

EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="instrument-gateway",
        description="Poll serial instruments and serve their readings over HTTP"
    )
    parser.add_argument(
        "--bind", "-b",
        type=str,
        default=DEFAULT_BIND,
        help=f"Server bind address HOST:PORT (default: {DEFAULT_BIND})"
    )
    parser.add_argument(
        "--conf", "-c",
        type=str,
        default=None,
        help="Device file path, .toml or .yaml (default: config.toml)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level: DEBUG, INFO, WARNING, ERROR"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate the device file and exit"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.conf:
        overrides["device_config_path"] = args.conf
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    try:
        host, port = Settings.parse_bind(args.bind)
    except ValueError as e:
        logger.error(str(e), extra={"component": "cli"})
        return EXIT_CONFIG_ERROR
    settings = Settings(bind_host=host, bind_port=port, **overrides)

    setup_logging(settings.log_level, settings.log_format, settings.log_file_path)

    # Validate before anything is started; a bad file never reaches the pollers
    try:
        devices = ConfigManager(settings).load_devices()
    except ConfigurationError as e:
        logger.error("Invalid device configuration", extra={
            "component": "cli",
            "path": settings.device_config_path,
            "error": str(e)
        })
        return EXIT_CONFIG_ERROR

    if args.check:
        logger.info("Device configuration is valid", extra={
            "component": "cli",
            "device_count": len(devices)
        })
        return 0

    app = create_app(settings, devices=devices)
    logger.info("Server listening", extra={"component": "cli", "host": host, "port": port})
    uvicorn.run(app, host=host, port=port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
