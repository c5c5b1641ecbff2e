import logging
import logging.handlers
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from enum import Enum


DEFAULT_LOGGER_NAME = "instrument_gateway"


class LogLevel(Enum):
    """Enumeration for log levels"""
    CRITICAL = logging.CRITICAL
    ERROR = logging.ERROR
    WARNING = logging.WARNING
    INFO = logging.INFO
    DEBUG = logging.DEBUG

    @classmethod
    def from_name(cls, name: Union[str, "LogLevel"]) -> "LogLevel":
        """Resolve 'info', 'WARNING' etc. to a LogLevel"""
        if isinstance(name, LogLevel):
            return name
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown log level: {name}")


class LogFormat(Enum):
    """Enumeration for log output formats"""
    JSON_COMPACT = "json_compact"
    JSON_PRETTY = "json_pretty"
    STANDARD = "standard"
    DETAILED = "detailed"


class LogDestination(Enum):
    """Console stream used for log output"""
    STDOUT = "stdout"
    STDERR = "stderr"


_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None)).keys())
_RESERVED_ATTRS.update(['getMessage', 'exc_text', 'stack_info', 'message', 'asctime', 'taskName'])


def _record_to_dict(formatter: logging.Formatter, record: logging.LogRecord) -> Dict[str, Any]:
    log_record = {
        "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
        "module": record.module,
        "function": record.funcName,
        "line": record.lineno
    }

    if record.exc_info:
        log_record["exception"] = formatter.formatException(record.exc_info)

    # Anything passed through extra={...}
    extras = {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith('_')
    }
    if extras:
        log_record["extra"] = extras

    return log_record


class JsonFormatter(logging.Formatter):
    """Compact JSON formatter - single line output"""

    def format(self, record):
        return json.dumps(_record_to_dict(self, record), ensure_ascii=False, separators=(',', ':'), default=str)


class JsonPrettyFormatter(logging.Formatter):
    """Pretty-printed JSON formatter - multi-line indented output"""

    def format(self, record):
        return json.dumps(_record_to_dict(self, record), ensure_ascii=False, indent=2, default=str)


class StandardFormatter(logging.Formatter):
    """Standard text formatter"""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


class DetailedFormatter(logging.Formatter):
    """Detailed text formatter with more context"""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


class LoggingConfig:
    """Configuration class for logging setup"""

    def __init__(
        self,
        level: Union[LogLevel, str] = LogLevel.INFO,
        format_type: Union[LogFormat, str] = LogFormat.JSON_COMPACT,
        logger_name: str = DEFAULT_LOGGER_NAME,
        enable_console: bool = True,
        console_destination: Union[LogDestination, str] = LogDestination.STDOUT,
        # File logging options
        log_file_path: Optional[str] = None,
        max_file_size: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        exclude_components: Optional[List[str]] = None,
        capture_warnings: bool = True
    ):
        self.level = LogLevel.from_name(level)
        self.format_type = LogFormat(format_type) if isinstance(format_type, str) else format_type
        self.logger_name = logger_name
        self.enable_console = enable_console
        self.console_destination = LogDestination(console_destination) if isinstance(console_destination, str) else console_destination

        self.log_file_path = log_file_path
        self.max_file_size = max_file_size
        self.backup_count = backup_count

        self.exclude_components = exclude_components or []
        self.capture_warnings = capture_warnings


class ComponentFilter(logging.Filter):
    """Drop records whose 'component' extra is excluded"""

    def __init__(self, exclude_components: List[str]):
        super().__init__()
        self.exclude_components = set(exclude_components)

    def filter(self, record):
        return getattr(record, "component", None) not in self.exclude_components


class LoggingManager:
    """Central logging manager for the instrument gateway"""

    def __init__(self):
        self._loggers: Dict[str, logging.Logger] = {}
        self._config: Optional[LoggingConfig] = None
        self._is_configured = False

    @property
    def is_configured(self) -> bool:
        return self._is_configured

    def configure(self, config: LoggingConfig) -> None:
        """Configure the logging system"""
        self._config = config

        if config.capture_warnings:
            logging.captureWarnings(True)

        logger = logging.getLogger(config.logger_name)
        logger.setLevel(config.level.value)

        # Reconfiguration replaces handlers rather than stacking them
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = False

        handlers = []
        if config.enable_console:
            handlers.append(self._create_console_handler(config))
        if config.log_file_path:
            handlers.append(self._create_file_handler(config))

        for handler in handlers:
            if config.exclude_components:
                handler.addFilter(ComponentFilter(config.exclude_components))
            logger.addHandler(handler)

        self._loggers[config.logger_name] = logger
        self._is_configured = True

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        """Get a logger instance"""
        if not self._is_configured:
            raise RuntimeError("Logging not configured. Call configure() first.")

        logger_name = name or self._config.logger_name
        if logger_name not in self._loggers:
            # Children of the main logger inherit its handlers
            if not logger_name.startswith(self._config.logger_name + "."):
                logger_name = f"{self._config.logger_name}.{logger_name}"
            self._loggers[logger_name] = logging.getLogger(logger_name)

        return self._loggers[logger_name]

    def set_level(self, level: Union[LogLevel, str]) -> None:
        """Dynamically change the main logger level"""
        if not self._is_configured:
            raise RuntimeError("Logging not configured. Call configure() first.")

        log_level = LogLevel.from_name(level)
        main_logger = self._loggers[self._config.logger_name]
        main_logger.setLevel(log_level.value)
        for handler in main_logger.handlers:
            handler.setLevel(log_level.value)

    def _create_console_handler(self, config: LoggingConfig) -> logging.Handler:
        """Create console handler based on configuration"""
        if config.console_destination == LogDestination.STDOUT:
            handler = logging.StreamHandler(sys.stdout)
        else:
            handler = logging.StreamHandler(sys.stderr)

        handler.setLevel(config.level.value)
        handler.setFormatter(self._create_formatter(config.format_type))
        return handler

    def _create_file_handler(self, config: LoggingConfig) -> logging.Handler:
        """Create rotating file handler based on configuration"""
        file_path = Path(config.log_file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            filename=config.log_file_path,
            maxBytes=config.max_file_size,
            backupCount=config.backup_count
        )

        handler.setLevel(config.level.value)
        handler.setFormatter(self._create_formatter(config.format_type))
        return handler

    def _create_formatter(self, format_type: LogFormat) -> logging.Formatter:
        """Create formatter based on format type"""
        if format_type == LogFormat.JSON_PRETTY:
            return JsonPrettyFormatter()
        elif format_type == LogFormat.STANDARD:
            return StandardFormatter()
        elif format_type == LogFormat.DETAILED:
            return DetailedFormatter()
        return JsonFormatter()


# Global logging manager instance
logging_manager = LoggingManager()


def configure_logging(config: LoggingConfig) -> None:
    """Configure the global logging system"""
    logging_manager.configure(config)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance"""
    return logging_manager.get_logger(name)


def set_log_level(level: Union[LogLevel, str]) -> None:
    """Set log level dynamically"""
    logging_manager.set_level(level)
