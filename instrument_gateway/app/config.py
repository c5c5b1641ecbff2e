"""
Configuration management for the Instrument Gateway
"""

import tomllib
import yaml
from typing import Any, Dict, List, Optional, Tuple
from pathlib import Path
from pydantic import ValidationError
from pydantic_settings import BaseSettings

from instrument_gateway.app.core.expression import compile_expression
from instrument_gateway.app.core.gateway_exceptions import ConfigurationError, ExpressionError, ItemNotFoundError
from instrument_gateway.app.models.device_config import (
    AnalogItem, DeviceConfig, SwitchItem, TemperatureItem
)
from instrument_gateway.app.models.poller_state import PollerTimings
from instrument_gateway.app.schemas.device_config import DeviceSchema
from instrument_gateway.app.utilities.telemetry import logger


DEFAULT_BIND = "127.0.0.1:5500"
DEFAULT_DEVICE_CONFIG = "config.toml"


class Settings(BaseSettings):
    """Application settings"""

    # API Settings
    api_title: str = "Instrument Gateway"
    api_version: str = "1.0.0"
    api_description: str = "Serial instrument polling gateway"
    bind_host: str = "127.0.0.1"
    bind_port: int = 5500

    # Device configuration
    device_config_path: str = DEFAULT_DEVICE_CONFIG

    # Logging
    log_level: str = "INFO"
    log_format: str = "json_compact"
    log_file_path: Optional[str] = None

    # Polling
    read_timeout_s: float = 5.0
    error_pause_s: float = 4.0
    fault_timeout_s: float = 30.0
    max_errors: int = 3
    cycle_interval_s: float = 0.0

    class Config:
        env_prefix = "GATEWAY_"
        env_file = ".env"

    def poller_timings(self) -> PollerTimings:
        return PollerTimings(
            error_pause_s=self.error_pause_s,
            fault_timeout_s=self.fault_timeout_s,
            max_errors=self.max_errors,
            cycle_interval_s=self.cycle_interval_s
        )

    @staticmethod
    def parse_bind(bind: str) -> Tuple[str, int]:
        """Split 'host:port'; an empty host means all interfaces"""
        host, sep, port = bind.rpartition(":")
        if not sep:
            raise ValueError(f"Bind address '{bind}' must be HOST:PORT")
        try:
            port_number = int(port)
        except ValueError:
            raise ValueError(f"Bind address '{bind}' has an invalid port")
        if not 0 < port_number < 65536:
            raise ValueError(f"Bind address '{bind}' has an out-of-range port")
        return (host.strip("[]") or "0.0.0.0"), port_number


class ConfigManager:
    """Loads and validates the device file (TOML or YAML)"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.devices: Dict[str, DeviceConfig] = {}

    def load_devices(self, path: Optional[str] = None) -> Dict[str, DeviceConfig]:
        """
        Load every device from the device file.

        Validation is all-or-nothing: the first problem raises
        ConfigurationError and nothing is kept.
        """
        config_path = Path(path or self.settings.device_config_path)
        raw = self._read_file(config_path)

        if not isinstance(raw, dict):
            raise ConfigurationError(f"Device file {config_path} must contain a mapping of devices")
        if set(raw) == {"devices"} and isinstance(raw["devices"], dict):
            raw = raw["devices"]
        if not raw:
            raise ConfigurationError(f"No devices defined in {config_path}")

        devices: Dict[str, DeviceConfig] = {}
        for device_id, table in raw.items():
            devices[str(device_id)] = self._build_device(str(device_id), table)

        self.devices = devices
        logger.info("Device configuration loaded", extra={
            "component": "config",
            "path": str(config_path),
            "device_count": len(devices),
            "item_count": sum(device.item_count for device in devices.values())
        })
        return devices

    def get_device(self, device_id: str) -> DeviceConfig:
        if device_id not in self.devices:
            raise ItemNotFoundError(f"Configuration for device {device_id} not found", device_id=device_id)
        return self.devices[device_id]

    def list_devices(self) -> List[str]:
        return list(self.devices.keys())

    def _read_file(self, config_path: Path) -> Any:
        if not config_path.is_file():
            raise ConfigurationError(f"Device file not found: {config_path}")

        suffix = config_path.suffix.lower()
        try:
            if suffix == ".toml":
                with open(config_path, "rb") as f:
                    return tomllib.load(f)
            if suffix in (".yaml", ".yml"):
                with open(config_path, "r", encoding="utf-8") as f:
                    return yaml.safe_load(f)
        except (tomllib.TOMLDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot parse device file {config_path}: {e}") from e

        raise ConfigurationError(f"Unsupported device file format '{suffix}' (use .toml, .yaml or .yml)")

    def _build_device(self, device_id: str, table: Any) -> DeviceConfig:
        if not isinstance(table, dict):
            raise ConfigurationError(f"Device <{device_id}> must be a table", device_id=device_id)

        try:
            schema = DeviceSchema.model_validate(table)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in e.errors()
            )
            raise ConfigurationError(f"Device <{device_id}> is invalid: {problems}", device_id=device_id) from e

        adcs = []
        for adc in schema.adcs:
            try:
                expression = compile_expression(adc.expr)
            except ExpressionError as e:
                raise ConfigurationError(
                    f"Expression of adc <{adc.id}> in <{device_id}> is invalid: {e}",
                    device_id=device_id,
                    item_id=adc.id
                ) from e
            adcs.append(AnalogItem(
                item_id=adc.id,
                device_id=device_id,
                cmdget=adc.cmdget.encode("utf-8"),
                expr=adc.expr,
                expression=expression,
                vref=adc.vref
            ))

        tmpts = [
            TemperatureItem(
                item_id=tmpt.id,
                device_id=device_id,
                cmdlsb=tmpt.cmdlsb.encode("utf-8"),
                cmdmsb=tmpt.cmdmsb.encode("utf-8")
            )
            for tmpt in schema.tmpts
        ]

        swts = [
            SwitchItem(
                item_id=swt.id,
                device_id=device_id,
                cmdget=swt.cmdget.encode("utf-8"),
                cmdset=swt.cmdset.encode("utf-8"),
                cmdclr=swt.cmdclr.encode("utf-8")
            )
            for swt in schema.swts
        ]

        return DeviceConfig(
            device_id=device_id,
            devfile=schema.devfile,
            baud=schema.baud,
            read_timeout_s=schema.read_timeout_s or self.settings.read_timeout_s,
            adcs=tuple(adcs),
            tmpts=tuple(tmpts),
            swts=tuple(swts)
        )
