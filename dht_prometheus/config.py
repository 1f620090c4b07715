"""
Configuration loading for the exporter.

The configuration is a YAML file named dht-prometheus-exporter.yml, looked up
in /etc, the user's home directory and the working directory. Both the
multi-sensor layout (a "sensors" list) and the older single-sensor layout
(name/gpio_pin/... at the top level) are accepted.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .log import LEVELS
from .sensor import DHT_MIN_READ_INTERVAL, DHTSensor, SensorIdentity, TemperatureUnit

CONFIG_FILENAME = "dht-prometheus-exporter.yml"

DEFAULT_LISTEN_PORT = 8080
DEFAULT_MAX_RETRIES = 3

SENSOR_KEYS = {
    "name",
    "gpio_pin",
    "model",
    "max_retries",
    "temperature_unit",
    "retry_delay",
    "use_pulseio",
}


class ConfigError(Exception):
    """Exception raised for configuration errors."""


def default_search_paths() -> list[Path]:
    return [
        Path("/etc") / CONFIG_FILENAME,
        Path(os.path.expanduser("~")) / CONFIG_FILENAME,
        Path.cwd() / CONFIG_FILENAME,
    ]


@dataclass
class SensorConfig:
    """Configuration of one sensor."""

    name: str
    gpio_pin: int
    model: str = "dht22"
    max_retries: int = DEFAULT_MAX_RETRIES
    temperature_unit: TemperatureUnit = TemperatureUnit.CELSIUS
    retry_delay: float = DHT_MIN_READ_INTERVAL
    use_pulseio: bool = True

    @classmethod
    def from_dict(cls, data: Any, index: int = 0) -> "SensorConfig":
        where = f"sensors[{index}]"
        if not isinstance(data, dict):
            raise ConfigError(f"{where}: expected a mapping, got {type(data).__name__}")

        unknown = set(data) - SENSOR_KEYS
        if unknown:
            raise ConfigError(f"{where}: unknown keys: {', '.join(sorted(unknown))}")

        name = data.get("name")
        if not name or not isinstance(name, str):
            raise ConfigError(f"{where}: 'name' is required")
        where = f"sensor '{name}'"

        if "gpio_pin" not in data:
            raise ConfigError(f"{where}: 'gpio_pin' is required")
        gpio_pin = _as_int(data["gpio_pin"], f"{where}: gpio_pin")
        if gpio_pin < 0:
            raise ConfigError(f"{where}: gpio_pin must not be negative")

        max_retries = _as_int(data.get("max_retries", DEFAULT_MAX_RETRIES), f"{where}: max_retries")
        if max_retries < 1:
            raise ConfigError(f"{where}: max_retries must be at least 1")

        unit_value = str(data.get("temperature_unit", "celsius")).lower()
        try:
            unit = TemperatureUnit(unit_value)
        except ValueError:
            raise ConfigError(
                f"{where}: temperature_unit must be 'celsius' or 'fahrenheit', got '{unit_value}'"
            ) from None

        model = str(data.get("model", "dht22")).lower()
        if model not in DHTSensor.MODELS:
            raise ConfigError(
                f"{where}: model must be one of {', '.join(DHTSensor.MODELS)}, got '{model}'"
            )

        try:
            retry_delay = float(data.get("retry_delay", DHT_MIN_READ_INTERVAL))
        except (TypeError, ValueError):
            raise ConfigError(f"{where}: retry_delay must be a number") from None
        if retry_delay < 0:
            raise ConfigError(f"{where}: retry_delay must not be negative")

        return cls(
            name=name,
            gpio_pin=gpio_pin,
            model=model,
            max_retries=max_retries,
            temperature_unit=unit,
            retry_delay=retry_delay,
            use_pulseio=bool(data.get("use_pulseio", True)),
        )

    @property
    def gpio(self) -> str:
        return f"GPIO{self.gpio_pin}"

    def identity(self) -> SensorIdentity:
        return SensorIdentity(
            name=self.name,
            gpio_pin=self.gpio_pin,
            unit=self.temperature_unit,
            max_retries=self.max_retries,
        )


@dataclass
class Config:
    """Exporter configuration."""

    sensors: list[SensorConfig] = field(default_factory=list)
    listen_address: str = ""
    listen_port: int = DEFAULT_LISTEN_PORT
    log_level: str = "info"
    mock_hardware: bool = False
    skip_failed_sensors: bool = False
    process_metrics: bool = True
    path: Path | None = None

    @classmethod
    def from_dict(cls, data: Any, path: Path | None = None) -> "Config":
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")

        if "sensors" in data:
            raw_sensors = data["sensors"]
            if not isinstance(raw_sensors, list):
                raise ConfigError("'sensors' must be a list")
        elif "name" in data or "gpio_pin" in data:
            # Single-sensor layout
            raw_sensors = [{key: data[key] for key in SENSOR_KEYS if key in data}]
        else:
            raw_sensors = []

        sensors = [SensorConfig.from_dict(item, i) for i, item in enumerate(raw_sensors)]

        listen_port = _as_int(data.get("listen_port", DEFAULT_LISTEN_PORT), "listen_port")
        if not 1 <= listen_port <= 65535:
            raise ConfigError(f"listen_port must be between 1 and 65535, got {listen_port}")

        config = cls(
            sensors=sensors,
            listen_address=str(data.get("listen_address") or ""),
            listen_port=listen_port,
            log_level=str(data.get("log_level", "info")),
            mock_hardware=bool(data.get("mock_hardware", False)),
            skip_failed_sensors=bool(data.get("skip_failed_sensors", False)),
            process_metrics=bool(data.get("process_metrics", True)),
            path=path,
        )
        config.validate()
        return config

    def validate(self) -> None:
        """
        Check cross-sensor constraints.

        Raises:
            ConfigError: If no sensor is configured, or names or pins repeat
        """
        if not self.sensors:
            raise ConfigError("No sensors configured")

        names: set[str] = set()
        pins: dict[int, str] = {}
        for sensor in self.sensors:
            if sensor.name in names:
                raise ConfigError(f"Duplicate sensor name '{sensor.name}'")
            names.add(sensor.name)
            if sensor.gpio_pin in pins:
                raise ConfigError(
                    f"Sensors '{pins[sensor.gpio_pin]}' and '{sensor.name}' "
                    f"both use {sensor.gpio}"
                )
            pins[sensor.gpio_pin] = sensor.name

    def warnings(self) -> list[str]:
        result = []
        if self.log_level.strip().lower() not in LEVELS:
            result.append(f"Unknown log level '{self.log_level}', 'info' will be used")
        return result


def _as_int(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{what} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{what} must be an integer, got {value!r}") from None


def find_config_file(search_paths: list[Path] | None = None) -> Path:
    if search_paths is None:
        search_paths = default_search_paths()
    for candidate in search_paths:
        if candidate.is_file():
            return candidate
    tried = ", ".join(str(p) for p in search_paths)
    raise ConfigError(f"Configuration file not found (tried: {tried})")


def load_config(path: str | Path | None = None) -> Config:
    """
    Load and validate the configuration.

    Args:
        path: Configuration file (searched in the default locations if None)

    Raises:
        ConfigError: If the file cannot be read, parsed or validated
    """
    path = Path(path) if path is not None else find_config_file()
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse configuration {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read configuration {path}: {e}") from e

    return Config.from_dict(data, path=path)
