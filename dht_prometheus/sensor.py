"""
Sensor readers for DHT temperature/humidity sensors.

A reader owns one physical sensor. read_data() is the only operation that
touches the hardware: it takes the sensor's lock, retries up to max_retries
times and either returns a SensorReading or raises SensorReadError.
"""

import itertools
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from .log import get_logger

MOCK_HARDWARE_ENV = "DHT_PROMETHEUS_MOCK_HARDWARE"

# DHT sensors must not be sampled more often than this (datasheet).
DHT_MIN_READ_INTERVAL = 2.0
# adafruit_dht only reads again once strictly more than the interval has passed.
DHT_READ_INTERVAL_MARGIN = 0.05


class SensorError(Exception):
    """Base class for sensor errors."""


class SensorInitError(SensorError):
    """The sensor could not be set up. Fatal before serving."""


class SensorReadError(SensorError):
    """A read failed. Transient, the next scrape tries again."""


class TemperatureUnit(Enum):
    CELSIUS = "celsius"
    FAHRENHEIT = "fahrenheit"

    @property
    def symbol(self) -> str:
        return "C" if self is TemperatureUnit.CELSIUS else "F"

    def from_celsius(self, value: float) -> float:
        if self is TemperatureUnit.FAHRENHEIT:
            return value * 1.8 + 32
        return value


@dataclass(frozen=True)
class SensorIdentity:
    name: str
    gpio_pin: int
    unit: TemperatureUnit = TemperatureUnit.CELSIUS
    max_retries: int = 3

    @property
    def gpio(self) -> str:
        return f"GPIO{self.gpio_pin}"


@dataclass(frozen=True)
class SensorReading:
    humidity: float
    temperature: float


class SensorReader(ABC):
    """
    Base class for a single sensor.

    Subclasses implement _measure(), one physical attempt. Retrying and
    serializing access to the sensor live here so every variant behaves
    the same way under concurrent scrapes.
    """

    def __init__(
        self,
        identity: SensorIdentity,
        retry_delay: float = 0.0,
        logger: logging.Logger | None = None,
    ):
        if identity.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {identity.max_retries}")
        self._identity = identity
        self._retry_delay = retry_delay
        self._logger = logger or get_logger("sensor")
        self._lock = threading.Lock()

    @property
    def identity(self) -> SensorIdentity:
        return self._identity

    @property
    def name(self) -> str:
        return self._identity.name

    @property
    def unit(self) -> str:
        return self._identity.unit.symbol

    @property
    def gpio(self) -> str:
        return self._identity.gpio

    @abstractmethod
    def _measure(self) -> tuple[float, float]:
        """
        Perform one read attempt.

        Returns:
            (humidity, temperature) with temperature in the configured unit

        Raises:
            SensorReadError: If this attempt failed
        """

    def read_data(self) -> SensorReading:
        """
        Read humidity and temperature, retrying up to max_retries times.

        Raises:
            SensorReadError: If every attempt failed
        """
        attempts = self._identity.max_retries
        with self._lock:
            last_error: SensorReadError | None = None
            for attempt in range(1, attempts + 1):
                try:
                    humidity, temperature = self._measure()
                except SensorReadError as e:
                    last_error = e
                    self._logger.debug(
                        f"Read attempt {attempt}/{attempts} failed for sensor "
                        f"'{self.name}' ({self.gpio}): {e}"
                    )
                    if attempt < attempts and self._retry_delay > 0:
                        time.sleep(self._retry_delay)
                    continue

                self._logger.debug(
                    f"Sensor '{self.name}' ({self.gpio}): humidity={humidity} "
                    f"temperature={temperature}{self.unit}"
                )
                return SensorReading(humidity=humidity, temperature=temperature)

        self._logger.error(
            f"Failed to read sensor '{self.name}' ({self.gpio}) "
            f"after {attempts} attempt(s): {last_error}"
        )
        raise SensorReadError(
            f"sensor '{self.name}' failed after {attempts} attempt(s)"
        ) from last_error

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, gpio={self.gpio!r})"


class DHTSensor(SensorReader):
    """DHT11/DHT21/DHT22 sensor on a GPIO pin, read through adafruit_dht."""

    MODELS = {
        "dht11": "DHT11",
        "dht21": "DHT21",
        "dht22": "DHT22",
        "am2302": "DHT22",
    }

    def __init__(
        self,
        identity: SensorIdentity,
        model: str = "dht22",
        retry_delay: float = DHT_MIN_READ_INTERVAL,
        use_pulseio: bool = True,
        logger: logging.Logger | None = None,
    ):
        super().__init__(identity, retry_delay=retry_delay, logger=logger)
        if model not in self.MODELS:
            raise SensorInitError(f"Unknown sensor model '{model}' for sensor '{identity.name}'")
        self.model = model
        self._last_access: float | None = None

        self._logger.info(f"Initializing {model.upper()} sensor '{identity.name}' on {identity.gpio}")
        # Blinka raises on import when the board is not supported, so the
        # driver is only loaded for real hardware.
        try:
            import adafruit_dht
            import board

            pin = getattr(board, f"D{identity.gpio_pin}")
            device_class = getattr(adafruit_dht, self.MODELS[model])
            self._device = device_class(pin, use_pulseio=use_pulseio)
        except Exception as e:
            raise SensorInitError(
                f"Failed to initialize sensor '{identity.name}' on {identity.gpio}: {e}"
            ) from e

    def _wait_for_sensor(self) -> None:
        # Within the interval the driver returns its last good values
        # without touching the bus, so every attempt waits it out.
        if self._last_access is None:
            return
        remaining = DHT_MIN_READ_INTERVAL - (time.monotonic() - self._last_access)
        if remaining > 0:
            time.sleep(remaining + DHT_READ_INTERVAL_MARGIN)

    def _measure(self) -> tuple[float, float]:
        self._wait_for_sensor()
        try:
            temperature = self._device.temperature
            humidity = self._device.humidity
        except (RuntimeError, OSError) as e:
            raise SensorReadError(str(e)) from e
        finally:
            self._last_access = time.monotonic()

        if temperature is None or humidity is None:
            raise SensorReadError("sensor returned no data")
        return float(humidity), self._identity.unit.from_celsius(float(temperature))

    def close(self) -> None:
        self._device.exit()


class MockSensor(SensorReader):
    """
    Sensor that replays scripted outcomes instead of touching hardware.

    Each attempt takes the next item of the script (cycling): a
    (humidity, temperature) pair is returned, an exception is raised
    as a failed attempt.
    """

    def __init__(
        self,
        identity: SensorIdentity,
        script: Iterable[tuple[float, float] | Exception] | None = None,
        retry_delay: float = 0.0,
        logger: logging.Logger | None = None,
    ):
        super().__init__(identity, retry_delay=retry_delay, logger=logger)
        if script is None:
            script = [(50.0, identity.unit.from_celsius(21.0))]
        script = list(script)
        if not script:
            raise ValueError("script must not be empty")
        self._script = itertools.cycle(script)
        self.attempts = 0

    def _measure(self) -> tuple[float, float]:
        self.attempts += 1
        outcome = next(self._script)
        if isinstance(outcome, SensorReadError):
            raise outcome
        if isinstance(outcome, Exception):
            raise SensorReadError(str(outcome)) from outcome
        humidity, temperature = outcome
        return float(humidity), float(temperature)


def create_sensor(config, mock: bool = False, logger: logging.Logger | None = None) -> SensorReader:
    """
    Create a reader for a sensor configuration.

    Args:
        config: SensorConfig from the configuration file
        mock: Return a MockSensor instead of real hardware
        logger: Logger for the reader

    Raises:
        SensorInitError: If the hardware sensor cannot be initialized
    """
    identity = config.identity()
    if mock or os.getenv(MOCK_HARDWARE_ENV, "0") == "1":
        return MockSensor(identity, logger=logger)

    return DHTSensor(
        identity,
        model=config.model,
        retry_delay=config.retry_delay,
        use_pulseio=config.use_pulseio,
        logger=logger,
    )
