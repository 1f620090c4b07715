"""
Prometheus collector for a single DHT sensor.

Every scrape triggers one read_data() call on the sensor. A successful read
yields one temperature and one humidity gauge sample; a failed read yields
nothing, so the series simply has no sample for that scrape.
"""

import logging
import socket
from collections.abc import Iterator
from dataclasses import dataclass

from prometheus_client.core import GaugeMetricFamily

from .log import get_logger
from .sensor import SensorReader, SensorReadError


@dataclass(frozen=True)
class MetricDescriptor:
    name: str
    documentation: str
    label_names: tuple[str, ...]

    def family(self) -> GaugeMetricFamily:
        return GaugeMetricFamily(self.name, self.documentation, labels=self.label_names)


TEMPERATURE = MetricDescriptor(
    "dht_temperature_degree",
    "Temperature degree measured by the sensor",
    ("dht_name", "hostname", "gpio", "unit"),
)

HUMIDITY = MetricDescriptor(
    "dht_humidity_percent",
    "Humidity percent measured by the sensor",
    ("dht_name", "hostname", "gpio"),
)


def resolve_hostname(logger: logging.Logger) -> str:
    try:
        return socket.gethostname()
    except OSError as e:
        logger.warning(f"Failed to get hostname, using empty string: {e}")
        return ""


class DHTCollector:
    """Collects temperature and humidity gauges from one sensor reader."""

    descriptors = (TEMPERATURE, HUMIDITY)

    def __init__(
        self,
        sensor: SensorReader,
        hostname: str | None = None,
        logger: logging.Logger | None = None,
    ):
        self._sensor = sensor
        self._logger = logger or get_logger("collector")
        self._logger.debug(f"Creating collector for sensor '{sensor.name}'")
        # Resolved once; a renamed host keeps the old label until restart.
        self._hostname = hostname if hostname is not None else resolve_hostname(self._logger)

    @property
    def name(self) -> str:
        return self._sensor.name

    @property
    def hostname(self) -> str:
        return self._hostname

    @property
    def sensor(self) -> SensorReader:
        return self._sensor

    def describe(self) -> list[GaugeMetricFamily]:
        return [descriptor.family() for descriptor in self.descriptors]

    def collect(self) -> Iterator[GaugeMetricFamily]:
        try:
            reading = self._sensor.read_data()
        except SensorReadError:
            # Already logged by the reader.
            return

        sensor = self._sensor
        temperature = TEMPERATURE.family()
        temperature.add_metric(
            [sensor.name, self._hostname, sensor.gpio, sensor.unit],
            reading.temperature,
        )
        humidity = HUMIDITY.family()
        humidity.add_metric(
            [sensor.name, self._hostname, sensor.gpio],
            reading.humidity,
        )
        yield temperature
        yield humidity

    def close(self) -> None:
        self._sensor.close()

    def __repr__(self) -> str:
        return f"DHTCollector({self._sensor!r})"
