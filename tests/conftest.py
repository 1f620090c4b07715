"""
Pytest configuration and fixtures.
"""

import logging
import sys
import time
import types

import pytest

from dht_prometheus.sensor import MOCK_HARDWARE_ENV, MockSensor, SensorIdentity, TemperatureUnit


@pytest.fixture(autouse=True)
def no_mock_hardware_env(monkeypatch):
    monkeypatch.delenv(MOCK_HARDWARE_ENV, raising=False)


@pytest.fixture
def silent_logger() -> logging.Logger:
    logger = logging.getLogger("dht_prometheus.tests")
    logger.addHandler(logging.NullHandler())
    return logger


@pytest.fixture
def make_sensor(silent_logger):
    """Factory for scripted mock sensors."""

    def factory(name="test-sensor", gpio_pin=4, unit=TemperatureUnit.CELSIUS, max_retries=1, script=None):
        identity = SensorIdentity(name=name, gpio_pin=gpio_pin, unit=unit, max_retries=max_retries)
        return MockSensor(identity, script=script, logger=silent_logger)

    return factory


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeDHTDevice:
    """
    Stands in for adafruit_dht.DHTxx.

    Like the real driver, a bus read only happens when more than 2 seconds
    have passed since the previous one; otherwise the last good values are
    returned. Each bus read consumes one outcome.
    """

    outcomes: list = []

    def __init__(self, pin, use_pulseio=True):
        self.pin = pin
        self.use_pulseio = use_pulseio
        self.exited = False
        self.bus_reads = 0
        self._last_called = 0
        self._temperature = None
        self._humidity = None

    def measure(self):
        if self._last_called == 0 or time.monotonic() - self._last_called > 2.0:
            self._last_called = time.monotonic()
            self.bus_reads += 1
            outcome = FakeDHTDevice.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            self._temperature, self._humidity = outcome

    @property
    def temperature(self):
        self.measure()
        return self._temperature

    @property
    def humidity(self):
        self.measure()
        return self._humidity

    def exit(self):
        self.exited = True


@pytest.fixture
def fake_clock(monkeypatch) -> FakeClock:
    clock = FakeClock()
    monkeypatch.setattr(time, "monotonic", clock.monotonic)
    monkeypatch.setattr(time, "sleep", clock.sleep)
    return clock


@pytest.fixture
def fake_driver(monkeypatch, fake_clock):
    """Install fake board and adafruit_dht modules."""
    board = types.ModuleType("board")
    board.D4 = "D4"
    board.D17 = "D17"
    adafruit_dht = types.ModuleType("adafruit_dht")
    adafruit_dht.DHT11 = FakeDHTDevice
    adafruit_dht.DHT21 = FakeDHTDevice
    adafruit_dht.DHT22 = FakeDHTDevice

    monkeypatch.setitem(sys.modules, "board", board)
    monkeypatch.setitem(sys.modules, "adafruit_dht", adafruit_dht)
    monkeypatch.setattr(FakeDHTDevice, "outcomes", [])
    return FakeDHTDevice
