"""Prometheus exporter for DHT temperature and humidity sensors."""

__version__ = "0.2.0"
