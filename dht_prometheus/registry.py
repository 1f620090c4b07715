"""
Registry that aggregates the per-sensor collectors.

SensorRegistry is registered as a single collector in its own
prometheus_client CollectorRegistry. On every scrape it asks all sensor
collectors for samples in parallel and merges them into one metric family
per metric name, so the exposition has one HELP/TYPE pair per metric.
"""

import logging
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor

from prometheus_client import (
    CollectorRegistry,
    GCCollector,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)
from prometheus_client.metrics_core import Metric

from .collector import DHTCollector, MetricDescriptor
from .log import get_logger


class SensorRegistry:
    """Owns the sensor collectors and serializes their metrics."""

    def __init__(
        self,
        process_metrics: bool = False,
        logger: logging.Logger | None = None,
    ):
        self._logger = logger or get_logger("registry")
        self._collectors: list[DHTCollector] = []
        # metric name -> descriptor, and (metric name, sensor name) pairs in use
        self._descriptors: dict[str, MetricDescriptor] = {}
        self._series: set[tuple[str, str]] = set()

        self.collector_registry = CollectorRegistry(auto_describe=False)
        self.collector_registry.register(self)
        if process_metrics:
            ProcessCollector(registry=self.collector_registry)
            PlatformCollector(registry=self.collector_registry)
            GCCollector(registry=self.collector_registry)

    @property
    def collectors(self) -> tuple[DHTCollector, ...]:
        return tuple(self._collectors)

    def register(self, collector: DHTCollector) -> None:
        """
        Add a sensor collector.

        Raises:
            ValueError: If a registered collector already exposes the same
                metric for the same sensor name, or the same metric name
                with a different label schema
        """
        for descriptor in collector.descriptors:
            known = self._descriptors.get(descriptor.name)
            if known is not None and known.label_names != descriptor.label_names:
                raise ValueError(
                    f"Metric '{descriptor.name}' already registered with labels "
                    f"{known.label_names}, got {descriptor.label_names}"
                )
            if (descriptor.name, collector.name) in self._series:
                raise ValueError(
                    f"Duplicated time series for metric '{descriptor.name}' "
                    f"and sensor '{collector.name}'"
                )

        for descriptor in collector.descriptors:
            self._descriptors.setdefault(descriptor.name, descriptor)
            self._series.add((descriptor.name, collector.name))
        self._collectors.append(collector)
        self._logger.debug(f"Registered collector for sensor '{collector.name}'")

    def describe(self) -> list[Metric]:
        return [descriptor.family() for descriptor in self._descriptors.values()]

    def _collect_one(self, collector: DHTCollector) -> list[Metric]:
        try:
            return list(collector.collect())
        except Exception:
            # One broken sensor must not take the other sensors' series down.
            self._logger.exception(f"Collector for sensor '{collector.name}' failed")
            return []

    def _collect_all(self) -> list[list[Metric]]:
        collectors = list(self._collectors)
        if len(collectors) <= 1:
            return [self._collect_one(collector) for collector in collectors]

        # Different sensors are read in parallel; each reader serializes
        # access to its own pin.
        with ThreadPoolExecutor(
            max_workers=len(collectors), thread_name_prefix="dht-collect"
        ) as pool:
            return list(pool.map(self._collect_one, collectors))

    def collect(self) -> Iterator[Metric]:
        merged: dict[str, Metric] = {}
        for families in self._collect_all():
            for family in families:
                target = merged.get(family.name)
                if target is None:
                    target = merged[family.name] = Metric(
                        family.name, family.documentation, family.type
                    )
                target.samples.extend(family.samples)

        for family in merged.values():
            if family.samples:
                yield family

    def gather_and_serialize(self) -> bytes:
        """Read every sensor and return the Prometheus text exposition."""
        return generate_latest(self.collector_registry)

    def close(self) -> None:
        for collector in self._collectors:
            try:
                collector.close()
            except Exception as e:
                self._logger.warning(f"Failed to close sensor '{collector.name}': {e}")
