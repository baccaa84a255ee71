"""Prometheus collector exposing TeamCity scrapes as gauge families."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from prometheus_client.core import GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from .aggregation import FrequencyTable, Scrape, run_scrape
from .config import Config
from .errors import ExporterError
from .reasons import ReasonClassifier
from .teamcity_client import TeamCityClient

logger = logging.getLogger(__name__)

NAMESPACE = "teamcity"

QUEUE_LABELS: Tuple[str, ...] = ("reason", "project", "buildId", "pool")
QUEUE_OS_LABELS: Tuple[str, ...] = ("winOk", "linOk", "macOk")
AGENT_LABELS: Tuple[str, ...] = ("pool", "os", "enabled", "authorized", "connected", "project", "busy")


@dataclass(frozen=True)
class MetricDescriptor:
    """Name, help text and label names of one exposed metric family."""

    name: str
    documentation: str
    labels: Tuple[str, ...] = ()

    def family(self) -> GaugeMetricFamily:
        return GaugeMetricFamily(self.name, self.documentation, labels=list(self.labels))


@dataclass(frozen=True)
class MetricDescriptors:
    """The set of metric families exported by one collector."""

    up: MetricDescriptor
    queue_size: MetricDescriptor
    queue_wait: MetricDescriptor
    agent_type: MetricDescriptor
    scrape_duration: MetricDescriptor

    @classmethod
    def create(cls, namespace: str = NAMESPACE, os_flags: bool = True) -> "MetricDescriptors":
        queue_labels = QUEUE_LABELS + QUEUE_OS_LABELS if os_flags else QUEUE_LABELS
        return cls(
            up=MetricDescriptor(f"{namespace}_up", "Was the last query of TeamCity successful"),
            queue_size=MetricDescriptor(f"{namespace}_build_queue_size", "How many builds are in the queue"),
            queue_wait=MetricDescriptor(
                f"{namespace}_build_queue_wait_count",
                "How many builds in queue waiting in queue",
                queue_labels,
            ),
            agent_type=MetricDescriptor(
                f"{namespace}_agent_type_count",
                "How many agents by metadata",
                AGENT_LABELS,
            ),
            scrape_duration=MetricDescriptor(
                f"{namespace}_exporter_scrape_duration_seconds",
                "Time spent querying TeamCity for this scrape",
            ),
        )


class TeamCityCollector(Collector):
    """Custom collector that queries TeamCity on every ``collect`` call.

    Nothing is cached between scrapes; each call builds a fresh ancestry memo
    and fresh frequency tables.
    """

    def __init__(
        self,
        client: TeamCityClient,
        config: Config,
        descriptors: Optional[MetricDescriptors] = None,
    ) -> None:
        self._client = client
        self._config = config
        self._descriptors = descriptors or MetricDescriptors.create(os_flags=config.os_flags)
        self._classify = ReasonClassifier(config.reason_mode, config.default_reason)

    def describe(self) -> List[Metric]:
        d = self._descriptors
        families = [d.up, d.queue_size, d.queue_wait, d.scrape_duration]
        if self._config.collect_agents:
            families.append(d.agent_type)
        return [descriptor.family() for descriptor in families]

    def scrape(self) -> Scrape:
        """Run one scrape; API failures are reported through ``Scrape.up``."""
        try:
            return run_scrape(self._client, self._config, self._classify)
        except ExporterError as exc:
            logger.error("Scrape failed: %s", exc)
            return Scrape(up=False)

    def _table_family(self, descriptor: MetricDescriptor, table: FrequencyTable) -> GaugeMetricFamily:
        family = descriptor.family()
        for label_values, count in table.observations():
            family.add_metric(list(label_values), float(count))
        return family

    def collect(self) -> Iterator[Metric]:
        d = self._descriptors
        started = time.monotonic()
        result = self.scrape()
        duration = time.monotonic() - started

        yield GaugeMetricFamily(d.up.name, d.up.documentation, value=1.0 if result.up else 0.0)
        yield GaugeMetricFamily(
            d.scrape_duration.name,
            d.scrape_duration.documentation,
            value=duration,
        )
        if not result.up:
            return

        yield GaugeMetricFamily(d.queue_size.name, d.queue_size.documentation, value=float(result.queue_size))
        yield self._table_family(d.queue_wait, result.queue_table)
        if result.fleet_table is not None:
            yield self._table_family(d.agent_type, result.fleet_table)

        logger.debug(
            "Collected TeamCity metrics",
            extra={
                "queue_size": result.queue_size,
                "queue_entries": len(result.queue_table),
                "fleet_entries": len(result.fleet_table) if result.fleet_table is not None else 0,
                "duration_seconds": duration,
            },
        )
