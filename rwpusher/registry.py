"""Snapshot access to a prometheus_client registry."""
import logging
from typing import List

from prometheus_client import CollectorRegistry

from rwpusher.errors import GatherError
from rwpusher.series import MetricFamily

logger = logging.getLogger(__name__)


class RegistryGatherer:
    """Read-only gather interface over a CollectorRegistry."""

    def __init__(self, registry: CollectorRegistry):
        self.registry = registry

    def gather(self) -> List[MetricFamily]:
        """Collect the current families; the registry owns thread safety."""
        try:
            families = [
                MetricFamily(name=metric.name, type=metric.type, samples=list(metric.samples))
                for metric in self.registry.collect()
            ]
        except Exception as e:
            raise GatherError(f"failed to gather metrics: {e}") from e

        logger.debug(f"Gathered {len(families)} metric families")
        return families
