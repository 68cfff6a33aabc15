"""No-op metrics implementation that provides safe no-op methods."""

from typing import Optional
import logging

logger = logging.getLogger(__name__)


class NoopMetrics:
    """Metrics provider that does nothing but implements the full interface."""

    def __init__(self):
        logger.debug("📊 Prometheus disabled: using NoopMetrics")

    def define_counter(self, name: str, description: str, labels: Optional[list] = None) -> None:
        pass

    def define_histogram(self, name: str, description: str, labels: Optional[list] = None, buckets: Optional[tuple] = None) -> None:
        pass

    def inc(self, name: str, value: int = 1, labels: Optional[dict] = None) -> None:
        pass

    def observe(self, name: str, value: float, labels: Optional[dict] = None) -> None:
        pass

    def timer(self, name: str, labels: Optional[dict] = None):
        return NoopTimer()


class NoopTimer:
    """No-op timer context manager."""

    def __enter__(self):
        return self

    def __exit__(self, *args):
        pass
