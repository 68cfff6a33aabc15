"""Prometheus-based metrics for synthesis runs."""

from typing import Dict, Optional
import re
import time
from contextlib import contextmanager
import logging

try:
    from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, start_http_server
except ImportError as e:
    raise ImportError(
        "prometheus_client is required for PrometheusMetrics. "
        "Install it with: pip install voiceclone[prometheus]"
    ) from e

logger = logging.getLogger(__name__)


class PrometheusMetrics:
    """Prometheus-backed counters and histograms with an optional scrape endpoint."""

    def __init__(
        self,
        port: int = 8001,
        enable_http_server: bool = True,
        registry: CollectorRegistry = REGISTRY,
    ):
        self.port = port
        self.registry = registry
        self._counters: Dict[str, Counter] = {}
        self._histograms: Dict[str, Histogram] = {}

        if enable_http_server:
            try:
                start_http_server(port, registry=registry)
                logger.info(f"✅ Prometheus HTTP server started on port {port}")
            except OSError as e:
                logger.warning(f"⚠️  Failed to start Prometheus HTTP server: {e}")

    def define_counter(self, name: str, description: str, labels: Optional[list] = None) -> None:
        norm_name = self._normalize_metric_name(name)
        if norm_name not in self._counters:
            self._counters[norm_name] = Counter(
                name=norm_name,
                documentation=description,
                labelnames=labels or [],
                registry=self.registry,
            )
            logger.debug(f"📈 Defined counter: {norm_name}")

    def define_histogram(
        self,
        name: str,
        description: str,
        labels: Optional[list] = None,
        buckets: Optional[tuple] = None,
    ) -> None:
        norm_name = self._normalize_metric_name(name)
        if norm_name not in self._histograms:
            kwargs = {
                "name": norm_name,
                "documentation": description,
                "labelnames": labels or [],
                "registry": self.registry,
            }
            if buckets:
                kwargs["buckets"] = buckets
            self._histograms[norm_name] = Histogram(**kwargs)
            logger.debug(f"📊 Defined histogram: {norm_name}")

    def inc(self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None) -> None:
        counter = self._counters.get(self._normalize_metric_name(name))
        if counter is None:
            logger.warning(f"⚠️  Counter '{name}' not defined")
            return
        if labels:
            counter.labels(**labels).inc(value)
        else:
            counter.inc(value)

    def observe(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        histogram = self._histograms.get(self._normalize_metric_name(name))
        if histogram is None:
            logger.warning(f"⚠️  Histogram '{name}' not defined")
            return
        if labels:
            histogram.labels(**labels).observe(value)
        else:
            histogram.observe(value)

    @contextmanager
    def timer(self, name: str, labels: Optional[Dict[str, str]] = None):
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, time.perf_counter() - start_time, labels)

    @staticmethod
    def _normalize_metric_name(name: str) -> str:
        """Replace characters Prometheus rejects; prefix names that start badly."""
        norm = re.sub(r"[^a-zA-Z0-9_:]", "_", name)
        if not re.match(r"^[a-zA-Z_:]", norm):
            norm = f"m_{norm}"
        return norm
