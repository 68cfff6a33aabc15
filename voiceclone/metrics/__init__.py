"""Metrics interface and provider selection.

Provides a thin metrics interface with a no-op default (NoopMetrics) and an
optional Prometheus implementation controlled by environment variables:

  - OBS_ENABLE_PROMETHEUS=false (default, uses NoopMetrics)
  - PROMETHEUS_PORT=8001
  - PROMETHEUS_HTTP_SERVER=true

Metric names used by the synthesis pipeline are defined here so that every
provider registers the same set.
"""

from __future__ import annotations

import os
import logging
import threading
from typing import Optional, Protocol, runtime_checkable

from .null_metrics import NoopMetrics

logger = logging.getLogger(__name__)

UNKNOWN_TOKENS = "tts_vocab_unknown_tokens_total"
SYNTHESIS_TOTAL = "tts_synthesis_total"
STAGE_SECONDS = "tts_stage_seconds"


@runtime_checkable
class Metrics(Protocol):
    def define_counter(self, name: str, description: str, labels: Optional[list] = None) -> None: ...
    def define_histogram(self, name: str, description: str, labels: Optional[list] = None, buckets: Optional[tuple] = None) -> None: ...
    def inc(self, name: str, value: int = 1, labels: Optional[dict] = None) -> None: ...
    def observe(self, name: str, value: float, labels: Optional[dict] = None) -> None: ...
    def timer(self, name: str, labels: Optional[dict] = None): ...


def register_synthesis_metrics(metrics: Metrics) -> Metrics:
    metrics.define_counter(UNKNOWN_TOKENS, "Tokens absent from the vocabulary (mapped to the fallback id)")
    metrics.define_counter(SYNTHESIS_TOTAL, "Synthesis requests by outcome", labels=["status"])
    metrics.define_histogram(STAGE_SECONDS, "Wall time spent per pipeline stage", labels=["stage"])
    return metrics


# Collectors live in the global prometheus registry, so one provider per process
_prometheus_provider: Optional[Metrics] = None
_provider_lock = threading.Lock()


def get_metrics() -> Metrics:
    """Return a metrics provider selected by ``OBS_ENABLE_PROMETHEUS``.

    The Prometheus provider is created once and shared by every caller in the
    process. Falls back to NoopMetrics with a warning when prometheus-client
    is not installed or the provider cannot start.
    """
    global _prometheus_provider

    if os.getenv("OBS_ENABLE_PROMETHEUS", "false").lower() != "true":
        return register_synthesis_metrics(NoopMetrics())

    with _provider_lock:
        if _prometheus_provider is not None:
            return _prometheus_provider

        try:
            from .prometheus_metrics import PrometheusMetrics

            provider = register_synthesis_metrics(
                PrometheusMetrics(
                    port=int(os.getenv("PROMETHEUS_PORT", "8001")),
                    enable_http_server=os.getenv("PROMETHEUS_HTTP_SERVER", "true").lower() == "true",
                )
            )
        except ImportError as e:
            logger.warning(
                f"📊 Prometheus unavailable, falling back to NoopMetrics: {e}",
                extra={"subsys": "metrics"},
            )
            return register_synthesis_metrics(NoopMetrics())
        except Exception as e:
            logger.warning(
                f"📊 Prometheus initialization failed, falling back to NoopMetrics: {e}",
                extra={"subsys": "metrics"},
            )
            return register_synthesis_metrics(NoopMetrics())

        _prometheus_provider = provider
        logger.info("📊 Prometheus metrics initialized", extra={"subsys": "metrics"})
        return provider


__all__ = [
    "Metrics",
    "NoopMetrics",
    "get_metrics",
    "register_synthesis_metrics",
    "UNKNOWN_TOKENS",
    "SYNTHESIS_TOTAL",
    "STAGE_SECONDS",
]
