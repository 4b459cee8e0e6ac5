"""Logfire observability configuration for tekken-overlays.

Traces publish fan-out and detail fetches, counts published events and live
connections. ``send_to_logfire="if-token-present"`` keeps it harmless on
machines without a Logfire token.
"""

from typing import Any

import logfire
from logfire import SamplingOptions

_metrics: dict[str, Any] | None = None
_configured = False
_HISTOGRAMS = frozenset({"detail_fetch_latency", "connection_duration"})


def configure_logfire(
    service_name: str = "tekken-overlays",
    environment: str = "development",
    sample_rate: float = 0.5,
) -> None:
    """Configure Logfire observability in the main process.

    Args:
        service_name: Service name for traces
        environment: Environment name (development, production, etc.)
        sample_rate: Head sampling rate (0.0-1.0). Errors always captured.
    """
    global _configured

    if _configured:
        return
    logfire.configure(
        service_name=service_name,
        environment=environment,
        sampling=SamplingOptions(head=sample_rate),
        send_to_logfire="if-token-present",
    )
    # Detail fetches go through httpx
    logfire.instrument_httpx()
    _init_metrics()
    _configured = True


def _init_metrics() -> None:
    """Initialize custom metrics for realtime monitoring."""
    global _metrics
    _metrics = {
        "events_published": logfire.metric_counter(
            "tekken_overlays.events_published",
            unit="1",
            description="Payloads published to display channels",
        ),
        "connections": logfire.metric_up_down_counter(
            "tekken_overlays.connections",
            unit="1",
            description="Live transport connections",
        ),
        "detail_fetch_latency": logfire.metric_histogram(
            "tekken_overlays.detail_fetch_ms",
            unit="ms",
            description="Entity detail fetch latency in milliseconds",
        ),
        "connection_duration": logfire.metric_histogram(
            "tekken_overlays.connection_duration_s",
            unit="s",
            description="How long transport connections stayed open",
        ),
    }


def record_metric(name: str, value: float = 1) -> None:
    """Record a value on a metric if observability is configured."""
    if _metrics is None:
        return
    instrument = _metrics.get(name)
    if instrument is None:
        return
    if name in _HISTOGRAMS:
        instrument.record(value)
    else:
        instrument.add(value)
