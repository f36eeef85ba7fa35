"""Time-series metrics backend access."""

from clusterbench.services.metrics.client import PrometheusClient, PrometheusRangeView

__all__ = [
    "PrometheusClient",
    "PrometheusRangeView",
]
