"""Request metrics — counters and rolling response times, reported every 10s."""

from thypress.observability.metrics import MetricsSnapshot, RequestMetrics, report_periodically

__all__ = ["MetricsSnapshot", "RequestMetrics", "report_periodically"]
