"""Request, error and query metrics over windowed Redis counters."""

from tally.metrics.aggregator import MetricsAggregator
from tally.metrics.errors import ErrorTracker
from tally.metrics.models import ErrorEvent, QueryMetric, RequestMetric
from tally.metrics.queries import QueryAnalytics, QuerySort
from tally.metrics.requests import EndpointSort, RequestMetrics
from tally.metrics.samples import SampleStats, summarize

__all__ = [
    "EndpointSort",
    "ErrorEvent",
    "ErrorTracker",
    "MetricsAggregator",
    "QueryAnalytics",
    "QueryMetric",
    "QuerySort",
    "RequestMetric",
    "RequestMetrics",
    "SampleStats",
    "summarize",
]
