"""Prometheus metrics, kept in an isolated registry."""

from prometheus_client import CollectorRegistry, Counter, Gauge

CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("requests_total", "Total HTTP requests", registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Total HTTP requests that failed", registry=CUSTOM_REGISTRY)
EXCHANGES = Counter(
    "exchanges_total",
    "Message exchanges by terminal outcome",
    ["outcome"],
    registry=CUSTOM_REGISTRY,
)
HUB_CONNECTIONS = Gauge("hub_connections", "Viewer connections registered with the hub", registry=CUSTOM_REGISTRY)
