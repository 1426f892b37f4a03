"""Telemetry backends for gateway observability.

Provides both in-memory (for testing) and Prometheus (for production) backends.
"""

from wagateway.telemetry.base import TelemetryPort
from wagateway.telemetry.inmemory import InMemoryTelemetry
from wagateway.telemetry.prometheus import PrometheusTelemetry

__all__ = [
    "TelemetryPort",
    "InMemoryTelemetry",
    "PrometheusTelemetry",
]
