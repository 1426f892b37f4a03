"""In-memory telemetry backend (tests and ``telemetry.backend = "memory"``)."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from wagateway.telemetry.base import Labels

MetricKey = tuple[str, Labels]


def _key(name: str, labels: Labels) -> MetricKey:
    return name, tuple(sorted(labels))


def _render_key(key: MetricKey) -> str:
    name, labels = key
    if not labels:
        return name
    return name + "{" + ",".join(f"{k}={v}" for k, v in labels) + "}"


@dataclass
class InMemoryTelemetry:
    """Keeps every metric sample in plain dicts keyed by name and sorted labels."""

    counters: dict[MetricKey, int] = field(default_factory=lambda: defaultdict(int))
    gauges: dict[MetricKey, float] = field(default_factory=dict)
    histograms: dict[MetricKey, list[float]] = field(default_factory=lambda: defaultdict(list))

    def incr(self, name: str, value: int = 1, labels: Labels = ()) -> None:
        self.counters[_key(name, labels)] += value

    def gauge(self, name: str, value: float, labels: Labels = ()) -> None:
        self.gauges[_key(name, labels)] = value

    def histogram(self, name: str, value: float, labels: Labels = ()) -> None:
        self.histograms[_key(name, labels)].append(value)

    def get_counter(self, name: str, labels: Labels = ()) -> int:
        return self.counters.get(_key(name, labels), 0)

    def get_gauge(self, name: str, labels: Labels = ()) -> float | None:
        return self.gauges.get(_key(name, labels))

    def get_histogram_values(self, name: str, labels: Labels = ()) -> list[float]:
        return list(self.histograms.get(_key(name, labels), ()))

    def snapshot(self) -> dict[str, Any]:
        """Counters and gauges flattened to ``name{label=value}`` keys."""
        data: dict[str, Any] = {_render_key(key): value for key, value in self.counters.items()}
        data.update({_render_key(key): value for key, value in self.gauges.items()})
        return data

    def reset(self) -> None:
        self.counters.clear()
        self.gauges.clear()
        self.histograms.clear()
