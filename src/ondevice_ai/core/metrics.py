"""
In-process metrics collector. No external dependencies.

Counters, rolling-window histograms and gauges, keyed by name plus
optional labels. ``snapshot()`` feeds the /v1/health endpoint.

Usage:
    from ondevice_ai.core.metrics import metrics

    metrics.inc("probe.results", labels={"capability": "generate", "status": "available"})
    metrics.observe("generation.latency_ms", 412.0, labels={"mode": "one_shot"})
    metrics.gauge_set("stream.active", 1)
"""

from __future__ import annotations

import time
from collections import defaultdict


class MetricsCollector:
    """In-process metrics collector — counters, histograms, gauges."""

    # Rolling window size for histograms
    HISTOGRAM_MAX_SAMPLES = 1000

    _instance: "MetricsCollector | None" = None

    @classmethod
    def get(cls) -> "MetricsCollector":
        """Return the process-wide singleton."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._histograms: dict[str, list[float]] = defaultdict(list)
        self._gauges: dict[str, float] = defaultdict(float)
        self._started_at: float = time.time()

    def inc(self, name: str, value: int = 1, labels: dict | None = None) -> None:
        """Increment a counter."""
        self._counters[self._key(name, labels)] += value

    def counter(self, name: str, labels: dict | None = None) -> int:
        return self._counters.get(self._key(name, labels), 0)

    def observe(self, name: str, value: float, labels: dict | None = None) -> None:
        """Record a single observation (e.g. latency in ms).

        Oldest sample is dropped once HISTOGRAM_MAX_SAMPLES is reached.
        """
        samples = self._histograms[self._key(name, labels)]
        samples.append(value)
        if len(samples) > self.HISTOGRAM_MAX_SAMPLES:
            samples.pop(0)

    def gauge_set(self, name: str, value: float, labels: dict | None = None) -> None:
        self._gauges[self._key(name, labels)] = value

    def snapshot(self) -> dict:
        """Counters, gauges and histogram summaries as a JSON-able dict."""
        histograms: dict[str, dict] = {}
        for key, samples in self._histograms.items():
            if not samples:
                continue
            sorted_s = sorted(samples)
            n = len(sorted_s)
            histograms[key] = {
                "count": n,
                "min": sorted_s[0],
                "max": sorted_s[-1],
                "p50": sorted_s[n // 2],
                "p95": sorted_s[min(int(n * 0.95), n - 1)],
            }

        return {
            "uptime_seconds": round(time.time() - self._started_at, 1),
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "histograms": histograms,
        }

    def reset(self) -> None:
        self._counters.clear()
        self._histograms.clear()
        self._gauges.clear()

    def _key(self, name: str, labels: dict | None) -> str:
        """Build a metric key, e.g. "stream.completed{reason=cancelled}"."""
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"


# Process-wide singleton; import this directly
metrics = MetricsCollector.get()
