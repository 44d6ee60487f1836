from collections import Counter
from typing import Protocol


class MetricsHook(Protocol):
    def record_latency(
        self,
        name: str,
        value_ms: float,
        labels: dict[str, str] | None = None,
    ) -> None: ...

    def increment(
        self,
        name: str,
        value: int = 1,
        labels: dict[str, str] | None = None,
    ) -> None: ...


class NoOpMetricsHook:
    def record_latency(
        self, name: str, value_ms: float, labels: dict[str, str] | None = None
    ) -> None:
        pass

    def increment(
        self, name: str, value: int = 1, labels: dict[str, str] | None = None
    ) -> None:
        pass


class InMemoryMetricsHook:
    """Keeps counters and latencies in process.

    Meant for tests and for callers that export metrics themselves.
    Counters are keyed by name plus sorted labels.
    """

    def __init__(self) -> None:
        self.counters: Counter[tuple[str, tuple[tuple[str, str], ...]]] = Counter()
        self.latencies: dict[str, list[float]] = {}

    def record_latency(
        self, name: str, value_ms: float, labels: dict[str, str] | None = None
    ) -> None:
        self.latencies.setdefault(name, []).append(value_ms)

    def increment(
        self, name: str, value: int = 1, labels: dict[str, str] | None = None
    ) -> None:
        self.counters[(name, tuple(sorted((labels or {}).items())))] += value

    def count(self, name: str, **labels: str) -> int:
        """Total for `name` across every label set containing `labels`."""
        wanted = set(labels.items())
        return sum(
            value
            for (metric, metric_labels), value in self.counters.items()
            if metric == name and wanted <= set(metric_labels)
        )
