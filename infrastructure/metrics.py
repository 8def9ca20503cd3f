"""Simple metrics tracking for Prometheus-compatible /metrics endpoint."""

from typing import Dict

_HELP: Dict[str, str] = {
    "orders_created_total": "Total number of orders created",
    "orders_updated_total": "Total number of orders replaced by an update",
    "orders_deleted_total": "Total number of orders deleted",
    "auth_failures_total": "Total number of rejected logins and tokens",
}


class MetricsCollector:
    """Simple in-memory metrics collector."""

    def __init__(self):
        self._counters: Dict[str, int] = {name: 0 for name in _HELP}

    def increment(self, metric_name: str, value: int = 1) -> None:
        if metric_name in self._counters:
            self._counters[metric_name] += value

    def value(self, metric_name: str) -> int:
        return self._counters.get(metric_name, 0)

    def get_prometheus_text(self) -> str:
        lines = []
        for name, help_text in _HELP.items():
            lines.append(f"# HELP {name} {help_text}")
            lines.append(f"# TYPE {name} counter")
            lines.append(f"{name} {self._counters[name]}")
            lines.append("")
        return "\n".join(lines)


# Global metrics instance
metrics = MetricsCollector()
