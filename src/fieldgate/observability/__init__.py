"""Observability helpers for FieldGate."""

from fieldgate.observability.metrics import MetricsRegistry, metrics

__all__ = ["MetricsRegistry", "metrics"]
