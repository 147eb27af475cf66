"""Prometheus metrics written by the reconciler.

A single :class:`ReconcileMetrics` is built at process start and handed to the
reconciler. Tests build their own against a fresh ``CollectorRegistry``.
"""
from __future__ import annotations

from enum import Enum

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest


class ReconcileOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    NOT_FOUND = "not_found"


class ErrorKind(str, Enum):
    GET_ERROR = "get_error"
    STATUS_UPDATE_ERROR = "status_update_error"


class MetricsRegistrationError(RuntimeError):
    pass


class ReconcileMetrics:
    """Counters, histogram and gauge for one controller process.

    Registration happens once, in the constructor. A name that is already
    registered in ``registry`` raises :class:`MetricsRegistrationError`.
    """

    def __init__(self, registry: CollectorRegistry | None = None, prefix: str = "newresource"):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.prefix = prefix
        try:
            self.reconcile_total = Counter(
                f"{prefix}_reconcile_total",
                "Total number of reconciliations per controller",
                ["controller", "result"],
                registry=self.registry,
            )
            self.reconcile_duration = Histogram(
                f"{prefix}_reconcile_duration_seconds",
                "Duration of reconciliations in seconds",
                ["controller"],
                registry=self.registry,
            )
            self.reconcile_errors = Counter(
                f"{prefix}_reconcile_errors_total",
                "Total number of reconciliation errors",
                ["controller", "error_type"],
                registry=self.registry,
            )
            # Incremented on every successful reconcile, never decremented:
            # it counts convergences per namespace, not resources currently ready.
            self.resources_ready = Gauge(
                f"{prefix}_resources_ready",
                "Number of NewResource objects with ready status",
                ["namespace"],
                registry=self.registry,
            )
        except ValueError as e:
            raise MetricsRegistrationError(f"Cannot register '{prefix}' metrics: {e}") from e

    def observe_duration(self, controller: str, seconds: float) -> None:
        self.reconcile_duration.labels(controller=controller).observe(seconds)

    def record_outcome(self, controller: str, outcome: ReconcileOutcome) -> None:
        self.reconcile_total.labels(controller=controller, result=outcome.value).inc()

    def record_error(self, controller: str, kind: ErrorKind) -> None:
        self.reconcile_errors.labels(controller=controller, error_type=kind.value).inc()

    def mark_ready(self, namespace: str) -> None:
        self.resources_ready.labels(namespace=namespace).inc()

    def render(self) -> tuple[bytes, str]:
        """Exposition payload and content type for a scrape endpoint."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
