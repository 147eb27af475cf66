from __future__ import annotations

import time
from dataclasses import replace
from typing import Callable, Protocol

from .db import NotFoundError, StoreError
from .metrics import ErrorKind, ReconcileMetrics, ReconcileOutcome
from .models import ManagedResource, ReconcileResult, ResourceIdentity, ResourceStatus

EventLogger = Callable[..., None]


class ResourceClient(Protocol):
    def get(self, identity: ResourceIdentity) -> ManagedResource: ...

    def update_status(self, resource: ManagedResource) -> ManagedResource: ...


def _no_log(level: str, message: str, namespace: str | None = None, name: str | None = None) -> None:
    return None


class Reconciler:
    """Drives one resource's status towards its spec.

    Stateless between calls: every invocation re-reads the resource, so it is
    safe to run concurrently for different identities and to repeat for the
    same one. Errors are recorded and re-raised for the dispatcher to requeue.
    """

    def __init__(
        self,
        client: ResourceClient,
        metrics: ReconcileMetrics,
        controller_name: str = "newresource",
        log_event: EventLogger | None = None,
    ):
        self.client = client
        self.metrics = metrics
        self.name = controller_name
        self.log_event = log_event or _no_log

    def reconcile(self, identity: ResourceIdentity) -> ReconcileResult:
        start = time.perf_counter()
        try:
            return self._reconcile(identity)
        finally:
            self.metrics.observe_duration(self.name, time.perf_counter() - start)

    def _log(self, level: str, message: str, identity: ResourceIdentity) -> None:
        # Event rows are a side channel; a failed write must not change the outcome.
        try:
            self.log_event(level, message, namespace=identity.namespace, name=identity.name)
        except StoreError:
            pass

    def _reconcile(self, identity: ResourceIdentity) -> ReconcileResult:
        try:
            resource = self.client.get(identity)
        except NotFoundError:
            # Deleted between notification and fetch.
            self.metrics.record_outcome(self.name, ReconcileOutcome.NOT_FOUND)
            self._log("INFO", "Resource not found, skipping", identity)
            return ReconcileResult()
        except Exception:
            # The dispatcher logs the raised error when it requeues.
            self.metrics.record_error(self.name, ErrorKind.GET_ERROR)
            self.metrics.record_outcome(self.name, ReconcileOutcome.ERROR)
            raise

        desired = replace(resource, status=self.converge(resource))

        try:
            self.client.update_status(desired)
        except Exception:
            self.metrics.record_error(self.name, ErrorKind.STATUS_UPDATE_ERROR)
            self.metrics.record_outcome(self.name, ReconcileOutcome.ERROR)
            raise

        self.metrics.mark_ready(resource.namespace)
        self.metrics.record_outcome(self.name, ReconcileOutcome.SUCCESS)
        if not resource.status.ready:
            self._log("INFO", "Resource became ready", identity)
        return ReconcileResult()

    def converge(self, resource: ManagedResource) -> ResourceStatus:
        """Compute the status to persist for ``resource``.

        Override to apply domain-specific changes; must not modify ``resource``.
        """
        return ResourceStatus(ready=True, observed_generation=resource.generation)
