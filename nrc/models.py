from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, order=True)
class ResourceIdentity:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ResourceStatus:
    ready: bool = False
    observed_generation: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResourceStatus":
        return cls(
            ready=bool(data.get("ready", False)),
            observed_generation=int(data.get("observed_generation", 0)),
        )


@dataclass(frozen=True)
class ManagedResource:
    """One stored resource: user-owned ``spec`` plus controller-owned ``status``."""

    namespace: str
    name: str
    kind: str
    spec: dict[str, Any] = field(default_factory=dict)
    status: ResourceStatus = field(default_factory=ResourceStatus)
    generation: int = 1
    resource_version: int = 1
    created_at: str = ""
    updated_at: str = ""

    @property
    def identity(self) -> ResourceIdentity:
        return ResourceIdentity(self.namespace, self.name)


@dataclass(frozen=True)
class ReconcileResult:
    """Requeue directive returned by a successful reconcile.

    Failures are raised instead; the dispatcher requeues those with backoff.
    """

    requeue: bool = False
    requeue_after: float | None = None
