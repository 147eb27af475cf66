from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from .models import ManagedResource


class ApplyResourceRequest(BaseModel):
    namespace: str = Field("default", min_length=1, max_length=63, description="Namespace (dns-safe)")
    name: str = Field(..., min_length=1, max_length=253, description="Resource name (dns-safe)")
    spec: dict[str, Any] = Field(default_factory=dict, description="Desired state; opaque to the controller")


class ResourceStatusModel(BaseModel):
    ready: bool
    observed_generation: int


class ResourceModel(BaseModel):
    kind: str
    namespace: str
    name: str
    spec: dict[str, Any]
    status: ResourceStatusModel
    generation: int
    resource_version: int
    created_at: str
    updated_at: str

    @classmethod
    def from_resource(cls, r: ManagedResource) -> "ResourceModel":
        return cls(
            kind=r.kind,
            namespace=r.namespace,
            name=r.name,
            spec=r.spec,
            status=ResourceStatusModel(ready=r.status.ready, observed_generation=r.status.observed_generation),
            generation=r.generation,
            resource_version=r.resource_version,
            created_at=r.created_at,
            updated_at=r.updated_at,
        )
