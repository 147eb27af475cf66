from __future__ import annotations

from fastapi import FastAPI, HTTPException, Query, Response, status
from prometheus_client import REGISTRY

from .api_models import ApplyResourceRequest, ResourceModel
from .controller import Controller, WorkQueue
from .db import NotFoundError, ResourceStore
from .metrics import ReconcileMetrics
from .models import ResourceIdentity
from .reconciler import Reconciler
from .settings import Settings, settings


def create_app(
    store: ResourceStore | None = None,
    metrics: ReconcileMetrics | None = None,
    cfg: Settings = settings,
) -> FastAPI:
    """Wire store, metrics, reconciler and controller behind an HTTP API.

    Without an explicit ``metrics`` the process-wide prometheus REGISTRY is
    used, so this may only be called once per process in that mode.
    """
    store = store or ResourceStore(cfg.db_path, kind=cfg.resource_kind, timeout_s=cfg.store_timeout_s)
    metrics = metrics or ReconcileMetrics(REGISTRY, prefix=cfg.metrics_prefix)
    reconciler = Reconciler(store, metrics, controller_name=cfg.controller_name, log_event=store.log_event)
    controller = Controller(
        store,
        workers=cfg.workers,
        poll_interval_s=cfg.poll_interval_s,
        resync_period_s=cfg.resync_period_s,
        queue=WorkQueue(backoff_base_s=cfg.backoff_base_s, backoff_max_s=cfg.backoff_max_s),
    )
    controller.register_watch(cfg.resource_kind, reconciler.reconcile)

    app = FastAPI(title="NewResource Controller")
    app.state.store = store
    app.state.metrics = metrics
    app.state.reconciler = reconciler
    app.state.controller = controller

    @app.on_event("startup")
    def startup() -> None:
        store.init_db()
        if cfg.run_controller:
            controller.start()

    @app.on_event("shutdown")
    def shutdown() -> None:
        controller.stop()

    @app.get("/healthz")
    def healthz():
        return {"status": "healthy"}

    @app.get("/metrics")
    def metrics_endpoint() -> Response:
        payload, content_type = metrics.render()
        return Response(content=payload, media_type=content_type)

    @app.get("/resources", response_model=list[ResourceModel])
    def list_resources(namespace: str | None = None):
        return [ResourceModel.from_resource(r) for r in store.list_resources(namespace)]

    @app.post("/resources", response_model=ResourceModel)
    def apply_resource(req: ApplyResourceRequest):
        r = store.apply(req.namespace, req.name, req.spec)
        store.log_event("INFO", f"Applied generation {r.generation}", namespace=r.namespace, name=r.name)
        return ResourceModel.from_resource(r)

    @app.get("/resources/{namespace}/{name}", response_model=ResourceModel)
    def get_resource(namespace: str, name: str):
        try:
            return ResourceModel.from_resource(store.get(ResourceIdentity(namespace, name)))
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.delete("/resources/{namespace}/{name}")
    def delete_resource(namespace: str, name: str):
        try:
            store.delete(ResourceIdentity(namespace, name))
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        store.log_event("INFO", "Deleted", namespace=namespace, name=name)
        return {"deleted": f"{namespace}/{name}"}

    @app.post("/resources/{namespace}/{name}/reconcile", status_code=status.HTTP_202_ACCEPTED)
    def enqueue_resource(namespace: str, name: str):
        # Level-triggered: enqueueing an unknown identity is harmless.
        controller.queue.add(ResourceIdentity(namespace, name))
        return {"enqueued": f"{namespace}/{name}"}

    @app.get("/events")
    def events(limit: int = Query(100, ge=1, le=1000)):
        return store.latest_events(limit)

    return app
