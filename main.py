from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException

from nodesim import db
from nodesim.events import DbEventSink
from nodesim.kube_ops import load_client
from nodesim.reconciler import Controller, Reconciler
from nodesim.runtime import RuntimeState
from nodesim.settings import settings

runtime = RuntimeState()
controller: Controller | None = None


def build_controller() -> Controller:
    reconciler = Reconciler(load_client(), sink=DbEventSink())
    return Controller(reconciler, runtime)


@asynccontextmanager
async def lifespan(_: FastAPI):
    global controller
    db.init_db()
    controller = build_controller()
    if settings.run_controller:
        controller.start()
    try:
        yield
    finally:
        controller.stop()


app = FastAPI(title="Node Simulator Reconciler", lifespan=lifespan)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "healthy"}


@app.get("/events")
def list_events(limit: int = 100, simulator: str | None = None) -> list[dict]:
    return db.latest_events(limit=max(1, min(limit, 1000)), simulator=simulator)


@app.get("/reports")
def list_reports(limit: int = 100) -> list[dict]:
    return db.latest_reports(limit=max(1, min(limit, 1000)))


@app.get("/simulators")
def list_simulators() -> list[dict]:
    return [s.as_dict() for s in runtime.list_passes()]


@app.post("/simulators/{namespace}/{name}/reconcile")
def reconcile_now(namespace: str, name: str) -> dict:
    if controller is None:
        raise HTTPException(status_code=503, detail="Controller is not running.")
    return controller.reconcile_key(namespace, name).as_dict()
