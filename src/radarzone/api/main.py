from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

import httpx
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from ..core.config import Config, load_config
from ..core.dwell import DwellState
from ..core.errors import PermissionDenied, StorageError
from ..core.geofence import Coordinate
from ..core.points import PointDataset
from ..core.publisher import RecordPublisher
from ..core.records import RecordStore
from ..core.scheduler import AsyncioScheduler
from ..core.session import MonitoringSession
from ..core.storage import TOKEN_KEY, KeyValueStore
from ..utils.log import setup_logging

logger = logging.getLogger(__name__)

# -------------------- Pydantic schemas --------------------


class LocationIn(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    timestamp: datetime | None = None


class DeniedIn(BaseModel):
    message: str | None = None


class CredentialIn(BaseModel):
    token: str = Field(..., min_length=1)


class DwellOut(BaseModel):
    is_in_circle: bool
    accumulated_seconds: int
    state: DwellState
    best_seconds: int | None = None
    halted: str | None = None
    # verbose mode only
    distance_m: float | None = None


class RecordOut(BaseModel):
    best_seconds: int | None


class PointOut(BaseModel):
    latitude: float
    longitude: float


# -------------------- App factory --------------------


def create_app(cfg: Config, transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    """
    Build the API around one monitoring session.
    `transport` replaces the outgoing HTTP transport (record endpoint and dataset).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(os.getenv("LOG_LEVEL", "INFO"))
        store = KeyValueStore(cfg.storage_path)
        client = httpx.AsyncClient(timeout=cfg.api_timeout_sec, transport=transport)
        records = RecordStore(store, RecordPublisher(store, client, cfg.api_base_url))
        records.load()
        app.state.store = store
        app.state.records = records
        app.state.points = PointDataset(store, client)
        app.state.session = MonitoringSession(
            cfg.zone(),
            records,
            AsyncioScheduler(),
            tick_sec=cfg.dwell_tick_sec,
            grace_ms=cfg.dwell_grace_ms,
        )
        logger.info("Monitoring zone %s r=%sm", (cfg.gf_lat0, cfg.gf_lon0), cfg.gf_radius_m)
        yield
        app.state.session.stop()
        await app.state.session.drain()
        await client.aclose()

    app = FastAPI(title="radarzone - dwell time tracker", lifespan=lifespan)

    def _status(session: MonitoringSession) -> DwellOut:
        snap = session.timer.snapshot()
        return DwellOut(
            is_in_circle=snap.is_in_circle,
            accumulated_seconds=snap.accumulated_seconds,
            state=snap.state,
            best_seconds=session.records.best_seconds,
            halted=session.halted,
            distance_m=session.last_distance_m if cfg.api_alarm_verbose else None,
        )

    # -------------------- Endpoints --------------------

    @app.get("/health")
    def health():
        return {
            "ok": True,
            "mode": "verbose" if cfg.api_alarm_verbose else "minimal",
            "geofence": {
                "lat0": cfg.gf_lat0,
                "lon0": cfg.gf_lon0,
                "radius_m": cfg.gf_radius_m,
                "grace_ms": cfg.dwell_grace_ms,
            },
        }

    @app.post("/location", response_model=DwellOut)
    async def location(inp: LocationIn):
        session: MonitoringSession = app.state.session
        try:
            session.feed(Coordinate(inp.lat, inp.lon))
        except PermissionDenied as e:
            raise HTTPException(status_code=409, detail=e.message) from e
        return _status(session)

    @app.post("/location/permission-denied", response_model=DwellOut)
    async def permission_denied(inp: DeniedIn | None = None):
        session: MonitoringSession = app.state.session
        session.deny(inp.message if inp else None)
        return _status(session)

    @app.get("/status", response_model=DwellOut)
    async def status():
        return _status(app.state.session)

    @app.get("/record", response_model=RecordOut)
    async def record():
        return RecordOut(best_seconds=app.state.records.best_seconds)

    @app.put("/credential", status_code=204)
    async def credential(inp: CredentialIn):
        try:
            app.state.store.set(TOKEN_KEY, inp.token)
        except StorageError as e:
            logger.error("Could not store credential: %s", e)
            raise HTTPException(status_code=503, detail="storage unavailable") from e

    @app.get("/points", response_model=list[PointOut])
    async def points(lat: float | None = None, lon: float | None = None, radius_m: float | None = None):
        dataset: PointDataset = app.state.points
        pts = dataset.points or await dataset.load(cfg.dataset_url)
        if lat is not None and lon is not None:
            try:
                center = Coordinate(lat, lon)
            except ValueError as e:
                raise HTTPException(status_code=422, detail=str(e)) from e
            pts = dataset.near(center, radius_m if radius_m is not None else cfg.dataset_near_radius_m)
        return [PointOut(**p.to_dict()) for p in pts]

    @app.delete("/storage", status_code=204)
    async def clear_storage():
        try:
            app.state.store.clear()
        except StorageError as e:
            logger.error("Could not clear storage: %s", e)
            raise HTTPException(status_code=503, detail="storage unavailable") from e
        app.state.records.clear()
        app.state.points.clear()
        logger.info("Storage cleared")

    return app


CFG_PATH = Path(os.getenv("RADARZONE_CONFIG", "configs/config.json"))
cfg: Config = load_config(CFG_PATH) if CFG_PATH.exists() else Config({})

app = create_app(cfg)
