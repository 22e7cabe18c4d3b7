"""
ShipWatch — Main FastAPI Application
Live watch-list of military, Israeli-affiliated and potential arms-carrying vessels
"""

import json
import logging
import sys
import os

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from backend.config import settings
from backend.context import ShipWatchContext
from backend.models import AreaOfInterest, Category, FilterSelection
from backend.projector import render_record
from backend.websocket_manager import ConnectionManager, envelope

# ─── Logging ───────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(name)-20s │ %(levelname)-7s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("shipwatch.main")

ws_manager = ConnectionManager()


def _context() -> ShipWatchContext:
    ctx = getattr(app.state, "context", None)
    if ctx is None:
        raise HTTPException(status_code=503, detail="Stream engine not started")
    return ctx


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: build the engine on startup, tear it down on shutdown."""
    logger.info("═══════════════════════════════════════════════")
    logger.info("  SHIPWATCH — Live Vessel Watch Engine  ")
    logger.info("  Version %s (dialect=%s)", settings.app_version, settings.dialect)
    logger.info("═══════════════════════════════════════════════")

    ctx = ShipWatchContext(settings, render=ws_manager.render)
    app.state.context = ctx
    await ctx.start()

    yield

    logger.info("Shutting down ShipWatch...")
    await ctx.stop()
    app.state.context = None


# ─── FastAPI App ───────────────────────────────────
app = FastAPI(
    title="ShipWatch",
    description="Live vessel watch-list streaming engine",
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── REST Endpoints ───────────────────────────────
@app.get("/")
async def root():
    ctx = _context()
    return {
        "name": "ShipWatch",
        "version": settings.app_version,
        "status": ctx.status_text,
        "ws_clients": ws_manager.connection_count,
        "views_sent": ws_manager.views_sent,
        "views_skipped": ws_manager.views_skipped,
    }


@app.get("/api/vessels")
async def get_vessels(categories: Optional[str] = Query(None), q: str = ""):
    """One-off snapshot; `categories` is a comma-separated subset of the watch categories."""
    ctx = _context()
    try:
        wanted = (
            frozenset(Category(c.strip()) for c in categories.split(",") if c.strip())
            if categories is not None else frozenset(Category)
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    records = ctx.store.snapshot(FilterSelection(wanted=wanted, query=q))
    return {
        "count": len(records),
        "vessels": [render_record(r) for r in records],
    }


@app.get("/api/status")
async def get_status():
    """Subscription state, areas, pipeline counters and store size."""
    return _context().status_report()


@app.put("/api/filter")
async def put_filter(selection: FilterSelection):
    """Replace the active filter and push a fresh view to all clients."""
    ctx = _context()
    await ctx.apply_filter(selection)
    return {"filter": selection.model_dump(mode="json")}


@app.post("/api/area")
async def post_area(area: AreaOfInterest):
    """Report the current map viewport."""
    moved = await _context().change_area(area)
    return {"resubscribed": moved, "bbox": area.as_bbox()}


@app.post("/api/reconnect")
async def post_reconnect():
    """Manual reconnect, bypassing any pending backoff."""
    ok = await _context().reconnect()
    return {"subscribed": ok, "state": _context().controller.state.model_dump(mode="json")}


@app.get("/api/ports")
async def get_ports():
    """Configured quick-jump ports."""
    return {
        name: {"lat": lat, "lon": lon, "zoom": zoom}
        for name, (lat, lon, zoom) in settings.quick_ports.items()
    }


@app.post("/api/jump/{port}")
async def post_jump(port: str):
    """Move the area of interest to a quick-jump port."""
    ctx = _context()
    if port.lower() not in settings.quick_ports:
        raise HTTPException(status_code=404, detail=f"Unknown port: {port}")
    area = await ctx.jump(port)
    return {"port": port.lower(), "bbox": area.as_bbox()}


# ─── WebSocket Endpoint ───────────────────────────
@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for rendering clients: view updates out, UI commands in."""
    ctx = _context()
    await ws_manager.connect(websocket)

    await ws_manager.send_to(websocket, envelope(
        "initial_state", ctx.projector.project(),
        status=ctx.status_text,
        filter=ctx.projector.selection.model_dump(mode="json"),
        ports=sorted(settings.quick_ports),
    ))

    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except ValueError:
                await ws_manager.send_to(websocket, envelope("error", {"error": "Invalid JSON"}))
                continue
            reply = await ctx.handle_command(message)
            await ws_manager.send_to(websocket, reply)
    except WebSocketDisconnect:
        ws_manager.disconnect(websocket)


# ─── Run ───────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "backend.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
    )
