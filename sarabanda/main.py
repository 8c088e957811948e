"""
FastAPI application: entry point
=================================

Role
----
- Build the app: CORS for the local front-end, operator + display routers.
- Open the data directory (the synchronization origin), migrate the persisted
  slots and keep one `SessionEngine` (operator) and one `DisplayView`
  (snapshots) on `app.state`.
- Start the reconciliation polls on startup and cancel them on shutdown.

Notes
-----
- `create_app(data_dir=...)` lets tests and scripts point at another origin.
- The CORS middleware must be added BEFORE the routers are included.
"""
import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sarabanda.config.settings import settings
from sarabanda.routes.display import router as display_router
from sarabanda.routes.health import router as health_router
from sarabanda.routes.operator import router as operator_router
from sarabanda.services.display_view import DisplayView
from sarabanda.services.session_engine import SessionEngine
from sarabanda.services.state_channel import ChannelStore

logger = logging.getLogger(__name__)


def create_app(data_dir: Optional[Path | str] = None) -> FastAPI:
    logging.basicConfig(level=settings.LOG_LEVEL)

    app = FastAPI(title=settings.APP_NAME)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = ChannelStore(data_dir or settings.DATA_DIR)
    engine = SessionEngine(store=store)
    engine.load()
    app.state.store = store
    app.state.engine = engine
    app.state.display = DisplayView(store)

    app.include_router(operator_router)
    app.include_router(display_router)
    app.include_router(health_router)

    @app.get("/")
    async def root():
        """Basic ping."""
        return {"ok": True, "service": "sarabanda"}

    @app.on_event("startup")
    async def start_sync():
        engine.start()
        app.state.display.start()
        logger.info("Sync started", extra={"data_dir": str(store.root)})

    @app.on_event("shutdown")
    async def stop_sync():
        await app.state.display.aclose()
        await engine.stop()

    return app


app = create_app()
