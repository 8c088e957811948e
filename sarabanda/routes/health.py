"""
Module routes/health.py
Role:
- Liveness endpoint (service name, data directory and current phase).
"""
from fastapi import APIRouter, Request

from sarabanda.config.settings import settings

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health(request: Request):
    """Minimal OK with the configured service name."""
    engine = request.app.state.engine
    return {
        "ok": True,
        "service": settings.APP_NAME,
        "data_dir": str(engine.store.root),
        "phase": engine.status.phase,
    }
