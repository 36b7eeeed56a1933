# timesync/routes/health.py
"""
Health check endpoints.
"""

import time

from fastapi import APIRouter, Depends

from timesync.routes.dependencies import get_services
from timesync.services.container import Services

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "meeting-timesync"}


@router.get("/readyz")
async def readyz(services: Services = Depends(get_services)):
    """
    Readiness check. Only storage is required; the language model and the
    calendar source are reported but optional.
    """
    checks = {}
    overall_ok = True

    t0 = time.time()
    try:
        writable = services.store.is_writable()
        checks["storage"] = {
            "ok": writable,
            "latency_ms": round((time.time() - t0) * 1000, 1),
            "path": str(services.store.base_dir),
        }
        overall_ok = overall_ok and writable
    except Exception as e:
        checks["storage"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    checks["ai"] = {"ok": True, "configured": services.ai_client.configured}
    checks["calendar"] = {"ok": True, "configured": services.calendar is not None}

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
