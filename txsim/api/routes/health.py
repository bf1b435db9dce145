"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from txsim.core.config import get_settings
from txsim.host.recording import RecordingHost

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Quick liveness check."""
    return {"status": "healthy", "service": "txsim"}


@router.get("/health/ready")
async def readiness_check() -> dict:
    """Readiness: a host can be created and RPC endpoints are configured."""
    settings = get_settings()
    budget = RecordingHost(settings).budget()
    return {
        "status": "ready",
        "checks": {
            "host": {"status": "up", "budget": str(budget)},
            "rpc": {"status": "configured" if settings.rpc_url_list else "not_configured",
                    "endpoints": len(settings.rpc_url_list)},
        },
    }
