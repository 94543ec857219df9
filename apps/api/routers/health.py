"""Health check router — liveness + readiness.

Readiness probes the ledger table through the anon Supabase client with a
short timeout, so a slow database reports ``degraded`` instead of hanging
the probe.
"""

import asyncio

import structlog
from fastapi import APIRouter
from supabase import create_client

from apps.api.core.config import settings
from packages.ledger_engine import __version__ as engine_version

router = APIRouter(tags=["health"])
logger = structlog.get_logger()

SUPABASE_TIMEOUT_SECONDS = 2


@router.get("/health")
async def health_liveness():
    """Liveness probe — returns 200 if the API process is running."""
    return {"status": "healthy", "service": "api"}


def _ping_ledger_table() -> bool:
    client = create_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
    client.table(settings.LEDGER_TABLE).select("id").limit(1).execute()
    return True


@router.get("/health/ready")
async def health_readiness():
    """Readiness probe — checks the ledger store is reachable."""
    status = {
        "status": "healthy",
        "engine_version": engine_version,
        "services": {
            "api": "up",
            "supabase": "unknown",
        },
    }

    if settings is None:
        status["services"]["supabase"] = "unconfigured"
        status["status"] = "degraded"
        return status

    try:
        loop = asyncio.get_running_loop()
        await asyncio.wait_for(
            loop.run_in_executor(None, _ping_ledger_table),
            timeout=SUPABASE_TIMEOUT_SECONDS,
        )
        status["services"]["supabase"] = "up"
    except asyncio.TimeoutError:
        status["services"]["supabase"] = "timeout"
        status["status"] = "degraded"
        logger.warning("supabase_health_timeout", timeout_s=SUPABASE_TIMEOUT_SECONDS)
    except Exception as e:
        status["services"]["supabase"] = "down"
        status["status"] = "degraded"
        logger.warning("supabase_health_failed", error=str(e))

    return status
