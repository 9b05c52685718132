"""Health check endpoints."""

import logging

from fastapi import APIRouter, Request

from swapagent import __version__

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """Liveness probe."""
    return {"status": "healthy", "service": "swapagent"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Readiness with chain reachability and redacted configuration."""
    settings = request.app.state.settings
    services = request.app.state.services

    status = "healthy"
    chain: dict = {"name": settings.chain_name}
    if services is None:
        status = "starting"
    else:
        try:
            chain["block_number"] = await services.chain.get_block_number()
        except Exception as e:
            logger.warning(f"Chain health check failed: {e}")
            chain["error"] = str(e)
            status = "degraded"

    return {
        "status": status,
        "service": "swapagent",
        "version": __version__,
        "chain": chain,
        "config": settings.get_safe_dict(),
    }
