"""Health endpoint."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from src.database import get_db_manager
from src.utils.time import now_utc

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    """Database connectivity check"""
    db_ok = get_db_manager().health_check()
    body = {
        "status": "healthy" if db_ok else "unhealthy",
        "database": "connected" if db_ok else "unavailable",
        "timestamp": now_utc().isoformat(),
    }
    if not db_ok:
        logger.error("❌ Health check failed: database unavailable")
        return JSONResponse(status_code=503, content=body)
    return body
