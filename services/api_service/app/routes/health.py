"""
Health check routes for the API service
"""

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request
import structlog

from shared import __version__

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint; unhealthy unless the database answers"""
    db = getattr(request.app.state, "db", None)
    if db is None or not await db.test_connection():
        logger.error("Health check failed", database="unavailable")
        raise HTTPException(status_code=503, detail="Service unavailable")

    return {
        "service": "api-service",
        "status": "healthy",
        "database": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__
    }
