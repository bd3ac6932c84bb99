"""Health check endpoint logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from supportdesk.config.settings import get_settings
from supportdesk.exceptions import CacheUnavailable

if TYPE_CHECKING:
    from supportdesk.collaborators import Collaborators

logger = structlog.get_logger(__name__)


async def check_health(collaborators: Collaborators) -> dict[str, object]:
    """Return application health status with DB and cache probes."""
    settings = get_settings()
    result: dict[str, object] = {
        "status": "healthy",
        "version": "0.1.0",
        "database": "disabled",
        "cache": "connected",
    }

    if settings.use_database:
        result["database"] = "connected"
        try:
            from sqlalchemy import text

            from supportdesk.storage.database import get_engine

            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            logger.warning("health_check_db_failed", error=str(exc))
            result["database"] = "unavailable"
            result["status"] = "degraded"

    try:
        await collaborators.cache.backend.ping()
    except CacheUnavailable as exc:
        # Cache outages degrade latency, not correctness
        logger.warning("health_check_cache_failed", error=str(exc))
        result["cache"] = "unavailable"

    return result
