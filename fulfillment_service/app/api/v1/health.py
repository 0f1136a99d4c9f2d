import time
from typing import Any, Dict

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.events import event_status
from ...core.settings import get_settings
from ..deps import DatabaseDep

router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = DatabaseDep) -> Dict[str, Any]:
    """Liveness plus database and event publisher status"""
    settings = get_settings()
    checks: Dict[str, Any] = {}

    db_start = time.time()
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy"}
    except Exception as e:
        checks["database"] = {"status": "unhealthy", "error": str(e)}
    checks["database"]["duration_ms"] = round((time.time() - db_start) * 1000, 2)

    checks["events"] = await event_status()

    return {
        "service": settings.SERVICE_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy"
        if checks["database"]["status"] == "healthy"
        else "unhealthy",
        "checks": checks,
        "timestamp": time.time(),
    }
