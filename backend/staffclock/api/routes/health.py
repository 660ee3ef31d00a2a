from datetime import datetime, timezone
from time import monotonic

from fastapi import APIRouter

from staffclock.core.config import settings

router = APIRouter(prefix="/health", tags=["health"])

_STARTED = monotonic()


@router.get("", summary="Liveness probe")
def healthcheck() -> dict[str, str | float]:
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(monotonic() - _STARTED, 3),
        "environment": settings.env,
    }
