from datetime import datetime, timezone

import httpx
from fastapi import APIRouter

from config.settings import settings
from database import db_ping

router = APIRouter(prefix="/health", tags=["System Status"])


@router.get("/")
async def get_system_status(check_frontend: bool = False):
    """
    Live status of the API and its database; with check_frontend=true the
    storefront URL is probed as well.
    """
    db_ok = db_ping()
    status = {
        "status": "OK" if db_ok else "Degraded",
        "database": "Connected" if db_ok else "Unreachable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if check_frontend:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(settings.FRONTEND_URL, timeout=5.0)
            status["frontend"] = "Operational" if response.status_code == 200 else "Degraded"
        except httpx.HTTPError:
            status["frontend"] = "Unreachable"

    return status
