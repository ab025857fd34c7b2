from fastapi import APIRouter, Depends

from villages.infrastructure.database import check_database
from villages.infrastructure.realtime import RealtimeServices
from villages.interfaces.api.dependencies import get_realtime_services
from villages.interfaces.api.schemas import HealthRead

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthRead)
def health(realtime: RealtimeServices = Depends(get_realtime_services)) -> HealthRead:
    """Report database reachability; the service stays up while it is degraded."""

    database_ok = check_database()
    return HealthRead(
        status="ok" if database_ok else "degraded",
        database=database_ok,
        realtime=realtime.registry.stats(),
    )
