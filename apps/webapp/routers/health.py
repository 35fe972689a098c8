import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from apps.webapp.dependencies import get_user_service
from core.database.connection import database_status
from core.services import UserService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health(request: Request):
    settings = request.app.state.settings
    pool = getattr(request.app.state, "pool", None)
    if pool is None or pool.closed:
        db_state = "disconnected"
        pool_stats = None
    else:
        db_state = await run_in_threadpool(database_status, pool)
        stats = pool.get_stats()
        pool_stats = {k: stats[k] for k in ("size", "idle", "in_use", "waiting", "max")}
    return {
        "status": "ok" if db_state == "connected" else "degraded",
        "database": db_state,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "pool": pool_stats,
    }


@router.get("/test")
async def test_database(svc: UserService = Depends(get_user_service)):
    result = await run_in_threadpool(svc.directory.ping)
    total = await run_in_threadpool(svc.count_users)
    return {"status": "success", "testResult": result, "totalUsers": total}
