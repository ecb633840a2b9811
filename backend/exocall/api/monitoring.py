from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from exocall.core.database import get_db
from exocall.core.deps import get_bulk_sync, get_heartbeat_monitor, require_admin, require_manager
from exocall.models import User
from exocall.schemas import HealthCheckOut, HealthStats, SyncStats, SyncStatusOut
from exocall.services.audit import log_event
from exocall.services.heartbeat import HeartbeatMonitor, health_history, health_stats, latest_health
from exocall.services.sync import (
    SYNC_TYPE,
    BulkSyncReconciler,
    as_utc,
    last_status,
    sync_history,
    sync_stats,
)

router = APIRouter(prefix="/monitoring", tags=["monitoring"])


def _stats_window(start_date: Optional[datetime], end_date: Optional[datetime], default_days: int):
    end = as_utc(end_date) or datetime.now(timezone.utc)
    start = as_utc(start_date) or end - timedelta(days=default_days)
    if start > end:
        raise HTTPException(status_code=400, detail="start_date must be before end_date")
    return start, end


@router.get("/health/current", response_model=Optional[HealthCheckOut])
def current_health(db: Session = Depends(get_db), user: User = Depends(require_manager)):
    return latest_health(db)


@router.get("/health/history", response_model=List[HealthCheckOut])
def health_check_history(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(require_manager),
):
    return health_history(db, limit, offset)


@router.get("/health/stats", response_model=HealthStats)
def health_check_stats(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_manager),
):
    start, end = _stats_window(start_date, end_date, default_days=1)
    return health_stats(db, start, end)


@router.post("/health/check", response_model=Optional[HealthCheckOut])
async def trigger_health_check(
    monitor: HeartbeatMonitor = Depends(get_heartbeat_monitor),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    check = await monitor.run_check()
    log_event(
        db,
        "health_check",
        "success" if check else "failed",
        user_id=admin.id,
        details={"status_type": check.status_type if check else None},
    )
    return check


@router.get("/sync/status", response_model=Optional[SyncStatusOut])
def current_sync_status(db: Session = Depends(get_db), user: User = Depends(require_manager)):
    return last_status(db, SYNC_TYPE)


@router.get("/sync/history", response_model=List[SyncStatusOut])
def sync_status_history(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    user: User = Depends(require_manager),
):
    return sync_history(db, SYNC_TYPE, limit)


@router.get("/sync/stats", response_model=SyncStats)
def sync_status_stats(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_manager),
):
    start, end = _stats_window(start_date, end_date, default_days=7)
    return sync_stats(db, start, end)


@router.post("/sync/trigger")
async def trigger_sync(
    reconciler: BulkSyncReconciler = Depends(get_bulk_sync),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    result = await reconciler.run(manual=True)
    if result is None:
        return {"status": "skipped", "message": "Bulk sync already in progress"}
    log_event(db, "bulk_sync", result.status, result.error_message or "", user_id=admin.id)
    return {
        "status": result.status,
        "synced": result.synced,
        "errors": result.errors,
        "skipped": result.skipped,
        "window_start": result.window_start,
        "window_end": result.window_end,
    }
