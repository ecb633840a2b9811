import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import redis
from redis.exceptions import ConnectionError, LockError, TimeoutError
from sqlalchemy.orm import Session

from exocall.core.config import Settings
from exocall.models import SyncStatus
from exocall.services.callbacks import VOICE_FIELDS, normalize_payload, save_voice_values
from exocall.services.events import discard_event
from exocall.services.exotel_client import ExotelClient

logger = logging.getLogger(__name__)

SYNC_TYPE = "bulk_call_details"
BULK_SYNC_ORIGIN = "bulk_sync"
DEFAULT_LOOKBACK = timedelta(hours=24)
# Identity fields such as direction and start_time are frozen once a row exists.
BULK_SYNC_FIELDS = (
    "status",
    "end_time",
    "duration",
    "price",
    "answered_by",
    "recording_url",
)
BULK_SYNC_LOCK_KEY = "exocall:bulk_sync"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class SyncResult:
    status: str
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    synced: int = 0
    errors: int = 0
    skipped: int = 0
    error_message: Optional[str] = None


class RunLock:
    """Non-blocking redis lock shared by every process that runs bulk sync.

    Fails open when redis is unreachable, like the login throttle; the
    in-process flag still applies then.
    """

    def __init__(self, redis_url: str, key: str = BULK_SYNC_LOCK_KEY, timeout: int = 3600) -> None:
        self.client = redis.Redis.from_url(redis_url, socket_connect_timeout=1)
        self.key = key
        self.timeout = timeout
        self._held = None

    def acquire(self) -> bool:
        lock = self.client.lock(self.key, timeout=self.timeout, blocking=False)
        try:
            acquired = lock.acquire()
        except (ConnectionError, TimeoutError) as exc:
            logger.warning("Bulk sync lock unavailable, running without it: %s", exc)
            return True
        if acquired:
            self._held = lock
        return bool(acquired)

    def release(self) -> None:
        lock, self._held = self._held, None
        if lock is None:
            return
        try:
            lock.release()
        except LockError as exc:
            logger.warning("Bulk sync lock expired before release: %s", exc)
        except (ConnectionError, TimeoutError) as exc:
            logger.warning("Could not release bulk sync lock: %s", exc)


def bulk_sync_lock(settings: Settings) -> RunLock:
    return RunLock(settings.redis_url, timeout=settings.exotel_sync_interval_minutes * 60)


class BulkSyncReconciler:
    """Pulls call details for the window since the last successful run."""

    def __init__(
        self,
        client: ExotelClient,
        session_factory: Callable[[], Session],
        settings: Settings,
        publish: Callable[[dict], Awaitable[None]] = discard_event,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        run_lock: Optional[RunLock] = None,
    ) -> None:
        self.client = client
        self.session_factory = session_factory
        self.enabled = settings.exotel_sync_enabled
        self.publish = publish
        self.clock = clock
        self.run_lock = run_lock
        self.is_running = False
        if self.enabled:
            logger.info(
                "Bulk sync service initialized, interval %s minutes",
                settings.exotel_sync_interval_minutes,
            )
        else:
            logger.warning("Bulk sync service is disabled")

    async def run(self, manual: bool = False) -> Optional[SyncResult]:
        if not self.enabled and not manual:
            logger.debug("Bulk sync is disabled, skipping")
            return None
        if self.is_running:
            logger.warning("Bulk sync already in progress, skipping this run")
            return None
        if self.run_lock and not self.run_lock.acquire():
            logger.warning("Bulk sync running in another process, skipping this run")
            return None

        self.is_running = True
        window_end = self.clock()
        window_start: Optional[datetime] = None
        try:
            window_start = self._watermark(window_end)
            logger.info(
                "Starting bulk sync from %s to %s", window_start.isoformat(), window_end.isoformat()
            )
            data = await self.client.fetch_bulk_call_details(window_start, window_end)
            calls: List[Dict[str, Any]] = (data or {}).get("Calls") or []
            synced = 0
            errors = 0
            skipped = 0
            for call in calls:
                try:
                    if self._reconcile(call):
                        synced += 1
                    else:
                        skipped += 1
                except Exception:
                    errors += 1
                    logger.exception("Failed to sync call %s", call.get("Sid"))
            self._record(window_end, "success", synced)
            logger.info(
                "Bulk sync completed: %s calls synced, %s skipped, %s failed", synced, skipped, errors
            )
            if synced:
                await self.publish({"type": "sync_completed", "payload": {"synced": synced}})
            return SyncResult("success", window_start, window_end, synced, errors, skipped)
        except Exception as exc:
            logger.exception("Bulk sync failed")
            try:
                self._record(window_end, "failed", 0, str(exc))
            except Exception:
                logger.exception("Failed to record bulk sync failure")
            return SyncResult("failed", window_start, window_end, error_message=str(exc))
        finally:
            self.is_running = False
            if self.run_lock:
                self.run_lock.release()

    def _watermark(self, now: datetime) -> datetime:
        db = self.session_factory()
        try:
            last = last_successful_sync(db, SYNC_TYPE)
        finally:
            db.close()
        if last and last.last_sync_time:
            return as_utc(last.last_sync_time)
        return now - DEFAULT_LOOKBACK

    def _reconcile(self, call: Mapping[str, Any]) -> bool:
        values = normalize_payload(call, VOICE_FIELDS)
        # Bulk reports carry the call id as ``Sid`` only.
        values["call_sid"] = values.get("call_sid") or values.get("sid")
        db = self.session_factory()
        try:
            return save_voice_values(db, values, BULK_SYNC_ORIGIN, BULK_SYNC_FIELDS) is not None
        finally:
            db.close()

    def _record(
        self, at: datetime, status: str, records: int, error: Optional[str] = None
    ) -> SyncStatus:
        db = self.session_factory()
        try:
            row = SyncStatus(
                sync_type=SYNC_TYPE,
                last_sync_time=at,
                status=status,
                records_synced=records,
                error_message=error[:1024] if error else None,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return row
        finally:
            db.close()


def last_successful_sync(db: Session, sync_type: str = SYNC_TYPE) -> Optional[SyncStatus]:
    return (
        db.query(SyncStatus)
        .filter(SyncStatus.sync_type == sync_type, SyncStatus.status == "success")
        .order_by(SyncStatus.last_sync_time.desc(), SyncStatus.id.desc())
        .first()
    )


def last_status(db: Session, sync_type: str = SYNC_TYPE) -> Optional[SyncStatus]:
    return (
        db.query(SyncStatus)
        .filter(SyncStatus.sync_type == sync_type)
        .order_by(SyncStatus.created_at.desc(), SyncStatus.id.desc())
        .first()
    )


def sync_history(db: Session, sync_type: str = SYNC_TYPE, limit: int = 50) -> List[SyncStatus]:
    return (
        db.query(SyncStatus)
        .filter(SyncStatus.sync_type == sync_type)
        .order_by(SyncStatus.created_at.desc(), SyncStatus.id.desc())
        .limit(limit)
        .all()
    )


def sync_stats(db: Session, start: datetime, end: datetime) -> Dict[str, Any]:
    rows = (
        db.query(SyncStatus)
        .filter(SyncStatus.last_sync_time >= start, SyncStatus.last_sync_time <= end)
        .all()
    )
    total = len(rows)
    successful = sum(1 for row in rows if row.status == "success")
    failed = sum(1 for row in rows if row.status == "failed")
    success_rate = (successful / total) * 100 if total else 0.0
    return {
        "total": total,
        "successful": successful,
        "failed": failed,
        "success_rate": round(success_rate, 2),
        "total_records_synced": sum(row.records_synced or 0 for row in rows),
        "start_date": start,
        "end_date": end,
    }
