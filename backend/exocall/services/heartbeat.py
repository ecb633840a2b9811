import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from exocall.core.config import Settings
from exocall.models import HealthCheck
from exocall.services.events import discard_event
from exocall.services.exotel_client import ExotelClient

logger = logging.getLogger(__name__)

STATUS_OK = "OK"
STATUS_WARNING = "WARNING"
STATUS_ERROR = "ERROR"
STATUS_UNKNOWN = "UNKNOWN"


def parse_provider_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_flag(value: Any) -> Optional[bool]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes"}


class HeartbeatMonitor:
    """Polls the Exotel Heartbeat API and keeps an append-only history."""

    def __init__(
        self,
        client: ExotelClient,
        session_factory: Callable[[], Session],
        settings: Settings,
        publish: Callable[[dict], Awaitable[None]] = discard_event,
    ) -> None:
        self.client = client
        self.session_factory = session_factory
        self.enabled = settings.exotel_heartbeat_enabled
        self.publish = publish
        if self.enabled:
            logger.info("HeartBeat monitoring service initialized and enabled")
        else:
            logger.warning("HeartBeat monitoring service is disabled")

    async def scheduled_check(self) -> Optional[HealthCheck]:
        if not self.enabled:
            return None
        logger.info("Running scheduled Exophone health check")
        return await self.run_check()

    async def run_check(self) -> Optional[HealthCheck]:
        """Record one health snapshot. Never raises."""
        try:
            health = await self.client.check_heartbeat() or {}
        except Exception as exc:
            logger.error("Health check failed: %s", exc, exc_info=True)
            return self._record_failure(str(exc) or type(exc).__name__)

        status_type = health.get("status_type") or STATUS_UNKNOWN
        try:
            check = self._store(
                HealthCheck(
                    timestamp=parse_provider_timestamp(health.get("timestamp"))
                    or datetime.now(timezone.utc),
                    status_type=status_type,
                    incoming_affected=_as_flag(health.get("incoming_affected")),
                    outgoing_affected=_as_flag(health.get("outgoing_affected")),
                    raw_data=health,
                )
            )
        except Exception as exc:
            logger.exception("Failed to store health check")
            return self._record_failure(str(exc))

        if status_type != STATUS_OK:
            await self.handle_alert(health)
        logger.info("Health check completed: %s", status_type)
        return check

    async def handle_alert(self, health: Dict[str, Any]) -> None:
        # Paging/notification channels are not wired up; the log line and event are the alert.
        logger.warning(
            "Exophone health alert: status=%s incoming_affected=%s outgoing_affected=%s timestamp=%s",
            health.get("status_type"),
            health.get("incoming_affected"),
            health.get("outgoing_affected"),
            health.get("timestamp"),
        )
        try:
            await self.publish({"type": "health_alert", "payload": health})
        except Exception:
            logger.exception("Failed to publish health alert")

    def _record_failure(self, message: str) -> Optional[HealthCheck]:
        try:
            return self._store(
                HealthCheck(
                    timestamp=datetime.now(timezone.utc),
                    status_type=STATUS_ERROR,
                    incoming_affected=None,
                    outgoing_affected=None,
                    raw_data={"error": message},
                )
            )
        except Exception:
            logger.exception("Failed to store health check error")
            return None

    def _store(self, check: HealthCheck) -> HealthCheck:
        db = self.session_factory()
        try:
            db.add(check)
            db.commit()
            db.refresh(check)
            return check
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def latest_health(db: Session) -> Optional[HealthCheck]:
    return db.query(HealthCheck).order_by(HealthCheck.timestamp.desc(), HealthCheck.id.desc()).first()


def health_history(db: Session, limit: int = 100, offset: int = 0) -> List[HealthCheck]:
    return (
        db.query(HealthCheck)
        .order_by(HealthCheck.timestamp.desc(), HealthCheck.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def health_stats(db: Session, start: datetime, end: datetime) -> Dict[str, Any]:
    checks = (
        db.query(HealthCheck)
        .filter(HealthCheck.timestamp >= start, HealthCheck.timestamp <= end)
        .order_by(HealthCheck.timestamp.desc())
        .all()
    )
    total = len(checks)
    ok = sum(1 for check in checks if check.status_type == STATUS_OK)
    errors = sum(1 for check in checks if check.status_type == STATUS_ERROR)
    warnings = sum(1 for check in checks if check.status_type == STATUS_WARNING)
    uptime = (ok / total) * 100 if total else 0.0
    return {
        "total": total,
        "ok": ok,
        "errors": errors,
        "warnings": warnings,
        "uptime": round(uptime, 2),
        "start_date": start,
        "end_date": end,
    }
