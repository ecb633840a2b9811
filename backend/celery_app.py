from celery import Celery
from exocall.core.config import settings

celery_app = Celery(
    "exocall",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["exocall.tasks"],
)

celery_app.conf.beat_schedule = {
    "exotel-heartbeat": {
        "task": "exocall.tasks.exotel_heartbeat",
        "schedule": float(settings.exotel_heartbeat_interval_seconds),
    },
    "bulk-call-sync": {
        "task": "exocall.tasks.bulk_call_sync",
        "schedule": float(settings.exotel_sync_interval_minutes * 60),
    },
    "sync-exophones": {
        "task": "exocall.tasks.sync_exophones",
        "schedule": float(settings.exophone_sync_interval_hours * 3600),
    },
}
