"""Celery entry points for the periodic Exotel jobs.

Each task builds its own client and runs the coroutine to completion with
``asyncio.run``, so a worker process can stand in for the in-process scheduler.
"""

import asyncio
import logging

from celery import shared_task

from exocall.core.config import settings
from exocall.core.database import SessionLocal
from exocall.services.exophones import sync_exophones
from exocall.services.exotel_client import ExotelClient
from exocall.services.heartbeat import HeartbeatMonitor
from exocall.services.sync import BulkSyncReconciler, bulk_sync_lock

logger = logging.getLogger(__name__)


async def run_heartbeat(manual: bool = False) -> str:
    client = ExotelClient(settings)
    try:
        monitor = HeartbeatMonitor(client, SessionLocal, settings)
        check = await (monitor.run_check() if manual else monitor.scheduled_check())
        return check.status_type if check else "skipped"
    finally:
        await client.aclose()


async def run_bulk_sync(manual: bool = False) -> dict:
    client = ExotelClient(settings)
    try:
        reconciler = BulkSyncReconciler(
            client, SessionLocal, settings, run_lock=bulk_sync_lock(settings)
        )
        result = await reconciler.run(manual=manual)
        if result is None:
            return {"status": "skipped"}
        return {
            "status": result.status,
            "synced": result.synced,
            "errors": result.errors,
            "skipped": result.skipped,
        }
    finally:
        await client.aclose()


async def run_exophone_sync() -> int:
    client = ExotelClient(settings)
    db = SessionLocal()
    try:
        result = await sync_exophones(client, db)
        return result["synced_to_db"]
    finally:
        db.close()
        await client.aclose()


@shared_task(name="exocall.tasks.exotel_heartbeat")
def exotel_heartbeat():
    return asyncio.run(run_heartbeat())


@shared_task(name="exocall.tasks.bulk_call_sync")
def bulk_call_sync():
    return asyncio.run(run_bulk_sync())


@shared_task(
    name="exocall.tasks.sync_exophones",
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 5},
)
def sync_exophones_task(self):
    return asyncio.run(run_exophone_sync())
