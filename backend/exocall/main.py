import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx
from alembic import command
from alembic.config import Config
from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from exocall.api import (
    analytics,
    auth,
    exotel,
    health,
    monitoring,
    phone_numbers,
    recordings,
    users,
    webhooks,
)
from exocall.core.config import settings
from exocall.core.database import SessionLocal, engine
from exocall.core.deps import user_from_token
from exocall.services.events import EVENTS_CHANNEL, EventPublisher
from exocall.services.exophones import sync_exophones
from exocall.services.exotel_client import (
    ExotelClient,
    ExotelConfigurationError,
    ExotelRetryExhausted,
)
from exocall.services.exotel_service import ExotelService
from exocall.services.heartbeat import HeartbeatMonitor
from exocall.services.rate_limit import ProviderRateLimiter
from exocall.services.scheduler import PeriodicJob, Scheduler
from exocall.services.sync import BulkSyncReconciler, bulk_sync_lock

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_router = APIRouter(prefix="/api")
for module in (auth, users, exotel, webhooks, monitoring, phone_numbers, recordings, analytics):
    api_router.include_router(module.router)
app.include_router(api_router)
app.include_router(health.router)


@app.exception_handler(ExotelConfigurationError)
async def exotel_configuration_error(request: Request, exc: ExotelConfigurationError) -> JSONResponse:
    logger.error("Exotel configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.exception_handler(httpx.HTTPStatusError)
async def exotel_http_error(request: Request, exc: httpx.HTTPStatusError) -> JSONResponse:
    response = exc.response
    try:
        body = response.json()
    except ValueError:
        body = response.text
    return JSONResponse(
        status_code=response.status_code,
        content={"detail": "Exotel API request failed", "provider_response": body},
    )


@app.exception_handler(ExotelRetryExhausted)
async def exotel_retry_exhausted(request: Request, exc: ExotelRetryExhausted) -> JSONResponse:
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(httpx.RequestError)
async def exotel_transport_error(request: Request, exc: httpx.RequestError) -> JSONResponse:
    logger.error("Exotel transport error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": f"Exotel API unreachable: {exc}"})


@app.on_event("startup")
async def on_startup() -> None:
    await wait_for_database()
    if settings.run_migrations:
        run_migrations()

    events = EventPublisher(settings.redis_url)
    await events.connect()
    client = ExotelClient(settings)
    limiter = ProviderRateLimiter()
    app.state.events = events
    app.state.publish = events.publish
    app.state.exotel_client = client
    app.state.exotel_service = ExotelService(client, limiter, SessionLocal, settings, events.publish)
    app.state.heartbeat_monitor = HeartbeatMonitor(client, SessionLocal, settings, events.publish)
    app.state.bulk_sync = BulkSyncReconciler(
        client, SessionLocal, settings, events.publish, run_lock=bulk_sync_lock(settings)
    )

    scheduler = Scheduler()
    if settings.scheduler_enabled:
        scheduler.add(
            PeriodicJob(
                "heartbeat",
                app.state.heartbeat_monitor.scheduled_check,
                settings.exotel_heartbeat_interval_seconds,
            )
        )
        scheduler.add(
            PeriodicJob(
                "bulk_sync",
                app.state.bulk_sync.run,
                settings.exotel_sync_interval_minutes * 60,
            )
        )
        scheduler.add(
            PeriodicJob(
                "exophone_sync",
                scheduled_exophone_sync,
                settings.exophone_sync_interval_hours * 3600,
            )
        )
        scheduler.start()
    else:
        logger.warning("Background scheduler disabled")
    app.state.scheduler = scheduler


@app.on_event("shutdown")
async def on_shutdown() -> None:
    scheduler: Optional[Scheduler] = getattr(app.state, "scheduler", None)
    if scheduler:
        await scheduler.stop()
    service: Optional[ExotelService] = getattr(app.state, "exotel_service", None)
    if service:
        await service.drain()
    client: Optional[ExotelClient] = getattr(app.state, "exotel_client", None)
    if client:
        await client.aclose()
    events: Optional[EventPublisher] = getattr(app.state, "events", None)
    if events:
        await events.close()


async def wait_for_database(max_attempts: int = 8, delay_seconds: float = 1.5) -> None:
    attempt = 0
    delay = delay_seconds
    while attempt < max_attempts:
        attempt += 1
        try:
            with engine.connect():
                return
        except OperationalError as exc:
            if attempt >= max_attempts:
                logger.error(
                    "Database connection failed after %s attempts.",
                    attempt,
                    exc_info=exc,
                )
                raise
            logger.warning(
                "Database not ready (attempt %s/%s). Retrying in %.1fs.",
                attempt,
                max_attempts,
                delay,
            )
            await asyncio.sleep(delay)
            delay = min(delay * 1.5, 10.0)


def run_migrations() -> None:
    alembic_ini = Path(__file__).resolve().parents[1] / "alembic.ini"
    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(alembic_ini.parent / "alembic"))
    config.set_main_option("sqlalchemy.url", settings.database_url)
    command.upgrade(config, "head")


async def scheduled_exophone_sync() -> None:
    db = SessionLocal()
    try:
        result = await sync_exophones(app.state.exotel_client, db)
        logger.info("Scheduled ExoPhone sync completed: %s numbers", result["synced_to_db"])
    except Exception:
        logger.exception("Scheduled ExoPhone sync failed")
    finally:
        db.close()


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=1008)
        return
    db = SessionLocal()
    try:
        user = user_from_token(db, token)
    finally:
        db.close()
    if not user:
        await websocket.close(code=1008)
        return
    await websocket.accept()
    events: Optional[EventPublisher] = getattr(websocket.app.state, "events", None)
    pubsub = events.client.pubsub() if events and events.client else None
    if pubsub:
        await pubsub.subscribe(EVENTS_CHANNEL)
    try:
        while True:
            if pubsub:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message and message.get("data"):
                    await websocket.send_text(message["data"])
            await asyncio.sleep(0.2)
    except WebSocketDisconnect:
        if pubsub:
            await pubsub.unsubscribe(EVENTS_CHANNEL)
            await pubsub.close()
