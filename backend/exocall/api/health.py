import redis
from fastapi import APIRouter, HTTPException
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from exocall.core.config import settings
from exocall.core.database import SessionLocal

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/ready")
def ready():
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    finally:
        db.close()
    redis_client = redis.Redis.from_url(settings.redis_url, socket_connect_timeout=1)
    try:
        redis_client.ping()
    except RedisError as exc:
        raise HTTPException(status_code=503, detail="Redis unavailable") from exc
    finally:
        redis_client.close()
    return {"status": "ready"}
