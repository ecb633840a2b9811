"""Gate for inbound Exotel webhooks.

The callback URL handed to Exotel embeds ``md5(api_key:api_secret)``; a
delivery is trusted only when that path segment matches. The source-IP and
timestamp checks are evaluated and logged but never reject a request.
"""

import hmac
import ipaddress
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, Request, status

from exocall.core.config import settings
from exocall.services.exotel_client import ExotelConfigurationError, compute_token_md5

logger = logging.getLogger(__name__)

MAX_WEBHOOK_AGE_SECONDS = 300
# Empty until Exotel's published egress ranges are confirmed.
TRUSTED_SOURCE_NETWORKS: tuple[str, ...] = ()


def expected_webhook_token() -> str:
    if not settings.exotel_api_key or not settings.exotel_api_secret:
        raise ExotelConfigurationError("Missing Exotel credentials for webhook verification")
    return compute_token_md5(settings.exotel_api_key, settings.exotel_api_secret)


def is_trusted_source_ip(ip: Optional[str]) -> bool:
    if not TRUSTED_SOURCE_NETWORKS:
        return True
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(address in ipaddress.ip_network(network) for network in TRUSTED_SOURCE_NETWORKS)


def is_fresh_timestamp(value: Optional[str], now: Optional[datetime] = None) -> bool:
    if not value:
        return True
    try:
        sent_at = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return False
    if sent_at.tzinfo is None:
        sent_at = sent_at.replace(tzinfo=timezone.utc)
    age = ((now or datetime.now(timezone.utc)) - sent_at).total_seconds()
    return 0 <= age <= MAX_WEBHOOK_AGE_SECONDS


def _prefix(token: str) -> str:
    return f"{token[:8]}..."


async def verify_webhook_token(request: Request, tokenMd5: str) -> str:
    client_ip = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    if not tokenMd5:
        logger.warning("Webhook request missing tokenMd5 in URL")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing webhook verification token",
        )
    expected = expected_webhook_token()
    if not hmac.compare_digest(tokenMd5.encode(), expected.encode()):
        logger.warning(
            "Invalid webhook token received. Expected: %s, Got: %s",
            _prefix(expected),
            _prefix(tokenMd5),
        )
        logger.warning("Request from IP: %s, User-Agent: %s", client_ip, user_agent)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook verification token",
        )

    if not is_trusted_source_ip(client_ip):
        logger.warning("Webhook request from non-whitelisted IP: %s", client_ip)

    payload = await read_webhook_payload(request)
    timestamp = payload.get("DateCreated") or payload.get("date_created")
    if not is_fresh_timestamp(timestamp):
        logger.warning("Webhook request has invalid/expired timestamp: %s", timestamp)

    logger.debug("Webhook signature verified successfully for %s", request.url.path)
    return tokenMd5


async def read_webhook_payload(request: Request) -> dict:
    """Exotel posts JSON or form bodies depending on StatusCallbackContentType."""
    cached = getattr(request.state, "webhook_payload", None)
    if cached is not None:
        return cached
    content_type = request.headers.get("content-type", "")
    payload: dict = {}
    if "application/json" in content_type:
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            payload = body
    elif content_type:
        form = await request.form()
        payload = {key: value for key, value in form.items() if isinstance(value, str)}
    request.state.webhook_payload = payload
    return payload
