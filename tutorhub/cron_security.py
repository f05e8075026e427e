"""
Authentication for scheduler-triggered endpoints

Cron callers send ``Authorization: Bearer <CRON_SECRET>``.
"""

import hmac
import logging

from fastapi import HTTPException, Request

from . import config

logger = logging.getLogger(__name__)


def constant_time_compare(a: str, b: str) -> bool:
    """Constant-time string comparison; empty values never match"""
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


async def verify_cron_secret(request: Request) -> None:
    """FastAPI dependency rejecting requests without the cron bearer token"""
    if not config.CRON_SECRET:
        logger.error("❌ CRON_SECRET not configured - rejecting cron request")
        raise HTTPException(status_code=401, detail="Unauthorized")

    auth_header = request.headers.get("Authorization", "")
    if not constant_time_compare(auth_header, f"Bearer {config.CRON_SECRET}"):
        logger.warning(f"🔒 Rejected cron request to {request.url.path}: invalid credentials")
        raise HTTPException(status_code=401, detail="Unauthorized")
