import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException

from . import config

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"
SERVICE_KEY_HEADER = "X-Service-Key"


async def get_current_user_id(x_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER)) -> str:
    """
    Identity of the caller.

    Authentication happens upstream; the gateway forwards the verified user id
    in the X-User-Id header. Requests without it are rejected.
    """
    if not x_user_id or not x_user_id.strip():
        logger.warning(f"❌ Missing {USER_ID_HEADER} header")
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id.strip()


async def verify_service_key(x_service_key: Optional[str] = Header(None, alias=SERVICE_KEY_HEADER)) -> None:
    """
    Guard for machine-to-machine endpoints (chat linkage).

    The key is compared in constant time against SERVICE_API_KEY. Without a
    configured key every call is refused.
    """
    if not config.SERVICE_API_KEY:
        logger.error("❌ SERVICE_API_KEY is not configured")
        raise HTTPException(status_code=503, detail="Service authentication not configured")
    if not x_service_key:
        logger.warning(f"❌ Missing {SERVICE_KEY_HEADER} header")
        raise HTTPException(status_code=401, detail="Missing service key")
    if not hmac.compare_digest(x_service_key.encode("utf-8"), config.SERVICE_API_KEY.encode("utf-8")):
        logger.warning("❌ Invalid service key")
        raise HTTPException(status_code=403, detail="Invalid service key")
