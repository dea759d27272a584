"""
Payment reference cookie
The issued reference is mirrored into an HttpOnly cookie so a payment can
still be correlated if the in-memory store was lost between issuance and
confirmation. The value is an HS256-signed JWT; it proves identity of the
reference only, never its used/expired state.
"""

import time
import logging
from typing import Optional

import jwt
from fastapi import Response

from api.config import cookie_secret, is_production
from api.references import REFERENCE_TTL_SECONDS

logger = logging.getLogger("travel_api.cookie")

PAY_REF_COOKIE = "pay_ref"


def sign_reference(reference_id: str, ttl_secs: int = REFERENCE_TTL_SECONDS) -> Optional[str]:
    """Return a signed cookie value, or None when no secret is configured."""
    secret = cookie_secret()
    if not secret:
        logger.warning("PAY_REF_COOKIE_SECRET not set - skipping payment reference cookie")
        return None

    now = int(time.time())
    body = {"ref": reference_id, "iat": now, "exp": now + ttl_secs}
    return jwt.encode(body, secret, algorithm="HS256")


def read_reference_cookie(raw_value: Optional[str]) -> Optional[str]:
    """Return the reference carried by a valid cookie, else None."""
    if not raw_value:
        return None

    secret = cookie_secret()
    if not secret:
        return None

    try:
        claims = jwt.decode(raw_value, secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        logger.info("Payment reference cookie expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid payment reference cookie: {e}")
        return None

    reference = claims.get("ref")
    return reference if isinstance(reference, str) else None


def set_reference_cookie(response: Response, reference_id: str) -> bool:
    """Attach the pay_ref cookie; never raises."""
    try:
        value = sign_reference(reference_id)
        if value is None:
            return False
        response.set_cookie(
            PAY_REF_COOKIE,
            value,
            max_age=REFERENCE_TTL_SECONDS,
            path="/",
            secure=is_production(),
            httponly=True,
            samesite="lax",
        )
        return True
    except Exception as e:
        # In-memory correlation still works without the cookie
        logger.warning(f"Could not set payment reference cookie: {e}")
        return False


def clear_reference_cookie(response: Response) -> None:
    try:
        response.set_cookie(
            PAY_REF_COOKIE,
            "",
            max_age=0,
            path="/",
            secure=is_production(),
            httponly=True,
            samesite="lax",
        )
    except Exception as e:
        logger.warning(f"Could not clear payment reference cookie: {e}")
