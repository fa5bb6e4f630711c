"""
Time-windowed nonces protecting the proxy endpoints against CSRF.

A nonce is valid for ``nonce_lifetime_seconds`` split into two ticks, the same
scheme WordPress uses: a token minted in the current half-window verifies as 1,
one minted in the previous half-window verifies as 2.
"""
import hashlib
import hmac
import math
import time
from typing import Optional

from app.core.config import get_settings

API_PROXY_ACTION = "aipw_api_proxy"
ORDER_SUBMIT_ACTION = "aipw_order_submit"

NONCE_LENGTH = 10


def _tick(lifetime: int, now: Optional[float] = None) -> int:
    now = time.time() if now is None else now
    return math.ceil(now / (lifetime / 2))


def _digest(secret: str, tick: int, action: str, session: str) -> str:
    message = f"{tick}|{action}|{session}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()[:NONCE_LENGTH]


def create_nonce(action: str, session: str = "", now: Optional[float] = None) -> str:
    """Create a nonce for an action"""
    settings = get_settings()
    tick = _tick(settings.nonce_lifetime_seconds, now)
    return _digest(settings.secret_key, tick, action, session)


def verify_nonce(nonce: Optional[str], action: str, session: str = "", now: Optional[float] = None) -> int:
    """
    Verify a nonce

    Returns:
        1 if generated in the current half-lifetime, 2 if in the previous one,
        0 if invalid or expired
    """
    if not nonce or not isinstance(nonce, str):
        return 0

    settings = get_settings()
    tick = _tick(settings.nonce_lifetime_seconds, now)
    candidate = nonce.encode("utf-8")

    if hmac.compare_digest(_digest(settings.secret_key, tick, action, session).encode(), candidate):
        return 1
    if hmac.compare_digest(_digest(settings.secret_key, tick - 1, action, session).encode(), candidate):
        return 2
    return 0
