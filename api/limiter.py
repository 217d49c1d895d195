"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount as middleware) and api/routes/v1/auth.py
(to apply per-route limits with @limiter.limit()).

One shared instance means every route counts against the same in-memory
store. Tests call limiter.reset() between cases.

Two layers of per-IP request caps:
  - application limit: API_RATE_LIMIT (100 per 15 minutes) shared across every
    undecorated route, enforced by SlowAPIMiddleware. /api/v1/health is exempt.
  - route limits: LOGIN_RATE_LIMIT on login, register and forgot-password.

The account and origin lockout rules in auth/lockout.py are separate and keyed
on failed attempts, not requests.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings


def _application_limit() -> str:
    return get_settings().api_rate_limit


limiter = Limiter(
    key_func=get_remote_address,
    application_limits=[_application_limit],
    storage_uri="memory://",
)
