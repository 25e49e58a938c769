"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/auth.py (to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

The login limit comes from Settings.login_rate_limit. The route decorator is
applied at import time, before any Settings exist, so it is given
login_rate_limit (a callable slowapi evaluates per request) instead of a
fixed string. configure_limiter() is called once by create_app().
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from slowapi import Limiter
from slowapi.util import get_remote_address

if TYPE_CHECKING:
    from core.config import Settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

_login_limit = "10/minute"


def configure_limiter(settings: Settings) -> None:
    global _login_limit
    _login_limit = settings.login_rate_limit
    limiter.enabled = settings.rate_limit_enabled


def login_rate_limit() -> str:
    return _login_limit
