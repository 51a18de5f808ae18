"""Shared slowapi limiter for the API routers."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from cleanwash.core.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    enabled=_settings.rate_limit_enabled,
)

WRITE_LIMIT = _settings.rate_limit_writes
