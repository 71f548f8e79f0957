"""
Shared slowapi rate limiter.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from ruzio.core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    enabled=get_settings().rate_limit_enabled,
)


def write_rate_limit() -> str:
    """Limit string for write endpoints, read at request time."""
    return get_settings().write_rate_limit
