"""Shared slowapi limiter, keyed by client IP address."""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

OAUTH_START_LIMIT = "30/minute"
