"""Core application infrastructure shared by the routers."""

from novura.core.rate_limit import limiter, OAUTH_START_LIMIT

__all__ = ["limiter", "OAUTH_START_LIMIT"]
