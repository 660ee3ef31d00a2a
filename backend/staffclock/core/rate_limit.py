from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from staffclock.core.config import settings


def get_client_ip(request: Request) -> str:
    """Client address for per-IP limits.

    X-Forwarded-For and X-Real-IP are only read when ``trust_proxy_headers`` is
    set, i.e. behind a proxy that overwrites them.
    """
    if not settings.trust_proxy_headers:
        return get_remote_address(request)

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_client_ip,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
)

AUTH_LIMIT = settings.rate_limit_auth
