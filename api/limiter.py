"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in the route
modules (to apply per-route limits with @limiter.limit()). All routes must
share this one instance, otherwise each module counts against its own
in-memory store and no limit ever triggers.

Route order: @router.post(...) above @limiter.limit(...). FastAPI then registers
slowapi's wrapper, which checks the limit inside the handler whenever
SlowAPIMiddleware could not match the route itself (newer FastAPI wraps
included routers, which hides the endpoint from the middleware). The wrapper
marks the request as checked, so a limit is never counted twice.

Requests carrying a bearer token are counted per token; anonymous requests
(signup, login) per client address.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request


def _client_key(request: Request) -> str:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme == "Bearer" and token.strip():
        return f"token:{token.strip()[-32:]}"
    return get_remote_address(request)


limiter = Limiter(key_func=_client_key, storage_uri="memory://")
