from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.transit.core.context import build_request_context

ACTOR_HEADER = "X-Actor-ID"
STORE_HEADER = "X-Store-ID"


def _header(request: Request, name: str) -> str | None:
    value = request.headers.get(name)
    if value is None:
        return None
    return value.strip() or None


class ActorContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request.state.actor_id = _header(request, ACTOR_HEADER)
        request.state.store_id = _header(request, STORE_HEADER)
        request.state.context = build_request_context(
            actor_id=request.state.actor_id,
            store_id=request.state.store_id,
            trace_id=getattr(request.state, "trace_id", ""),
        )
        return await call_next(request)
