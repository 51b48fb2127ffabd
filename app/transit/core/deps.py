from fastapi import Request

from app.transit.core.context import RequestContext, get_request_context
from app.transit.core.error_catalog import AppError, ErrorCatalog


def require_actor(request: Request) -> RequestContext:
    context = get_request_context(request)
    if not context.actor_id:
        raise AppError(ErrorCatalog.ACTOR_REQUIRED, details={"header": "X-Actor-ID"})
    return context


__all__ = [
    "get_request_context",
    "require_actor",
]
