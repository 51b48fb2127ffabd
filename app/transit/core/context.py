from dataclasses import dataclass

from fastapi import Request


@dataclass(frozen=True)
class RequestContext:
    actor_id: str | None
    store_id: str | None
    trace_id: str


def build_request_context(
    *,
    actor_id: str | None,
    store_id: str | None,
    trace_id: str,
) -> RequestContext:
    return RequestContext(actor_id=actor_id, store_id=store_id, trace_id=trace_id)


def get_request_context(request: Request) -> RequestContext:
    context = getattr(request.state, "context", None)
    if isinstance(context, RequestContext):
        return context
    return build_request_context(
        actor_id=getattr(request.state, "actor_id", None),
        store_id=getattr(request.state, "store_id", None),
        trace_id=getattr(request.state, "trace_id", ""),
    )
