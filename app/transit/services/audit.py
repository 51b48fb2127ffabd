import logging
from datetime import datetime

from app.transit.core.context import RequestContext
from app.transit.db.models import AuditEvent
from app.transit.repos.audit import AuditRepository

logger = logging.getLogger(__name__)


class AuditService:
    def __init__(self, db):
        self.repo = AuditRepository(db)

    def record(
        self,
        context: RequestContext,
        *,
        action: str,
        entity_type: str,
        entity_id: str,
        after: dict | None,
        before: dict | None = None,
        metadata: dict | None = None,
        result: str = "success",
    ) -> None:
        try:
            self.repo.create(
                AuditEvent(
                    actor_id=context.actor_id,
                    store_id=context.store_id,
                    trace_id=context.trace_id or None,
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    before_payload=before,
                    after_payload=after,
                    event_metadata=dict(metadata or {}),
                    result=result,
                    created_at=datetime.utcnow(),
                )
            )
        except Exception:
            self.repo.db.rollback()
            logger.exception(
                "Failed to write audit event",
                extra={"action": action, "trace_id": context.trace_id, "entity_id": entity_id},
            )

    def history(self, dispatch) -> list[AuditEvent]:
        item_ids = [str(item.id) for item in dispatch.items]
        return self.repo.list_for_dispatch(str(dispatch.id), item_ids)
