from sqlalchemy import and_, or_, select

from app.transit.db.models import AuditEvent


class AuditRepository:
    def __init__(self, db):
        self.db = db

    def create(self, event: AuditEvent) -> AuditEvent:
        self.db.add(event)
        self.db.commit()
        return event

    def list_for_dispatch(self, dispatch_id: str, item_ids: list[str]) -> list[AuditEvent]:
        stmt = (
            select(AuditEvent)
            .where(
                or_(
                    and_(AuditEvent.entity_type == "dispatch", AuditEvent.entity_id == dispatch_id),
                    and_(AuditEvent.entity_type == "dispatch_item", AuditEvent.entity_id.in_(item_ids)),
                )
            )
            .order_by(AuditEvent.created_at.asc())
        )
        return self.db.execute(stmt).scalars().all()
