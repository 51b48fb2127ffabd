from uuid import UUID

from fastapi import APIRouter, Depends

from app.transit.core.error_catalog import NotFoundError
from app.transit.db.models import Store
from app.transit.db.session import get_db
from app.transit.schemas.batches import AvailableBatchListResponse, AvailableBatchResponse
from app.transit.schemas.errors import error_responses
from app.transit.services.availability import AvailabilityService

router = APIRouter()


@router.get(
    "/transit/stores/{store_id}/available-batches",
    response_model=AvailableBatchListResponse,
    responses=error_responses(404),
)
def list_available_batches(store_id: UUID, db=Depends(get_db)):
    if db.get(Store, store_id) is None:
        raise NotFoundError("store", store_id)
    rows = []
    for availability in AvailabilityService(db).available_batches(str(store_id)):
        batch = availability.batch
        rows.append(
            AvailableBatchResponse(
                id=str(batch.id),
                store_id=str(batch.store_id),
                sku=batch.sku,
                batch_number=batch.batch_number,
                total_quantity=batch.total_quantity,
                active_quantity=availability.active_quantity,
                committed_quantity=availability.committed_quantity,
                available_quantity=availability.available_quantity,
                unit_cost=batch.unit_cost,
                sell_price=batch.sell_price,
            )
        )
    return AvailableBatchListResponse(store_id=str(store_id), rows=rows)
