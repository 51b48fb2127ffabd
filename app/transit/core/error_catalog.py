from dataclasses import dataclass
from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    ACTOR_REQUIRED = ErrorDefinition(
        "ACTOR_REQUIRED",
        "Actor identity is required",
        status.HTTP_400_BAD_REQUEST,
    )
    NOT_FOUND = ErrorDefinition("NOT_FOUND", "Resource not found", status.HTTP_404_NOT_FOUND)
    INVALID_STATE = ErrorDefinition(
        "INVALID_STATE",
        "Transition not allowed from current status",
        status.HTTP_409_CONFLICT,
    )
    AVAILABILITY_CONFLICT = ErrorDefinition(
        "AVAILABILITY_CONFLICT",
        "Batch availability changed",
        status.HTTP_409_CONFLICT,
    )
    DUPLICATE_SCAN = ErrorDefinition(
        "DUPLICATE_SCAN",
        "Barcode already scanned for this item",
        status.HTTP_409_CONFLICT,
    )
    SCAN_CAPACITY_EXCEEDED = ErrorDefinition(
        "SCAN_CAPACITY_EXCEEDED",
        "All units of this item are already scanned",
        status.HTTP_409_CONFLICT,
    )
    RECONCILIATION_ERROR = ErrorDefinition(
        "RECONCILIATION_ERROR",
        "Delivery manifest does not reconcile",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    LOCK_TIMEOUT = ErrorDefinition(
        "LOCK_TIMEOUT",
        "Lock wait timeout",
        status.HTTP_409_CONFLICT,
    )
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD = ErrorDefinition(
        "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD",
        "Idempotency key reused with different payload",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REQUEST_IN_PROGRESS = ErrorDefinition(
        "IDEMPOTENCY_REQUEST_IN_PROGRESS",
        "Idempotency request already in progress",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REPLAY = ErrorDefinition(
        "IDEMPOTENCY_REPLAY",
        "Idempotent replay",
        status.HTTP_200_OK,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)


class ValidationError(AppError):
    def __init__(self, message: str, **details):
        super().__init__(ErrorCatalog.VALIDATION_ERROR, details={"message": message, **details})


class NotFoundError(AppError):
    def __init__(self, entity: str, entity_id: object):
        super().__init__(
            ErrorCatalog.NOT_FOUND,
            details={"message": f"{entity} not found", "entity": entity, "id": str(entity_id)},
        )


class InvalidStateError(AppError):
    def __init__(self, current: str, attempted: str):
        self.current = current
        self.attempted = attempted
        super().__init__(
            ErrorCatalog.INVALID_STATE,
            details={
                "message": f"cannot {attempted} a dispatch in status {current}",
                "current_status": current,
                "attempted": attempted,
            },
        )


class ConflictError(AppError):
    def __init__(self, message: str, **details):
        super().__init__(ErrorCatalog.AVAILABILITY_CONFLICT, details={"message": message, **details})


class DuplicateScanError(AppError):
    def __init__(self, item_id: object, barcode: str):
        super().__init__(
            ErrorCatalog.DUPLICATE_SCAN,
            details={"message": "barcode already scanned", "item_id": str(item_id), "barcode": barcode},
        )


class CapacityExceededError(AppError):
    def __init__(self, item_id: object, required_quantity: int):
        super().__init__(
            ErrorCatalog.SCAN_CAPACITY_EXCEEDED,
            details={
                "message": "scanned count already equals requested quantity",
                "item_id": str(item_id),
                "required_quantity": required_quantity,
            },
        )


class ReconciliationError(AppError):
    def __init__(self, message: str, **details):
        super().__init__(ErrorCatalog.RECONCILIATION_ERROR, details={"message": message, **details})
