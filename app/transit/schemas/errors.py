from pydantic import BaseModel


class ApiErrorResponse(BaseModel):
    code: str
    message: str
    details: dict | None = None
    trace_id: str | None = None


class ApiValidationErrorItem(BaseModel):
    field: str | None = None
    message: str
    type: str
    loc: list[str | int] | None = None
    input: object | None = None
    ctx: dict | None = None


class ApiValidationErrorDetails(BaseModel):
    errors: list[ApiValidationErrorItem]


class ApiValidationErrorResponse(ApiErrorResponse):
    details: ApiValidationErrorDetails | dict | None = None


def error_responses(*status_codes: int) -> dict[int, dict]:
    """OpenAPI ``responses`` entries for the error envelope."""
    descriptions = {
        400: "Actor identity missing",
        404: "Dispatch, item or store not found",
        409: "Invalid state, availability conflict or scan rejected",
        422: "Validation or reconciliation error",
    }
    responses = {}
    for code in status_codes:
        model = ApiValidationErrorResponse if code == 422 else ApiErrorResponse
        responses[code] = {"model": model, "description": descriptions.get(code, "Error")}
    return responses
