"""Mapping of core operation results onto HTTP responses."""

from typing import Any

from fastapi.responses import JSONResponse

from shared.errors import ErrorCode, OperationResult

ERROR_STATUS_CODES = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.INVALID_TRANSITION: 400,
    ErrorCode.GATEWAY_ERROR: 502,
    ErrorCode.CONFLICT: 409,
}


def error_response(result: OperationResult) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS_CODES.get(result.error_code, 500),
        content={
            "success": False,
            "error_code": result.error_code.value if result.error_code else None,
            "message": result.error_message,
            "details": result.details,
        },
    )


def result_response(result: OperationResult, status_code: int = 200) -> JSONResponse | dict[str, Any]:
    """Return the success body, or the mapped error response."""
    if not result.success:
        return error_response(result)
    if status_code != 200:
        return JSONResponse(status_code=status_code, content={"success": True, "data": result.data})
    return {"success": True, "data": result.data}
