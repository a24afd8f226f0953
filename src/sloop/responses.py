"""Map ``OperationResult`` values onto HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from sloop.results import OperationResult

REASON_STATUS: dict[str, int] = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "invalid_argument": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "insufficient_resource": status.HTTP_409_CONFLICT,
    "conflict": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def unwrap(result: OperationResult) -> OperationResult:
    """Pass successful results through, raise the mapped HTTP error otherwise."""
    if not result.success:
        code = REASON_STATUS.get(result.reason or "", status.HTTP_400_BAD_REQUEST)
        raise HTTPException(
            status_code=code,
            detail={"reason": result.reason, "message": result.message},
        )
    return result
