"""
Standard API response models and helpers for consistent response formatting.

Every endpoint returns one of two envelopes:
- Success: { "success": true, "data": <payload>, "meta": {...} }
- Error: { "success": false, "error": { "code": "...", "message": "...", "details": {...} } }
"""
from typing import Any
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Standard error detail structure."""
    code: str = Field(..., description="Error code (e.g., 'conflict', 'permissiondenied')")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(default=None, description="Additional error context")


class StandardErrorResponse(BaseModel):
    """Standard error response envelope."""
    success: bool = Field(False, description="Always false for errors")
    error: ErrorDetail = Field(..., description="Error details")


def success_response(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Create a standardized success response.

    Returns:
        dict: { "success": true, "data": <data>, "meta": <meta> }
    """
    response = {"success": True, "data": data}
    if meta:
        response["meta"] = meta
    return response


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Create a standardized error body."""
    return StandardErrorResponse(
        error=ErrorDetail(code=code, message=message, details=details)
    ).model_dump()


def paginated_response(
    items: list[Any],
    limit: int,
    offset: int = 0,
    total: int | None = None,
) -> dict[str, Any]:
    """
    Create a standardized paginated response.

    Args:
        items: Items for this page
        limit: Page size
        offset: Index of the first item
        total: Total number of items (if None, uses len(items))
    """
    if total is None:
        total = len(items)

    meta = {
        "limit": limit,
        "offset": offset,
        "total": total,
        "hasMore": (offset + limit) < total,
    }
    return success_response(data=items, meta=meta)
