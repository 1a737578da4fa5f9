"""Common schemas used across the application."""

from typing import Generic, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response wrapper.

    Usage:
        response_model=ApiResponse[PaginatedResponse[PendingActionOut]]

    Returns:
        {
            "items": [...],
            "total": 150,
            "limit": 50,
            "offset": 0
        }
    """
    items: list[T]
    total: int
    limit: int
    offset: int


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope shared by every approval endpoint.

    Errors use the same top-level shape with ``success: false`` and an
    ``error`` object (see middleware/exceptions.py).
    """
    success: bool = True
    data: T | None = None
    message: str | None = None
    executed: bool | None = None
