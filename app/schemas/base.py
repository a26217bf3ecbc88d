"""
Base Schema Classes for Pydantic Models

This module provides base classes that handle common patterns like camelCase
aliases and ORM reads, ensuring consistency across all request and response
schemas.

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.
"""

from typing import Any, Generic, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Features:
    - Enables from_attributes for ORM compatibility
    - Serializes field names as camelCase (waveNumber, slaDeadline)
    - Accepts either camelCase or snake_case on input

    Usage:
        class WaveResponse(BaseResponseSchema):
            id: UUID
            wave_number: str
            picker_id: Optional[UUID] = None
    """
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        # Allow population by field name or alias
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    These schemas accept camelCase (``orderIds``) as well as snake_case
    (``order_ids``) and convert string UUIDs to UUID objects.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
    )


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope: {statusCode, success, data, message}."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    status_code: int = 200
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error envelope: {statusCode, success: false, error}."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    status_code: int
    success: bool = False
    error: str
    details: Optional[Any] = None


def ok(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> ApiResponse:
    """Wrap a payload in the success envelope."""
    return ApiResponse(status_code=status_code, success=True, data=data, message=message)


# Type aliases for common UUID patterns
UUIDField = UUID
OptionalUUID = Optional[UUID]
