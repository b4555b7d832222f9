"""
Base schemas with standardized field types for consistent API responses.
"""
from decimal import Decimal
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic_core import core_schema

T = TypeVar("T")


class StandardizedModel(BaseModel):
    """Base model with standardized JSON encoding"""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True)


class Money(Decimal):
    """Money field that always serializes as float"""

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        def validate_money(value: Any) -> Decimal:
            if isinstance(value, Decimal):
                return value
            if isinstance(value, (int, float, str)):
                return Decimal(str(value))
            raise ValueError(f"Cannot convert {type(value)} to Money")

        return core_schema.no_info_after_validator_function(
            validate_money,
            core_schema.union_schema(
                [
                    core_schema.is_instance_schema(Decimal),
                    core_schema.int_schema(),
                    core_schema.float_schema(),
                    core_schema.str_schema(),
                ]
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(
                float,
                info_arg=False,
                return_schema=core_schema.float_schema(),
            ),
        )


class ApiResponse(BaseModel, Generic[T]):
    """
    Response envelope shared by every endpoint.

    ``status`` mirrors the HTTP status code; errors carry ``data = None``
    (see ``hustle.errors``).
    """

    status: int
    message: str
    data: Optional[T] = None


def envelope(data: Any = None, message: str = "OK", status_code: int = 200) -> dict[str, Any]:
    """Build the envelope dict for a route's return value."""
    return {"status": status_code, "message": message, "data": data}
