"""Input models for booking operations."""

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from shared.errors import InvalidArgumentError


class CustomerInput(BaseModel):
    """Customer data supplied with a new booking."""

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=1, max_length=40)
    birthday: Optional[date] = None

    @field_validator("first_name", "last_name", "phone", mode="before")
    @classmethod
    def _strip(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


def parse_customer_input(data: CustomerInput | dict[str, Any]) -> CustomerInput:
    """
    Coerce raw customer data into CustomerInput.

    Raises:
        InvalidArgumentError: missing or malformed fields
    """
    if isinstance(data, CustomerInput):
        return data

    try:
        return CustomerInput.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise InvalidArgumentError(
            "Invalid customer data",
            {"fields": fields},
        ) from e
