"""Shared model configuration and field types."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

CENTS = Decimal("0.01")


def to_cents(value: Decimal) -> Decimal:
    """Round a monetary amount to whole cents."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


# Decimal in Python, plain JSON number on the wire
Money = Annotated[
    Decimal,
    AfterValidator(to_cents),
    PlainSerializer(float, return_type=float, when_used="json"),
]


class CamelModel(BaseModel):
    """Base model exposing camelCase field names to API clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Render with API field names and JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True)
