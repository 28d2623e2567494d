"""
Medicine catalog entry.

Quantity on hand is the only field the workflows mutate (reservation on
order, deduction on prescription fill, restocking). A medicine is never
deleted, only removed from a catalog list, so historical orders keep
pointing at it.
"""
from decimal import Decimal, InvalidOperation

from pydantic import BaseModel, Field, field_validator

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce to a two-place Decimal. Floats go through str() first."""
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENT)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Not a money amount: {value!r}")


class Medicine(BaseModel):
    id: int
    name: str
    description: str = ""
    manufacturer: str = ""
    price: Decimal = Field(ge=0)
    quantity: int = Field(default=0, ge=0)
    category: str = ""
    requires_prescription: bool = False  # Pharmacy compliance flag

    @field_validator("price", mode="before")
    @classmethod
    def quantize_price(cls, v):
        return to_money(v)
