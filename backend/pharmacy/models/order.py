"""
Order placed by a patient.

Status flow: PENDING -> PAID -> COMPLETED, or PENDING -> CANCELLED.
Only order_service changes status; `paid` and `payment_method` must agree
with it, which is checked whenever an order is built or loaded.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from pharmacy.models.medicine import Medicine, to_money
from pharmacy.models.wallet import now_seconds


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class PaymentMethod(str, Enum):
    NOT_PAID = "NOT_PAID"
    WALLET = "WALLET"
    CARD = "CARD"


class DeliveryMethod(str, Enum):
    PICKUP = "PICKUP"
    HOME_DELIVERY = "HOME_DELIVERY"


PAID_STATES = {OrderStatus.PAID, OrderStatus.COMPLETED}


class OrderItem(BaseModel):
    medicine: Medicine  # the catalog object, not a copy
    quantity: int = Field(gt=0)
    unit_price: Decimal  # price when the item was added

    @field_validator("unit_price", mode="before")
    @classmethod
    def quantize_price(cls, v):
        return to_money(v)

    @property
    def medicine_id(self) -> int:
        return self.medicine.id

    @property
    def line_total(self) -> Decimal:
        return (self.unit_price * self.quantity).quantize(Decimal("0.01"))


class Order(BaseModel):
    id: int
    patient_id: int
    order_date: datetime = Field(default_factory=now_seconds)
    items: List[OrderItem] = Field(default_factory=list)
    total: Decimal = Decimal("0.00")
    status: OrderStatus = OrderStatus.PENDING
    payment_method: PaymentMethod = PaymentMethod.NOT_PAID
    paid: bool = False
    patient_name: str = ""
    patient_phone: str = ""
    patient_address: str = ""
    delivery_method: Optional[DeliveryMethod] = None
    prescription_id: Optional[int] = None

    @field_validator("total", mode="before")
    @classmethod
    def quantize_total(cls, v):
        return to_money(v)

    @field_validator("order_date")
    @classmethod
    def drop_microseconds(cls, v: datetime) -> datetime:
        return v.replace(microsecond=0)

    @model_validator(mode="after")
    def paid_matches_status(self):
        """paid is true exactly in PAID/COMPLETED, and only with a payment method."""
        if self.paid != (self.status in PAID_STATES):
            raise ValueError(f"paid={self.paid} contradicts status {self.status.value}")
        if self.paid == (self.payment_method == PaymentMethod.NOT_PAID):
            raise ValueError(f"paid={self.paid} contradicts payment method {self.payment_method.value}")
        return self

    def calculate_total(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0.00"))

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)
