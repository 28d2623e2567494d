"""
Patient wallet: a balance plus the append-only ledger that produces it.

The balance must always equal the replay of the transactions
(deposits - withdrawals - payments). Only ledger_service mutates a wallet.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from pharmacy.models.medicine import to_money


class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    PAYMENT = "PAYMENT"


def now_seconds() -> datetime:
    # Stored timestamps carry whole seconds
    return datetime.now().replace(microsecond=0)


class Transaction(BaseModel):
    id: int
    amount: Decimal  # always positive; type gives the direction
    type: TransactionType
    description: str = ""
    timestamp: datetime = Field(default_factory=now_seconds)
    order_id: Optional[int] = None  # PAYMENT only

    class Config:
        frozen = True

    @field_validator("amount", mode="before")
    @classmethod
    def quantize_amount(cls, v):
        return to_money(v)

    @field_validator("timestamp")
    @classmethod
    def drop_microseconds(cls, v: datetime) -> datetime:
        return v.replace(microsecond=0)

    @property
    def signed_amount(self) -> Decimal:
        """Effect on the balance: + for deposits, - otherwise."""
        return self.amount if self.type == TransactionType.DEPOSIT else -self.amount


class Wallet(BaseModel):
    balance: Decimal = Decimal("0.00")
    transactions: List[Transaction] = Field(default_factory=list)

    @field_validator("balance", mode="before")
    @classmethod
    def quantize_balance(cls, v):
        return to_money(v)
