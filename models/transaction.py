"""
Transaction model - represents one stock purchase.
"""

import math
from typing import Optional
from datetime import datetime, timezone
from pydantic import field_validator
from sqlmodel import SQLModel, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TransactionBase(SQLModel):
    """Fields the user supplies for a purchase."""
    ticker: str = Field(index=True)  # e.g., "AAPL", "MSFT"
    quantity: float  # Fractional shares allowed
    price: float  # Price per unit at purchase time
    purchased_at: datetime = Field(index=True)  # Always UTC


class Transaction(TransactionBase, table=True):
    """Represents a recorded purchase of an instrument."""
    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class TransactionCreate(TransactionBase):
    """
    Validated input for creating or replacing a transaction.
    Validation runs once here, before anything is persisted.
    """

    @field_validator('ticker')
    @classmethod
    def normalize_ticker(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("Ticker symbol is required")
        return value

    @field_validator('quantity', 'price')
    @classmethod
    def must_be_positive(cls, value: float) -> float:
        if not math.isfinite(value) or value <= 0:
            raise ValueError("Quantity and price must be positive numbers")
        return value

    @field_validator('purchased_at')
    @classmethod
    def not_in_future(cls, value: datetime) -> datetime:
        # Naive input is taken to be UTC
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        else:
            value = value.astimezone(timezone.utc)
        if value > _utc_now():
            raise ValueError("Purchase date cannot be in the future")
        return value
