"""
Normalized Plaid fetch results.

Field names are decoupled from Plaid's wire format; the provider service maps
between the two.
"""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class PlaidBalance(BaseModel):
    current: float = 0.0
    available: Optional[float] = None
    limit: Optional[float] = None
    currency: str = "USD"


class PlaidAccount(BaseModel):
    account_id: str
    name: str
    official_name: Optional[str] = None
    type: str
    subtype: str = ""
    mask: Optional[str] = None
    balance: PlaidBalance


class PlaidTransaction(BaseModel):
    transaction_id: str
    account_id: str
    amount: float
    date: date
    name: str
    merchant_name: Optional[str] = None
    category: list[str] = Field(default_factory=list)
    pending: bool = False
    currency: str = "USD"


class PlaidScheduledPayment(BaseModel):
    """An active recurring outflow and when Plaid expects it next."""

    stream_id: str
    account_id: str
    description: str = ""
    merchant_name: Optional[str] = None
    amount: float
    frequency: str = "UNKNOWN"
    next_payment_date: Optional[date] = None
    currency: str = "USD"


class PlaidData(BaseModel):
    accounts: list[PlaidAccount] = Field(default_factory=list)
    transactions: list[PlaidTransaction] = Field(default_factory=list)
    scheduled_payments: list[PlaidScheduledPayment] = Field(default_factory=list)


class PlaidAuthResponse(BaseModel):
    """Either a usable access token or a link token for re-linking."""

    type: Literal["access_token", "link_token"]
    access_token: Optional[str] = None
    link_token: Optional[str] = None

    @model_validator(mode="after")
    def _token_matches_type(self) -> "PlaidAuthResponse":
        if self.type == "access_token" and not self.access_token:
            raise ValueError("access_token is required when type is 'access_token'")
        if self.type == "link_token" and not self.link_token:
            raise ValueError("link_token is required when type is 'link_token'")
        return self


__all__ = [
    "PlaidAccount",
    "PlaidAuthResponse",
    "PlaidBalance",
    "PlaidData",
    "PlaidScheduledPayment",
    "PlaidTransaction",
]
