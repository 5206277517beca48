import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class CheckoutSessionRequest(BaseModel):
    price_id: str


class SessionUrlOut(BaseModel):
    url: Optional[str]


class SuccessOut(BaseModel):
    success: bool


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stripe_subscription_id: str
    stripe_price_id: str
    stripe_current_period_end: datetime.datetime
    status: str
    cancel_at_period_end: bool


class InvoiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stripe_invoice_id: str
    amount_paid: int
    currency: str
    status: str
    hosted_invoice_url: Optional[str] = None
    invoice_pdf: Optional[str] = None
    created_at: datetime.datetime


class PlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stripe_price_id: str
    name: str
    description: Optional[str] = None
    price: int
    interval: str
    features: Optional[List[str]] = None


class UsageOut(BaseModel):
    todos: int


class EntitlementsOut(BaseModel):
    plan: Optional[str]
    status: Optional[str]
    features: List[str]
    todo_limit: Optional[int]
    todos: int
    can_create_todo: bool
