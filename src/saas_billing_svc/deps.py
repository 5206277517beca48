from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from saas_billing_svc.billing_service import BillingService
from saas_billing_svc.config import Settings, get_settings
from saas_billing_svc.models.base import get_db
from saas_billing_svc.notifications import Notifier
from saas_billing_svc.stripe_integration import StripeIntegration


def get_stripe_integration(request: Request) -> Optional[StripeIntegration]:
    return request.app.state.stripe_integration


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_billing_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    stripe_integration: Optional[StripeIntegration] = Depends(get_stripe_integration),
) -> BillingService:
    return BillingService(db, settings, stripe_integration)
