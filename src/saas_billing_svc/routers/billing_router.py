import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from saas_billing_svc.billing_service import BillingService
from saas_billing_svc.deps import get_billing_service
from saas_billing_svc.errors import BillingConfigurationError, NotFoundError
from saas_billing_svc.models.user import User
from saas_billing_svc.rate_limit import rate_limited_user
from saas_billing_svc.schemas import (
    CheckoutSessionRequest,
    EntitlementsOut,
    InvoiceOut,
    PlanOut,
    SessionUrlOut,
    SubscriptionOut,
    SuccessOut,
    UsageOut,
)

router = APIRouter()


def _to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotFoundError):
        logging.info(f"Billing lookup failed: {e}")
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    logging.error(e, exc_info=True)
    if isinstance(e, BillingConfigurationError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Billing request failed")


@router.get("/subscription", response_model=Optional[SubscriptionOut])
def get_subscription(user: User = Depends(rate_limited_user),
                     service: BillingService = Depends(get_billing_service)):
    return service.get_subscription(user.id)


@router.get("/plans", response_model=List[PlanOut])
def get_plans(service: BillingService = Depends(get_billing_service)):
    return service.get_plans()


@router.post("/checkout-session", response_model=SessionUrlOut)
def create_checkout_session(checkout_request: CheckoutSessionRequest,
                            user: User = Depends(rate_limited_user),
                            service: BillingService = Depends(get_billing_service)):
    try:
        return service.create_checkout_session(user.id, checkout_request.price_id)
    except Exception as e:
        raise _to_http_error(e)


@router.post("/portal-session", response_model=SessionUrlOut)
def create_portal_session(user: User = Depends(rate_limited_user),
                          service: BillingService = Depends(get_billing_service)):
    try:
        return service.create_portal_session(user.id)
    except Exception as e:
        raise _to_http_error(e)


@router.post("/subscription/cancel", response_model=SuccessOut)
def cancel_subscription(user: User = Depends(rate_limited_user),
                        service: BillingService = Depends(get_billing_service)):
    try:
        return service.cancel_subscription(user.id)
    except Exception as e:
        raise _to_http_error(e)


@router.post("/subscription/reactivate", response_model=SuccessOut)
def reactivate_subscription(user: User = Depends(rate_limited_user),
                            service: BillingService = Depends(get_billing_service)):
    try:
        return service.reactivate_subscription(user.id)
    except Exception as e:
        raise _to_http_error(e)


@router.get("/invoices", response_model=List[InvoiceOut])
def get_invoices(user: User = Depends(rate_limited_user),
                 service: BillingService = Depends(get_billing_service)):
    return service.get_invoices(user.id)


@router.get("/usage", response_model=UsageOut)
def get_usage(user: User = Depends(rate_limited_user),
              service: BillingService = Depends(get_billing_service)):
    return service.get_usage(user.id)


@router.get("/entitlements", response_model=EntitlementsOut)
def get_entitlements(user: User = Depends(rate_limited_user),
                     service: BillingService = Depends(get_billing_service)):
    return service.get_entitlements(user.id)
