import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request, status, Depends
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from saas_billing_svc.config import Settings, get_settings
from saas_billing_svc.deps import get_notifier, get_stripe_integration
from saas_billing_svc.errors import InvalidSignatureError
from saas_billing_svc.models.base import get_db
from saas_billing_svc.notifications import Notifier
from saas_billing_svc.stripe_event_processor import process_event
from saas_billing_svc.stripe_integration import StripeIntegration, construct_webhook_event

router = APIRouter()


@router.post("/webhook", status_code=200)
async def process_webhook(request: Request,
                          db: Session = Depends(get_db),
                          settings: Settings = Depends(get_settings),
                          stripe_integration: Optional[StripeIntegration] = Depends(get_stripe_integration),
                          notifier: Notifier = Depends(get_notifier)):
    payload_bytes = await request.body()
    sig_header = request.headers.get("Stripe-Signature")
    if not sig_header:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing Stripe-Signature header")
    endpoint_secret = settings.STRIPE_WEBHOOK_SECRET
    if not endpoint_secret:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Stripe webhook secret not configured")

    try:
        payload = payload_bytes.decode('utf-8')
        event = construct_webhook_event(payload, sig_header, endpoint_secret)
    except (InvalidSignatureError, ValueError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        # process_event blocks on Stripe and the database
        outcome = await run_in_threadpool(process_event, event, db, stripe_integration, notifier,
                                          billing_url=settings.billing_url)
    except ValueError as e:
        logging.error(e, exc_info=True)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        # Non-2xx makes Stripe re-deliver the event with backoff
        logging.error(e, exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error processing webhook event")

    return {"success": True, "event_id": event.get('id'), "type": event.get('type'), "status": outcome}
